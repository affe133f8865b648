from pydantic import BaseModel
from typing import Optional

class DeliveryCalcIn(BaseModel):
    order_value: Optional[float] = None
