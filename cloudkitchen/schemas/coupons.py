from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, Literal

DiscountTypeLiteral = Literal["percentage", "flat"]

class CouponIn(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    description: str = ""
    discount_type: DiscountTypeLiteral
    discount_value: float = Field(gt=0)
    min_order_value: float = Field(default=0, ge=0)
    max_discount: Optional[float] = Field(default=None, ge=0)
    valid_from: Optional[datetime] = None
    valid_to: datetime
    usage_limit: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

class CouponUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=40)
    description: Optional[str] = None
    discount_type: Optional[DiscountTypeLiteral] = None
    discount_value: Optional[float] = Field(default=None, gt=0)
    min_order_value: Optional[float] = Field(default=None, ge=0)
    max_discount: Optional[float] = Field(default=None, ge=0)
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    usage_limit: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None

class CouponValidateIn(BaseModel):
    code: str
    order_value: float = Field(ge=0)
