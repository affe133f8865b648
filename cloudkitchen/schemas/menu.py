from pydantic import BaseModel, Field
from typing import Optional, Literal

FoodDiscountLiteral = Literal["none", "percentage", "flat"]

class FoodIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: float = Field(ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    is_veg: bool = True
    available: bool = True
    discount_type: FoodDiscountLiteral = "none"
    discount_value: float = Field(default=0, ge=0)

class FoodUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    is_veg: Optional[bool] = None
    available: Optional[bool] = None
    discount_type: Optional[FoodDiscountLiteral] = None
    discount_value: Optional[float] = Field(default=None, ge=0)
