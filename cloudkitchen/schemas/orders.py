from pydantic import BaseModel, Field
from typing import Optional, Literal

PayMethodLiteral = Literal["UPI", "Card", "NetBanking", "Wallet", "COD"]
OrderStatusLiteral = Literal["Pending", "Confirmed", "Preparing", "Out for Delivery", "Delivered", "Cancelled"]
PaymentFilterLiteral = Literal["all", "paid", "unpaid"]
PeriodLiteral = Literal["all", "today", "7days", "30days"]

class CustomerIn(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: Optional[str] = None

class AddressIn(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    full_address: Optional[str] = None

class OrderItemIn(BaseModel):
    # a catalog food_id wins; name/unit_price are only used for off-catalog lines
    food_id: Optional[str] = None
    name: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: Optional[float] = Field(default=None, ge=0)
    image: Optional[str] = None

class PaymentDetailsIn(BaseModel):
    upi_id: Optional[str] = None
    card_last4: Optional[str] = Field(default=None, max_length=4)
    bank: Optional[str] = None
    wallet: Optional[str] = None

class QuoteIn(BaseModel):
    items: list[OrderItemIn] = []
    coupon_code: Optional[str] = None

class CheckoutIn(QuoteIn):
    customer: CustomerIn
    address: AddressIn = AddressIn()
    payment_method: PayMethodLiteral
    payment_details: Optional[PaymentDetailsIn] = None
    order_notes: Optional[str] = None

class StatusUpdateIn(BaseModel):
    # free string so an unknown value is a domain validation error, not a schema error
    status: str

class RefundIn(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
