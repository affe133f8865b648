# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    OrderStatus, PayMethod, PaymentStatus, DiscountType, FoodDiscountType,

    # Catalog
    Food,

    # Orders / payments
    Order, OrderItem, OrderStatusEvent, Payment,

    # Coupons
    Coupon,

    # Reviews
    Review, FoodRating,

    # Sequences & audit
    SequenceCounter, AuditLog,
)

__all__ = [
    "OrderStatus", "PayMethod", "PaymentStatus", "DiscountType", "FoodDiscountType",
    "Food",
    "Order", "OrderItem", "OrderStatusEvent", "Payment",
    "Coupon",
    "Review", "FoodRating",
    "SequenceCounter", "AuditLog",
]
