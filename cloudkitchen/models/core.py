from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Integer, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from datetime import datetime
from decimal import Decimal
from cloudkitchen.db import Base
from cloudkitchen.models.common import IdMixin, TSMixin

# ── Enums ───────────────────────────────────────────────────────────────────
class OrderStatus(PyEnum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PREPARING = "Preparing"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

class PayMethod(PyEnum):
    UPI = "UPI"
    CARD = "Card"
    NETBANKING = "NetBanking"
    WALLET = "Wallet"
    COD = "COD"

class PaymentStatus(PyEnum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"
    REFUNDED = "Refunded"

class DiscountType(PyEnum):
    PERCENTAGE = "percentage"
    FLAT = "flat"

class FoodDiscountType(PyEnum):
    NONE = "none"
    PERCENTAGE = "percentage"
    FLAT = "flat"

# ── Catalog ─────────────────────────────────────────────────────────────────
class Food(Base, IdMixin, TSMixin):
    __tablename__ = "food"
    name: Mapped[str] = mapped_column(String(160))
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    image: Mapped[str | None] = mapped_column(String(400))
    category: Mapped[str | None] = mapped_column(String(80))
    is_veg: Mapped[bool] = mapped_column(Boolean, default=True)
    available: Mapped[bool] = mapped_column(Boolean, default=True)
    discount_type: Mapped[FoodDiscountType] = mapped_column(Enum(FoodDiscountType), default=FoodDiscountType.NONE)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    # derived cache, source of truth is food_rating
    avg_rating: Mapped[Decimal] = mapped_column(Numeric(2, 1), default=0)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)

# ── Orders ──────────────────────────────────────────────────────────────────
class Order(Base, IdMixin, TSMixin):
    __tablename__ = "order"
    order_number: Mapped[str] = mapped_column(String(20), unique=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)

    # customer snapshot
    customer_name: Mapped[str] = mapped_column(String(160))
    customer_phone: Mapped[str] = mapped_column(String(20))
    customer_email: Mapped[str | None] = mapped_column(String(160))

    # delivery address snapshot
    address_name: Mapped[str | None] = mapped_column(String(160))
    address_phone: Mapped[str | None] = mapped_column(String(20))
    address_line1: Mapped[str | None] = mapped_column(String(240))
    address_line2: Mapped[str | None] = mapped_column(String(240))
    city: Mapped[str | None] = mapped_column(String(80))
    state: Mapped[str | None] = mapped_column(String(80))
    pincode: Mapped[str | None] = mapped_column(String(12))
    full_address: Mapped[str | None] = mapped_column(Text)

    # pricing
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    coupon_code: Mapped[str | None] = mapped_column(String(40))
    gst_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    gst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=5)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus), default=OrderStatus.PENDING, index=True)

    # payment
    payment_id: Mapped[str | None] = mapped_column(String(36))
    payment_method: Mapped[PayMethod] = mapped_column(Enum(PayMethod), default=PayMethod.COD)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # delivery
    is_delivered: Mapped[bool] = mapped_column(Boolean, default=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    order_notes: Mapped[str | None] = mapped_column(Text)

    # soft delete
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # billing
    invoice_number: Mapped[str | None] = mapped_column(String(20), unique=True)

    has_review: Mapped[bool] = mapped_column(Boolean, default=False)

class OrderItem(Base, IdMixin):
    __tablename__ = "order_item"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer)
    # weak back-reference to the catalog, only used for lookups (ratings); never for price
    food_id: Mapped[str | None] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(160))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    image: Mapped[str | None] = mapped_column(String(400))

class OrderStatusEvent(Base, IdMixin):
    __tablename__ = "order_status_event"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id", ondelete="CASCADE"), index=True)
    seq: Mapped[int] = mapped_column(Integer)
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_by: Mapped[str | None] = mapped_column(String(36))
    out_of_order: Mapped[bool] = mapped_column(Boolean, default=False)
    __table_args__ = (
        UniqueConstraint("order_id", "seq", name="uq_order_status_event_seq"),
    )

# ── Payments ────────────────────────────────────────────────────────────────
class Payment(Base, IdMixin, TSMixin):
    __tablename__ = "payment"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id", ondelete="CASCADE"), unique=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    gateway_payment_id: Mapped[str] = mapped_column(String(40), unique=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    method: Mapped[PayMethod] = mapped_column(Enum(PayMethod))
    status: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus), default=PaymentStatus.PENDING)
    upi_id: Mapped[str | None] = mapped_column(String(80))
    card_last4: Mapped[str | None] = mapped_column(String(4))
    bank: Mapped[str | None] = mapped_column(String(80))
    wallet: Mapped[str | None] = mapped_column(String(80))
    # refund sub-record
    refund_id: Mapped[str | None] = mapped_column(String(40))
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    refund_status: Mapped[str | None] = mapped_column(String(20))
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

# ── Coupons ─────────────────────────────────────────────────────────────────
class Coupon(Base, IdMixin, TSMixin):
    __tablename__ = "coupon"
    code: Mapped[str] = mapped_column(String(40), unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    discount_type: Mapped[DiscountType] = mapped_column(Enum(DiscountType))
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    min_order_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    max_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))  # percentage type only
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    valid_to: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    usage_limit: Mapped[int | None] = mapped_column(Integer)  # None = unlimited
    used_count: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

# ── Reviews ─────────────────────────────────────────────────────────────────
class Review(Base, IdMixin, TSMixin):
    __tablename__ = "review"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id", ondelete="CASCADE"), unique=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    delivery_rating: Mapped[int] = mapped_column(Integer)
    overall_rating: Mapped[int] = mapped_column(Integer, index=True)
    comment: Mapped[str | None] = mapped_column(String(500))
    admin_response: Mapped[str | None] = mapped_column(String(300))

class FoodRating(Base, IdMixin, TSMixin):
    __tablename__ = "food_rating"
    # review_id is NULL for a standalone rating submitted before any review exists
    review_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("review.id", ondelete="CASCADE"), index=True)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id", ondelete="CASCADE"))
    food_id: Mapped[str] = mapped_column(String(36))
    food_name: Mapped[str | None] = mapped_column(String(160))
    rating: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text)
    __table_args__ = (
        UniqueConstraint("order_id", "food_id", name="uq_food_rating_order_food"),
        Index("ix_food_rating_food_rating", "food_id", "rating"),
    )

# ── Sequences & audit ───────────────────────────────────────────────────────
class SequenceCounter(Base):
    __tablename__ = "sequence_counter"
    key: Mapped[str] = mapped_column(String(20), primary_key=True)  # e.g. ORD-2025
    value: Mapped[int] = mapped_column(Integer, default=0)

class AuditLog(Base, IdMixin, TSMixin):
    __tablename__ = "audit_log"
    actor_user_id: Mapped[str | None] = mapped_column(String(36))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(60))
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
