import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudkitchen.errors import ConflictError, NotFoundError, ValidationError
from cloudkitchen.models.core import Coupon, DiscountType
from cloudkitchen.util.clock import as_utc, now_utc
from cloudkitchen.util.money import _money, to_decimal, whole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponCheck:
    valid: bool
    reason: str | None = None


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def find_coupon(db: Session, code: str) -> Coupon:
    c = db.query(Coupon).filter(Coupon.code == normalize_code(code)).first()
    if not c:
        raise NotFoundError("Coupon code not found")
    return c


def validate(coupon: Coupon, order_value, now: datetime | None = None) -> CouponCheck:
    """First failing rule wins; rules are checked in a fixed order."""
    now = as_utc(now) or now_utc()
    value = to_decimal(order_value)
    if not coupon.is_active:
        return CouponCheck(False, "Coupon is not active")
    if now < as_utc(coupon.valid_from):
        return CouponCheck(False, "Coupon is not yet valid")
    if now > as_utc(coupon.valid_to):
        return CouponCheck(False, "Coupon has expired")
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return CouponCheck(False, "Coupon usage limit reached")
    if value < to_decimal(coupon.min_order_value):
        return CouponCheck(False, f"Minimum order value of {whole(coupon.min_order_value)} required")
    return CouponCheck(True)


def calculate_discount(coupon: Coupon, order_value) -> Decimal:
    """Raw (unrounded) discount, never more than the order value."""
    value = to_decimal(order_value)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        amount = value * to_decimal(coupon.discount_value) / Decimal(100)
        if coupon.max_discount is not None:
            amount = min(amount, to_decimal(coupon.max_discount))
    else:
        amount = to_decimal(coupon.discount_value)
    return max(min(amount, value), Decimal(0))


def applied_discount(coupon: Coupon, order_value) -> Decimal:
    """Discount as applied to an order: whole currency units, still clamped to the order value."""
    value = to_decimal(order_value)
    return min(whole(calculate_discount(coupon, value)), value)


def record_usage(db: Session, coupon: Coupon) -> None:
    """Claim one use of the coupon. Cap check and increment are one UPDATE.

    Runs in the caller's transaction, at the point the order is written.
    """
    res = db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if not res.rowcount:
        logger.info("coupon %s reached its usage limit at commit time", coupon.code)
        raise ConflictError("Coupon usage limit reached")
    db.expire(coupon, ["used_count"])


# --- administration --------------------------------------------------------

COUPON_FIELDS = (
    "description", "discount_type", "discount_value", "min_order_value", "max_discount",
    "valid_from", "valid_to", "usage_limit", "is_active",
)


def _code_taken(db: Session, code: str, exclude_id: str | None = None) -> bool:
    q = db.query(Coupon.id).filter(Coupon.code == code)
    if exclude_id:
        q = q.filter(Coupon.id != exclude_id)
    return q.first() is not None


def _apply(coupon: Coupon, data: dict) -> None:
    for k in COUPON_FIELDS:
        if k not in data:
            continue
        v = data[k]
        if k == "discount_type" and v is not None:
            v = DiscountType(v)
        elif k in ("valid_from", "valid_to") and v is not None:
            v = as_utc(v)
        setattr(coupon, k, v)
    if as_utc(coupon.valid_to) <= as_utc(coupon.valid_from):
        raise ValidationError("valid_to must be after valid_from")
    if coupon.discount_type == DiscountType.PERCENTAGE and to_decimal(coupon.discount_value) > 100:
        raise ValidationError("Percentage discount cannot exceed 100")


def create_coupon(db: Session, data: dict) -> Coupon:
    code = normalize_code(data["code"])
    if _code_taken(db, code):
        raise ConflictError("Coupon code already exists")
    c = Coupon(code=code, used_count=0)
    data = dict(data)
    if data.get("valid_from") is None:
        data["valid_from"] = now_utc()
    _apply(c, data)
    db.add(c)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Coupon code already exists")
    logger.info("coupon %s created", code)
    return c


def update_coupon(db: Session, coupon_id: str, data: dict) -> Coupon:
    c = db.get(Coupon, coupon_id)
    if not c:
        raise NotFoundError("Coupon not found")
    if data.get("code"):
        code = normalize_code(data["code"])
        if code != c.code and _code_taken(db, code, exclude_id=c.id):
            raise ConflictError("Coupon code already exists")
        c.code = code
    _apply(c, data)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Coupon code already exists")
    return c


def delete_coupon(db: Session, coupon_id: str) -> None:
    c = db.get(Coupon, coupon_id)
    if not c:
        raise NotFoundError("Coupon not found")
    db.delete(c)
    db.commit()


def coupon_payload(c: Coupon) -> dict:
    return {
        "id": c.id,
        "code": c.code,
        "description": c.description,
        "discount_type": c.discount_type.value,
        "discount_value": _money(c.discount_value),
        "min_order_value": _money(c.min_order_value),
        "max_discount": _money(c.max_discount) if c.max_discount is not None else None,
        "valid_from": as_utc(c.valid_from).isoformat(),
        "valid_to": as_utc(c.valid_to).isoformat(),
        "usage_limit": c.usage_limit,
        "used_count": c.used_count,
        "is_active": bool(c.is_active),
    }
