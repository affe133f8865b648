"""Quote and place orders: coupon -> delivery -> pricing -> two-step commit."""
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cloudkitchen.errors import DomainError, ValidationError
from cloudkitchen.models.core import Food, Order, PayMethod, Payment
from cloudkitchen.services import coupons
from cloudkitchen.services.billing import assemble, compute_subtotal
from cloudkitchen.services.delivery import calculate_delivery_fee
from cloudkitchen.services.menu import effective_price
from cloudkitchen.services.orders import create_order
from cloudkitchen.services.payments import confirm_with_payment
from cloudkitchen.util.clock import as_utc, now_utc

logger = logging.getLogger(__name__)


def snapshot_lines(db: Session, items: list[dict]) -> list[dict]:
    """Freeze name/price/image per line. Catalog foods win over client-sent values."""
    lines = []
    for it in items:
        food = db.get(Food, it["food_id"]) if it.get("food_id") else None
        if food is not None:
            if not food.available:
                raise ValidationError(f"{food.name} is not available")
            lines.append({
                "food_id": food.id,
                "name": food.name,
                "quantity": it["quantity"],
                "unit_price": effective_price(food),
                "image": food.image,
            })
            continue
        if not it.get("name") or it.get("unit_price") is None:
            raise ValidationError("Each item needs a catalog food_id or a name and unit_price")
        lines.append({
            "food_id": it.get("food_id"),
            "name": it["name"],
            "quantity": it["quantity"],
            "unit_price": it["unit_price"],
            "image": it.get("image"),
        })
    return lines


def quote(db: Session, items: list[dict], coupon_code: str | None = None, now: datetime | None = None) -> dict:
    if not items:
        raise ValidationError("No order items")
    now = as_utc(now) or now_utc()
    lines = snapshot_lines(db, items)
    subtotal = compute_subtotal(lines)

    coupon = None
    discount = 0
    if coupon_code:
        coupon = coupons.find_coupon(db, coupon_code)
        check = coupons.validate(coupon, subtotal, now)
        if not check.valid:
            raise ValidationError(check.reason)
        discount = coupons.applied_discount(coupon, subtotal)

    delivery = calculate_delivery_fee(subtotal, now)
    pricing = assemble(lines, delivery_fee=delivery.delivery_charge, discount=discount)
    return {"lines": lines, "coupon": coupon, "delivery": delivery, "pricing": pricing}


def place_order(
    db: Session,
    *,
    user_id: str,
    customer: dict,
    address: dict,
    items: list[dict],
    payment_method: PayMethod,
    coupon_code: str | None = None,
    notes: str | None = None,
    payment_details: dict | None = None,
    now: datetime | None = None,
) -> tuple[Order, Payment | None]:
    """Returns (order, payment). A None payment means the order stays Pending for reconciliation."""
    now = as_utc(now) or now_utc()
    q = quote(db, items, coupon_code, now)
    order = create_order(
        db,
        user_id=user_id,
        customer=customer,
        address=address,
        lines=q["lines"],
        pricing=q["pricing"],
        payment_method=payment_method,
        coupon=q["coupon"],
        notes=notes,
        now=now,
    )
    try:
        payment = confirm_with_payment(db, order, payment_details, now)
    except (SQLAlchemyError, DomainError):
        # the order is already committed
        db.rollback()
        logger.exception("payment step failed for %s; left Pending for reconciliation", order.order_number)
        db.refresh(order)
        return order, None
    return order, payment
