import logging
from datetime import datetime

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from cloudkitchen.config import settings
from cloudkitchen.errors import ConflictError, DomainError, NotFoundError, ValidationError
from cloudkitchen.models.core import (
    Coupon, FoodRating, Order, OrderItem, OrderStatus, OrderStatusEvent, PayMethod, Payment, Review,
)
from cloudkitchen.services.coupons import record_usage
from cloudkitchen.services.sequence import SequenceAllocator, with_sequence_retry
from cloudkitchen.util.audit import audit
from cloudkitchen.util.clock import as_utc, now_utc, to_local
from cloudkitchen.util.money import _money

logger = logging.getLogger(__name__)

TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# legal edges; anything else is "out of order"
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    for s in OrderStatus:
        if value in (s.value, s.name):
            return s
    raise ValidationError("Invalid status")


def get_order(db: Session, order_id: str) -> Order:
    o = db.get(Order, order_id)
    if not o:
        raise NotFoundError("Order not found")
    return o


def order_lines(db: Session, order_id: str) -> list[OrderItem]:
    return db.query(OrderItem).filter(OrderItem.order_id == order_id).order_by(OrderItem.position).all()


def status_history(db: Session, order_id: str) -> list[OrderStatusEvent]:
    return db.query(OrderStatusEvent).filter(OrderStatusEvent.order_id == order_id).order_by(OrderStatusEvent.seq).all()


# --- OrderLifecycle --------------------------------------------------------

def create_order(
    db: Session,
    *,
    user_id: str,
    customer: dict,
    address: dict,
    lines: list[dict],
    pricing: dict,
    payment_method: PayMethod = PayMethod.COD,
    coupon: Coupon | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Order:
    """Number, persist and log the first history entry of a new Pending order.

    The coupon use (if any) is claimed in the same transaction as the insert.
    """
    if not lines:
        raise ValidationError("No order items")
    if not customer.get("name") or not customer.get("phone"):
        raise ValidationError("customer name and phone are required")
    now = as_utc(now) or now_utc()
    year = to_local(now).year

    def work() -> Order:
        o = Order(
            order_number=SequenceAllocator(db).next_order_number(year),
            user_id=user_id,
            customer_name=customer["name"],
            customer_phone=customer["phone"],
            customer_email=customer.get("email"),
            address_name=address.get("name"),
            address_phone=address.get("phone"),
            address_line1=address.get("address_line1"),
            address_line2=address.get("address_line2"),
            city=address.get("city"),
            state=address.get("state"),
            pincode=address.get("pincode"),
            full_address=address.get("full_address"),
            subtotal=pricing["subtotal"],
            delivery_fee=pricing["delivery_fee"],
            discount=pricing["discount"],
            coupon_code=coupon.code if coupon is not None else None,
            gst_amount=pricing["gst_amount"],
            gst_percentage=pricing["gst_percentage"],
            total_amount=pricing["total_amount"],
            status=OrderStatus.PENDING,
            payment_method=payment_method,
            order_notes=notes,
            created_at=now,
        )
        db.add(o)
        db.flush()  # unique order_number is enforced here
        for pos, l in enumerate(lines, start=1):
            db.add(OrderItem(
                order_id=o.id, position=pos, food_id=l.get("food_id"), name=l["name"],
                quantity=int(l["quantity"]), unit_price=l["unit_price"], image=l.get("image"),
            ))
        db.add(OrderStatusEvent(order_id=o.id, seq=1, status=OrderStatus.PENDING, timestamp=now, updated_by=None))
        if coupon is not None:
            record_usage(db, coupon)
        db.commit()
        return o

    try:
        order = with_sequence_retry(db, work)
    except DomainError:
        db.rollback()
        raise
    logger.info("order %s created, total %s", order.order_number, order.total_amount)
    return order


def advance_status(
    db: Session,
    order: Order,
    new_status,
    actor: str | None,
    *,
    now: datetime | None = None,
    strict: bool | None = None,
) -> Order:
    """Move the order to ``new_status`` and append the matching history entry.

    Terminal orders never move. Off-table edges are rejected in strict mode and
    accepted-but-flagged otherwise. Status and history are written in one commit,
    guarded by the status we read so a concurrent transition cannot interleave.
    """
    target = parse_status(new_status)
    current = order.status
    if current in TERMINAL:
        raise ConflictError(f"Order is already {current.value}; status can no longer change")

    strict = settings.STRICT_STATUS_TRANSITIONS if strict is None else strict
    legal = target in ALLOWED_TRANSITIONS[current]
    if not legal:
        if strict:
            raise ConflictError(f"Illegal status transition {current.value} -> {target.value}")
        logger.warning("out-of-order transition on %s: %s -> %s (by %s)",
                       order.order_number, current.value, target.value, actor)

    now = as_utc(now) or now_utc()
    values = {"status": target, "updated_at": now}
    if target == OrderStatus.DELIVERED:
        values.update(is_delivered=True, delivered_at=now)
    res = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if not res.rowcount:
        db.rollback()
        raise ConflictError("Order status changed concurrently, reload and retry")

    seq = (db.query(func.max(OrderStatusEvent.seq)).filter(OrderStatusEvent.order_id == order.id).scalar() or 0) + 1
    db.add(OrderStatusEvent(order_id=order.id, seq=seq, status=target, timestamp=now,
                            updated_by=actor, out_of_order=not legal))
    db.commit()
    db.refresh(order)
    logger.info("order %s: %s -> %s (by %s)", order.order_number, current.value, target.value, actor)
    return order


def archive_order(db: Session, order: Order, actor: str | None) -> Order:
    if order.is_archived:
        return order
    order.is_archived = True
    order.archived_at = now_utc()
    audit(db, actor, "Order", order.id, "ARCHIVE", after={"order_number": order.order_number})
    db.commit()
    return order


def unarchive_order(db: Session, order: Order, actor: str | None) -> Order:
    if not order.is_archived:
        return order
    order.is_archived = False
    order.archived_at = None
    audit(db, actor, "Order", order.id, "UNARCHIVE", after={"order_number": order.order_number})
    db.commit()
    return order


def hard_delete_order(db: Session, order: Order, actor: str | None) -> list[str]:
    """Irreversible. Returns the food ids whose rating aggregate must be recomputed."""
    before = order_payload(db, order)
    food_ids = [fid for (fid,) in db.query(FoodRating.food_id).filter(FoodRating.order_id == order.id).distinct()]
    db.query(FoodRating).filter(FoodRating.order_id == order.id).delete(synchronize_session=False)
    db.query(Review).filter(Review.order_id == order.id).delete(synchronize_session=False)
    db.query(Payment).filter(Payment.order_id == order.id).delete(synchronize_session=False)
    db.query(OrderStatusEvent).filter(OrderStatusEvent.order_id == order.id).delete(synchronize_session=False)
    db.query(OrderItem).filter(OrderItem.order_id == order.id).delete(synchronize_session=False)
    db.delete(order)
    audit(db, actor, "Order", order.id, "HARD_DELETE", before=before)
    db.flush()
    return food_ids


# --- queries ---------------------------------------------------------------

def find_orders(
    db: Session,
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    user_id: str | None = None,
    include_archived: bool = False,
) -> list[Order]:
    q = db.query(Order)
    if not include_archived:
        q = q.filter(Order.is_archived.is_(False))
    if status and status != "all":
        q = q.filter(Order.status == parse_status(status))
    if start:
        q = q.filter(Order.created_at >= start)
    if end:
        q = q.filter(Order.created_at <= end)
    if payment_status == "paid":
        q = q.filter(Order.is_paid.is_(True))
    elif payment_status == "unpaid":
        q = q.filter(Order.is_paid.is_(False))
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Order.customer_name.ilike(like),
            Order.customer_phone.ilike(like),
            Order.order_number.ilike(like),
        ))
    if user_id:
        q = q.filter(Order.user_id == user_id)
    return q.order_by(Order.created_at.desc(), Order.order_number.desc()).all()


def count_by_status(db: Session) -> dict[str, int]:
    counts = {s.value: 0 for s in OrderStatus}
    for status, n in db.query(Order.status, func.count(Order.id)).group_by(Order.status).all():
        counts[status.value] = n
    return counts


# --- serialization ---------------------------------------------------------

def _ts(dt: datetime | None) -> str | None:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None


def order_payload(db: Session, o: Order, *, with_history: bool = True) -> dict:
    payload = {
        "id": o.id,
        "order_number": o.order_number,
        "user_id": o.user_id,
        "customer_name": o.customer_name,
        "customer_phone": o.customer_phone,
        "customer_email": o.customer_email,
        "delivery_address": {
            "name": o.address_name,
            "phone": o.address_phone,
            "address_line1": o.address_line1,
            "address_line2": o.address_line2,
            "city": o.city,
            "state": o.state,
            "pincode": o.pincode,
            "full_address": o.full_address,
        },
        "items": [
            {
                "food_id": l.food_id,
                "name": l.name,
                "quantity": l.quantity,
                "unit_price": _money(l.unit_price),
                "image": l.image,
            }
            for l in order_lines(db, o.id)
        ],
        "subtotal": _money(o.subtotal),
        "delivery_fee": _money(o.delivery_fee),
        "discount": _money(o.discount),
        "coupon_code": o.coupon_code,
        "gst_amount": _money(o.gst_amount),
        "gst_percentage": float(o.gst_percentage or 0),
        "total_amount": _money(o.total_amount),
        "status": o.status.value,
        "payment_id": o.payment_id,
        "payment_method": o.payment_method.value,
        "is_paid": bool(o.is_paid),
        "paid_at": _ts(o.paid_at),
        "is_delivered": bool(o.is_delivered),
        "delivered_at": _ts(o.delivered_at),
        "order_notes": o.order_notes,
        "is_archived": bool(o.is_archived),
        "archived_at": _ts(o.archived_at),
        "invoice_number": o.invoice_number,
        "has_review": bool(o.has_review),
        "created_at": _ts(o.created_at),
    }
    if with_history:
        payload["status_history"] = [
            {"status": h.status.value, "timestamp": _ts(h.timestamp), "updated_by": h.updated_by,
             "out_of_order": bool(h.out_of_order)}
            for h in status_history(db, o.id)
        ]
    return payload


def order_summary(o: Order) -> dict:
    """Light shape for lists and broadcast payloads that should not hit the items table."""
    return {
        "id": o.id,
        "order_number": o.order_number,
        "customer_name": o.customer_name,
        "total_amount": _money(o.total_amount),
        "status": o.status.value,
        "is_paid": bool(o.is_paid),
        "created_at": _ts(o.created_at),
    }
