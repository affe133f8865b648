"""Simulated gateway: every non-COD method captures immediately, COD settles on delivery."""
import logging
import secrets
import string
import time
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cloudkitchen.config import settings
from cloudkitchen.errors import ConflictError, NotFoundError, ValidationError
from cloudkitchen.models.core import Order, OrderStatus, PayMethod, Payment, PaymentStatus
from cloudkitchen.services.orders import advance_status
from cloudkitchen.util.clock import as_utc, now_utc
from cloudkitchen.util.money import _money, q2, to_decimal

logger = logging.getLogger(__name__)

_ALNUM = string.ascii_uppercase + string.digits
DETAIL_FIELDS = ("upi_id", "card_last4", "bank", "wallet")


def _gateway_id(prefix: str) -> str:
    suffix = "".join(secrets.choice(_ALNUM) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def generate_payment_id() -> str:
    return _gateway_id("PAY")


def get_payment_for_order(db: Session, order_id: str) -> Payment | None:
    return db.query(Payment).filter(Payment.order_id == order_id).first()


def create_payment(db: Session, order: Order, details: dict | None = None, now: datetime | None = None) -> Payment:
    """Stage the payment row and link it to the order. Caller commits."""
    now = as_utc(now) or now_utc()
    cod = order.payment_method == PayMethod.COD
    details = {k: v for k, v in (details or {}).items() if k in DETAIL_FIELDS and v}
    p = Payment(
        order_id=order.id,
        user_id=order.user_id,
        gateway_payment_id=generate_payment_id(),
        amount=order.total_amount,
        currency=settings.CURRENCY,
        method=order.payment_method,
        status=PaymentStatus.PENDING if cod else PaymentStatus.SUCCESS,
        **details,
    )
    db.add(p)
    db.flush()
    order.payment_id = p.id
    if not cod:
        order.is_paid = True
        order.paid_at = now
    return p


def confirm_with_payment(db: Session, order: Order, details: dict | None = None,
                         now: datetime | None = None) -> Payment:
    """Second commit of checkout: payment row + Pending -> Confirmed, together."""
    p = create_payment(db, order, details, now)
    advance_status(db, order, OrderStatus.CONFIRMED, None, now=now)
    return p


def settle_cod(db: Session, order: Order, actor: str | None, now: datetime | None = None) -> Payment:
    if order.payment_method != PayMethod.COD:
        raise ValidationError("Only cash-on-delivery orders are settled manually")
    if order.is_paid:
        raise ConflictError("Order is already paid")
    p = get_payment_for_order(db, order.id)
    if not p:
        raise NotFoundError("Payment not found")
    now = as_utc(now) or now_utc()
    p.status = PaymentStatus.SUCCESS
    order.is_paid = True
    order.paid_at = now
    db.commit()
    logger.info("COD payment for %s settled by %s", order.order_number, actor)
    return p


def refund(db: Session, order: Order, amount=None, actor: str | None = None, now: datetime | None = None) -> Payment:
    p = get_payment_for_order(db, order.id)
    if not p:
        raise NotFoundError("Payment not found")
    if p.status == PaymentStatus.REFUNDED:
        raise ConflictError("Payment is already refunded")
    if p.status != PaymentStatus.SUCCESS:
        raise ValidationError("Only successful payments can be refunded")
    value = q2(p.amount if amount is None else amount)
    if value <= 0 or value > to_decimal(p.amount):
        raise ValidationError("Refund amount must be positive and at most the paid amount")
    p.refund_id = _gateway_id("RFND")
    p.refund_amount = value
    p.refund_status = "Processed"
    p.refunded_at = as_utc(now) or now_utc()
    p.status = PaymentStatus.REFUNDED
    db.commit()
    logger.info("refund %s of %s on %s by %s", p.refund_id, value, order.order_number, actor)
    return p


def payment_history(db: Session, user_id: str) -> list[Payment]:
    return db.query(Payment).filter(Payment.user_id == user_id).order_by(Payment.created_at.desc()).all()


def list_payments(db: Session, status: PaymentStatus | None = None) -> list[tuple[Payment, Order]]:
    """Every payment, newest first, with the order it belongs to."""
    q = db.query(Payment, Order).join(Order, Order.id == Payment.order_id)
    if status is not None:
        q = q.filter(Payment.status == status)
    return q.order_by(Payment.created_at.desc()).all()


def reconcile_missing_payments(db: Session, older_than_s: int | None = None, now: datetime | None = None) -> list[Order]:
    """Finish checkouts whose second commit failed: Pending orders with no payment linked.

    Returns the orders that were confirmed on this sweep.
    """
    now = as_utc(now) or now_utc()
    age = settings.PAYMENT_RECONCILE_AFTER_S if older_than_s is None else older_than_s
    cutoff = now - timedelta(seconds=age)
    stuck = (
        db.query(Order)
        .filter(
            Order.payment_id.is_(None),
            Order.status == OrderStatus.PENDING,
            Order.is_archived.is_(False),
            Order.created_at <= cutoff,
        )
        .order_by(Order.created_at)
        .all()
    )
    done = []
    for o in stuck:
        try:
            existing = get_payment_for_order(db, o.id)
            if existing:
                # payment row made it, the link did not
                o.payment_id = existing.id
                if existing.status == PaymentStatus.SUCCESS:
                    o.is_paid = True
                    o.paid_at = o.paid_at or existing.created_at
                db.flush()
                advance_status(db, o, OrderStatus.CONFIRMED, None, now=now)
            else:
                confirm_with_payment(db, o, now=now)
            done.append(o)
        except (IntegrityError, ConflictError) as exc:
            db.rollback()
            logger.warning("reconcile skipped %s: %s", o.order_number, exc)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("reconcile failed for %s", o.order_number)
    if done:
        logger.info("reconciled %d order(s): %s", len(done), ", ".join(o.order_number for o in done))
    return done


def payment_payload(p: Payment | None) -> dict | None:
    if p is None:
        return None
    return {
        "id": p.id,
        "order_id": p.order_id,
        "payment_id": p.gateway_payment_id,
        "amount": _money(p.amount),
        "currency": p.currency,
        "method": p.method.value,
        "status": p.status.value,
        "upi_id": p.upi_id,
        "card_last4": p.card_last4,
        "bank": p.bank,
        "wallet": p.wallet,
        "refund": None if not p.refund_id else {
            "refund_id": p.refund_id,
            "amount": _money(p.refund_amount),
            "status": p.refund_status,
            "refunded_at": as_utc(p.refunded_at).isoformat() if p.refunded_at else None,
        },
        "created_at": as_utc(p.created_at).isoformat() if p.created_at else None,
    }
