from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import is_admin, notification_config, require_admin, require_auth, require_claims
from cloudkitchen.models.core import PayMethod
from cloudkitchen.schemas.orders import CheckoutIn, QuoteIn, RefundIn
from cloudkitchen.services import payments
from cloudkitchen.services.checkout import place_order, quote
from cloudkitchen.services.events import ORDER_CREATED, ORDER_STATUS_CHANGED, bus
from cloudkitchen.services.notifications import NotificationConfig, notify_admin_new_order
from cloudkitchen.services.orders import get_order, order_payload
from cloudkitchen.util.money import _money

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/quote")
def quote_order(body: QuoteIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    q = quote(db, [i.model_dump() for i in body.items], body.coupon_code)
    d = q["delivery"]
    return {
        "items": [{**l, "unit_price": _money(l["unit_price"])} for l in q["lines"]],
        "coupon_code": q["coupon"].code if q["coupon"] else None,
        "delivery": {
            "delivery_charge": _money(d.delivery_charge),
            "is_free_delivery": d.is_free_delivery,
            "is_peak_hour": d.is_peak_hour,
            "amount_for_free_delivery": _money(d.amount_for_free_delivery),
            "message": d.message,
        },
        **{k: _money(v) for k, v in q["pricing"].items()},
    }


@router.post("/process")
def process_payment(
    body: CheckoutIn,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
    notify: NotificationConfig = Depends(notification_config),
):
    """Checkout: price, create the order, simulate the payment and confirm."""
    order, payment = place_order(
        db,
        user_id=sub,
        customer=body.customer.model_dump(),
        address=body.address.model_dump(),
        items=[i.model_dump() for i in body.items],
        payment_method=PayMethod(body.payment_method),
        coupon_code=body.coupon_code,
        notes=body.order_notes,
        payment_details=body.payment_details.model_dump() if body.payment_details else None,
    )
    order_out = order_payload(db, order)
    payment_out = payments.payment_payload(payment)

    # side effects run after the response is built and never fail the checkout
    background.add_task(bus.publish, ORDER_CREATED, order_out)
    if payment is not None:
        background.add_task(bus.publish, ORDER_STATUS_CHANGED, order_out)
    background.add_task(notify_admin_new_order, notify, order_out, payment_out)

    return {
        "success": True,
        "message": "Order placed" if payment else "Order placed; payment pending confirmation",
        "order": order_out,
        "payment": payment_out,
        "payment_deferred": payment is None,
    }


@router.get("/order/{order_id}")
def get_order_payment(order_id: str, db: Session = Depends(get_db), claims: dict = Depends(require_claims)):
    o = get_order(db, order_id)
    if o.user_id != claims["sub"] and not is_admin(claims):
        raise HTTPException(status_code=403, detail="Not your order")
    p = payments.get_payment_for_order(db, order_id)
    if not p:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payments.payment_payload(p)


@router.get("/history")
def payment_history(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    return [payments.payment_payload(p) for p in payments.payment_history(db, sub)]


@router.post("/order/{order_id}/settle")
def settle_cod(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    o = get_order(db, order_id)
    p = payments.settle_cod(db, o, sub)
    return {"order": order_payload(db, o), "payment": payments.payment_payload(p)}


@router.post("/order/{order_id}/refund")
def refund_payment(order_id: str, body: RefundIn | None = None, db: Session = Depends(get_db),
                   sub: str = Depends(require_admin)):
    o = get_order(db, order_id)
    p = payments.refund(db, o, body.amount if body else None, sub)
    return payments.payment_payload(p)


@router.post("/reconcile")
def reconcile(background: BackgroundTasks, older_than_s: int | None = None, db: Session = Depends(get_db),
              sub: str = Depends(require_admin)):
    done = payments.reconcile_missing_payments(db, older_than_s)
    for o in done:
        background.add_task(bus.publish, ORDER_STATUS_CHANGED, order_payload(db, o))
    return {"reconciled": [o.order_number for o in done], "count": len(done)}
