from datetime import datetime
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import require_admin
from cloudkitchen.models.core import PaymentStatus
from cloudkitchen.schemas.common import Msg
from cloudkitchen.schemas.orders import PaymentFilterLiteral, PeriodLiteral, StatusUpdateIn
from cloudkitchen.services import orders as lifecycle
from cloudkitchen.services.events import ORDER_ARCHIVED, ORDER_STATUS_CHANGED, bus, recent
from cloudkitchen.services.payments import list_payments, payment_payload
from cloudkitchen.services.ratings import recompute_for_food
from cloudkitchen.services.reports import period_start
from cloudkitchen.util.clock import as_utc

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/orders")
def list_active_orders(
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    payment_status: PaymentFilterLiteral = "all",
    search: str | None = None,
    db: Session = Depends(get_db),
    sub: str = Depends(require_admin),
):
    found = lifecycle.find_orders(
        db, status=status, start=as_utc(start), end=as_utc(end),
        payment_status=payment_status, search=search,
    )
    return [lifecycle.order_payload(db, o, with_history=False) for o in found]


@router.get("/orders/history")
def order_history(
    period: PeriodLiteral = "all",
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
    sub: str = Depends(require_admin),
):
    """Every order, archived included. An explicit start overrides the period shortcut."""
    found = lifecycle.find_orders(
        db, status=status, start=as_utc(start) or period_start(period), end=as_utc(end),
        include_archived=True,
    )
    return [lifecycle.order_summary(o) | {"is_archived": bool(o.is_archived)} for o in found]


@router.get("/orders/count/by-status")
def orders_by_status(db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return lifecycle.count_by_status(db)


@router.get("/orders/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return lifecycle.order_payload(db, lifecycle.get_order(db, order_id))


@router.put("/orders/{order_id}/status")
def update_status(order_id: str, body: StatusUpdateIn, background: BackgroundTasks,
                  db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    o = lifecycle.advance_status(db, lifecycle.get_order(db, order_id), body.status, sub)
    payload = lifecycle.order_payload(db, o)
    background.add_task(bus.publish, ORDER_STATUS_CHANGED, payload)
    return payload


@router.put("/orders/{order_id}/archive")
def archive(order_id: str, background: BackgroundTasks, db: Session = Depends(get_db),
            sub: str = Depends(require_admin)):
    o = lifecycle.archive_order(db, lifecycle.get_order(db, order_id), sub)
    background.add_task(bus.publish, ORDER_ARCHIVED, {"order_id": o.id, "order_number": o.order_number})
    return lifecycle.order_summary(o) | {"is_archived": True}


@router.put("/orders/{order_id}/unarchive")
def unarchive(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    o = lifecycle.unarchive_order(db, lifecycle.get_order(db, order_id), sub)
    return lifecycle.order_summary(o) | {"is_archived": False}


@router.delete("/orders/{order_id}", response_model=Msg)
def hard_delete(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    o = lifecycle.get_order(db, order_id)
    number = o.order_number
    for fid in lifecycle.hard_delete_order(db, o, sub):
        recompute_for_food(db, fid)
    db.commit()
    return Msg(message=f"Order {number} permanently deleted")


@router.get("/payments")
def all_payments(status: Literal["Pending", "Success", "Failed", "Refunded"] | None = None,
                 db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    rows = list_payments(db, PaymentStatus(status) if status else None)
    return [
        payment_payload(p) | {
            "user_id": p.user_id,
            "order": {"order_number": o.order_number, "total_amount": float(o.total_amount), "status": o.status.value},
        }
        for p, o in rows
    ]


@router.get("/events/recent")
def recent_events(limit: int = Query(50, ge=1, le=200), sub: str = Depends(require_admin)):
    return list(recent.events)[-limit:]
