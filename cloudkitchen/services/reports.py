from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from cloudkitchen.errors import ValidationError
from cloudkitchen.models.core import Order, OrderStatus
from cloudkitchen.util.clock import local_tz, now_utc
from cloudkitchen.util.money import _money, to_decimal


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """[start, end) of a calendar month in the business zone, as UTC instants."""
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1970 <= year <= 9998:
        raise ValidationError("year must be between 1970 and 9998")
    tz = local_tz()
    start = datetime(year, month, 1, tzinfo=tz)
    end = datetime(year + (month == 12), month % 12 + 1, 1, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def monthly_report(orders: Iterable[Order]) -> dict:
    """Counts over every order given; revenue only over orders both delivered and paid."""
    total = delivered = cancelled = paid = 0
    revenue = gst = Decimal(0)
    for o in orders:
        total += 1
        if o.status == OrderStatus.DELIVERED:
            delivered += 1
        elif o.status == OrderStatus.CANCELLED:
            cancelled += 1
        if o.is_paid:
            paid += 1
        if o.status == OrderStatus.DELIVERED and o.is_paid:
            revenue += to_decimal(o.total_amount)
            gst += to_decimal(o.gst_amount)
    return {
        "total_orders": total,
        "delivered_orders": delivered,
        "cancelled_orders": cancelled,
        "paid_orders": paid,
        "total_revenue": _money(revenue),
        "total_gst": _money(gst),
        "net_revenue": _money(revenue - gst),
    }


def orders_in_month(db: Session, year: int, month: int, include_archived: bool = True) -> list[Order]:
    start, end = month_bounds(year, month)
    q = db.query(Order).filter(Order.created_at >= start, Order.created_at < end)
    if not include_archived:
        q = q.filter(Order.is_archived.is_(False))
    return q.order_by(Order.created_at).all()


PERIOD_DAYS = {"7days": 7, "30days": 30}


def period_start(period: str | None, now: datetime | None = None) -> datetime | None:
    """Start instant for the history filter: ``today`` is local midnight, others count back whole days."""
    if not period or period == "all":
        return None
    local_now = (now or now_utc()).astimezone(local_tz())
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return midnight.astimezone(timezone.utc)
    if period in PERIOD_DAYS:
        return (local_now - timedelta(days=PERIOD_DAYS[period])).astimezone(timezone.utc)
    raise ValidationError("period must be one of all, today, 7days, 30days")
