"""Dashboard aggregations over orders, order lines and reviews.

Revenue figures only ever count orders that are both Delivered and paid, the same rule the
monthly report uses. Day and month boundaries are taken in the business zone.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from cloudkitchen.errors import ValidationError
from cloudkitchen.models.core import Order, OrderItem, OrderStatus, Review
from cloudkitchen.util.clock import as_utc, local_tz, now_utc
from cloudkitchen.util.money import _money, to_decimal, whole

REVENUE_PERIODS = ("daily", "weekly", "monthly")


def _realized(q):
    return q.filter(Order.status == OrderStatus.DELIVERED, Order.is_paid.is_(True))


def _local_midnight(now: datetime) -> datetime:
    return now.astimezone(local_tz()).replace(hour=0, minute=0, second=0, microsecond=0)


def _bucket_key(dt: datetime, period: str) -> str:
    local = as_utc(dt).astimezone(local_tz())
    if period == "daily":
        return local.strftime("%Y-%m-%d")
    if period == "weekly":
        year, week, _ = local.isocalendar()
        return f"{year}-W{week:02d}"
    return local.strftime("%Y-%m")


def revenue_series(db: Session, period: str = "daily", days: int = 30, now: datetime | None = None) -> list[dict]:
    """Revenue, order count and GST per day, ISO week or month over the last ``days`` days.

    The daily view has one row per local day with zeros for quiet days; weekly and monthly
    views only list buckets that have orders.
    """
    if period not in REVENUE_PERIODS:
        raise ValidationError("period must be one of daily, weekly, monthly")
    if days < 1:
        raise ValidationError("days must be at least 1")
    now = as_utc(now) or now_utc()
    start = now - timedelta(days=days)

    buckets: dict[str, dict] = {}
    if period == "daily":
        day = start.astimezone(local_tz()).date()
        last = now.astimezone(local_tz()).date()
        while day <= last:
            buckets[day.isoformat()] = {"orders": 0, "revenue": Decimal(0), "gst": Decimal(0)}
            day += timedelta(days=1)

    found = _realized(db.query(Order)).filter(Order.created_at >= start, Order.created_at <= now).all()
    for o in found:
        b = buckets.setdefault(_bucket_key(o.created_at, period),
                               {"orders": 0, "revenue": Decimal(0), "gst": Decimal(0)})
        b["orders"] += 1
        b["revenue"] += to_decimal(o.total_amount)
        b["gst"] += to_decimal(o.gst_amount)

    return [
        {"period": key, "orders": b["orders"], "revenue": _money(b["revenue"]), "gst": _money(b["gst"])}
        for key, b in sorted(buckets.items())
    ]


def order_stats(db: Session, now: datetime | None = None) -> dict:
    now = as_utc(now) or now_utc()
    distribution = {s.value: 0 for s in OrderStatus}
    active = (
        db.query(Order.status, func.count(Order.id))
        .filter(Order.is_archived.is_(False))
        .group_by(Order.status)
        .all()
    )
    for status, n in active:
        distribution[status.value] = n

    total = db.query(func.count(Order.id)).scalar() or 0
    delivered = db.query(func.count(Order.id)).filter(Order.status == OrderStatus.DELIVERED).scalar() or 0
    cancelled = db.query(func.count(Order.id)).filter(Order.status == OrderStatus.CANCELLED).scalar() or 0
    since = _local_midnight(now).astimezone(timezone.utc)
    today = db.query(func.count(Order.id)).filter(Order.created_at >= since).scalar() or 0
    return {
        "status_distribution": distribution,
        "today_orders": today,
        "total_orders": total,
        "delivered_orders": delivered,
        "cancelled_orders": cancelled,
        "delivery_rate": round(delivered * 100 / total, 1) if total else 0.0,
    }


def top_foods(db: Session, limit: int = 10) -> list[dict]:
    """Best sellers by quantity across delivered orders. Off-catalog lines group by name."""
    rows = (
        db.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.status == OrderStatus.DELIVERED)
        .order_by(Order.created_at.desc())
        .all()
    )
    foods: dict[str, dict] = {}
    for l in rows:
        f = foods.setdefault(l.food_id or f"name:{l.name}", {
            "food_id": l.food_id,
            "name": l.name,
            "image": l.image,
            "total_quantity": 0,
            "total_revenue": Decimal(0),
            "order_ids": set(),
        })
        f["total_quantity"] += l.quantity
        f["total_revenue"] += to_decimal(l.unit_price) * l.quantity
        f["order_ids"].add(l.order_id)

    ranked = sorted(foods.values(), key=lambda f: (-f["total_quantity"], -f["total_revenue"], f["name"]))
    return [
        {
            "food_id": f["food_id"],
            "name": f["name"],
            "image": f["image"],
            "total_quantity": f["total_quantity"],
            "total_revenue": _money(f["total_revenue"]),
            "order_count": len(f["order_ids"]),
        }
        for f in ranked[:limit]
    ]


def top_customers(db: Session, limit: int = 10) -> list[dict]:
    found = _realized(db.query(Order)).order_by(Order.created_at.desc()).all()
    customers: dict[str, dict] = {}
    for o in found:
        # newest order first, so the snapshot name and email are the latest ones
        c = customers.setdefault(o.user_id, {
            "user_id": o.user_id,
            "customer_name": o.customer_name,
            "email": o.customer_email,
            "spent": Decimal(0),
            "order_count": 0,
        })
        c["spent"] += to_decimal(o.total_amount)
        c["order_count"] += 1

    ranked = sorted(customers.values(), key=lambda c: (-c["spent"], c["user_id"]))
    return [
        {
            "user_id": c["user_id"],
            "customer_name": c["customer_name"],
            "email": c["email"],
            "total_spent": float(whole(c["spent"])),
            "order_count": c["order_count"],
            "avg_order_value": float(whole(c["spent"] / c["order_count"])),
        }
        for c in ranked[:limit]
    ]


def dashboard(db: Session, now: datetime | None = None) -> dict:
    now = as_utc(now) or now_utc()
    today = _local_midnight(now)
    month = today.replace(day=1)

    def count(*criteria) -> int:
        return db.query(func.count(Order.id)).filter(*criteria).scalar() or 0

    def revenue(since: datetime | None = None, column=Order.total_amount) -> float:
        q = _realized(db.query(func.coalesce(func.sum(column), 0)))
        if since is not None:
            q = q.filter(Order.created_at >= since.astimezone(timezone.utc))
        return _money(q.scalar())

    avg = db.query(func.avg(Review.overall_rating)).scalar()
    return {
        "total_orders": count(),
        "today_orders": count(Order.created_at >= today.astimezone(timezone.utc)),
        "month_orders": count(Order.created_at >= month.astimezone(timezone.utc)),
        "pending_orders": count(Order.status == OrderStatus.PENDING),
        "delivered_orders": count(Order.status == OrderStatus.DELIVERED),
        "cancelled_orders": count(Order.status == OrderStatus.CANCELLED),
        "total_revenue": revenue(),
        "today_revenue": revenue(today),
        "month_revenue": revenue(month),
        "total_gst": revenue(column=Order.gst_amount),
        "avg_rating": round(float(avg), 1) if avg is not None else None,
        "total_customers": db.query(func.count(func.distinct(Order.user_id))).scalar() or 0,
    }
