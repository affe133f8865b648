# test_analytics.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from cloudkitchen.models.core import Order, OrderItem, OrderStatus, PayMethod, Review
from cloudkitchen.services import analytics

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _stored(db, number, created, status, paid, total="105.00", gst="5.00", user="u1", name="Asha",
            lines=(), archived=False):
    o = Order(order_number=number, user_id=user, customer_name=name, customer_phone="1",
              customer_email=f"{user}@example.com", subtotal=Decimal("100.00"), total_amount=Decimal(total),
              gst_amount=Decimal(gst), status=status, is_paid=paid, payment_method=PayMethod.COD,
              created_at=created, is_archived=archived)
    db.add(o)
    db.flush()
    for i, (food_id, item, qty, price) in enumerate(lines):
        db.add(OrderItem(order_id=o.id, position=i, food_id=food_id, name=item, quantity=qty,
                         unit_price=Decimal(price)))
    return o


def test_daily_revenue_fills_quiet_days(db):
    yesterday = NOW - timedelta(days=1)
    _stored(db, "ORD-2025-000001", yesterday, OrderStatus.DELIVERED, True)
    _stored(db, "ORD-2025-000002", yesterday, OrderStatus.DELIVERED, True, total="210.00", gst="10.00")
    _stored(db, "ORD-2025-000003", NOW - timedelta(days=2), OrderStatus.DELIVERED, False)  # COD not settled
    _stored(db, "ORD-2025-000004", NOW - timedelta(days=40), OrderStatus.DELIVERED, True)
    db.commit()

    series = analytics.revenue_series(db, "daily", 3, now=NOW)
    assert [row["period"] for row in series] == ["2025-06-12", "2025-06-13", "2025-06-14", "2025-06-15"]
    assert series[2] == {"period": "2025-06-14", "orders": 2, "revenue": 315.0, "gst": 15.0}
    assert sum(row["orders"] for row in series) == 2


def test_weekly_and_monthly_buckets(db):
    _stored(db, "ORD-2025-000001", datetime(2025, 5, 10, 9, tzinfo=timezone.utc), OrderStatus.DELIVERED, True)
    _stored(db, "ORD-2025-000002", datetime(2025, 6, 14, 9, tzinfo=timezone.utc), OrderStatus.DELIVERED, True)
    db.commit()

    monthly = analytics.revenue_series(db, "monthly", 60, now=NOW)
    assert [(row["period"], row["revenue"]) for row in monthly] == [("2025-05", 105.0), ("2025-06", 105.0)]
    weekly = analytics.revenue_series(db, "weekly", 60, now=NOW)
    assert [row["period"] for row in weekly] == ["2025-W19", "2025-W24"]


def test_order_stats(db):
    _stored(db, "ORD-2025-000001", NOW - timedelta(hours=1), OrderStatus.DELIVERED, True)
    _stored(db, "ORD-2025-000002", NOW - timedelta(days=3), OrderStatus.CANCELLED, False)
    _stored(db, "ORD-2025-000003", NOW - timedelta(days=3), OrderStatus.DELIVERED, True)
    _stored(db, "ORD-2025-000004", NOW - timedelta(days=3), OrderStatus.PENDING, False, archived=True)
    db.commit()

    stats = analytics.order_stats(db, now=NOW)
    assert stats["status_distribution"]["Delivered"] == 2
    assert stats["status_distribution"]["Pending"] == 0   # archived
    assert stats["today_orders"] == 1
    assert stats["total_orders"] == 4
    assert (stats["delivered_orders"], stats["cancelled_orders"]) == (2, 1)
    assert stats["delivery_rate"] == 50.0


def test_top_foods_by_quantity(db):
    _stored(db, "ORD-2025-000001", NOW, OrderStatus.DELIVERED, True,
            lines=[("f1", "Thali", 2, "150"), (None, "Lassi", 1, "60")])
    _stored(db, "ORD-2025-000002", NOW, OrderStatus.DELIVERED, False,
            lines=[("f1", "Thali", 1, "150"), (None, "Lassi", 3, "60")])
    _stored(db, "ORD-2025-000003", NOW, OrderStatus.CONFIRMED, True, lines=[("f1", "Thali", 10, "150")])
    db.commit()

    top = analytics.top_foods(db)
    assert [(f["name"], f["total_quantity"], f["total_revenue"], f["order_count"]) for f in top] == [
        ("Lassi", 4, 240.0, 2),
        ("Thali", 3, 450.0, 2),
    ]
    assert top[1]["food_id"] == "f1"
    assert len(analytics.top_foods(db, limit=1)) == 1


def test_top_customers_by_spend(db):
    _stored(db, "ORD-2025-000001", NOW - timedelta(days=2), OrderStatus.DELIVERED, True, user="u1", name="Asha K")
    _stored(db, "ORD-2025-000002", NOW - timedelta(days=1), OrderStatus.DELIVERED, True, total="210.50",
            user="u1", name="Asha")
    _stored(db, "ORD-2025-000003", NOW, OrderStatus.DELIVERED, True, total="400.00", user="u2", name="Ravi")
    _stored(db, "ORD-2025-000004", NOW, OrderStatus.DELIVERED, False, total="999.00", user="u3", name="Meera")
    db.commit()

    top = analytics.top_customers(db)
    assert top == [
        {"user_id": "u2", "customer_name": "Ravi", "email": "u2@example.com",
         "total_spent": 400.0, "order_count": 1, "avg_order_value": 400.0},
        {"user_id": "u1", "customer_name": "Asha", "email": "u1@example.com",
         "total_spent": 316.0, "order_count": 2, "avg_order_value": 158.0},
    ]


def test_dashboard(db):
    a = _stored(db, "ORD-2025-000001", NOW - timedelta(hours=2), OrderStatus.DELIVERED, True, user="u1")
    b = _stored(db, "ORD-2025-000002", datetime(2025, 6, 2, tzinfo=timezone.utc), OrderStatus.DELIVERED, True,
                total="210.00", gst="10.00", user="u1")
    _stored(db, "ORD-2025-000003", datetime(2025, 5, 20, tzinfo=timezone.utc), OrderStatus.DELIVERED, True,
            total="52.50", gst="2.50", user="u2")
    _stored(db, "ORD-2025-000004", NOW - timedelta(hours=1), OrderStatus.PENDING, False, user="u3")
    db.add(Review(order_id=a.id, user_id="u1", delivery_rating=4, overall_rating=4))
    db.add(Review(order_id=b.id, user_id="u1", delivery_rating=5, overall_rating=5))
    db.commit()

    assert analytics.dashboard(db, now=NOW) == {
        "total_orders": 4,
        "today_orders": 2,
        "month_orders": 3,
        "pending_orders": 1,
        "delivered_orders": 3,
        "cancelled_orders": 0,
        "total_revenue": 367.5,
        "today_revenue": 105.0,
        "month_revenue": 315.0,
        "total_gst": 17.5,
        "avg_rating": 4.5,
        "total_customers": 3,
    }


def test_empty_dashboard(db):
    d = analytics.dashboard(db, now=NOW)
    assert d["total_revenue"] == 0
    assert d["avg_rating"] is None


def test_analytics_endpoints_need_admin(client, admin_headers, auth_headers):
    assert client.get("/analytics/dashboard", headers=auth_headers).status_code == 403
    assert client.get("/analytics/dashboard", headers=admin_headers).status_code == 200
    assert len(client.get("/analytics/revenue", params={"days": 7}, headers=admin_headers).json()) == 8
    assert client.get("/analytics/revenue", params={"period": "yearly"}, headers=admin_headers).status_code == 422
    assert client.get("/analytics/revenue", params={"days": 0}, headers=admin_headers).status_code == 422
    assert client.get("/analytics/top-foods", headers=admin_headers).json() == []
    assert client.get("/analytics/top-customers", headers=admin_headers).json() == []
    assert client.get("/analytics/orders", headers=admin_headers).json()["total_orders"] == 0
