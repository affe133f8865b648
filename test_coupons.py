# test_coupons.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from cloudkitchen.errors import ConflictError
from cloudkitchen.models.core import Coupon, DiscountType
from cloudkitchen.services import coupons

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _coupon(**kw):
    base = dict(
        code="X", is_active=True, valid_from=NOW - timedelta(days=1), valid_to=NOW + timedelta(days=1),
        usage_limit=None, used_count=0, min_order_value=Decimal(0),
        discount_type=DiscountType.PERCENTAGE, discount_value=Decimal(20), max_discount=None,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def test_percentage_capped_by_max_discount():
    c = _coupon(discount_value=20, max_discount=100)
    assert coupons.calculate_discount(c, 1000) == Decimal(100)


def test_flat_discount_clamped_to_order_value():
    c = _coupon(discount_type=DiscountType.FLAT, discount_value=150)
    assert coupons.calculate_discount(c, 120) == Decimal(120)


def test_applied_discount_rounds_to_whole_units():
    c = _coupon(discount_value=15)
    # 15% of 333 = 49.95
    assert coupons.calculate_discount(c, 333) == Decimal("49.95")
    assert coupons.applied_discount(c, 333) == Decimal(50)


@pytest.mark.parametrize("overrides,reason", [
    ({"is_active": False, "valid_to": NOW - timedelta(days=3)}, "Coupon is not active"),
    ({"valid_from": NOW + timedelta(hours=1), "usage_limit": 1, "used_count": 1}, "Coupon is not yet valid"),
    ({"valid_to": NOW - timedelta(seconds=1), "usage_limit": 1, "used_count": 1}, "Coupon has expired"),
    ({"usage_limit": 5, "used_count": 5, "min_order_value": Decimal(10_000)}, "Coupon usage limit reached"),
    ({"min_order_value": Decimal("499.5")}, "Minimum order value of 500 required"),
])
def test_first_failing_rule_wins(overrides, reason):
    check = coupons.validate(_coupon(**overrides), 100, NOW)
    assert check.valid is False
    assert check.reason == reason


def test_valid_coupon():
    assert coupons.validate(_coupon(), 100, NOW).valid is True


def test_record_usage_respects_cap(db, make_coupon):
    c = make_coupon(code="ONCE", usage_limit=1)
    coupons.record_usage(db, c)
    db.commit()
    assert c.used_count == 1
    with pytest.raises(ConflictError):
        coupons.record_usage(db, c)
    db.rollback()
    assert db.get(Coupon, c.id).used_count == 1


def test_find_coupon_is_case_insensitive(db, make_coupon):
    make_coupon(code="WELCOME")
    assert coupons.find_coupon(db, " welcome ").code == "WELCOME"


def test_admin_crud_and_duplicate_code(client, admin_headers, auth_headers):
    body = {
        "code": "fest50", "discount_type": "flat", "discount_value": 50,
        "valid_to": (datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
    }
    r = client.post("/coupons/", json=body, headers=admin_headers)
    assert r.status_code == 200, r.text
    created = r.json()
    assert created["code"] == "FEST50"

    assert client.post("/coupons/", json=body, headers=admin_headers).status_code == 409
    assert client.post("/coupons/", json=body, headers=auth_headers).status_code == 403

    r = client.put(f"/coupons/{created['id']}", json={"usage_limit": 10}, headers=admin_headers)
    assert r.json()["usage_limit"] == 10

    r = client.post("/coupons/validate", json={"code": "fest50", "order_value": 400}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["discount"] == 50

    assert client.delete(f"/coupons/{created['id']}", headers=admin_headers).status_code == 200
    r = client.post("/coupons/validate", json={"code": "fest50", "order_value": 400}, headers=auth_headers)
    assert r.status_code == 404


def test_validate_endpoint_reports_reason(client, auth_headers, make_coupon):
    make_coupon(code="BIG", min_order_value=500)
    r = client.post("/coupons/validate", json={"code": "BIG", "order_value": 100}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "Minimum order value of 500 required"
