# test_pricing.py
from decimal import Decimal

import pytest

from cloudkitchen.errors import ValidationError
from cloudkitchen.services.billing import assemble, compute_gst, compute_subtotal


def test_two_lines_with_delivery_and_tax():
    lines = [{"unit_price": 100, "quantity": 2}, {"unit_price": 50, "quantity": 1}]
    bill = assemble(lines, delivery_fee=30, discount=0, tax_rate=5)
    assert bill["subtotal"] == Decimal("250.00")
    assert bill["gst_amount"] == Decimal("12.50")
    assert bill["total_amount"] == Decimal("292.50")
    assert bill["gst_percentage"] == Decimal("5.00")


def test_tax_ignores_discount_and_delivery():
    lines = [{"unit_price": "199.99", "quantity": 3}]
    with_extras = assemble(lines, delivery_fee=40, discount=100, tax_rate=5)
    bare = assemble(lines, tax_rate=5)
    assert with_extras["gst_amount"] == bare["gst_amount"] == compute_gst(Decimal("599.97"), 5)
    assert with_extras["total_amount"] == with_extras["subtotal"] + 40 - 100 + with_extras["gst_amount"]


def test_gst_rounds_half_up_to_cents():
    # 10.10 * 5% = 0.505 -> 0.51
    assert compute_gst(Decimal("10.10"), 5) == Decimal("0.51")


def test_total_never_negative():
    bill = assemble([{"unit_price": 10, "quantity": 1}], discount=50, tax_rate=0)
    assert bill["total_amount"] == Decimal("0.00")


def test_float_prices_do_not_drift():
    assert compute_subtotal([{"unit_price": 0.1, "quantity": 3}]) == Decimal("0.30")


@pytest.mark.parametrize("line", [
    {"unit_price": 10, "quantity": 0},
    {"unit_price": -1, "quantity": 1},
])
def test_invalid_lines_rejected(line):
    with pytest.raises(ValidationError):
        assemble([line])


def test_default_rate_comes_from_settings():
    bill = assemble([{"unit_price": 200, "quantity": 1}])
    assert bill["gst_amount"] == Decimal("10.00")
