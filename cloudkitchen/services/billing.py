from decimal import Decimal
from typing import Iterable, Mapping

from cloudkitchen.config import settings
from cloudkitchen.errors import ValidationError
from cloudkitchen.util.money import q2, to_decimal


def line_total(unit_price, quantity) -> Decimal:
    return q2(to_decimal(unit_price) * int(quantity))


def compute_subtotal(lines: Iterable[Mapping]) -> Decimal:
    return q2(sum((line_total(l["unit_price"], l["quantity"]) for l in lines), Decimal(0)))


def compute_gst(subtotal, tax_rate=None) -> Decimal:
    # tax is on the subtotal only: never on the discounted or delivery-inclusive amount
    rate = to_decimal(settings.GST_PERCENTAGE if tax_rate is None else tax_rate)
    return q2(to_decimal(subtotal) * rate / Decimal(100))


def assemble(lines: Iterable[Mapping], delivery_fee=0, discount=0, tax_rate=None) -> dict:
    """subtotal -> gst -> total = subtotal + delivery - discount + gst (never below zero)."""
    lines = list(lines)
    for l in lines:
        if int(l["quantity"]) < 1:
            raise ValidationError("quantity must be at least 1")
        if to_decimal(l["unit_price"]) < 0:
            raise ValidationError("unit price cannot be negative")

    rate = to_decimal(settings.GST_PERCENTAGE if tax_rate is None else tax_rate)
    subtotal = compute_subtotal(lines)
    fee = q2(delivery_fee)
    disc = q2(discount)
    gst = compute_gst(subtotal, rate)
    total = q2(subtotal + fee - disc + gst)
    if total < 0:
        total = Decimal("0.00")

    return {
        "subtotal": subtotal,
        "delivery_fee": fee,
        "discount": disc,
        "gst_percentage": q2(rate),
        "gst_amount": gst,
        "total_amount": total,
    }
