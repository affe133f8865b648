from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
UNIT = Decimal("1")


def to_decimal(x) -> Decimal:
    if x is None:
        return Decimal("0")
    if isinstance(x, Decimal):
        return x
    # go through str to avoid float binary artifacts
    return Decimal(str(x))


def q2(x) -> Decimal:
    return to_decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)


def whole(x) -> Decimal:
    """Round to the nearest whole currency unit (display / coupon application)."""
    return to_decimal(x).quantize(UNIT, rounding=ROUND_HALF_UP)


def _money(x) -> float:
    return float(q2(x))
