from fastapi import APIRouter

from cloudkitchen.errors import ValidationError
from cloudkitchen.schemas.delivery import DeliveryCalcIn
from cloudkitchen.services.delivery import DeliveryPolicy, calculate_delivery_fee
from cloudkitchen.util.clock import now_utc
from cloudkitchen.util.money import _money

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.post("/calculate")
def calculate(body: DeliveryCalcIn):
    if body.order_value is None:
        raise ValidationError("Order value is required")
    q = calculate_delivery_fee(body.order_value, now_utc())
    return {
        "delivery_charge": _money(q.delivery_charge),
        "is_free_delivery": q.is_free_delivery,
        "is_peak_hour": q.is_peak_hour,
        "base_charge": _money(q.base_charge),
        "peak_surcharge": _money(q.peak_surcharge),
        "amount_for_free_delivery": _money(q.amount_for_free_delivery),
        "free_delivery_threshold": _money(q.free_delivery_threshold),
        "message": q.message,
    }


@router.get("/config")
def config():
    p = DeliveryPolicy.from_settings()
    return {
        "free_delivery_threshold": _money(p.free_delivery_threshold),
        "base_charge": _money(p.base_charge),
        "peak_hour_surcharge": _money(p.peak_hour_surcharge),
        "peak_hours": [{"start": s, "end": e} for s, e in p.peak_hours],
        "timezone": p.tz,
    }
