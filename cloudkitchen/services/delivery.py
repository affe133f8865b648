from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from cloudkitchen.config import settings
from cloudkitchen.util.clock import to_local
from cloudkitchen.util.money import to_decimal, whole


@dataclass(frozen=True)
class DeliveryPolicy:
    free_delivery_threshold: Decimal = Decimal(300)
    base_charge: Decimal = Decimal(30)
    peak_hour_surcharge: Decimal = Decimal(10)
    peak_hours: tuple[tuple[int, int], ...] = ((12, 14), (19, 22))
    tz: str = "UTC"

    @classmethod
    def from_settings(cls) -> "DeliveryPolicy":
        return cls(
            free_delivery_threshold=to_decimal(settings.FREE_DELIVERY_THRESHOLD),
            base_charge=to_decimal(settings.DELIVERY_BASE_CHARGE),
            peak_hour_surcharge=to_decimal(settings.PEAK_HOUR_SURCHARGE),
            peak_hours=tuple((int(s), int(e)) for s, e in settings.PEAK_HOURS),
            tz=settings.TZ,
        )


@dataclass(frozen=True)
class DeliveryQuote:
    delivery_charge: Decimal
    is_free_delivery: bool
    is_peak_hour: bool
    base_charge: Decimal
    peak_surcharge: Decimal
    amount_for_free_delivery: Decimal
    free_delivery_threshold: Decimal
    message: str = field(default="")


def is_peak_hour(now: datetime, policy: DeliveryPolicy) -> bool:
    hour = to_local(now, policy.tz).hour
    return any(start <= hour < end for start, end in policy.peak_hours)


def calculate_delivery_fee(order_value, now: datetime, policy: DeliveryPolicy | None = None) -> DeliveryQuote:
    """Deterministic in (order_value, now); the policy is passed in, not read from a clock."""
    policy = policy or DeliveryPolicy.from_settings()
    value = to_decimal(order_value)
    peak = is_peak_hour(now, policy)

    if value >= policy.free_delivery_threshold:
        return DeliveryQuote(
            delivery_charge=Decimal(0),
            is_free_delivery=True,
            is_peak_hour=peak,
            base_charge=policy.base_charge,
            peak_surcharge=Decimal(0),
            amount_for_free_delivery=Decimal(0),
            free_delivery_threshold=policy.free_delivery_threshold,
            message=f"Free delivery on orders above {whole(policy.free_delivery_threshold)}",
        )

    surcharge = policy.peak_hour_surcharge if peak else Decimal(0)
    return DeliveryQuote(
        delivery_charge=policy.base_charge + surcharge,
        is_free_delivery=False,
        is_peak_hour=peak,
        base_charge=policy.base_charge,
        peak_surcharge=surcharge,
        amount_for_free_delivery=whole(policy.free_delivery_threshold - value),
        free_delivery_threshold=policy.free_delivery_threshold,
        message=(f"Delivery charge includes {whole(surcharge)} peak hour surcharge"
                 if peak else "Standard delivery charge"),
    )
