from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from cloudkitchen.config import settings


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TZ)


def to_local(dt: datetime, tz: str | None = None) -> datetime:
    """Aware datetimes are converted to the business zone; naive ones are taken as already local."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(ZoneInfo(tz) if tz else local_tz())
