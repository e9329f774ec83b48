"""Store wall clock.

The pharmacy runs on a fixed UTC offset (no DST), so business dates such as
"today" for expiry checks and delivery slots are derived from UTC plus
settings.LOCAL_UTC_OFFSET_HOURS.
"""
from datetime import date, datetime, timedelta

from quickpharma.core.config import settings


def utc_now() -> datetime:
    return datetime.utcnow()


def local_now() -> datetime:
    return utc_now() + timedelta(hours=settings.LOCAL_UTC_OFFSET_HOURS)


def local_today() -> date:
    return local_now().date()


def local_to_utc(value: datetime) -> datetime:
    return value - timedelta(hours=settings.LOCAL_UTC_OFFSET_HOURS)
