from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from core.config import settings


def reference_zone() -> ZoneInfo:
    return ZoneInfo(settings.stock_timezone)


def today() -> date:
    """Current calendar date in the deployment's reference time zone."""
    return datetime.now(reference_zone()).date()


def utcnow() -> datetime:
    # Naive UTC, matching the DateTime columns (no tz stored).
    return datetime.now(timezone.utc).replace(tzinfo=None)
