"""
Shop-local time helpers

Every persisted instant is UTC. Shops carry an IANA timezone name; these helpers
convert between the two and define the local day boundaries and the slot grid.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

SLOT_GRANULARITY_MINUTES = 15


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def shop_zone(tz_name: str) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValueError: If the name is empty or unknown
    """
    if not tz_name:
        raise ValueError("Timezone is required")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_shop_local(instant: datetime, tz_name: str) -> datetime:
    return ensure_utc(instant).astimezone(shop_zone(tz_name))


def local_date_of(instant: datetime, tz_name: str) -> date:
    """Shop-local calendar date of a UTC instant"""
    return to_shop_local(instant, tz_name).date()


def local_time_of(instant: datetime, tz_name: str) -> time:
    """Shop-local wall clock time (seconds precision) of a UTC instant"""
    return to_shop_local(instant, tz_name).time().replace(microsecond=0)


def tomorrow_local(instant: datetime, tz_name: str) -> date:
    return local_date_of(instant, tz_name) + timedelta(days=1)


def utc_from_local(local_date: date, local_time: time, tz_name: str) -> datetime:
    """Convert a shop-local date + wall clock time to a UTC instant"""
    local_dt = datetime.combine(local_date, local_time, tzinfo=shop_zone(tz_name))
    return local_dt.astimezone(timezone.utc)


def day_range_utc(local_date: date, tz_name: str) -> tuple[datetime, datetime]:
    """
    UTC [start, end) of a shop-local calendar day.

    On DST transition days the range is 23 or 25 hours long.
    """
    start = utc_from_local(local_date, time.min, tz_name)
    end = utc_from_local(local_date + timedelta(days=1), time.min, tz_name)
    return start, end


def weekday_index(local_date: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday"""
    return local_date.isoweekday() % 7


def is_on_grid(instant: datetime, granularity_minutes: int = SLOT_GRANULARITY_MINUTES) -> bool:
    """True when the instant sits exactly on the slot grid"""
    return (
        instant.minute % granularity_minutes == 0
        and instant.second == 0
        and instant.microsecond == 0
    )


def ceil_to_grid(instant: datetime, granularity_minutes: int = SLOT_GRANULARITY_MINUTES) -> datetime:
    """First grid boundary at or after the instant"""
    floored = instant.replace(second=0, microsecond=0) - timedelta(minutes=instant.minute % granularity_minutes)
    if floored == instant:
        return floored
    return floored + timedelta(minutes=granularity_minutes)


def round_up_to_grid(minutes: int, granularity_minutes: int = SLOT_GRANULARITY_MINUTES) -> int:
    """Round a duration up to a whole number of grid steps"""
    steps = -(-minutes // granularity_minutes)
    return max(steps, 1) * granularity_minutes


def format_local(instant: datetime, tz_name: str, fmt: str = "%Y-%m-%d %H:%M") -> str:
    return to_shop_local(instant, tz_name).strftime(fmt)


def parse_local_date(value: str) -> Optional[date]:
    """Parse YYYY-MM-DD; returns None when malformed"""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None
