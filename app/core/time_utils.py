"""
Wall-clock helpers for queue scheduling.

Timestamps are stored as naive UTC. Daily cut-offs ("run at 03:00") are
expressed in a fixed business time zone, independent of the server's zone.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention for every task table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an aware or naive-UTC datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def next_daily_occurrence(
    hour: int,
    minute: int = 0,
    tz: str = settings.SCHEDULE_TIMEZONE,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Return the next strictly-future occurrence of hour:minute in `tz`.

    Args:
        hour: Target hour (0-23) on the `tz` wall clock
        minute: Target minute (0-59)
        tz: IANA zone name, e.g. "Asia/Shanghai"
        now: Reference instant; naive values are read as UTC. Defaults to now.

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ValueError: If hour or minute is out of range
    """
    if not 0 <= hour <= 23:
        raise ValueError(f"hour out of range: {hour}")
    if not 0 <= minute <= 59:
        raise ValueError(f"minute out of range: {minute}")

    zone = ZoneInfo(tz)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local_now = now.astimezone(zone)
    target = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= local_now:
        target = (target + timedelta(days=1)).replace(hour=hour, minute=minute)

    return target.astimezone(timezone.utc)


def format_local(value: datetime, tz: str = settings.SCHEDULE_TIMEZONE) -> str:
    """Render a stored timestamp on the business wall clock for user messages."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(tz)).strftime("%Y-%m-%d %H:%M %Z")
