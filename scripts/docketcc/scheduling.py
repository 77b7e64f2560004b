"""
Time-of-day processing heuristics.

Decides whether a scheduled run should poll, how far back to look and how
many dockets to take, based on Eastern Time business hours. Also computes
when a digest of each type should go out.

Every function converts to local time on each call, so DST transitions are
picked up without any cached offset.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from .database import utc_now

DEFAULT_TIMEZONE = "America/New_York"

BUSINESS_START_HOUR = 8
BUSINESS_END_HOUR = 18
EVENING_END_HOUR = 22

DAILY_DIGEST_TIME = time(13, 0)
WEEKLY_DIGEST_TIME = time(9, 0)


@dataclass(frozen=True)
class ProcessingStrategy:
    """How a scheduled run should behave."""

    should_process: bool
    lookback_hours: int
    batch_size: int
    reason: str


def _local(now: Optional[datetime], tz_name: str) -> datetime:
    """Convert to local wall-clock time; naive datetimes are taken as UTC."""
    if now is None:
        now = utc_now()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=ZoneInfo("UTC"))
    return now.astimezone(ZoneInfo(tz_name))


def get_processing_strategy(
    now: Optional[datetime] = None, tz_name: str = DEFAULT_TIMEZONE
) -> ProcessingStrategy:
    """
    Pick the processing regime for the given moment.

    Args:
        now: Moment to evaluate (defaults to the current time).
        tz_name: IANA timezone whose wall clock defines business hours.

    Returns:
        ProcessingStrategy for that hour.
    """
    hour = _local(now, tz_name).hour

    if hour == BUSINESS_START_HOUR:
        return ProcessingStrategy(True, 12, 10, "morning_catchup")
    if BUSINESS_START_HOUR < hour < BUSINESS_END_HOUR:
        return ProcessingStrategy(True, 2, 5, "business_hours")
    if BUSINESS_END_HOUR <= hour < EVENING_END_HOUR:
        return ProcessingStrategy(True, 4, 3, "evening")
    return ProcessingStrategy(False, 0, 0, "quiet")


def _format_hour(hour: int) -> str:
    period = "AM" if hour < 12 else "PM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display}:00 {period} ET"


def get_next_processing_time(
    now: Optional[datetime] = None, tz_name: str = DEFAULT_TIMEZONE, interval_hours: int = 2
) -> str:
    """Human-readable description of the next processing window, for logs."""
    hour = _local(now, tz_name).hour

    if hour < BUSINESS_START_HOUR:
        return "8:00 AM ET (morning catch-up)"
    if hour >= EVENING_END_HOUR:
        return "8:00 AM ET (next day)"
    return _format_hour((hour + interval_hours) % 24)


def next_digest_time(
    digest_type: str, now: Optional[datetime] = None, tz_name: str = DEFAULT_TIMEZONE
) -> datetime:
    """
    When a digest of the given type should be delivered.

    immediate and seed_digest go out now; daily digests at the next 1 PM
    local; weekly digests at the next Monday 9 AM local.

    Returns:
        Aware datetime in UTC.
    """
    local_now = _local(now, tz_name)
    utc = ZoneInfo("UTC")

    if digest_type == "daily":
        target = local_now.replace(
            hour=DAILY_DIGEST_TIME.hour, minute=DAILY_DIGEST_TIME.minute, second=0, microsecond=0
        )
        if local_now >= target:
            target = _same_wall_time_next_day(target, tz_name)
        return target.astimezone(utc)

    if digest_type == "weekly":
        days_ahead = (7 - local_now.weekday()) % 7  # Monday == 0
        target_date = local_now.date() + timedelta(days=days_ahead)
        target = datetime.combine(target_date, WEEKLY_DIGEST_TIME, tzinfo=ZoneInfo(tz_name))
        if target <= local_now:
            target = datetime.combine(
                target_date + timedelta(days=7), WEEKLY_DIGEST_TIME, tzinfo=ZoneInfo(tz_name)
            )
        return target.astimezone(utc)

    return local_now.astimezone(utc).replace(microsecond=0)


def _same_wall_time_next_day(dt: datetime, tz_name: str) -> datetime:
    """Advance one calendar day keeping the wall-clock time across DST changes."""
    next_date = dt.date() + timedelta(days=1)
    return datetime.combine(next_date, dt.timetz().replace(tzinfo=None), tzinfo=ZoneInfo(tz_name))
