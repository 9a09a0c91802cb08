"""Clock and time-of-day arithmetic for scheduling"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from .exceptions import InvalidRequest

Clock = Callable[[], datetime]

MINUTES_PER_DAY = 24 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise InvalidRequest("Appointment must start and end on the same day")
    return time(minutes // 60, minutes % 60)


def add_minutes(value: time, minutes: int) -> time:
    """Shift a time of day; raises InvalidRequest if the result leaves the day"""
    return from_minutes(to_minutes(value) + minutes)


def tenant_now(clock: Clock, tz_name: str) -> datetime:
    """Current wall-clock time in the tenant's timezone (aware)"""
    return clock().astimezone(ZoneInfo(tz_name))


def localize(day: date, at: time, tz_name: str) -> datetime:
    return datetime.combine(day, at, tzinfo=ZoneInfo(tz_name))


def whole_hours_between(start: datetime, end: datetime) -> int:
    """Complete hours from start to end, truncated toward zero"""
    return int((end - start) / timedelta(hours=1))
