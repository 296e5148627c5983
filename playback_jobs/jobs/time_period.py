"""Date helpers shared by the batch jobs"""

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

_SIMPLE_UNITS = {
    "second": "seconds",
    "minute": "minutes",
    "hour": "hours",
    "day": "days",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(date: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length"""
    month_index = date.month - 1 + months
    year = date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(date.day, calendar.monthrange(year, month)[1])
    return date.replace(year=year, month=month, day=day)


def shift(date: datetime, number: int, period: str) -> datetime:
    unit = period.lower()
    if unit.endswith("s"):
        unit = unit[:-1]
    if unit in _SIMPLE_UNITS:
        return date + timedelta(**{_SIMPLE_UNITS[unit]: number})
    if unit == "month":
        return add_months(date, number)
    if unit == "year":
        return add_months(date, number * 12)
    raise ValueError(f"Unsupported period unit: {period}")


def get_time_period(
    number: int,
    period: str,
    direction: str = "backward",
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Return (start, end) of a period ending (backward) or starting (forward) at now

    Args:
        number: How many units the period spans
        period: second(s), minute(s), hour(s), day(s), month(s) or year(s)
        direction: "backward" moves the start back, "forward" moves the end ahead
    """
    now = now or utcnow()
    if direction == "backward":
        return shift(now, -number, period), now
    if direction == "forward":
        return now, shift(now, number, period)
    raise ValueError(f"Unsupported direction: {direction}")


def month_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """UTC start of the current month and start of the next one"""
    now = now or utcnow()
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    return start, add_months(start, 1)


def cutoff_date(days: int, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) - timedelta(days=days)


def format_execution_time(ms: int) -> str:
    total_seconds = int(ms) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s ({ms}ms)"
    if minutes > 0:
        return f"{minutes}m {seconds}s ({ms}ms)"
    return f"{seconds}s ({ms}ms)"


def parse_execution_time(value) -> int:
    """Accept 1234, "1234" or "1234ms" and return milliseconds"""
    if isinstance(value, (int, float)):
        return int(value)
    return int(str(value).strip().replace("ms", "") or 0)
