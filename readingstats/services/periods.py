"""Calendar-aligned period windows used by statistics and rankings."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

from readingstats.core.exceptions import ValidationError

PERIODS = ("day", "week", "month", "quarter", "year", "all")

# Days used for completion rate; anything else falls back to a month
COMPLETION_WINDOW_DAYS = {
    "week": 7,
    "month": 30,
    "year": 365,
}
DEFAULT_COMPLETION_WINDOW = 30


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Aware UTC datetime. Naive values are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


Clock = Callable[[], datetime]


def validate_period(period: str) -> str:
    if period not in PERIODS:
        raise ValidationError(
            f"Unknown period '{period}'",
            details={"allowed": list(PERIODS)},
        )
    return period


def period_start(period: str, today: date) -> date | None:
    """First day of the window containing ``today``. None for ``all``."""
    validate_period(period)

    if period == "day":
        return today
    if period == "week":
        # ISO week starts on Monday
        return today - timedelta(days=today.weekday())
    if period == "month":
        return today.replace(day=1)
    if period == "quarter":
        first_month = 3 * ((today.month - 1) // 3) + 1
        return today.replace(month=first_month, day=1)
    if period == "year":
        return today.replace(month=1, day=1)
    return None


def completion_window_days(period: str) -> int:
    return COMPLETION_WINDOW_DAYS.get(period, DEFAULT_COMPLETION_WINDOW)


def day_start(day: date) -> datetime:
    """Midnight UTC at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)
