"""Reading streak state machine.

A streak is a run of consecutive calendar days with ``words_read > 0``. The
stored ``reading_streak_days`` on a daily row is a snapshot as of that day;
the *current* streak is a freshness-gated read of the latest row.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Protocol


# Streak lengths (days) that earn a milestone badge
STREAK_MILESTONES = {
    3: "streak_starter",
    7: "week_warrior",
    14: "fortnight_fighter",
    30: "monthly_master",
    60: "reading_champion",
    90: "quarter_king",
    180: "semester_scholar",
    365: "year_legend",
}


class DayRecord(Protocol):
    """Shape of a daily aggregate as far as streak logic is concerned."""

    date: date
    words_read: int
    reading_streak_days: int
    streak_start_date: date | None
    longest_streak_days: int


@dataclass(frozen=True)
class StreakState:
    current_streak: int
    longest_streak: int
    streak_start_date: date | None


def advance(
    today: date,
    words_today: int,
    yesterday: DayRecord | None,
    previous_longest: int = 0,
) -> StreakState | None:
    """
    Apply one day's transition.

    Returns None when nothing was read today: a streak is only broken
    lazily, when the next read happens after a gap.
    """
    if words_today <= 0:
        return None

    if (
        yesterday is not None
        and yesterday.date == today - timedelta(days=1)
        and yesterday.words_read > 0
        and yesterday.reading_streak_days > 0
    ):
        current = yesterday.reading_streak_days + 1
        start = yesterday.streak_start_date or (
            yesterday.date - timedelta(days=yesterday.reading_streak_days - 1)
        )
    else:
        current = 1
        start = today

    return StreakState(
        current_streak=current,
        longest_streak=max(previous_longest, current),
        streak_start_date=start,
    )


def current_streak(latest: DayRecord | None, today: date) -> int:
    """Stored streak of ``latest`` if it is dated today or yesterday and was read."""
    if latest is None or latest.words_read <= 0:
        return 0
    if latest.date in (today, today - timedelta(days=1)):
        return latest.reading_streak_days
    return 0


def streak_status(latest: DayRecord | None, today: date) -> str:
    """active, broken (a streak existed but lapsed) or inactive."""
    if latest is None or latest.reading_streak_days == 0:
        return "inactive"
    if current_streak(latest, today) > 0:
        return "active"
    return "broken"


def next_milestone(streak: int) -> dict[str, Any] | None:
    """First milestone above ``streak``; None once all are reached."""
    for days, badge in STREAK_MILESTONES.items():
        if streak < days:
            return {
                "days": days,
                "achievement": badge,
                "days_remaining": days - streak,
                "progress_percentage": round(streak / days * 100, 1),
            }
    return None
