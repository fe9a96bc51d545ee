"""Efficiency scoring and the daily reading-goal tables it depends on."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from readingstats.models.reading import ReadingLevel


# Daily word goals per member reading level. These also act as the
# trailing-average thresholds for deriving a member's level, and are kept
# apart from the achievement catalog requirements on purpose.
DAILY_GOALS = MappingProxyType({
    ReadingLevel.BEGINNER.value: 500,
    ReadingLevel.INTERMEDIATE.value: 1000,
    ReadingLevel.ADVANCED.value: 2000,
    ReadingLevel.EXPERT.value: 3000,
})

WEEKLY_GOALS = MappingProxyType({
    ReadingLevel.BEGINNER.value: 3500,
    ReadingLevel.INTERMEDIATE.value: 7000,
    ReadingLevel.ADVANCED.value: 14000,
    ReadingLevel.EXPERT.value: 21000,
})

MONTHLY_GOALS = MappingProxyType({
    ReadingLevel.BEGINNER.value: 15000,
    ReadingLevel.INTERMEDIATE.value: 30000,
    ReadingLevel.ADVANCED.value: 60000,
    ReadingLevel.EXPERT.value: 90000,
})

# (type, words, pages) from largest to smallest
READING_EQUIVALENTS = (
    ("epic", 150_000, 600),
    ("novel", 80_000, 320),
    ("novella", 20_000, 80),
    ("short_story", 2_000, 8),
)
WORDS_PER_PAGE = 250


@dataclass(frozen=True)
class ScoringConfig:
    """Immutable thresholds for goals, level derivation and efficiency weights."""

    daily_goals: Mapping[str, int] = field(default_factory=lambda: DAILY_GOALS)
    weekly_goals: Mapping[str, int] = field(default_factory=lambda: WEEKLY_GOALS)
    monthly_goals: Mapping[str, int] = field(default_factory=lambda: MONTHLY_GOALS)
    default_goal_level: str = ReadingLevel.INTERMEDIATE.value

    level_window_days: int = 7
    reference_wpm: int = 200
    streak_target_days: int = 30

    speed_weight: float = 0.3
    completion_weight: float = 0.3
    goal_weight: float = 0.2
    consistency_weight: float = 0.2

    def daily_goal(self, level: str) -> int:
        return self.daily_goals.get(level, self.daily_goals[self.default_goal_level])


DEFAULT_SCORING = ScoringConfig()


def level_from_average(average_words: float | None, config: ScoringConfig = DEFAULT_SCORING) -> str:
    """Map a trailing daily average to a reading level. No data -> beginner."""
    if not average_words:
        return ReadingLevel.BEGINNER.value
    goals = config.daily_goals
    for level in (ReadingLevel.EXPERT, ReadingLevel.ADVANCED, ReadingLevel.INTERMEDIATE):
        if average_words >= goals[level.value]:
            return level.value
    return ReadingLevel.BEGINNER.value


def words_per_minute(words_read: int, reading_time_minutes: int) -> int:
    if reading_time_minutes <= 0:
        return 0
    return round(words_read / reading_time_minutes)


def goal_progress(
    words_read: int, level: str, config: ScoringConfig = DEFAULT_SCORING
) -> dict[str, Any]:
    goal = config.daily_goal(level)
    return {
        "current": words_read,
        "goal": goal,
        "progress_percentage": round(min(100.0, words_read / goal * 100), 1),
        "remaining": max(0, goal - words_read),
        "exceeded": words_read > goal,
        "exceeded_by": max(0, words_read - goal),
    }


def reading_equivalent(words_read: int) -> dict[str, Any]:
    """Express a word count as stories/novels read."""
    for kind, words, pages in READING_EQUIVALENTS:
        if words_read >= words:
            ratio = words_read / words
            return {
                "type": kind,
                "ratio": round(ratio, 1),
                "pages": round(ratio * pages),
            }
    return {
        "type": "words",
        "ratio": 1,
        "pages": max(1, round(words_read / WORDS_PER_PAGE)),
    }


def efficiency_score(
    words_read: int,
    reading_time_minutes: int,
    stories_completed: int,
    reading_level: str,
    current_streak: int,
    config: ScoringConfig = DEFAULT_SCORING,
) -> float:
    """
    Weighted 0-100 score of one day's reading.

    speed:       words/minute against the reference speed
    completion:  all or nothing on finishing at least one story
    goal:        share of the daily goal for the member's level
    consistency: current streak against the streak target
    """
    wpm = words_per_minute(words_read, reading_time_minutes)
    speed = min(100.0, wpm / config.reference_wpm * 100)
    completion = 100.0 if stories_completed > 0 else 0.0
    goal = min(100.0, words_read / config.daily_goal(reading_level) * 100)
    consistency = min(100.0, current_streak / config.streak_target_days * 100)

    score = (
        speed * config.speed_weight
        + completion * config.completion_weight
        + goal * config.goal_weight
        + consistency * config.consistency_weight
    )
    return round(max(0.0, min(100.0, score)), 1)


class EfficiencyScorer:
    """Scores a daily aggregate row."""

    def __init__(self, config: ScoringConfig = DEFAULT_SCORING):
        self.config = config

    def score(self, aggregate: Any, current_streak: int) -> float:
        return efficiency_score(
            aggregate.words_read,
            aggregate.reading_time_minutes,
            aggregate.stories_completed,
            aggregate.reading_level,
            current_streak,
            self.config,
        )
