"""Achievement catalog - the 10 reading achievement lines, 5 levels each."""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping


MAX_LEVEL = 5

# Ordered level names used by ordinal (non-numeric) requirements
ORDINAL_LEVELS = ("beginner", "elementary", "intermediate", "advanced", "expert", "master")


def ordinal_rank(level_name: str | None) -> int:
    """Position in ORDINAL_LEVELS; unknown names rank below beginner."""
    try:
        return ORDINAL_LEVELS.index(level_name)
    except ValueError:
        return -1


@dataclass(frozen=True)
class AchievementLevel:
    level: int
    requirement: int | str
    points: int
    title: str

    @property
    def is_ordinal(self) -> bool:
        return isinstance(self.requirement, str)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "requirement": self.requirement,
            "points": self.points,
            "title": self.title,
        }


@dataclass(frozen=True)
class AchievementType:
    key: str
    name: str
    description: str
    icon: str
    levels: tuple[AchievementLevel, ...]

    def level(self, level: int) -> AchievementLevel | None:
        if 1 <= level <= len(self.levels):
            return self.levels[level - 1]
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "achievement_type": self.key,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "levels": [lvl.to_dict() for lvl in self.levels],
        }


def generate_levels(
    requirements: list[int | str],
    points: list[int],
    titles: list[str],
) -> tuple[AchievementLevel, ...]:
    """Zip parallel requirement/points/title lists into numbered levels."""
    if not (len(requirements) == len(points) == len(titles)):
        raise ValueError("requirements, points and titles must have the same length")
    return tuple(
        AchievementLevel(level=i, requirement=req, points=pts, title=title)
        for i, (req, pts, title) in enumerate(zip(requirements, points, titles), 1)
    )


def _definitions() -> list[AchievementType]:
    return [
        AchievementType(
            "daily_reader", "Daily Reader", "Read every day consistently", "calendar",
            generate_levels(
                [7, 30, 60, 100, 365],
                [50, 200, 500, 1000, 2500],
                ["Week Warrior", "Month Master", "Consistency Champion",
                 "Dedication Expert", "Daily Legend"],
            ),
        ),
        AchievementType(
            "word_master", "Word Master", "Read a large number of words", "book",
            generate_levels(
                [10_000, 50_000, 150_000, 500_000, 1_000_000],
                [100, 300, 700, 1500, 3000],
                ["Word Seeker", "Word Explorer", "Word Champion", "Word Master", "Word Legend"],
            ),
        ),
        AchievementType(
            "speed_reader", "Speed Reader", "Achieve high reading speeds", "zap",
            generate_levels(
                [250, 350, 450, 600, 800],
                [75, 200, 400, 800, 1600],
                ["Quick Reader", "Fast Reader", "Speed Reader", "Lightning Reader", "Speed Master"],
            ),
        ),
        AchievementType(
            "streak_keeper", "Streak Keeper", "Maintain long reading streaks", "fire",
            generate_levels(
                [5, 15, 30, 50, 100],
                [50, 150, 350, 700, 1500],
                ["Streak Starter", "Streak Builder", "Streak Maintainer",
                 "Streak Champion", "Streak Legend"],
            ),
        ),
        AchievementType(
            "level_climber", "Level Climber", "Progress through reading levels", "trending-up",
            generate_levels(
                ["elementary", "intermediate", "advanced", "expert", "master"],
                [100, 200, 400, 800, 1600],
                ["Level Learner", "Level Builder", "Level Climber", "Level Master", "Level Legend"],
            ),
        ),
        AchievementType(
            "category_explorer", "Category Explorer",
            "Read stories from different categories", "compass",
            generate_levels(
                [3, 5, 8, 12, 15],
                [50, 125, 250, 500, 1000],
                ["Genre Starter", "Genre Explorer", "Genre Adventurer", "Genre Master", "Genre Legend"],
            ),
        ),
        AchievementType(
            "engagement_star", "Engagement Star", "Actively engage with the platform", "star",
            generate_levels(
                [10, 50, 150, 400, 1000],
                [25, 100, 250, 500, 1000],
                ["Engagement Starter", "Engagement Builder", "Engagement Champion",
                 "Engagement Master", "Engagement Legend"],
            ),
        ),
        AchievementType(
            "completion_champion", "Completion Champion", "Complete stories consistently", "trophy",
            generate_levels(
                [10, 50, 150, 400, 1000],
                [100, 300, 600, 1200, 2500],
                ["Story Finisher", "Story Completer", "Story Champion", "Story Master", "Story Legend"],
            ),
        ),
        AchievementType(
            "early_bird", "Early Bird", "Read consistently in the morning", "sunrise",
            generate_levels(
                [5, 15, 30, 60, 120],
                [50, 150, 300, 600, 1200],
                ["Morning Reader", "Dawn Warrior", "Early Bird", "Sunrise Champion", "Dawn Legend"],
            ),
        ),
        AchievementType(
            "night_owl", "Night Owl", "Read consistently in the evening", "moon",
            generate_levels(
                [5, 15, 30, 60, 120],
                [50, 150, 300, 600, 1200],
                ["Evening Reader", "Night Reader", "Night Owl", "Midnight Champion", "Night Legend"],
            ),
        ),
    ]


class AchievementCatalog:
    """Read-only lookup of achievement types and levels."""

    def __init__(self, types: list[AchievementType]):
        self._types: Mapping[str, AchievementType] = MappingProxyType(
            {t.key: t for t in types}
        )
        self._levels: Mapping[tuple[str, int], AchievementLevel] = MappingProxyType({
            (t.key, lvl.level): lvl for t in types for lvl in t.levels
        })

    def __iter__(self) -> Iterator[AchievementType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, key: object) -> bool:
        return key in self._types

    def get(self, key: str) -> AchievementType | None:
        return self._types.get(key)

    def level(self, key: str, level: int) -> AchievementLevel | None:
        return self._levels.get((key, level))

    def keys(self) -> list[str]:
        return list(self._types)

    def to_list(self) -> list[dict[str, Any]]:
        return [t.to_dict() for t in self._types.values()]


DEFAULT_CATALOG = AchievementCatalog(_definitions())
