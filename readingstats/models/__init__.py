from readingstats.models.base import Base
from readingstats.models.member import Member
from readingstats.models.story import Story
from readingstats.models.reading import DailyReadingStat, ReadingLevel, ReadingSession
from readingstats.models.achievement import AchievementUnlock

__all__ = [
    "Base",
    "Member",
    "Story",
    "ReadingSession",
    "DailyReadingStat",
    "ReadingLevel",
    "AchievementUnlock",
]
