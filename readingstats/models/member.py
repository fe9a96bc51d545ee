from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from readingstats.models.base import Base

if TYPE_CHECKING:
    from readingstats.models.reading import DailyReadingStat
    from readingstats.models.achievement import AchievementUnlock


class Member(Base):
    """App member whose reading activity is tracked."""

    __tablename__ = "members"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))

    # Last level derived from the trailing daily average; drives the
    # leaderboard level filter and the level_climber achievement.
    reading_level: Mapped[str] = mapped_column(String(20), default="beginner", index=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    # Relationships
    daily_stats: Mapped[list["DailyReadingStat"]] = relationship(
        "DailyReadingStat",
        back_populates="member",
        cascade="all, delete-orphan",
    )
    achievements: Mapped[list["AchievementUnlock"]] = relationship(
        "AchievementUnlock",
        back_populates="member",
        cascade="all, delete-orphan",
    )
