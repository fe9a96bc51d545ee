"""Reading activity models: the session event log and daily aggregates."""

import datetime as dt
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from readingstats.models.base import Base

if TYPE_CHECKING:
    from readingstats.models.member import Member


class ReadingLevel(str, Enum):
    """Reading level derived from daily reading volume."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class ReadingSession(Base):
    """Append-only record of one reading session. Never updated."""

    __tablename__ = "reading_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        index=True,
    )
    story_id: Mapped[int] = mapped_column(
        ForeignKey("stories.id", ondelete="CASCADE"),
        index=True,
    )

    words_read: Mapped[int] = mapped_column(Integer, default=0)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0)
    reading_progress: Mapped[float] = mapped_column(Float, default=0.0)  # 0-100
    completed: Mapped[bool] = mapped_column(Boolean, default=False)

    session_start: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    session_end: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_reading_session_member_start", "member_id", "session_start"),
    )


class DailyReadingStat(Base):
    """One row per member per day accumulating reading activity."""

    __tablename__ = "daily_reading_stats"

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        index=True,
    )
    date: Mapped[dt.date] = mapped_column(Date)

    # Accumulated with SQL-side increments, never overwritten
    words_read: Mapped[int] = mapped_column(Integer, default=0)
    stories_completed: Mapped[int] = mapped_column(Integer, default=0)
    reading_time_minutes: Mapped[int] = mapped_column(Integer, default=0)

    # Streak snapshot as of this day
    reading_streak_days: Mapped[int] = mapped_column(Integer, default=0)
    streak_start_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    longest_streak_days: Mapped[int] = mapped_column(Integer, default=0)

    # Use String to keep the column portable - values validated at app layer
    reading_level: Mapped[str] = mapped_column(String(20), default=ReadingLevel.BEGINNER.value)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationship
    member: Mapped["Member"] = relationship("Member", back_populates="daily_stats")

    __table_args__ = (
        UniqueConstraint("member_id", "date", name="uq_daily_reading_stat_member_date"),
        Index("ix_daily_reading_stat_date", "date"),
    )
