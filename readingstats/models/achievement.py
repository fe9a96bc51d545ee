from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
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


class AchievementUnlock(Base):
    """A catalog level a member has reached. Created at most once."""

    __tablename__ = "achievement_unlocks"

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        index=True,
    )
    achievement_type: Mapped[str] = mapped_column(String(50))  # e.g. "word_master"
    level: Mapped[int] = mapped_column(Integer)  # 1-5

    points_awarded: Mapped[int] = mapped_column(Integer, default=0)
    achieved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    # Reward claim
    is_claimed: Mapped[bool] = mapped_column(Boolean, default=False)
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationship
    member: Mapped["Member"] = relationship("Member", back_populates="achievements")

    __table_args__ = (
        UniqueConstraint(
            "member_id", "achievement_type", "level",
            name="uq_achievement_unlock_member_type_level",
        ),
        Index("ix_achievement_unlock_type", "achievement_type"),
        Index("ix_achievement_unlock_achieved", "achieved_at"),
    )
