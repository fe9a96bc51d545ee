from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from readingstats.models.base import Base


class Story(Base):
    """Published story with content metrics computed on save."""

    __tablename__ = "stories"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text, default="")
    category_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Content metrics (WordCountAnalyzer output)
    word_count: Mapped[int] = mapped_column(Integer, default=0)
    reading_level: Mapped[str] = mapped_column(String(20), default="intermediate")
    reading_time_minutes: Mapped[int] = mapped_column(Integer, default=1)
    complexity_score: Mapped[float] = mapped_column(Float, default=0.0)
    content_hash: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
