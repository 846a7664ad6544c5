# src/view_sync/models/story.py
"""SQLAlchemy models for stories and chapters."""

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from view_sync.db.session import Base


class Story(Base):
    """Published story carrying the authoritative story read count.

    ``read_count`` is only ever changed through additive updates issued by the
    view sync job.
    """

    __tablename__ = "story"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    read_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Chapter(Base):
    """Chapter of a story with its own read count."""

    __tablename__ = "chapter"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    story_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("story.id", ondelete="CASCADE"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    read_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
