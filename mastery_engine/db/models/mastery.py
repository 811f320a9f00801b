"""
Learner mastery model.

One row per (learner, topic). A learner is either an authenticated user or
an anonymous session; the CHECK constraint enforces exactly one, and the two
unique constraints give ON CONFLICT targets for atomic upserts.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class StudentMastery(Base):
    """Mastery level and review schedule for one learner and topic."""

    __tablename__ = "student_mastery"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(Text)
    session_id: Mapped[str | None] = mapped_column(Text)
    topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False
    )

    mastery_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_practiced: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_review: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (session_id IS NULL)",
            name="ck_student_mastery_one_identity",
        ),
        CheckConstraint(
            "mastery_level >= 0 AND mastery_level <= 100",
            name="ck_student_mastery_level_range",
        ),
        UniqueConstraint("user_id", "topic_id", name="uq_mastery_user_topic"),
        UniqueConstraint("session_id", "topic_id", name="uq_mastery_session_topic"),
        Index("idx_mastery_next_review", "next_review"),
    )

    def __repr__(self) -> str:
        learner = f"user:{self.user_id}" if self.user_id else f"session:{self.session_id}"
        return f"<StudentMastery {learner} topic={self.topic_id} mastery={self.mastery_level}>"
