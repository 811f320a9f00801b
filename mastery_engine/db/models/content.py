"""
Topic content models.

Authored reference data for the knowledge graph:
- topics: learnable units with domain, difficulty and XP value
- topic_prerequisites: hard gating edges (must form a DAG)
- topic_encompassings: soft containment edges used by FIRe implicit repetition

The engine never writes these tables; they are filled by content import.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class TopicRow(Base):
    """A topic in the knowledge graph."""

    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    domain: Mapped[str] = mapped_column(Text, nullable=False, default="general", index=True)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_value: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<TopicRow(id={self.id}, name={self.name}, difficulty={self.difficulty})>"


class TopicPrerequisiteRow(Base):
    """topic_id requires prerequisite_id."""

    __tablename__ = "topic_prerequisites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prerequisite_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Authoring order; diagnostic downward probing depends on it
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("topic_id", "prerequisite_id", name="uq_topic_prerequisite"),
    )

    def __repr__(self) -> str:
        return f"<TopicPrerequisiteRow({self.topic_id} requires {self.prerequisite_id})>"


class TopicEncompassingRow(Base):
    """topic_id implicitly exercises encompassed_id."""

    __tablename__ = "topic_encompassings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    encompassed_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("topic_id", "encompassed_id", name="uq_topic_encompassing"),
    )

    def __repr__(self) -> str:
        return f"<TopicEncompassingRow({self.topic_id} encompasses {self.encompassed_id})>"
