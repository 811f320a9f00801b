"""
Core domain models shared by the graph, store, adaptive and study packages.

Topic data is immutable authoring content; MasteryRecord is the only
learner-owned state the engine reads and writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from mastery_engine.core.errors import InvalidInputError


class AnswerKind(str, Enum):
    """How a learner answered a diagnostic question."""

    CORRECT = "correct"
    INCORRECT = "incorrect"
    IDONTKNOW = "idontknow"

    @classmethod
    def parse(cls, value: str | AnswerKind) -> AnswerKind:
        """Parse a raw answer kind, rejecting unknown values."""
        if isinstance(value, AnswerKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(kind.value for kind in cls)
            raise InvalidInputError(
                f"Unrecognized answer kind {value!r} (expected one of: {allowed})"
            ) from None


@dataclass(frozen=True)
class Topic:
    """A learnable topic in the knowledge graph."""

    id: str
    name: str
    domain: str = "general"
    difficulty: int = 1
    xp_value: int = 10
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.domain,
            "difficulty": self.difficulty,
            "xp_value": self.xp_value,
            "description": self.description,
        }


@dataclass(frozen=True)
class LearnerRef:
    """
    Learner identity: an authenticated user or an anonymous session.

    Exactly one of user_id / session_id must be set.
    """

    user_id: str | None = None
    session_id: str | None = None

    def __post_init__(self):
        user_id = self.user_id or None
        session_id = self.session_id or None
        if user_id is None and session_id is None:
            raise InvalidInputError("Either user_id or session_id is required")
        if user_id is not None and session_id is not None:
            raise InvalidInputError("Provide user_id or session_id, not both")
        # Normalise empty strings to None
        object.__setattr__(self, "user_id", user_id)
        object.__setattr__(self, "session_id", session_id)

    @classmethod
    def user(cls, user_id: str) -> LearnerRef:
        return cls(user_id=user_id)

    @classmethod
    def anonymous(cls, session_id: str) -> LearnerRef:
        return cls(session_id=session_id)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def key(self) -> tuple[str, str]:
        """Stable (kind, id) key used by stores and caches."""
        if self.user_id is not None:
            return ("user", self.user_id)
        return ("session", self.session_id)  # type: ignore[return-value]

    def __str__(self) -> str:
        kind, identifier = self.key
        return f"{kind}:{identifier}"

    def to_dict(self) -> dict[str, str | None]:
        return {"user_id": self.user_id, "session_id": self.session_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearnerRef:
        return cls(user_id=data.get("user_id"), session_id=data.get("session_id"))


@dataclass
class MasteryRecord:
    """Mastery of one topic for one learner."""

    learner: LearnerRef
    topic_id: str
    mastery_level: float = 0.0  # 0-100
    last_practiced: datetime | None = None
    next_review: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def review_interval_days(self) -> int | None:
        """Whole days between last practice and the scheduled review, if both are known."""
        if self.last_practiced is None or self.next_review is None:
            return None
        delta = self.next_review - self.last_practiced
        return int(delta.total_seconds() // 86400)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            **self.learner.to_dict(),
            "topic_id": self.topic_id,
            "mastery_level": self.mastery_level,
            "last_practiced": self.last_practiced.isoformat() if self.last_practiced else None,
            "next_review": self.next_review.isoformat() if self.next_review else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class DiagnosticResult:
    """One answered diagnostic question, as reported back at completion."""

    topic_id: str
    answer_kind: AnswerKind
    tentative_mastery: float = field(default=0.0, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "answer_kind": self.answer_kind.value,
            "tentative_mastery": self.tentative_mastery,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiagnosticResult:
        return cls(
            topic_id=str(data["topic_id"]),
            answer_kind=AnswerKind.parse(data["answer_kind"]),
            tentative_mastery=float(data.get("tentative_mastery", 0.0)),
        )
