"""
Core Mastery Module.

Mastery is a 0-100 scalar per learner per topic. Two thresholds matter and
are deliberately kept apart:

- GATING_THRESHOLD (80): a topic this strong unlocks its dependents
- FULL_MASTERY (100): a topic this strong leaves the knowledge frontier

Design:
- MasteryLevel: Enum for categorizing mastery scores
- clamp/validate helpers shared by the store and the engine
- time helpers that treat naive timestamps as UTC
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from enum import Enum

from mastery_engine.core.errors import InvalidInputError

GATING_THRESHOLD = 80.0
FULL_MASTERY = 100.0
NEARLY_COMPLETE_THRESHOLD = 50.0

SECONDS_PER_DAY = 86400.0


class MasteryLevel(str, Enum):
    """
    Mastery level categorization on the 0-100 scale.

    PROFICIENT is the gating band: prerequisites at this level unlock dependents.
    """

    NOT_STARTED = "not_started"  # 0
    DEVELOPING = "developing"  # 1-49
    NEARLY_COMPLETE = "nearly_complete"  # 50-79
    PROFICIENT = "proficient"  # 80-99
    MASTERED = "mastered"  # 100

    @classmethod
    def from_score(cls, score: float | None) -> MasteryLevel:
        """
        Convert a 0-100 mastery score to a level.

        Args:
            score: Mastery score, or None when no record exists

        Returns:
            Corresponding MasteryLevel
        """
        if score is None or score <= 0:
            return cls.NOT_STARTED
        elif score < NEARLY_COMPLETE_THRESHOLD:
            return cls.DEVELOPING
        elif score < GATING_THRESHOLD:
            return cls.NEARLY_COMPLETE
        elif score < FULL_MASTERY:
            return cls.PROFICIENT
        else:
            return cls.MASTERED

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def emoji(self) -> str:
        """Status glyph for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "○",
            MasteryLevel.DEVELOPING: "◔",
            MasteryLevel.NEARLY_COMPLETE: "◑",
            MasteryLevel.PROFICIENT: "◕",
            MasteryLevel.MASTERED: "●",
        }[self]

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.DEVELOPING: "red",
            MasteryLevel.NEARLY_COMPLETE: "yellow",
            MasteryLevel.PROFICIENT: "cyan",
            MasteryLevel.MASTERED: "green",
        }[self]


def clamp_mastery(level: float) -> float:
    """Clamp a mastery level into [0, 100]."""
    return max(0.0, min(FULL_MASTERY, float(level)))


def validate_mastery(level: float, field_name: str = "mastery_level") -> float:
    """
    Reject mastery values outside [0, 100].

    Raises:
        InvalidInputError: for NaN or out-of-range values
    """
    return _validate_percentage(level, field_name)


def validate_accuracy(accuracy: float, field_name: str = "accuracy") -> float:
    """Reject accuracy percentages outside [0, 100]."""
    return _validate_percentage(accuracy, field_name)


def _validate_percentage(value: float, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field_name} must be a number, got {value!r}") from None
    if math.isnan(number) or number < 0 or number > 100:
        raise InvalidInputError(f"{field_name} must be between 0 and 100, got {value!r}")
    return number


def effective_mastery(level: float | None) -> float:
    """Resolve an absent mastery to 0 at the point of arithmetic."""
    return 0.0 if level is None else float(level)


# ============================================================================
# Time helpers
# ============================================================================


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps (e.g. from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def days_between(start: datetime, end: datetime) -> float:
    """
    Calculate days elapsed from start to end.

    Args:
        start: Earlier timestamp (naive or aware)
        end: Later timestamp (naive or aware)

    Returns:
        Days elapsed as float (negative if end precedes start)
    """
    delta = ensure_utc(end) - ensure_utc(start)
    return delta.total_seconds() / SECONDS_PER_DAY


def whole_days_between(start: datetime, end: datetime) -> int:
    """Floor of days_between."""
    return math.floor(days_between(start, end))


def format_progress_bar(score: float, width: int = 10) -> str:
    """
    Format a text progress bar.

    Args:
        score: Score 0-100
        width: Character width

    Returns:
        String like "████████░░"
    """
    filled = int(clamp_mastery(score) / 100 * width)
    empty = width - filled
    return "█" * filled + "░" * empty
