"""
Core Module - Shared domain models and interfaces.

This module contains the canonical implementations of concepts used across
the graph, store, adaptive and study packages.

Components:
- errors: Engine error taxonomy
- models: Topic, LearnerRef, MasteryRecord, AnswerKind
- mastery: MasteryLevel bands, thresholds, validation and time helpers

Design Principle:
Domain packages (graph/, store/, adaptive/, study/) import from core/
rather than reimplementing shared concepts.
"""

from mastery_engine.core.errors import (
    ContentError,
    InvalidInputError,
    MasteryEngineError,
    NotFoundError,
    StoreUnavailableError,
)
from mastery_engine.core.mastery import (
    FULL_MASTERY,
    GATING_THRESHOLD,
    MasteryLevel,
)
from mastery_engine.core.models import (
    AnswerKind,
    DiagnosticResult,
    LearnerRef,
    MasteryRecord,
    Topic,
)

__all__ = [
    # Errors
    "MasteryEngineError",
    "NotFoundError",
    "InvalidInputError",
    "ContentError",
    "StoreUnavailableError",
    # Models
    "AnswerKind",
    "DiagnosticResult",
    "LearnerRef",
    "MasteryRecord",
    "Topic",
    # Mastery
    "MasteryLevel",
    "GATING_THRESHOLD",
    "FULL_MASTERY",
]
