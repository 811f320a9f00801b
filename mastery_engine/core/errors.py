"""
Engine error taxonomy.

Every failure the engine raises derives from MasteryEngineError so transports
(HTTP, CLI) can map the whole family in one place:

- NotFoundError: unknown topic, learner record or diagnostic session
- InvalidInputError: out-of-range mastery/accuracy, bad answer kind,
  missing or ambiguous learner identity
- ContentError: authored graph is unusable (cycle, dangling edge, no roots)
- StoreUnavailableError: the mastery store could not be reached
"""

from __future__ import annotations


class MasteryEngineError(Exception):
    """Base class for all engine errors."""

    pass


class NotFoundError(MasteryEngineError):
    """Raised when a topic, record or session does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidInputError(MasteryEngineError, ValueError):
    """Raised when caller input is rejected before any store mutation."""

    pass


class ContentError(MasteryEngineError):
    """Raised when authored topic content violates graph invariants."""

    pass


class StoreUnavailableError(MasteryEngineError):
    """Raised when the mastery store fails transiently. Never retried internally."""

    pass
