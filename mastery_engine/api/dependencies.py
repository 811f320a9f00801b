"""
Shared FastAPI dependencies.
"""
from __future__ import annotations

from fastapi import Query, Request

from mastery_engine.core.errors import StoreUnavailableError
from mastery_engine.core.models import LearnerRef
from mastery_engine.engine import MasteryEngine


def get_mastery_engine(request: Request) -> MasteryEngine:
    """The engine bound to the running app."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise StoreUnavailableError("Mastery engine is not initialized")
    return engine


def get_learner(
    user_id: str | None = Query(None, description="Authenticated user ID"),
    session_id: str | None = Query(None, description="Anonymous session ID"),
) -> LearnerRef:
    """Learner identity from query parameters (exactly one required)."""
    return LearnerRef(user_id=user_id, session_id=session_id)
