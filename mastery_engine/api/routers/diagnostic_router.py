"""
Diagnostic router: adaptive placement test.

Endpoints:
- POST /start: begin a session at the easiest root topic
- POST /answer: submit an answer, get the next topic or completion
- POST /complete: persist tentative mastery and return the placement

Session state is returned to the caller and sent back on every answer;
the server keeps nothing between requests.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field

from mastery_engine.api.dependencies import get_mastery_engine
from mastery_engine.core.models import LearnerRef
from mastery_engine.engine import MasteryEngine

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class LearnerRequest(BaseModel):
    """Learner identity: exactly one of user_id / session_id."""

    user_id: str | None = Field(None, description="Authenticated user ID")
    session_id: str | None = Field(None, description="Anonymous session ID")

    def learner(self) -> LearnerRef:
        return LearnerRef(user_id=self.user_id, session_id=self.session_id)


class DiagnosticAnswerRequest(BaseModel):
    """Answer to the current diagnostic question."""

    diagnostic_session: dict[str, Any] = Field(..., description="State returned by the previous call")
    topic_id: str = Field(..., description="Topic the answer is for")
    answer_kind: str = Field(..., description="'correct', 'incorrect' or 'idontknow'")


class DiagnosticResultItem(BaseModel):
    topic_id: str
    answer_kind: str


class DiagnosticCompleteRequest(LearnerRequest):
    """Results to persist for the learner."""

    results: list[DiagnosticResultItem] = Field(..., description="One entry per answered topic")


class DiagnosticStartResponse(BaseModel):
    success: bool = True
    diagnostic_session: dict[str, Any]
    first_topic: dict[str, Any]


class DiagnosticAnswerResponse(BaseModel):
    success: bool = True
    diagnostic_session: dict[str, Any]
    next_topic: dict[str, Any] | None
    is_complete: bool
    tentative_mastery: float
    topics_tested: list[str]
    questions_asked: int


class DiagnosticCompleteResponse(BaseModel):
    success: bool = True
    diagnostic_complete: bool = True
    frontier: list[dict[str, Any]]
    recommended_topic: dict[str, Any] | None
    placement_summary: dict[str, Any]
    message: str


# ========================================
# Endpoints
# ========================================


@router.post("/start", response_model=DiagnosticStartResponse)
def start_diagnostic(
    request: LearnerRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> DiagnosticStartResponse:
    """Start a diagnostic session."""
    start = engine.start_diagnostic(request.learner())
    return DiagnosticStartResponse(
        diagnostic_session=start.state.to_dict(),
        first_topic=start.first_topic.to_dict(),
    )


@router.post("/answer", response_model=DiagnosticAnswerResponse)
def submit_answer(
    request: DiagnosticAnswerRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> DiagnosticAnswerResponse:
    """Submit an answer and get the next topic to test."""
    step = engine.submit_diagnostic_answer(
        request.diagnostic_session, request.topic_id, request.answer_kind
    )
    return DiagnosticAnswerResponse(
        diagnostic_session=step.state.to_dict(),
        next_topic=step.next_topic.to_dict() if step.next_topic else None,
        is_complete=step.is_complete,
        tentative_mastery=step.tentative_mastery,
        topics_tested=step.topics_tested,
        questions_asked=step.questions_asked,
    )


@router.post("/complete", response_model=DiagnosticCompleteResponse)
def complete_diagnostic(
    request: DiagnosticCompleteRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> DiagnosticCompleteResponse:
    """Persist diagnostic results and calculate placement."""
    learner = request.learner()
    placement = engine.complete_diagnostic(
        learner, [result.model_dump() for result in request.results]
    )
    data = placement.to_dict()
    logger.info(f"Placement for {learner}: {len(placement.frontier)} frontier topics")
    return DiagnosticCompleteResponse(
        frontier=data["frontier"],
        recommended_topic=data["recommended_topic"],
        placement_summary=data["placement_summary"],
        message=(
            f"Diagnostic complete! Your knowledge frontier has "
            f"{len(placement.frontier)} topics ready to learn."
        ),
    )
