"""
Mastery router.

Endpoints:
- GET /: one topic's record (topic_id given) or all of the learner's records
- POST /: set a topic's mastery directly
- POST /increment: add to a topic's mastery atomically
- POST /mastered: mark a topic fully mastered
- POST /practice: blend practice answers into mastery and reschedule reviews
- GET /can-advance: whether a topic is on the learner's frontier
- GET /domain: mastered / in-progress / not-started counts for a domain
"""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from mastery_engine.api.dependencies import get_learner, get_mastery_engine
from mastery_engine.core.mastery import MasteryLevel
from mastery_engine.core.models import LearnerRef, MasteryRecord
from mastery_engine.engine import MasteryEngine

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class MasteryUpdateRequest(BaseModel):
    user_id: str | None = Field(None, description="Authenticated user ID")
    session_id: str | None = Field(None, description="Anonymous session ID")
    topic_id: str = Field(..., description="Topic ID")
    mastery_level: float = Field(..., description="New mastery level (0-100)")


class MasteryIncrementRequest(BaseModel):
    user_id: str | None = Field(None, description="Authenticated user ID")
    session_id: str | None = Field(None, description="Anonymous session ID")
    topic_id: str = Field(..., description="Topic ID")
    amount: float = Field(..., description="Points to add (negative to subtract)")


class MasteredRequest(BaseModel):
    user_id: str | None = Field(None, description="Authenticated user ID")
    session_id: str | None = Field(None, description="Anonymous session ID")
    topic_id: str = Field(..., description="Topic ID")


class PracticeAnswerModel(BaseModel):
    topic_id: str
    is_correct: bool


class PracticeRequest(BaseModel):
    user_id: str | None = Field(None, description="Authenticated user ID")
    session_id: str | None = Field(None, description="Anonymous session ID")
    answers: list[PracticeAnswerModel] = Field(..., description="Answers from one practice round")


class TopicPracticeResponse(BaseModel):
    topic_id: str
    topic_name: str
    correct: int
    total: int
    accuracy: float
    old_mastery: float
    new_mastery: float
    next_review: datetime
    interval_days: int


class PracticeResponse(BaseModel):
    success: bool = True
    accuracy: float
    total_questions: int
    correct_answers: int
    topics_reviewed: list[str]
    mastery_updates: list[TopicPracticeResponse]


class MasteryRecordResponse(BaseModel):
    topic_id: str
    mastery_level: float
    level: str
    last_practiced: datetime | None = None
    next_review: datetime | None = None

    @classmethod
    def from_record(cls, record: MasteryRecord) -> MasteryRecordResponse:
        return cls(
            topic_id=record.topic_id,
            mastery_level=record.mastery_level,
            level=MasteryLevel.from_score(record.mastery_level).value,
            last_practiced=record.last_practiced,
            next_review=record.next_review,
        )


class MasteryResponse(BaseModel):
    success: bool = True
    mastery: MasteryRecordResponse | None = None
    records: list[MasteryRecordResponse] | None = None


class CanAdvanceResponse(BaseModel):
    success: bool = True
    topic_id: str
    can_advance: bool


class DomainMasteryResponse(BaseModel):
    success: bool = True
    domain: str
    total: int
    mastered: int
    in_progress: int
    not_started: int
    percentage: int


# ========================================
# Endpoints
# ========================================


@router.get("", response_model=MasteryResponse)
def get_mastery(
    topic_id: str | None = Query(None, description="Single topic; omit for all records"),
    learner: LearnerRef = Depends(get_learner),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> MasteryResponse:
    """Get mastery for one topic or all topics."""
    if topic_id is None:
        records = engine.get_all_mastery(learner)
        return MasteryResponse(records=[MasteryRecordResponse.from_record(r) for r in records])

    record = engine.get_mastery(learner, topic_id)
    return MasteryResponse(
        mastery=MasteryRecordResponse.from_record(record) if record is not None else None
    )


@router.post("", response_model=MasteryResponse)
def update_mastery(
    request: MasteryUpdateRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> MasteryResponse:
    """Set mastery for a topic."""
    learner = LearnerRef(user_id=request.user_id, session_id=request.session_id)
    record = engine.update_mastery(learner, request.topic_id, request.mastery_level)
    return MasteryResponse(mastery=MasteryRecordResponse.from_record(record))


@router.post("/increment", response_model=MasteryResponse)
def increment_mastery(
    request: MasteryIncrementRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> MasteryResponse:
    """Add to a topic's mastery, clamped to 0-100."""
    learner = LearnerRef(user_id=request.user_id, session_id=request.session_id)
    record = engine.increment_mastery(learner, request.topic_id, request.amount)
    return MasteryResponse(mastery=MasteryRecordResponse.from_record(record))


@router.post("/mastered", response_model=MasteryResponse)
def set_mastered(
    request: MasteredRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> MasteryResponse:
    learner = LearnerRef(user_id=request.user_id, session_id=request.session_id)
    record = engine.set_mastered(learner, request.topic_id)
    return MasteryResponse(mastery=MasteryRecordResponse.from_record(record))


@router.post("/practice", response_model=PracticeResponse)
def record_practice(
    request: PracticeRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> PracticeResponse:
    """
    Record a practice round.

    Each topic's accuracy is blended with its stored mastery (60/40) and its
    next review is scheduled from that accuracy.
    """
    learner = LearnerRef(user_id=request.user_id, session_id=request.session_id)
    summary = engine.record_practice(learner, [a.model_dump() for a in request.answers])
    return PracticeResponse(**summary.to_dict())


@router.get("/can-advance", response_model=CanAdvanceResponse)
def can_advance(
    topic_id: str = Query(..., description="Topic ID"),
    learner: LearnerRef = Depends(get_learner),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> CanAdvanceResponse:
    """Check if prerequisites are met and the topic is not yet mastered."""
    return CanAdvanceResponse(topic_id=topic_id, can_advance=engine.can_advance(learner, topic_id))


@router.get("/domain", response_model=DomainMasteryResponse)
def domain_mastery(
    domain: str = Query(..., description="Domain name"),
    learner: LearnerRef = Depends(get_learner),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> DomainMasteryResponse:
    """Mastery rollup for a domain."""
    return DomainMasteryResponse(**engine.get_domain_mastery(learner, domain).to_dict())
