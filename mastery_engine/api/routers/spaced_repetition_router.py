"""
Spaced repetition router (FIRe).

Endpoints:
- POST /schedule: record a review and schedule the next one
- GET /reviews: topics due for review
- GET /optimal-reviews: compressed review set covering the most due topics
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mastery_engine.api.dependencies import get_learner, get_mastery_engine
from mastery_engine.core.models import LearnerRef
from mastery_engine.engine import MasteryEngine

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class ScheduleRequest(BaseModel):
    user_id: str | None = Field(None, description="Authenticated user ID")
    session_id: str | None = Field(None, description="Anonymous session ID")
    topic_id: str = Field(..., description="Reviewed topic")
    mastery_level: float = Field(..., description="Mastery after the review (0-100)")
    accuracy: float = Field(..., description="Review accuracy percentage (0-100)")


class ImplicitUpdateResponse(BaseModel):
    topic_id: str
    topic_name: str
    old_next_review: datetime
    new_next_review: datetime
    extension_days: int
    reason: str


class ScheduleResponse(BaseModel):
    success: bool = True
    next_review: datetime
    interval_days: int
    implicit_updates: list[ImplicitUpdateResponse]


class ReviewResponse(BaseModel):
    topic_id: str
    topic_name: str
    mastery_level: float
    last_practiced: datetime | None
    next_review: datetime
    is_due: bool
    days_until_due: int


class ReviewListResponse(BaseModel):
    success: bool = True
    reviews: list[ReviewResponse]


class OptimalReviewsResponse(BaseModel):
    success: bool = True
    topics: list[dict[str, Any]]
    compression_ratio: float
    covered_topic_ids: list[str]
    total_due: int


# ========================================
# Endpoints
# ========================================


@router.post("/schedule", response_model=ScheduleResponse)
def schedule_review(
    request: ScheduleRequest,
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> ScheduleResponse:
    """Schedule the next review with implicit repetition."""
    learner = LearnerRef(user_id=request.user_id, session_id=request.session_id)
    result = engine.schedule_review(
        learner, request.topic_id, request.mastery_level, request.accuracy
    )
    return ScheduleResponse(**result.to_dict())


@router.get("/reviews", response_model=ReviewListResponse)
def get_due_reviews(
    learner: LearnerRef = Depends(get_learner),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> ReviewListResponse:
    """Topics due for review, most overdue first."""
    reviews = engine.get_due_reviews(learner)
    return ReviewListResponse(reviews=[ReviewResponse(**r.to_dict()) for r in reviews])


@router.get("/optimal-reviews", response_model=OptimalReviewsResponse)
def get_optimal_reviews(
    learner: LearnerRef = Depends(get_learner),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> OptimalReviewsResponse:
    """Repetition-compressed review set."""
    return OptimalReviewsResponse(**engine.get_optimal_review_set(learner).to_dict())
