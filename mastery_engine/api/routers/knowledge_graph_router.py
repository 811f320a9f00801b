"""
Knowledge graph router.

Endpoints:
- GET /topics: all topics, optionally one domain
- GET /frontier: topics the learner is ready to learn
- GET /prerequisites: direct prerequisites of a topic
- GET /encompassings: topics a topic encompasses and is encompassed by
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from mastery_engine.api.dependencies import get_learner, get_mastery_engine
from mastery_engine.core.models import LearnerRef, Topic
from mastery_engine.engine import MasteryEngine

router = APIRouter()


# ========================================
# Response Models
# ========================================


class TopicResponse(BaseModel):
    id: str
    name: str
    domain: str
    difficulty: int
    xp_value: int
    description: str | None = None

    @classmethod
    def from_topic(cls, topic: Topic) -> TopicResponse:
        return cls(**topic.to_dict())


class TopicListResponse(BaseModel):
    success: bool = True
    topics: list[TopicResponse]


class PrerequisitesResponse(BaseModel):
    success: bool = True
    topic_id: str
    prerequisites: list[TopicResponse]


class EncompassingsResponse(BaseModel):
    success: bool = True
    topic_id: str
    encompassed: list[TopicResponse]
    encompassing: list[TopicResponse]


# ========================================
# Endpoints
# ========================================


@router.get("/topics", response_model=TopicListResponse)
def list_topics(
    domain: str | None = Query(None, description="Restrict to one domain"),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> TopicListResponse:
    """List topics in ascending difficulty."""
    topics = engine.graph.topics_by_domain(domain) if domain else engine.graph.topics()
    return TopicListResponse(topics=[TopicResponse.from_topic(t) for t in topics])


@router.get("/frontier", response_model=TopicListResponse)
def get_frontier(
    learner: LearnerRef = Depends(get_learner),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> TopicListResponse:
    """Get the learner's knowledge frontier."""
    frontier = engine.get_frontier(learner)
    return TopicListResponse(topics=[TopicResponse.from_topic(t) for t in frontier])


@router.get("/prerequisites", response_model=PrerequisitesResponse)
def get_prerequisites(
    topic_id: str = Query(..., description="Topic ID"),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> PrerequisitesResponse:
    """Direct prerequisites in authoring order."""
    prerequisites = engine.graph.prerequisites(topic_id)
    return PrerequisitesResponse(
        topic_id=topic_id,
        prerequisites=[TopicResponse.from_topic(t) for t in prerequisites],
    )


@router.get("/encompassings", response_model=EncompassingsResponse)
def get_encompassings(
    topic_id: str = Query(..., description="Topic ID"),
    engine: MasteryEngine = Depends(get_mastery_engine),
) -> EncompassingsResponse:
    """Encompassing edges in both directions."""
    return EncompassingsResponse(
        topic_id=topic_id,
        encompassed=[TopicResponse.from_topic(t) for t in engine.graph.encompassed(topic_id)],
        encompassing=[TopicResponse.from_topic(t) for t in engine.graph.encompassing(topic_id)],
    )
