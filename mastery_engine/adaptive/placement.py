"""
Diagnostic completion and placement.

Completing a diagnostic persists tentative mastery for every tested topic,
recomputes the frontier and ranks it for a single recommended starting point:

1. nearly complete topics (50-99 mastery), highest mastery first
2. untested root topics
3. other untested topics
4. tested topics

with ascending difficulty (then id) as the final tie-break.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from mastery_engine.adaptive.diagnostic import TENTATIVE_MASTERY
from mastery_engine.adaptive.frontier import FrontierCalculator
from mastery_engine.core.errors import InvalidInputError
from mastery_engine.core.mastery import FULL_MASTERY, NEARLY_COMPLETE_THRESHOLD, utcnow
from mastery_engine.core.models import AnswerKind, DiagnosticResult, LearnerRef, Topic
from mastery_engine.graph.topic_graph import TopicGraph
from mastery_engine.store.base import MasteryStore


@dataclass
class RankedTopic:
    """A frontier topic with the signals used to rank it."""

    topic: Topic
    mastery_level: float
    was_tested: bool
    is_root: bool

    @property
    def is_nearly_complete(self) -> bool:
        return NEARLY_COMPLETE_THRESHOLD <= self.mastery_level < FULL_MASTERY

    @property
    def priority(self) -> int:
        if self.is_nearly_complete:
            return 1
        if not self.was_tested and self.is_root:
            return 2
        if not self.was_tested:
            return 3
        return 4

    def sort_key(self) -> tuple:
        mastery_order = -self.mastery_level if self.is_nearly_complete else 0.0
        return (self.priority, mastery_order, self.topic.difficulty, self.topic.id)


def rank_frontier(
    graph: TopicGraph,
    frontier: Iterable[Topic],
    mastery_levels: dict[str, float],
    tested_topic_ids: set[str],
) -> list[RankedTopic]:
    """Order frontier topics by placement priority."""
    ranked = [
        RankedTopic(
            topic=topic,
            mastery_level=mastery_levels.get(topic.id, 0.0),
            was_tested=topic.id in tested_topic_ids,
            is_root=graph.is_root(topic.id),
        )
        for topic in frontier
    ]
    ranked.sort(key=RankedTopic.sort_key)
    return ranked


@dataclass
class PlacementSummary:
    total_topics_tested: int
    topics_with_strong_understanding: int
    topics_unknown: int
    topics_in_progress: int
    frontier_topics: int
    strong_understanding_topics: list[Topic] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_topics_tested": self.total_topics_tested,
            "topics_with_strong_understanding": self.topics_with_strong_understanding,
            "topics_unknown": self.topics_unknown,
            "topics_in_progress": self.topics_in_progress,
            "frontier_topics": self.frontier_topics,
            "strong_understanding_topics": [
                {**t.to_dict(), "mastery_level": TENTATIVE_MASTERY[AnswerKind.CORRECT]}
                for t in self.strong_understanding_topics
            ],
        }


@dataclass
class Placement:
    """Where a learner should start after a diagnostic."""

    frontier: list[Topic]
    ranked: list[RankedTopic]
    summary: PlacementSummary

    @property
    def recommended(self) -> RankedTopic | None:
        return self.ranked[0] if self.ranked else None

    @property
    def recommended_topic(self) -> Topic | None:
        return self.recommended.topic if self.recommended else None

    @property
    def recommended_mastery(self) -> float | None:
        return self.recommended.mastery_level if self.recommended else None

    def to_dict(self) -> dict[str, Any]:
        recommended = None
        if self.recommended is not None:
            recommended = {
                **self.recommended.topic.to_dict(),
                "mastery_level": self.recommended.mastery_level,
            }
        return {
            "frontier": [t.to_dict() for t in self.frontier],
            "recommended_topic": recommended,
            "placement_summary": self.summary.to_dict(),
        }


def _coerce_result(raw: DiagnosticResult | dict[str, Any]) -> DiagnosticResult:
    if isinstance(raw, DiagnosticResult):
        answer = raw.answer_kind
        topic_id = raw.topic_id
    elif isinstance(raw, dict):
        if "topic_id" not in raw or "answer_kind" not in raw:
            raise InvalidInputError("Each result needs a topic_id and an answer_kind")
        answer = AnswerKind.parse(raw["answer_kind"])
        topic_id = str(raw["topic_id"])
    else:
        raise InvalidInputError(f"Unrecognized diagnostic result: {raw!r}")
    # Mastery always derives from the answer kind, never from caller input
    return DiagnosticResult(
        topic_id=topic_id, answer_kind=answer, tentative_mastery=TENTATIVE_MASTERY[answer]
    )


class PlacementCalculator:
    """Persists diagnostic results and computes the learner's placement."""

    def __init__(
        self,
        graph: TopicGraph,
        store: MasteryStore,
        frontier: FrontierCalculator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.graph = graph
        self.store = store
        self.frontier = frontier
        self._clock = clock

    def complete_diagnostic(
        self,
        learner: LearnerRef,
        results: Iterable[DiagnosticResult | dict[str, Any]],
    ) -> Placement:
        """
        Persist tentative mastery and rank the resulting frontier.

        Every result is validated before the first write, so a bad entry
        leaves the store untouched.

        Raises:
            InvalidInputError: malformed result or answer kind
            NotFoundError: unknown topic
        """
        parsed = [_coerce_result(raw) for raw in results]
        for result in parsed:
            self.graph.topic(result.topic_id)

        now = self._clock()
        for result in parsed:
            self.store.upsert(learner, result.topic_id, result.tentative_mastery, now=now)

        records = self.store.get_map(learner)
        frontier = self.frontier.compute_frontier(learner, records=records)
        levels = {topic_id: record.mastery_level for topic_id, record in records.items()}
        tested = {result.topic_id for result in parsed}
        ranked = rank_frontier(self.graph, frontier, levels, tested)

        strong = [r for r in parsed if r.answer_kind == AnswerKind.CORRECT]
        summary = PlacementSummary(
            total_topics_tested=len(parsed),
            topics_with_strong_understanding=len(strong),
            topics_unknown=sum(1 for r in parsed if r.answer_kind == AnswerKind.IDONTKNOW),
            topics_in_progress=sum(1 for r in parsed if r.answer_kind == AnswerKind.INCORRECT),
            frontier_topics=len(frontier),
            strong_understanding_topics=[self.graph.topic(r.topic_id) for r in strong],
        )

        placement = Placement(frontier=frontier, ranked=ranked, summary=summary)
        logger.info(
            f"Diagnostic complete for {learner}: {len(parsed)} results, "
            f"frontier={len(frontier)}, recommended="
            f"{placement.recommended_topic.id if placement.recommended_topic else None}"
        )
        return placement
