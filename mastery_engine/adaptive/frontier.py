"""
Frontier Calculator.

The knowledge frontier is every topic whose prerequisites are all strongly
understood (mastery >= 80) but which is not yet fully mastered (< 100):

    frontier = { t : all(p in mastered_set for p in prereqs(t)) and mastery(t) < 100 }

Recomputed on demand from the store; learner-scale graphs are small enough
that no incremental index is kept.
"""
from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from mastery_engine.core.mastery import FULL_MASTERY, GATING_THRESHOLD, effective_mastery
from mastery_engine.core.models import LearnerRef, MasteryRecord, Topic
from mastery_engine.graph.topic_graph import TopicGraph
from mastery_engine.store.base import MasteryStore


@dataclass
class DomainMastery:
    """Mastery rollup for one content domain."""

    domain: str
    total: int
    mastered: int
    in_progress: int
    not_started: int

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.mastered / self.total * 100)

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "total": self.total,
            "mastered": self.mastered,
            "in_progress": self.in_progress,
            "not_started": self.not_started,
            "percentage": self.percentage,
        }


class FrontierCalculator:
    """Read-side projection of the graph and a learner's mastery."""

    def __init__(
        self,
        graph: TopicGraph,
        store: MasteryStore,
        gating_threshold: float = GATING_THRESHOLD,
        full_mastery: float = FULL_MASTERY,
    ):
        self.graph = graph
        self.store = store
        self.gating_threshold = gating_threshold
        self.full_mastery = full_mastery

    def compute_frontier(
        self,
        learner: LearnerRef,
        records: dict[str, MasteryRecord] | None = None,
    ) -> list[Topic]:
        """
        Topics the learner is ready to learn next.

        Args:
            learner: Learner identity
            records: Pre-loaded records keyed by topic id (skips the store read)

        Returns:
            Frontier topics in graph order (difficulty, id)
        """
        if records is None:
            records = self.store.get_map(learner)
        levels = {topic_id: record.mastery_level for topic_id, record in records.items()}
        mastered_set = {
            topic_id for topic_id, level in levels.items() if level >= self.gating_threshold
        }

        frontier = [
            topic
            for topic in self.graph.topics()
            if effective_mastery(levels.get(topic.id)) < self.full_mastery
            and all(p.id in mastered_set for p in self.graph.prerequisites(topic.id))
        ]
        logger.debug(f"Frontier for {learner}: {len(frontier)} of {len(self.graph)} topics")
        return frontier

    def _level(self, learner: LearnerRef, topic_id: str) -> float | None:
        record = self.store.get(learner, topic_id)
        return record.mastery_level if record is not None else None

    def is_mastered(self, learner: LearnerRef, topic_id: str) -> bool:
        """A topic is fully mastered at 100."""
        self.graph.topic(topic_id)
        return effective_mastery(self._level(learner, topic_id)) >= self.full_mastery

    def prerequisites_mastered(self, learner: LearnerRef, topic_id: str) -> bool:
        """Every prerequisite is at or above the gating threshold."""
        prerequisites = self.graph.prerequisites(topic_id)
        if not prerequisites:
            return True
        records = self.store.get_map(learner)
        return all(
            effective_mastery(records[p.id].mastery_level if p.id in records else None)
            >= self.gating_threshold
            for p in prerequisites
        )

    def can_advance(self, learner: LearnerRef, topic_id: str) -> bool:
        """The topic is on the learner's frontier."""
        return not self.is_mastered(learner, topic_id) and self.prerequisites_mastered(
            learner, topic_id
        )

    def domain_mastery(self, learner: LearnerRef, domain: str) -> DomainMastery:
        """Count mastered / in-progress / not-started topics in a domain."""
        topics = self.graph.topics_by_domain(domain)
        records = self.store.get_map(learner)

        mastered = in_progress = 0
        for topic in topics:
            record = records.get(topic.id)
            level = effective_mastery(record.mastery_level if record else None)
            if level >= self.full_mastery:
                mastered += 1
            elif level > 0:
                in_progress += 1

        return DomainMastery(
            domain=domain,
            total=len(topics),
            mastered=mastered,
            in_progress=in_progress,
            not_started=len(topics) - mastered - in_progress,
        )
