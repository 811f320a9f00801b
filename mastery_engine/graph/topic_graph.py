"""
Topic Graph.

Immutable, read-only view over authored topic content with two edge kinds:

- PREREQUISITE: hard gating, must form a DAG
- ENCOMPASSES: soft containment used by FIRe implicit repetition; a plain
  lookup table that may contain cycles and is never traversed recursively

Content invariants are checked once, at construction time, so per-request
queries never have to handle a malformed graph.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator

from loguru import logger

from mastery_engine.core.errors import ContentError, NotFoundError
from mastery_engine.core.models import Topic


class EdgeType(str, Enum):
    """Types of edges in the topic graph."""
    PREREQUISITE = "PREREQUISITE"
    ENCOMPASSES = "ENCOMPASSES"


@dataclass(frozen=True)
class GraphEdge:
    """A directed edge: source depends on / encompasses target."""
    source_id: str
    target_id: str
    edge_type: EdgeType


def topic_sort_key(topic: Topic) -> tuple[int, str]:
    """Ascending difficulty, id as a stable tie-break."""
    return (topic.difficulty, topic.id)


class TopicGraph:
    """
    Read-only knowledge graph of topics.

    Usage:
        graph = TopicGraph(topics, prerequisites=[("b", "a")], encompassings=[("b", "a")])
        graph.prerequisites("b")   # [Topic(a)]
        graph.root_topics()        # [Topic(a)]

    Unknown topic ids raise NotFoundError so callers can tell
    "no prerequisites" apart from "topic does not exist".
    """

    def __init__(
        self,
        topics: Iterable[Topic],
        prerequisites: Iterable[tuple[str, str]] = (),
        encompassings: Iterable[tuple[str, str]] = (),
    ):
        """
        Build and validate the graph.

        Args:
            topics: All authored topics
            prerequisites: (topic_id, prerequisite_id) pairs
            encompassings: (topic_id, encompassed_id) pairs

        Raises:
            ContentError: duplicate ids, dangling edges, self-prerequisites
                or prerequisite cycles
        """
        self._topics: dict[str, Topic] = {}
        for topic in topics:
            if topic.id in self._topics:
                raise ContentError(f"Duplicate topic id: {topic.id}")
            self._topics[topic.id] = topic

        self._prereqs: dict[str, list[str]] = defaultdict(list)
        self._dependents: dict[str, list[str]] = defaultdict(list)
        self._encompassed: dict[str, list[str]] = defaultdict(list)
        self._encompassing: dict[str, list[str]] = defaultdict(list)

        for topic_id, prereq_id in prerequisites:
            self._check_edge(topic_id, prereq_id, EdgeType.PREREQUISITE)
            if topic_id == prereq_id:
                raise ContentError(f"Topic {topic_id} lists itself as a prerequisite")
            if prereq_id not in self._prereqs[topic_id]:
                self._prereqs[topic_id].append(prereq_id)
                self._dependents[prereq_id].append(topic_id)

        for topic_id, encompassed_id in encompassings:
            self._check_edge(topic_id, encompassed_id, EdgeType.ENCOMPASSES)
            if encompassed_id not in self._encompassed[topic_id]:
                self._encompassed[topic_id].append(encompassed_id)
                self._encompassing[encompassed_id].append(topic_id)

        self._ordered = sorted(self._topics.values(), key=topic_sort_key)
        self._check_acyclic()

        logger.debug(
            f"Topic graph built: {len(self._topics)} topics, "
            f"{sum(len(v) for v in self._prereqs.values())} prerequisite edges, "
            f"{sum(len(v) for v in self._encompassed.values())} encompassing edges"
        )

    # =========================================================================
    # Validation
    # =========================================================================

    def _check_edge(self, source_id: str, target_id: str, edge_type: EdgeType) -> None:
        for endpoint in (source_id, target_id):
            if endpoint not in self._topics:
                raise ContentError(
                    f"{edge_type.value} edge {source_id} -> {target_id} references unknown topic {endpoint}"
                )

    def _check_acyclic(self) -> None:
        """Kahn's algorithm over prerequisite edges."""
        in_degree = {topic_id: len(self._prereqs.get(topic_id, ())) for topic_id in self._topics}
        ready = [topic_id for topic_id, degree in in_degree.items() if degree == 0]
        visited = 0

        while ready:
            current = ready.pop()
            visited += 1
            for dependent in self._dependents.get(current, ()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        if visited != len(self._topics):
            cyclic = sorted(topic_id for topic_id, degree in in_degree.items() if degree > 0)
            raise ContentError(f"Prerequisite cycle detected among topics: {', '.join(cyclic)}")

    def _require(self, topic_id: str) -> Topic:
        topic = self._topics.get(topic_id)
        if topic is None:
            raise NotFoundError("Topic", topic_id)
        return topic

    # =========================================================================
    # Queries
    # =========================================================================

    def topic(self, topic_id: str) -> Topic:
        """Get a topic by id."""
        return self._require(topic_id)

    def topics(self) -> list[Topic]:
        """All topics, ascending difficulty."""
        return list(self._ordered)

    def prerequisites(self, topic_id: str) -> list[Topic]:
        """Direct prerequisites in authoring order."""
        self._require(topic_id)
        return [self._topics[pid] for pid in self._prereqs.get(topic_id, ())]

    def dependents(self, topic_id: str) -> list[Topic]:
        """Topics that list this topic as a prerequisite."""
        self._require(topic_id)
        return [self._topics[did] for did in self._dependents.get(topic_id, ())]

    def encompassed(self, topic_id: str) -> list[Topic]:
        """Simpler topics implicitly exercised by practising this one."""
        self._require(topic_id)
        return [self._topics[eid] for eid in self._encompassed.get(topic_id, ())]

    def encompassing(self, topic_id: str) -> list[Topic]:
        """Advanced topics that implicitly exercise this one."""
        self._require(topic_id)
        return [self._topics[eid] for eid in self._encompassing.get(topic_id, ())]

    def encompassed_ids(self, topic_id: str) -> set[str]:
        self._require(topic_id)
        return set(self._encompassed.get(topic_id, ()))

    def is_root(self, topic_id: str) -> bool:
        """A root topic has no prerequisites."""
        self._require(topic_id)
        return not self._prereqs.get(topic_id)

    def root_topics(self) -> list[Topic]:
        """Topics with no prerequisites, ascending difficulty."""
        return [t for t in self._ordered if not self._prereqs.get(t.id)]

    def topics_by_domain(self, domain: str) -> list[Topic]:
        return [t for t in self._ordered if t.domain == domain]

    def domains(self) -> list[str]:
        return sorted({t.domain for t in self._ordered})

    def hierarchy(self) -> dict[str, list[Topic]]:
        """Topics grouped by domain."""
        grouped: dict[str, list[Topic]] = {}
        for topic in self._ordered:
            grouped.setdefault(topic.domain, []).append(topic)
        return grouped

    def edges(self) -> list[GraphEdge]:
        """Every authored edge, prerequisites first."""
        edges = [
            GraphEdge(source, target, EdgeType.PREREQUISITE)
            for source, targets in self._prereqs.items()
            for target in targets
        ]
        edges.extend(
            GraphEdge(source, target, EdgeType.ENCOMPASSES)
            for source, targets in self._encompassed.items()
            for target in targets
        )
        return edges

    def __contains__(self, topic_id: object) -> bool:
        return topic_id in self._topics

    def __len__(self) -> int:
        return len(self._topics)

    def __iter__(self) -> Iterator[Topic]:
        return iter(self._ordered)
