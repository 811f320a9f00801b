"""
Mastery Engine facade.

Single entry point used by the HTTP API and the CLI. Composes the topic
graph and a mastery store with the adaptive and study components:

- Diagnostic: start_diagnostic, submit_diagnostic_answer, complete_diagnostic
- Frontier & mastery: get_frontier, get_mastery, update_mastery, increment_mastery,
  set_mastered, can_advance
- Practice: record_practice
- Reviews: schedule_review, get_due_reviews, get_optimal_review_set
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from mastery_engine.adaptive.diagnostic import (
    DiagnosticEngine,
    DiagnosticStart,
    DiagnosticState,
    DiagnosticStep,
)
from mastery_engine.adaptive.frontier import DomainMastery, FrontierCalculator
from mastery_engine.adaptive.placement import Placement, PlacementCalculator
from mastery_engine.config import Settings, get_settings
from mastery_engine.core.errors import InvalidInputError, StoreUnavailableError
from mastery_engine.core.mastery import FULL_MASTERY, utcnow, validate_mastery
from mastery_engine.core.models import AnswerKind, DiagnosticResult, LearnerRef, MasteryRecord, Topic
from mastery_engine.db.database import init_db, session_scope
from mastery_engine.graph.loader import (
    import_topic_graph,
    load_topic_graph,
    load_topic_graph_from_db,
)
from mastery_engine.graph.topic_graph import TopicGraph
from mastery_engine.store.base import MasteryStore
from mastery_engine.store.sql import TRANSIENT_DB_ERRORS, SqlMasteryStore
from mastery_engine.study.practice import PracticeAnswer, PracticeRecorder, PracticeSummary
from mastery_engine.study.review_scheduler import (
    OptimalReviewSet,
    ReviewSchedule,
    ReviewScheduler,
    ScheduleResult,
    calculate_spacing_interval,
)


class MasteryEngine:
    """
    Adaptive mastery and review engine.

    Usage:
        engine = MasteryEngine(graph, InMemoryMasteryStore())
        start = engine.start_diagnostic(LearnerRef.anonymous("abc"))
        step = engine.submit_diagnostic_answer(start.state, start.first_topic.id, "correct")
    """

    def __init__(
        self,
        graph: TopicGraph,
        store: MasteryStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = settings or get_settings()
        self.graph = graph
        self.store = store
        self.settings = settings
        self._clock = clock

        self.frontier = FrontierCalculator(
            graph,
            store,
            gating_threshold=settings.gating_mastery_threshold,
            full_mastery=settings.full_mastery_threshold,
        )
        self.diagnostic = DiagnosticEngine(
            graph,
            min_questions=settings.diagnostic_min_questions,
            max_questions=settings.diagnostic_max_questions,
            clock=clock,
        )
        self.placement = PlacementCalculator(graph, store, self.frontier, clock=clock)
        self.scheduler = ReviewScheduler(
            graph,
            store,
            clock=clock,
            implicit_min_accuracy=settings.implicit_repetition_min_accuracy,
            review_set_cap=settings.review_set_cap,
        )
        self.practice = PracticeRecorder(graph, store, self.scheduler, clock=clock)
        logger.debug(f"MasteryEngine ready: {len(graph)} topics, store={type(store).__name__}")

    # =========================================================================
    # Diagnostic
    # =========================================================================

    def start_diagnostic(self, learner: LearnerRef) -> DiagnosticStart:
        """Begin a placement diagnostic at the easiest root topic."""
        return self.diagnostic.start(learner)

    def submit_diagnostic_answer(
        self,
        state: DiagnosticState | dict[str, Any],
        topic_id: str,
        answer_kind: AnswerKind | str,
    ) -> DiagnosticStep:
        """Answer the current diagnostic question; state may be a serialized blob."""
        if isinstance(state, dict):
            state = DiagnosticState.from_dict(state)
        return self.diagnostic.submit_answer(state, topic_id, answer_kind)

    def complete_diagnostic(
        self,
        learner: LearnerRef,
        results: Iterable[DiagnosticResult | dict[str, Any]],
    ) -> Placement:
        """Persist tentative mastery and compute the learner's placement."""
        return self.placement.complete_diagnostic(learner, results)

    # =========================================================================
    # Frontier & mastery
    # =========================================================================

    def get_frontier(self, learner: LearnerRef) -> list[Topic]:
        return self.frontier.compute_frontier(learner)

    def get_mastery(self, learner: LearnerRef, topic_id: str) -> MasteryRecord | None:
        """Mastery record for one topic, or None if never practised."""
        self.graph.topic(topic_id)
        return self.store.get(learner, topic_id)

    def get_all_mastery(self, learner: LearnerRef) -> list[MasteryRecord]:
        return self.store.get_all(learner)

    def update_mastery(
        self, learner: LearnerRef, topic_id: str, mastery_level: float
    ) -> MasteryRecord:
        """
        Set a topic's mastery directly.

        Raises:
            NotFoundError: unknown topic
            InvalidInputError: mastery outside [0, 100]
        """
        self.graph.topic(topic_id)
        level = validate_mastery(mastery_level)
        return self.store.upsert(learner, topic_id, level, now=self._clock())

    def increment_mastery(
        self, learner: LearnerRef, topic_id: str, amount: float
    ) -> MasteryRecord:
        """
        Add amount to a topic's mastery (clamped to [0, 100]) in one atomic write.

        Raises:
            NotFoundError: unknown topic
            InvalidInputError: amount outside [-100, 100]
        """
        self.graph.topic(topic_id)
        if not -FULL_MASTERY <= amount <= FULL_MASTERY:
            raise InvalidInputError(f"amount must be within [-100, 100], got {amount}")
        return self.store.adjust(learner, topic_id, 1.0, float(amount), now=self._clock())

    def set_mastered(self, learner: LearnerRef, topic_id: str) -> MasteryRecord:
        """Mark a topic fully mastered."""
        return self.update_mastery(learner, topic_id, FULL_MASTERY)

    def record_practice(
        self,
        learner: LearnerRef,
        answers: Iterable[PracticeAnswer | dict[str, Any]],
    ) -> PracticeSummary:
        """Blend practice accuracy into mastery and schedule each topic's next review."""
        return self.practice.record_practice(learner, answers)

    def can_advance(self, learner: LearnerRef, topic_id: str) -> bool:
        return self.frontier.can_advance(learner, topic_id)

    def get_domain_mastery(self, learner: LearnerRef, domain: str) -> DomainMastery:
        return self.frontier.domain_mastery(learner, domain)

    # =========================================================================
    # Reviews
    # =========================================================================

    def calculate_interval(
        self, mastery_level: float, accuracy: float, previous_interval: int | None = None
    ) -> int:
        return calculate_spacing_interval(mastery_level, accuracy, previous_interval)

    def schedule_review(
        self,
        learner: LearnerRef,
        topic_id: str,
        mastery_level: float,
        accuracy: float,
    ) -> ScheduleResult:
        return self.scheduler.schedule_review(learner, topic_id, mastery_level, accuracy)

    def get_due_reviews(self, learner: LearnerRef) -> list[ReviewSchedule]:
        return self.scheduler.get_due_reviews(learner)

    def get_optimal_review_set(self, learner: LearnerRef) -> OptimalReviewSet:
        return self.scheduler.get_optimal_review_set(learner)


def sync_topic_content(graph: TopicGraph) -> None:
    """
    Mirror a graph into the content tables.

    Mastery rows reference topics by foreign key, so a graph read from a
    file has to exist in the database before any mastery write.

    Raises:
        StoreUnavailableError: the database could not be reached
    """
    try:
        init_db()
        with session_scope() as session:
            import_topic_graph(session, graph)
    except TRANSIENT_DB_ERRORS as e:
        logger.error(f"Topic content sync failed: {e}")
        raise StoreUnavailableError("Could not sync topic content to the database") from e


def load_engine_graph(
    content_path: str | Path,
    graph_source: str = "auto",
    sync_to_db: bool = False,
) -> TopicGraph:
    """
    Load the topic graph from a content file or the content tables.

    Args:
        content_path: YAML content file
        graph_source: "file", "db", or "auto" (file when it exists, else database)
        sync_to_db: Import a file graph into the content tables after loading
    """
    content_path = Path(content_path)
    if graph_source == "file" or (graph_source == "auto" and content_path.exists()):
        graph = load_topic_graph(content_path)
        if sync_to_db:
            sync_topic_content(graph)
        return graph

    try:
        with session_scope() as session:
            return load_topic_graph_from_db(session)
    except TRANSIENT_DB_ERRORS as e:
        logger.error(f"Loading topic content from the database failed: {e}")
        raise StoreUnavailableError("Could not load topic content from the database") from e


def build_engine(settings: Settings | None = None, graph_source: str = "auto") -> MasteryEngine:
    """
    Build an engine backed by the configured database.

    A graph loaded from the content file is synced into the content tables
    first, so edits to the file never leave mastery rows pointing at topics
    the database does not know.

    Args:
        settings: Settings to use (defaults to get_settings())
        graph_source: "file" (content_path), "db" (content tables), or "auto"
            (file when it exists, else database)
    """
    settings = settings or get_settings()
    graph = load_engine_graph(settings.content_path, graph_source, sync_to_db=True)
    return MasteryEngine(graph, SqlMasteryStore(), settings=settings)
