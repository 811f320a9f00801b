"""
Diagnostic Session: adaptive placement state machine.

NOT_STARTED -> IN_PROGRESS -> COMPLETE. The state is caller-owned; the engine
is a pure function (state, topic, answer) -> DiagnosticStep and never writes
to the mastery store. Tentative mastery is only persisted on completion.

Routing after each answer is a tagged variant:

- Probe(direction, candidates): the next topic is candidates[0]
- Complete(reason): the session is over

    correct            -> untested dependents by difficulty (upward)
    wrong, non-root    -> untested prerequisites, last authored first (downward)
    wrong, root        -> next untested root in start order (sideways)
    nothing left       -> complete once min_questions reached, otherwise
                          untested roots by difficulty (fallback)
    max_questions hit  -> complete

Every candidate list is filtered against topics_tested, so no topic can be
asked twice and a session ends within max_questions answers.
"""
from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from loguru import logger

from mastery_engine.core.errors import ContentError, InvalidInputError
from mastery_engine.core.mastery import utcnow
from mastery_engine.core.models import AnswerKind, DiagnosticResult, LearnerRef, Topic
from mastery_engine.graph.topic_graph import TopicGraph, topic_sort_key

DEFAULT_MIN_QUESTIONS = 3
DEFAULT_MAX_QUESTIONS = 10

# Conservative: one correct diagnostic answer is partial confidence, not mastery
TENTATIVE_MASTERY: dict[AnswerKind, float] = {
    AnswerKind.CORRECT: 55.0,
    AnswerKind.INCORRECT: 30.0,
    AnswerKind.IDONTKNOW: 0.0,
}


def tentative_mastery_for(answer_kind: AnswerKind | str) -> float:
    """Tentative mastery recorded for a diagnostic answer."""
    return TENTATIVE_MASTERY[AnswerKind.parse(answer_kind)]


class DiagnosticStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class ProbeDirection(str, Enum):
    """Which way the graph walk moved to pick the next topic."""

    UPWARD = "upward"  # dependents of a correctly answered topic
    DOWNWARD = "downward"  # prerequisites of a missed topic
    SIDEWAYS = "sideways"  # other roots after a missed root
    FALLBACK = "fallback"  # any untested root, to reach min_questions


class CompletionReason(str, Enum):
    MAX_QUESTIONS = "max_questions"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Probe:
    direction: ProbeDirection
    candidates: tuple[str, ...]

    @property
    def next_topic_id(self) -> str:
        return self.candidates[0]


@dataclass(frozen=True)
class Complete:
    reason: CompletionReason


Route = Union[Probe, Complete]


@dataclass
class DiagnosticState:
    """
    Serializable diagnostic session state.

    Callers may hold it as an opaque blob (to_dict / from_dict) between
    requests; DiagnosticSessionStore persists it as JSON for the CLI.
    """

    session_id: str
    learner: LearnerRef
    root_topics_to_test: list[str]
    status: DiagnosticStatus = DiagnosticStatus.NOT_STARTED
    current_topic_id: str | None = None
    topics_tested: list[str] = field(default_factory=list)
    tested_root_topics: list[str] = field(default_factory=list)
    results: list[DiagnosticResult] = field(default_factory=list)
    min_questions: int = DEFAULT_MIN_QUESTIONS
    max_questions: int = DEFAULT_MAX_QUESTIONS
    last_direction: ProbeDirection | None = None
    completion_reason: CompletionReason | None = None
    started_at: str | None = None  # ISO format
    last_saved_at: str | None = None  # ISO format

    @property
    def questions_asked(self) -> int:
        return len(self.topics_tested)

    @property
    def is_complete(self) -> bool:
        return self.status == DiagnosticStatus.COMPLETE

    @property
    def tentative_mastery(self) -> dict[str, float]:
        """Tentative mastery per tested topic (later answers win)."""
        return {result.topic_id: result.tentative_mastery for result in self.results}

    def copy(self) -> DiagnosticState:
        return DiagnosticState(
            session_id=self.session_id,
            learner=self.learner,
            root_topics_to_test=list(self.root_topics_to_test),
            status=self.status,
            current_topic_id=self.current_topic_id,
            topics_tested=list(self.topics_tested),
            tested_root_topics=list(self.tested_root_topics),
            results=list(self.results),
            min_questions=self.min_questions,
            max_questions=self.max_questions,
            last_direction=self.last_direction,
            completion_reason=self.completion_reason,
            started_at=self.started_at,
            last_saved_at=self.last_saved_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "session_id": self.session_id,
            "learner": self.learner.to_dict(),
            "root_topics_to_test": list(self.root_topics_to_test),
            "status": self.status.value,
            "current_topic_id": self.current_topic_id,
            "topics_tested": list(self.topics_tested),
            "tested_root_topics": list(self.tested_root_topics),
            "results": [result.to_dict() for result in self.results],
            "questions_asked": self.questions_asked,
            "min_questions": self.min_questions,
            "max_questions": self.max_questions,
            "last_direction": self.last_direction.value if self.last_direction else None,
            "completion_reason": self.completion_reason.value if self.completion_reason else None,
            "started_at": self.started_at,
            "last_saved_at": self.last_saved_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiagnosticState:
        """
        Create from dictionary.

        Raises:
            InvalidInputError: missing or malformed fields
        """
        try:
            return cls(
                session_id=str(data["session_id"]),
                learner=LearnerRef.from_dict(data.get("learner") or {}),
                root_topics_to_test=[str(t) for t in data.get("root_topics_to_test", [])],
                status=DiagnosticStatus(data.get("status", DiagnosticStatus.NOT_STARTED.value)),
                current_topic_id=data.get("current_topic_id"),
                topics_tested=[str(t) for t in data.get("topics_tested", [])],
                tested_root_topics=[str(t) for t in data.get("tested_root_topics", [])],
                results=[DiagnosticResult.from_dict(r) for r in data.get("results", [])],
                min_questions=int(data.get("min_questions", DEFAULT_MIN_QUESTIONS)),
                max_questions=int(data.get("max_questions", DEFAULT_MAX_QUESTIONS)),
                last_direction=(
                    ProbeDirection(data["last_direction"]) if data.get("last_direction") else None
                ),
                completion_reason=(
                    CompletionReason(data["completion_reason"])
                    if data.get("completion_reason")
                    else None
                ),
                started_at=data.get("started_at"),
                last_saved_at=data.get("last_saved_at"),
            )
        except InvalidInputError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInputError(f"Malformed diagnostic state: {e}") from e


@dataclass
class DiagnosticStart:
    state: DiagnosticState
    first_topic: Topic

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state.to_dict(), "first_topic": self.first_topic.to_dict()}


@dataclass
class DiagnosticStep:
    """Outcome of one answered diagnostic question."""

    state: DiagnosticState
    next_topic: Topic | None
    tentative_mastery: float
    route: Route

    @property
    def is_complete(self) -> bool:
        return self.state.is_complete

    @property
    def topics_tested(self) -> list[str]:
        return list(self.state.topics_tested)

    @property
    def questions_asked(self) -> int:
        return self.state.questions_asked

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "next_topic": self.next_topic.to_dict() if self.next_topic else None,
            "is_complete": self.is_complete,
            "tentative_mastery": self.tentative_mastery,
            "topics_tested": self.topics_tested,
            "questions_asked": self.questions_asked,
        }


class DiagnosticEngine:
    """
    Drives diagnostic sessions over a topic graph.

    Usage:
        engine = DiagnosticEngine(graph)
        start = engine.start(LearnerRef.anonymous("abc"))
        step = engine.submit_answer(start.state, start.first_topic.id, "correct")
        while not step.is_complete:
            step = engine.submit_answer(step.state, step.next_topic.id, answer)
    """

    def __init__(
        self,
        graph: TopicGraph,
        min_questions: int = DEFAULT_MIN_QUESTIONS,
        max_questions: int = DEFAULT_MAX_QUESTIONS,
        clock: Callable[[], datetime] = utcnow,
    ):
        if min_questions < 1 or max_questions < min_questions:
            raise InvalidInputError(
                f"Invalid diagnostic bounds: min={min_questions}, max={max_questions}"
            )
        self.graph = graph
        self.min_questions = min_questions
        self.max_questions = max_questions
        self._clock = clock

    def start(self, learner: LearnerRef, session_id: str | None = None) -> DiagnosticStart:
        """
        Begin a session at the easiest root topic.

        Raises:
            ContentError: the graph has no root topics
        """
        roots = self.graph.root_topics()
        if not roots:
            raise ContentError("No root topics found for diagnostic")

        now = self._clock().isoformat()
        state = DiagnosticState(
            session_id=session_id or f"diagnostic_{uuid.uuid4().hex[:12]}",
            learner=learner,
            root_topics_to_test=[t.id for t in roots],
            status=DiagnosticStatus.IN_PROGRESS,
            current_topic_id=roots[0].id,
            min_questions=self.min_questions,
            max_questions=self.max_questions,
            started_at=now,
            last_saved_at=now,
        )
        logger.info(
            f"Diagnostic {state.session_id} started for {learner}: "
            f"{len(roots)} root topics, first={roots[0].id}"
        )
        return DiagnosticStart(state=state, first_topic=roots[0])

    def submit_answer(
        self,
        state: DiagnosticState,
        topic_id: str,
        answer_kind: AnswerKind | str,
    ) -> DiagnosticStep:
        """
        Record an answer for the current topic and pick the next one.

        The input state is left untouched; the returned step carries the
        successor state.

        Raises:
            InvalidInputError: session complete/not started, wrong topic, bad answer kind
            NotFoundError: unknown topic
        """
        answer = AnswerKind.parse(answer_kind)
        self.graph.topic(topic_id)
        if state.is_complete:
            raise InvalidInputError(f"Diagnostic {state.session_id} is already complete")
        if state.status == DiagnosticStatus.NOT_STARTED or state.current_topic_id is None:
            raise InvalidInputError(f"Diagnostic {state.session_id} has not started")
        if topic_id != state.current_topic_id:
            raise InvalidInputError(
                f"Answer is for {topic_id}, but the current topic is {state.current_topic_id}"
            )

        next_state = state.copy()
        # Question bounds come from this engine, never from the caller-held blob
        next_state.min_questions = self.min_questions
        next_state.max_questions = self.max_questions
        mastery = TENTATIVE_MASTERY[answer]

        if topic_id not in next_state.topics_tested:
            next_state.topics_tested.append(topic_id)
        is_root = self.graph.is_root(topic_id)
        if is_root and topic_id not in next_state.tested_root_topics:
            next_state.tested_root_topics.append(topic_id)
        next_state.results.append(
            DiagnosticResult(topic_id=topic_id, answer_kind=answer, tentative_mastery=mastery)
        )

        route = self.route(next_state, topic_id, answer)
        next_topic: Topic | None = None
        if isinstance(route, Probe):
            next_topic = self.graph.topic(route.next_topic_id)
            next_state.current_topic_id = next_topic.id
            next_state.last_direction = route.direction
        else:
            next_state.status = DiagnosticStatus.COMPLETE
            next_state.current_topic_id = None
            next_state.completion_reason = route.reason
        next_state.last_saved_at = self._clock().isoformat()

        logger.debug(
            f"Diagnostic {state.session_id}: {topic_id}={answer.value} "
            f"({next_state.questions_asked}/{next_state.max_questions}) -> "
            f"{next_topic.id if next_topic else 'complete'}"
        )
        return DiagnosticStep(
            state=next_state, next_topic=next_topic, tentative_mastery=mastery, route=route
        )

    # =========================================================================
    # Routing
    # =========================================================================

    def route(self, state: DiagnosticState, topic_id: str, answer: AnswerKind) -> Route:
        """Decide where to probe next; state already includes this answer."""
        asked = state.questions_asked
        if asked >= self.max_questions:
            return Complete(CompletionReason.MAX_QUESTIONS)

        tested = set(state.topics_tested)

        if answer == AnswerKind.CORRECT:
            dependents = sorted(
                (t for t in self.graph.dependents(topic_id) if t.id not in tested),
                key=topic_sort_key,
            )
            if dependents:
                return Probe(ProbeDirection.UPWARD, tuple(t.id for t in dependents))
            if asked >= self.min_questions:
                return Complete(CompletionReason.EXHAUSTED)
            return self._fallback(tested)

        # incorrect and idontknow route identically
        if self.graph.is_root(topic_id):
            remaining = tuple(r for r in state.root_topics_to_test if r not in tested)
            if remaining:
                return Probe(ProbeDirection.SIDEWAYS, remaining)
            return Complete(CompletionReason.EXHAUSTED)

        untested_prereqs = [t.id for t in self.graph.prerequisites(topic_id) if t.id not in tested]
        if untested_prereqs:
            return Probe(ProbeDirection.DOWNWARD, tuple(reversed(untested_prereqs)))
        if asked >= self.min_questions:
            return Complete(CompletionReason.EXHAUSTED)
        return self._fallback(tested)

    def _fallback(self, tested: set[str]) -> Route:
        roots = tuple(t.id for t in self.graph.root_topics() if t.id not in tested)
        if roots:
            return Probe(ProbeDirection.FALLBACK, roots)
        return Complete(CompletionReason.EXHAUSTED)
