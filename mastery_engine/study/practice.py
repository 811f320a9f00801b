"""
Practice recording: quiz answers -> mastery blend -> next review.

Answers are grouped per topic. Each topic's accuracy is blended with the
stored mastery (60% this practice, 40% previous), then the topic's next
review is scheduled with FIRe using that accuracy.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from mastery_engine.core.errors import InvalidInputError
from mastery_engine.core.mastery import ensure_utc, utcnow
from mastery_engine.core.models import LearnerRef
from mastery_engine.graph.topic_graph import TopicGraph
from mastery_engine.store.base import MasteryStore
from mastery_engine.study.review_scheduler import ReviewScheduler, ScheduleResult

PRACTICE_WEIGHT = 0.6


@dataclass(frozen=True)
class PracticeAnswer:
    topic_id: str
    is_correct: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PracticeAnswer:
        try:
            is_correct = data["is_correct"]
            if not isinstance(is_correct, bool):
                raise TypeError("is_correct must be a boolean")
            return cls(topic_id=str(data["topic_id"]), is_correct=is_correct)
        except (KeyError, TypeError) as e:
            raise InvalidInputError(f"Malformed practice answer: {e}") from e


@dataclass
class TopicPractice:
    """Outcome of one practised topic."""

    topic_id: str
    topic_name: str
    correct: int
    total: int
    old_mastery: float
    new_mastery: float
    schedule: ScheduleResult

    @property
    def accuracy(self) -> float:
        return self.correct / self.total * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "correct": self.correct,
            "total": self.total,
            "accuracy": round(self.accuracy, 2),
            "old_mastery": self.old_mastery,
            "new_mastery": self.new_mastery,
            "next_review": self.schedule.next_review.isoformat(),
            "interval_days": self.schedule.interval_days,
        }


@dataclass
class PracticeSummary:
    total_questions: int
    correct_answers: int
    mastery_updates: list[TopicPractice] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return self.correct_answers / self.total_questions * 100

    @property
    def topics_reviewed(self) -> list[str]:
        return [update.topic_id for update in self.mastery_updates]

    def to_dict(self) -> dict[str, Any]:
        return {
            "accuracy": round(self.accuracy, 2),
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "topics_reviewed": self.topics_reviewed,
            "mastery_updates": [update.to_dict() for update in self.mastery_updates],
        }


class PracticeRecorder:
    """
    Applies practice results to a MasteryStore.

    Usage:
        recorder = PracticeRecorder(graph, store, scheduler)
        summary = recorder.record_practice(learner, [PracticeAnswer("fractions", True)])
    """

    def __init__(
        self,
        graph: TopicGraph,
        store: MasteryStore,
        scheduler: ReviewScheduler,
        clock: Callable[[], datetime] = utcnow,
        weight: float = PRACTICE_WEIGHT,
    ):
        self.graph = graph
        self.store = store
        self.scheduler = scheduler
        self._clock = clock
        self.weight = weight

    def record_practice(
        self,
        learner: LearnerRef,
        answers: Iterable[PracticeAnswer | dict[str, Any]],
    ) -> PracticeSummary:
        """
        Blend per-topic accuracy into mastery and reschedule each topic.

        Every answer is validated before the first write.

        Raises:
            InvalidInputError: no answers, or a malformed answer
            NotFoundError: unknown topic
        """
        parsed = [a if isinstance(a, PracticeAnswer) else PracticeAnswer.from_dict(a) for a in answers]
        if not parsed:
            raise InvalidInputError("At least one practice answer is required")

        # topic -> [correct, total], in first-answered order
        tally: dict[str, list[int]] = {}
        for answer in parsed:
            self.graph.topic(answer.topic_id)
            counts = tally.setdefault(answer.topic_id, [0, 0])
            counts[0] += int(answer.is_correct)
            counts[1] += 1

        now = ensure_utc(self._clock())
        summary = PracticeSummary(
            total_questions=len(parsed),
            correct_answers=sum(counts[0] for counts in tally.values()),
        )
        for topic_id, (correct, total) in tally.items():
            accuracy = correct / total * 100
            before = self.store.get(learner, topic_id)
            record = self.store.adjust(
                learner, topic_id, 1 - self.weight, accuracy * self.weight, now=now
            )
            schedule = self.scheduler.schedule_next(
                learner, topic_id, before, record.mastery_level, accuracy, now
            )
            summary.mastery_updates.append(
                TopicPractice(
                    topic_id=topic_id,
                    topic_name=self.graph.topic(topic_id).name,
                    correct=correct,
                    total=total,
                    old_mastery=before.mastery_level if before is not None else 0.0,
                    new_mastery=record.mastery_level,
                    schedule=schedule,
                )
            )

        logger.info(
            f"Practice for {learner}: {summary.correct_answers}/{summary.total_questions} correct "
            f"across {len(tally)} topics"
        )
        return summary
