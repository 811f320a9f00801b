"""
Review Scheduler: FIRe (Fractional Implicit Repetition).

Three pieces:

1. Interval calculation: mastery band -> base days, scaled by review
   accuracy; a successful repetition (accuracy >= 75) doubles the previous
   interval instead. Always clamped to [1, 60] days.
2. Implicit repetition: a successful review of a topic extends (never
   resets, never shortens) the scheduled review of every topic it directly
   encompasses by max(1, floor(current_interval * 0.5)) days.
3. Repetition compression: among due topics, greedily pick those that
   encompass the most other due topics so fewer reviews cover the same
   ground.
"""
from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from mastery_engine.core.errors import InvalidInputError
from mastery_engine.core.mastery import (
    days_between,
    ensure_utc,
    utcnow,
    validate_accuracy,
    validate_mastery,
    whole_days_between,
)
from mastery_engine.core.models import LearnerRef, MasteryRecord, Topic
from mastery_engine.graph.topic_graph import TopicGraph
from mastery_engine.store.base import MasteryStore

MIN_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 60
IMPLICIT_REPETITION_MIN_ACCURACY = 75.0
IMPLICIT_EXTENSION_FACTOR = 0.5
REVIEW_SET_CAP = 10

# (minimum mastery, base interval days), checked top-down
MASTERY_BANDS: tuple[tuple[float, int], ...] = (
    (95.0, 30),
    (90.0, 21),
    (80.0, 14),
    (70.0, 10),
    (60.0, 7),
    (50.0, 5),
    (40.0, 3),
    (25.0, 2),
)


def calculate_spacing_interval(
    mastery_level: float,
    accuracy: float,
    previous_interval: int | None = None,
) -> int:
    """
    Days until the next review.

    Args:
        mastery_level: Current mastery (0-100)
        accuracy: Review accuracy percentage (0-100)
        previous_interval: Last interval in whole days, if the topic was scheduled before

    Returns:
        Interval in days, within [1, 60]

    Raises:
        InvalidInputError: inputs out of range
    """
    mastery_level = validate_mastery(mastery_level)
    accuracy = validate_accuracy(accuracy)
    if previous_interval is not None and previous_interval < MIN_INTERVAL_DAYS:
        raise InvalidInputError(f"previous_interval must be >= 1, got {previous_interval}")

    if previous_interval is not None and accuracy >= IMPLICIT_REPETITION_MIN_ACCURACY:
        days = previous_interval * 2
    else:
        days = 1
        for threshold, band_days in MASTERY_BANDS:
            if mastery_level >= threshold:
                days = band_days
                break

        if accuracy >= 90:
            days = math.floor(days * 1.5)
        elif accuracy >= 75:
            pass
        elif accuracy >= 60:
            days = math.floor(days * 0.8)
        else:
            days = math.floor(days * 0.5)

    return max(MIN_INTERVAL_DAYS, min(MAX_INTERVAL_DAYS, int(days)))


def is_due(next_review: datetime | None, now: datetime | None = None) -> bool:
    """A review is due once its scheduled time has passed."""
    if next_review is None:
        return False
    return ensure_utc(next_review) <= (ensure_utc(now) or utcnow())


def days_until_review(next_review: datetime, now: datetime | None = None) -> int:
    """Whole days (rounded up) until a review is due; 0 when already due."""
    remaining = days_between(ensure_utc(now) or utcnow(), next_review)
    return max(0, math.ceil(remaining))


# ============================================================================
# Result types
# ============================================================================


@dataclass
class ImplicitUpdate:
    """An encompassed topic whose review was pushed back."""

    topic_id: str
    topic_name: str
    old_next_review: datetime
    new_next_review: datetime
    extension_days: int
    reason: str = "Implicitly reviewed through advanced topic practice"

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "old_next_review": self.old_next_review.isoformat(),
            "new_next_review": self.new_next_review.isoformat(),
            "extension_days": self.extension_days,
            "reason": self.reason,
        }


@dataclass
class ScheduleResult:
    next_review: datetime
    interval_days: int
    implicit_updates: list[ImplicitUpdate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_review": self.next_review.isoformat(),
            "interval_days": self.interval_days,
            "implicit_updates": [u.to_dict() for u in self.implicit_updates],
        }


@dataclass
class ReviewSchedule:
    """A due review as shown to the learner."""

    topic_id: str
    topic_name: str
    mastery_level: float
    last_practiced: datetime | None
    next_review: datetime
    is_due: bool
    days_until_due: int  # negative when overdue

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "mastery_level": self.mastery_level,
            "last_practiced": self.last_practiced.isoformat() if self.last_practiced else None,
            "next_review": self.next_review.isoformat(),
            "is_due": self.is_due,
            "days_until_due": self.days_until_due,
        }


@dataclass
class ReviewCandidate:
    """A due topic scored for repetition compression."""

    topic: Topic
    mastery_level: float
    encompassed_due: list[str]

    @property
    def compression_score(self) -> int:
        return len(self.encompassed_due)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic.id,
            "topic_name": self.topic.name,
            "mastery_level": self.mastery_level,
            "difficulty": self.topic.difficulty,
            "encompassed_topics": list(self.encompassed_due),
            "compression_score": self.compression_score,
        }


@dataclass
class OptimalReviewSet:
    topics: list[ReviewCandidate]
    compression_ratio: float
    covered_topic_ids: list[str]
    total_due: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "topics": [t.to_dict() for t in self.topics],
            "compression_ratio": self.compression_ratio,
            "covered_topic_ids": list(self.covered_topic_ids),
            "total_due": self.total_due,
        }


# ============================================================================
# Scheduler
# ============================================================================


class ReviewScheduler:
    """
    Schedules reviews against a MasteryStore.

    Usage:
        scheduler = ReviewScheduler(graph, store)
        result = scheduler.schedule_review(learner, "fractions", mastery_level=85, accuracy=90)
        due = scheduler.get_due_reviews(learner)
    """

    def __init__(
        self,
        graph: TopicGraph,
        store: MasteryStore,
        clock: Callable[[], datetime] = utcnow,
        implicit_min_accuracy: float = IMPLICIT_REPETITION_MIN_ACCURACY,
        review_set_cap: int = REVIEW_SET_CAP,
    ):
        self.graph = graph
        self.store = store
        self._clock = clock
        self.implicit_min_accuracy = implicit_min_accuracy
        self.review_set_cap = review_set_cap

    def _now(self) -> datetime:
        return ensure_utc(self._clock())  # type: ignore[return-value]

    @staticmethod
    def previous_interval(record: MasteryRecord | None) -> int | None:
        """Whole-day interval of an existing schedule, or None if there is none."""
        if record is None or record.last_practiced is None or record.next_review is None:
            return None
        interval = whole_days_between(record.last_practiced, record.next_review)
        return interval if interval >= MIN_INTERVAL_DAYS else None

    def schedule_review(
        self,
        learner: LearnerRef,
        topic_id: str,
        mastery_level: float,
        accuracy: float,
    ) -> ScheduleResult:
        """
        Record a review and schedule the next one.

        Raises:
            NotFoundError: unknown topic
            InvalidInputError: mastery or accuracy out of range
        """
        self.graph.topic(topic_id)
        mastery_level = validate_mastery(mastery_level)
        accuracy = validate_accuracy(accuracy)
        now = self._now()

        previous_record = self.store.get(learner, topic_id)
        self.store.upsert(learner, topic_id, mastery_level, now=now)
        return self.schedule_next(learner, topic_id, previous_record, mastery_level, accuracy, now)

    def schedule_next(
        self,
        learner: LearnerRef,
        topic_id: str,
        previous_record: MasteryRecord | None,
        mastery_level: float,
        accuracy: float,
        now: datetime,
    ) -> ScheduleResult:
        """
        Schedule the next review once the mastery write has happened.

        previous_record is the record as it was before that write, so a
        successful repetition can double its interval.
        """
        previous = self.previous_interval(previous_record)
        interval = calculate_spacing_interval(mastery_level, accuracy, previous)

        next_review = now + timedelta(days=interval)
        self.store.set_next_review(learner, topic_id, next_review, now=now)

        implicit_updates = self.apply_implicit_repetition(learner, topic_id, accuracy)

        logger.info(
            f"Scheduled {topic_id} for {learner}: {interval}d "
            f"(previous={previous}, accuracy={accuracy:.0f}%), "
            f"{len(implicit_updates)} implicit updates"
        )
        return ScheduleResult(
            next_review=next_review,
            interval_days=interval,
            implicit_updates=implicit_updates,
        )

    def apply_implicit_repetition(
        self,
        learner: LearnerRef,
        topic_id: str,
        accuracy: float,
    ) -> list[ImplicitUpdate]:
        """
        Extend reviews of topics directly encompassed by topic_id.

        Topics without a record or without a scheduled review are skipped;
        nothing happens below the accuracy threshold.
        """
        accuracy = validate_accuracy(accuracy)
        if accuracy < self.implicit_min_accuracy:
            return []

        now = self._now()
        updates: list[ImplicitUpdate] = []
        for encompassed in self.graph.encompassed(topic_id):
            if encompassed.id == topic_id:
                continue
            record = self.store.get(learner, encompassed.id)
            if record is None or record.next_review is None:
                continue

            if record.last_practiced is not None:
                current_interval = whole_days_between(record.last_practiced, record.next_review)
            else:
                current_interval = 0
            extension = max(1, math.floor(current_interval * IMPLICIT_EXTENSION_FACTOR))
            new_next_review = record.next_review + timedelta(days=extension)
            self.store.set_next_review(learner, encompassed.id, new_next_review, now=now)

            updates.append(
                ImplicitUpdate(
                    topic_id=encompassed.id,
                    topic_name=encompassed.name,
                    old_next_review=record.next_review,
                    new_next_review=new_next_review,
                    extension_days=extension,
                )
            )
            logger.debug(f"Implicit repetition: {encompassed.id} +{extension}d via {topic_id}")

        return updates

    def _due_records(self, learner: LearnerRef) -> list[MasteryRecord]:
        now = self._now()
        due = []
        for record in self.store.get_all(learner):
            if record.mastery_level <= 0 or not is_due(record.next_review, now):
                continue
            if record.topic_id not in self.graph:
                logger.warning(f"Skipping review for unknown topic {record.topic_id}")
                continue
            due.append(record)
        due.sort(key=lambda r: (r.next_review, r.topic_id))
        return due

    def get_due_reviews(self, learner: LearnerRef) -> list[ReviewSchedule]:
        """Practised topics whose review time has passed, most overdue first."""
        now = self._now()
        return [
            ReviewSchedule(
                topic_id=record.topic_id,
                topic_name=self.graph.topic(record.topic_id).name,
                mastery_level=record.mastery_level,
                last_practiced=record.last_practiced,
                next_review=record.next_review,  # type: ignore[arg-type]
                is_due=True,
                days_until_due=-math.floor(days_between(record.next_review, now)),  # type: ignore[arg-type]
            )
            for record in self._due_records(learner)
        ]

    def get_optimal_review_set(self, learner: LearnerRef) -> OptimalReviewSet:
        """Smallest set of due topics that covers the most due topics."""
        due = self._due_records(learner)
        if not due:
            return OptimalReviewSet(topics=[], compression_ratio=0.0, covered_topic_ids=[])

        due_ids = {record.topic_id for record in due}
        candidates = [
            ReviewCandidate(
                topic=self.graph.topic(record.topic_id),
                mastery_level=record.mastery_level,
                encompassed_due=[
                    t.id
                    for t in self.graph.encompassed(record.topic_id)
                    if t.id in due_ids and t.id != record.topic_id
                ],
            )
            for record in due
        ]
        candidates.sort(key=lambda c: (-c.compression_score, -c.topic.difficulty, c.topic.id))

        selected: list[ReviewCandidate] = []
        covered: list[str] = []
        covered_set: set[str] = set()
        for candidate in candidates:
            if candidate.topic.id not in covered_set:
                selected.append(candidate)
                for topic_id in [candidate.topic.id, *candidate.encompassed_due]:
                    if topic_id not in covered_set:
                        covered_set.add(topic_id)
                        covered.append(topic_id)
            if len(covered_set) >= len(due_ids) or len(selected) >= self.review_set_cap:
                break

        ratio = round(len(selected) / len(due), 2)
        logger.debug(f"Optimal review set for {learner}: {len(selected)} of {len(due)} due")
        return OptimalReviewSet(
            topics=selected,
            compression_ratio=ratio,
            covered_topic_ids=covered,
            total_due=len(due),
        )
