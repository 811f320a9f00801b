"""
Mastery Store interface.

The engine is composed against this contract only; backings can be a
database, an in-memory map for tests, or a remote service.

Contract:
- get() returns None when no record exists (never a fabricated 0 record)
- upsert() and adjust() clamp to [0, 100], stamp last_practiced, and are atomic per
  (learner, topic) so concurrent answers cannot drop an update
- set_next_review() raises NotFoundError when no record exists
- transient backend failures raise StoreUnavailableError; no retries
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from mastery_engine.core.models import LearnerRef, MasteryRecord


class MasteryStore(ABC):
    """Abstract per-learner, per-topic mastery persistence."""

    @abstractmethod
    def get(self, learner: LearnerRef, topic_id: str) -> MasteryRecord | None:
        """Get one record, or None if the learner never practised the topic."""
        ...

    @abstractmethod
    def get_all(self, learner: LearnerRef) -> list[MasteryRecord]:
        """All records for a learner, most recently updated first."""
        ...

    @abstractmethod
    def upsert(
        self,
        learner: LearnerRef,
        topic_id: str,
        mastery_level: float,
        now: datetime | None = None,
    ) -> MasteryRecord:
        """Create or update a record; last_practiced becomes now."""
        ...

    @abstractmethod
    def adjust(
        self,
        learner: LearnerRef,
        topic_id: str,
        weight: float,
        delta: float,
        now: datetime | None = None,
    ) -> MasteryRecord:
        """
        Atomically set mastery to clamp(current * weight + delta).

        A missing record counts as mastery 0 and is created. Used for
        relative updates (weight 1) and practice blends (weight < 1), where
        a separate read and write could drop a concurrent update.
        """
        ...

    @abstractmethod
    def set_next_review(
        self,
        learner: LearnerRef,
        topic_id: str,
        when: datetime,
        now: datetime | None = None,
    ) -> MasteryRecord:
        """Set the next review time on an existing record."""
        ...

    def get_map(self, learner: LearnerRef) -> dict[str, MasteryRecord]:
        """Records keyed by topic id."""
        return {record.topic_id: record for record in self.get_all(learner)}
