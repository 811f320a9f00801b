"""
In-memory mastery store.

Used by tests, the CLI's --memory mode and anywhere a process-local store is
enough. Read-modify-write on a (learner, topic) key happens under a per-key
lock; records handed out are copies so callers cannot mutate stored state.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from loguru import logger

from mastery_engine.core.errors import NotFoundError
from mastery_engine.core.mastery import clamp_mastery, ensure_utc, utcnow
from mastery_engine.core.models import LearnerRef, MasteryRecord
from mastery_engine.store.base import MasteryStore

_Key = tuple[tuple[str, str], str]


class InMemoryMasteryStore(MasteryStore):
    """Thread-safe dict-backed MasteryStore."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._records: dict[_Key, MasteryRecord] = {}
        self._locks: dict[_Key, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: _Key) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, learner: LearnerRef, topic_id: str) -> MasteryRecord | None:
        record = self._records.get((learner.key, topic_id))
        return replace(record) if record is not None else None

    def get_all(self, learner: LearnerRef) -> list[MasteryRecord]:
        records = [
            replace(record)
            for (learner_key, _), record in list(self._records.items())
            if learner_key == learner.key
        ]
        records.sort(key=lambda r: (r.updated_at is not None, r.updated_at), reverse=True)
        return records

    def upsert(
        self,
        learner: LearnerRef,
        topic_id: str,
        mastery_level: float,
        now: datetime | None = None,
    ) -> MasteryRecord:
        now = ensure_utc(now) or self._clock()
        key = (learner.key, topic_id)
        level = clamp_mastery(mastery_level)

        with self._lock_for(key):
            existing = self._records.get(key)
            if existing is None:
                record = MasteryRecord(
                    learner=learner,
                    topic_id=topic_id,
                    mastery_level=level,
                    last_practiced=now,
                    created_at=now,
                    updated_at=now,
                )
            else:
                record = replace(existing, mastery_level=level, last_practiced=now, updated_at=now)
            self._records[key] = record

        logger.debug(f"Mastery upsert {learner} {topic_id} -> {level}")
        return replace(record)

    def adjust(
        self,
        learner: LearnerRef,
        topic_id: str,
        weight: float,
        delta: float,
        now: datetime | None = None,
    ) -> MasteryRecord:
        now = ensure_utc(now) or self._clock()
        key = (learner.key, topic_id)

        with self._lock_for(key):
            existing = self._records.get(key)
            current = existing.mastery_level if existing is not None else 0.0
            level = clamp_mastery(current * weight + delta)
            if existing is None:
                record = MasteryRecord(
                    learner=learner,
                    topic_id=topic_id,
                    mastery_level=level,
                    last_practiced=now,
                    created_at=now,
                    updated_at=now,
                )
            else:
                record = replace(existing, mastery_level=level, last_practiced=now, updated_at=now)
            self._records[key] = record

        logger.debug(f"Mastery adjust {learner} {topic_id}: {current} -> {level}")
        return replace(record)

    def set_next_review(
        self,
        learner: LearnerRef,
        topic_id: str,
        when: datetime,
        now: datetime | None = None,
    ) -> MasteryRecord:
        now = ensure_utc(now) or self._clock()
        key = (learner.key, topic_id)

        with self._lock_for(key):
            existing = self._records.get(key)
            if existing is None:
                raise NotFoundError("Mastery record", f"{learner}/{topic_id}")
            record = replace(existing, next_review=ensure_utc(when), updated_at=now)
            self._records[key] = record

        return replace(record)

    def clear(self) -> None:
        """Drop every record (test helper)."""
        with self._locks_guard:
            self._records.clear()
            self._locks.clear()
