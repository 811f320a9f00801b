"""
SQL mastery store.

Backed by the student_mastery table. Upserts and adjustments are a single
INSERT ... ON CONFLICT DO UPDATE statement on PostgreSQL and SQLite, keyed on
(user_id, topic_id) or (session_id, topic_id), so two concurrent answers for
the same learner and topic serialize in the database.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime

from loguru import logger
from sqlalchemy import case, select
from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from mastery_engine.core.errors import ContentError, NotFoundError, StoreUnavailableError
from mastery_engine.core.mastery import FULL_MASTERY, clamp_mastery, ensure_utc, utcnow
from mastery_engine.core.models import LearnerRef, MasteryRecord
from mastery_engine.db.database import get_session_factory, session_scope
from mastery_engine.db.models import StudentMastery
from mastery_engine.store.base import MasteryStore

TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


def _learner_filter(learner: LearnerRef):
    if learner.user_id is not None:
        return StudentMastery.user_id == learner.user_id
    return (StudentMastery.session_id == learner.session_id) & StudentMastery.user_id.is_(None)


def _to_record(row: StudentMastery) -> MasteryRecord:
    return MasteryRecord(
        learner=LearnerRef(user_id=row.user_id, session_id=row.session_id),
        topic_id=row.topic_id,
        mastery_level=float(row.mastery_level),
        last_practiced=ensure_utc(row.last_practiced),
        next_review=ensure_utc(row.next_review),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


class SqlMasteryStore(MasteryStore):
    """MasteryStore on top of SQLAlchemy."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _session(self, operation: str) -> Generator[Session, None, None]:
        factory = self._session_factory or get_session_factory()
        try:
            with session_scope(factory) as session:
                yield session
        except TRANSIENT_DB_ERRORS as e:
            logger.error(f"Mastery store unavailable during {operation}: {e}")
            raise StoreUnavailableError(f"Mastery store unavailable during {operation}") from e
        except IntegrityError as e:
            # student_mastery.topic_id references topics; the content tables lag the graph
            logger.error(f"Mastery {operation} rejected by the database: {e.orig}")
            raise ContentError(
                f"Mastery {operation} rejected: topic missing from the content tables "
                "(run 'mastery import-content')"
            ) from e

    def _select_row(self, session: Session, learner: LearnerRef, topic_id: str):
        return session.scalars(
            select(StudentMastery).where(
                _learner_filter(learner), StudentMastery.topic_id == topic_id
            )
        ).first()

    def get(self, learner: LearnerRef, topic_id: str) -> MasteryRecord | None:
        with self._session("get") as session:
            row = self._select_row(session, learner, topic_id)
            return _to_record(row) if row is not None else None

    def get_all(self, learner: LearnerRef) -> list[MasteryRecord]:
        with self._session("get_all") as session:
            rows = session.scalars(
                select(StudentMastery)
                .where(_learner_filter(learner))
                .order_by(StudentMastery.updated_at.desc(), StudentMastery.id.desc())
            ).all()
            return [_to_record(row) for row in rows]

    def upsert(
        self,
        learner: LearnerRef,
        topic_id: str,
        mastery_level: float,
        now: datetime | None = None,
    ) -> MasteryRecord:
        now = ensure_utc(now) or self._clock()
        level = clamp_mastery(mastery_level)

        with self._session("upsert") as session:
            insert = self._dialect_insert(session)
            if insert is None:
                self._write_fallback(session, learner, topic_id, lambda _: level, now)
            else:
                stmt = self._insert_values(insert, learner, topic_id, level, now)
                stmt = stmt.on_conflict_do_update(
                    index_elements=self._conflict_columns(learner),
                    set_={
                        "mastery_level": stmt.excluded.mastery_level,
                        "last_practiced": stmt.excluded.last_practiced,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                session.execute(stmt)
            record = self._reload(session, learner, topic_id)

        logger.debug(f"Mastery upsert {learner} {topic_id} -> {level}")
        return record

    def adjust(
        self,
        learner: LearnerRef,
        topic_id: str,
        weight: float,
        delta: float,
        now: datetime | None = None,
    ) -> MasteryRecord:
        now = ensure_utc(now) or self._clock()

        with self._session("adjust") as session:
            insert = self._dialect_insert(session)
            if insert is None:
                self._write_fallback(
                    session, learner, topic_id, lambda current: current * weight + delta, now
                )
            else:
                # Computed from the stored row inside the statement, never read back first
                current = StudentMastery.__table__.c.mastery_level
                adjusted = current * weight + delta
                stmt = self._insert_values(insert, learner, topic_id, clamp_mastery(delta), now)
                stmt = stmt.on_conflict_do_update(
                    index_elements=self._conflict_columns(learner),
                    set_={
                        "mastery_level": case(
                            (adjusted > FULL_MASTERY, FULL_MASTERY),
                            (adjusted < 0, 0.0),
                            else_=adjusted,
                        ),
                        "last_practiced": stmt.excluded.last_practiced,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                session.execute(stmt)
            record = self._reload(session, learner, topic_id)

        logger.debug(f"Mastery adjust {learner} {topic_id} -> {record.mastery_level}")
        return record

    @staticmethod
    def _dialect_insert(session: Session):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert

            return insert
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert

            return insert
        return None

    @staticmethod
    def _conflict_columns(learner: LearnerRef) -> list[str]:
        return ["user_id", "topic_id"] if learner.is_authenticated else ["session_id", "topic_id"]

    @staticmethod
    def _insert_values(insert, learner: LearnerRef, topic_id: str, level: float, now: datetime):
        return insert(StudentMastery).values(
            user_id=learner.user_id,
            session_id=learner.session_id,
            topic_id=topic_id,
            mastery_level=level,
            last_practiced=now,
            created_at=now,
            updated_at=now,
        )

    def _reload(self, session: Session, learner: LearnerRef, topic_id: str) -> MasteryRecord:
        session.flush()
        session.expire_all()
        row = self._select_row(session, learner, topic_id)
        if row is None:
            raise StoreUnavailableError(
                f"Mastery row for {learner}/{topic_id} missing after write"
            )
        return _to_record(row)

    def _write_fallback(
        self,
        session: Session,
        learner: LearnerRef,
        topic_id: str,
        compute: Callable[[float], float],
        now: datetime,
    ) -> None:
        """Row-locking read-modify-write for dialects without ON CONFLICT."""
        row = session.scalars(
            select(StudentMastery)
            .where(_learner_filter(learner), StudentMastery.topic_id == topic_id)
            .with_for_update()
        ).first()
        if row is None:
            session.add(
                StudentMastery(
                    user_id=learner.user_id,
                    session_id=learner.session_id,
                    topic_id=topic_id,
                    mastery_level=clamp_mastery(compute(0.0)),
                    last_practiced=now,
                    created_at=now,
                    updated_at=now,
                )
            )
        else:
            row.mastery_level = clamp_mastery(compute(float(row.mastery_level)))
            row.last_practiced = now
            row.updated_at = now

    def set_next_review(
        self,
        learner: LearnerRef,
        topic_id: str,
        when: datetime,
        now: datetime | None = None,
    ) -> MasteryRecord:
        now = ensure_utc(now) or self._clock()

        with self._session("set_next_review") as session:
            row = session.scalars(
                select(StudentMastery)
                .where(_learner_filter(learner), StudentMastery.topic_id == topic_id)
                .with_for_update()
            ).first()
            if row is None:
                raise NotFoundError("Mastery record", f"{learner}/{topic_id}")
            row.next_review = ensure_utc(when)
            row.updated_at = now
            session.flush()
            return _to_record(row)
