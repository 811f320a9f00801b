"""
Integration tests for the SQL mastery store and content tables (in-memory SQLite).
"""

import threading
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mastery_engine.config import Settings
from mastery_engine.core.errors import ContentError, NotFoundError, StoreUnavailableError
from mastery_engine.core.models import LearnerRef
from mastery_engine.db.database import (
    configure_database,
    get_session_factory,
    init_db,
    session_scope,
)
from mastery_engine.engine import MasteryEngine, build_engine
from mastery_engine.graph.loader import import_topic_graph, load_topic_graph_from_db
from mastery_engine.store.sql import SqlMasteryStore


@pytest.fixture
def db(sample_graph):
    """Fresh in-memory database holding the sample graph's content rows."""
    engine = configure_database("sqlite://")
    init_db(engine)
    with session_scope() as session:
        import_topic_graph(session, sample_graph)
    return engine


@pytest.fixture
def sql_store(db, clock):
    return SqlMasteryStore(get_session_factory(), clock=clock)


class TestContentTables:
    def test_graph_round_trips_through_database(self, db, sample_graph):
        with session_scope() as session:
            graph = load_topic_graph_from_db(session)

        assert len(graph) == len(sample_graph)
        assert [t.id for t in graph.prerequisites("d")] == ["a", "b"]
        assert [t.id for t in graph.prerequisites("e")] == ["c", "d"]
        assert graph.encompassed_ids("e") == {"c", "d"}
        assert graph.topic("d").domain == "algebra"

    def test_reimport_replaces_edges(self, db, sample_graph):
        with session_scope() as session:
            counts = import_topic_graph(session, sample_graph)
        assert counts == {"topics": 5, "prerequisites": 5, "encompassings": 5}

        with session_scope() as session:
            graph = load_topic_graph_from_db(session)
        assert len(graph.edges()) == 10


class TestSqlMasteryStore:
    def test_upsert_and_get(self, sql_store, learner, clock):
        assert sql_store.get(learner, "a") is None
        record = sql_store.upsert(learner, "a", 65)
        assert record.mastery_level == 65
        assert record.last_practiced == clock()
        assert sql_store.get(learner, "a").mastery_level == 65

    def test_upsert_updates_existing_row(self, sql_store, learner, clock):
        first = sql_store.upsert(learner, "a", 20)
        clock.advance(days=1)
        second = sql_store.upsert(learner, "a", 90)
        assert second.mastery_level == 90
        assert second.last_practiced == clock()
        assert second.created_at == first.created_at
        assert len(sql_store.get_all(learner)) == 1

    def test_upsert_clamps(self, sql_store, learner):
        assert sql_store.upsert(learner, "a", 140).mastery_level == 100
        assert sql_store.upsert(learner, "b", -3).mastery_level == 0

    def test_anonymous_learner(self, sql_store):
        anon = LearnerRef.anonymous("sess-1")
        sql_store.upsert(anon, "a", 40)
        sql_store.upsert(anon, "a", 45)
        assert sql_store.get(anon, "a").mastery_level == 45
        assert sql_store.get(LearnerRef.user("sess-1"), "a") is None

    def test_get_all_most_recent_first(self, sql_store, learner, clock):
        sql_store.upsert(learner, "a", 10)
        clock.advance(hours=2)
        sql_store.upsert(learner, "b", 20)
        assert [r.topic_id for r in sql_store.get_all(learner)] == ["b", "a"]

    def test_set_next_review(self, sql_store, learner, clock):
        sql_store.upsert(learner, "a", 70)
        when = clock() + timedelta(days=10)
        record = sql_store.set_next_review(learner, "a", when)
        assert record.next_review == when
        assert sql_store.get(learner, "a").next_review == when

    def test_set_next_review_missing_record(self, sql_store, learner, clock):
        with pytest.raises(NotFoundError):
            sql_store.set_next_review(learner, "a", clock())

    def test_topic_missing_from_content_tables(self, sql_store, learner):
        with pytest.raises(ContentError):
            sql_store.upsert(learner, "not-imported", 50)
        with pytest.raises(ContentError):
            sql_store.adjust(learner, "not-imported", 1.0, 5)


class TestSqlAdjust:
    def test_missing_record_created(self, sql_store, learner, clock):
        record = sql_store.adjust(learner, "a", 1.0, 12)
        assert record.mastery_level == 12
        assert record.last_practiced == clock()

    def test_computed_from_stored_value(self, sql_store, learner, clock):
        sql_store.upsert(learner, "a", 50)
        clock.advance(hours=1)
        record = sql_store.adjust(learner, "a", 0.5, 40)
        assert record.mastery_level == 65
        assert record.last_practiced == clock()

    def test_clamped(self, sql_store, learner):
        sql_store.upsert(learner, "a", 90)
        assert sql_store.adjust(learner, "a", 1.0, 25).mastery_level == 100
        assert sql_store.adjust(learner, "a", 1.0, -200).mastery_level == 0

    def test_anonymous_learner(self, sql_store):
        anon = LearnerRef.anonymous("sess-2")
        sql_store.adjust(anon, "a", 1.0, 10)
        assert sql_store.adjust(anon, "a", 1.0, 10).mastery_level == 20

    def test_parallel_increments_are_not_lost(self, sample_graph, tmp_path, learner):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'mastery.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        factory = sessionmaker(bind=engine)
        init_db(engine)
        with session_scope(factory) as session:
            import_topic_graph(session, sample_graph)
        store = SqlMasteryStore(factory)

        def worker():
            for _ in range(10):
                store.adjust(learner, "a", 1.0, 2)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get(learner, "a").mastery_level == 80
        engine.dispose()

    def test_unreachable_database(self, learner):
        broken = create_engine("sqlite:////nonexistent-dir/mastery/store.db")
        store = SqlMasteryStore(sessionmaker(bind=broken))
        with pytest.raises(StoreUnavailableError):
            store.get(learner, "a")


class TestEngineOnSql:
    def test_review_cycle(self, sample_graph, sql_store, settings, learner, clock):
        engine = MasteryEngine(sample_graph, sql_store, settings=settings, clock=clock)

        engine.schedule_review(learner, "a", 70, 80)
        clock.advance(days=3)
        result = engine.schedule_review(learner, "c", 85, 90)
        assert [u.extension_days for u in result.implicit_updates] == [5]

        clock.advance(days=22)
        due = engine.get_due_reviews(learner)
        assert [r.topic_id for r in due] == ["a", "c"]

    def test_placement_persists(self, sample_graph, sql_store, settings, learner, clock):
        engine = MasteryEngine(sample_graph, sql_store, settings=settings, clock=clock)
        placement = engine.complete_diagnostic(
            learner,
            [
                {"topic_id": "a", "answer_kind": "correct"},
                {"topic_id": "b", "answer_kind": "incorrect"},
            ],
        )
        assert placement.recommended_topic.id == "a"
        assert sql_store.get(learner, "b").mastery_level == 30

    def test_practice_blend(self, sample_graph, sql_store, settings, learner, clock):
        engine = MasteryEngine(sample_graph, sql_store, settings=settings, clock=clock)
        engine.update_mastery(learner, "a", 55)

        summary = engine.record_practice(
            learner, [{"topic_id": "a", "is_correct": i < 4} for i in range(5)]
        )

        assert summary.mastery_updates[0].new_mastery == pytest.approx(70)
        record = sql_store.get(learner, "a")
        assert record.mastery_level == pytest.approx(70)
        assert record.next_review == clock() + timedelta(days=10)


class TestBuildEngine:
    """A file graph over a database whose content tables were never imported."""

    @pytest.fixture
    def empty_db(self):
        return configure_database("sqlite://")

    @pytest.fixture
    def file_settings(self, topics_yaml, tmp_path):
        return Settings(
            database_url="sqlite://",
            content_path=str(topics_yaml),
            diagnostic_session_dir=str(tmp_path / "diagnostics"),
        )

    def test_file_graph_synced_before_writes(self, empty_db, file_settings):
        engine = build_engine(file_settings)
        learner = LearnerRef.user("u1")

        record = engine.update_mastery(learner, "A", 50)

        assert record.mastery_level == 50
        with session_scope() as session:
            assert len(load_topic_graph_from_db(session)) == 4

    def test_edited_file_resynced(self, empty_db, file_settings, topics_yaml):
        learner = LearnerRef.user("u1")
        build_engine(file_settings).update_mastery(learner, "A", 50)

        topics_yaml.write_text(
            topics_yaml.read_text(encoding="utf-8")
            + "  - id: E\n    name: Epsilon\n    difficulty: 5\n    prerequisites: [D]\n",
            encoding="utf-8",
        )
        engine = build_engine(file_settings)

        assert engine.update_mastery(learner, "E", 40).mastery_level == 40
        assert engine.get_mastery(learner, "A").mastery_level == 50

    def test_db_graph_source(self, empty_db, file_settings, sample_graph):
        init_db(empty_db)
        with session_scope() as session:
            import_topic_graph(session, sample_graph)

        engine = build_engine(file_settings, graph_source="db")
        assert len(engine.graph) == 5
        assert engine.update_mastery(LearnerRef.user("u1"), "a", 30).mastery_level == 30
