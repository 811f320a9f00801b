"""
Unit tests for the MasteryEngine facade over an in-memory store.
"""

import pytest

from mastery_engine.config import Settings
from mastery_engine.core.errors import InvalidInputError, NotFoundError
from mastery_engine.core.models import LearnerRef
from mastery_engine.engine import MasteryEngine


class TestDiagnosticFlow:
    def test_full_placement_run(self, engine, learner):
        start = engine.start_diagnostic(learner)
        step = engine.submit_diagnostic_answer(start.state, start.first_topic.id, "correct")
        step = engine.submit_diagnostic_answer(step.state.to_dict(), step.next_topic.id, "correct")
        step = engine.submit_diagnostic_answer(step.state, step.next_topic.id, "incorrect")
        while not step.is_complete:
            step = engine.submit_diagnostic_answer(step.state, step.next_topic.id, "incorrect")

        placement = engine.complete_diagnostic(learner, step.state.results)

        assert engine.get_mastery(learner, "a").mastery_level == 55
        assert engine.get_mastery(learner, "c").mastery_level == 55
        assert engine.get_mastery(learner, "e").mastery_level == 30
        assert placement.recommended_topic is not None

    def test_diagnostic_does_not_write_until_complete(self, engine, learner):
        start = engine.start_diagnostic(learner)
        engine.submit_diagnostic_answer(start.state, "a", "correct")
        assert engine.get_all_mastery(learner) == []

    def test_settings_bound_diagnostic_length(self, sample_graph, store, tmp_path, learner):
        settings = Settings(
            diagnostic_min_questions=1,
            diagnostic_max_questions=2,
            diagnostic_session_dir=str(tmp_path),
        )
        engine = MasteryEngine(sample_graph, store, settings=settings)
        start = engine.start_diagnostic(learner)
        step = engine.submit_diagnostic_answer(start.state, "a", "correct")
        step = engine.submit_diagnostic_answer(step.state, step.next_topic.id, "correct")
        assert step.is_complete
        assert step.questions_asked == 2


class TestMastery:
    def test_update_and_get(self, engine, learner, clock):
        record = engine.update_mastery(learner, "a", 82.5)
        assert record.mastery_level == 82.5
        assert record.last_practiced == clock()
        assert engine.get_mastery(learner, "a").mastery_level == 82.5

    def test_get_unpractised_is_none(self, engine, learner):
        assert engine.get_mastery(learner, "a") is None

    def test_update_rejects_out_of_range(self, engine, learner):
        with pytest.raises(InvalidInputError):
            engine.update_mastery(learner, "a", 120)
        assert engine.get_mastery(learner, "a") is None

    def test_unknown_topic(self, engine, learner):
        with pytest.raises(NotFoundError):
            engine.update_mastery(learner, "ghost", 50)
        with pytest.raises(NotFoundError):
            engine.get_mastery(learner, "ghost")

    def test_increment_mastery(self, engine, learner):
        assert engine.increment_mastery(learner, "a", 10).mastery_level == 10
        engine.update_mastery(learner, "b", 55)
        assert engine.increment_mastery(learner, "b", 20).mastery_level == 75
        assert engine.increment_mastery(learner, "b", 50).mastery_level == 100
        assert engine.increment_mastery(learner, "b", -100).mastery_level == 0

    def test_increment_rejects_bad_input(self, engine, learner):
        with pytest.raises(InvalidInputError):
            engine.increment_mastery(learner, "a", 150)
        with pytest.raises(NotFoundError):
            engine.increment_mastery(learner, "ghost", 5)
        assert engine.get_all_mastery(learner) == []

    def test_set_mastered(self, engine, learner):
        engine.update_mastery(learner, "a", 55)
        assert engine.set_mastered(learner, "a").mastery_level == 100
        assert "a" not in [t.id for t in engine.get_frontier(learner)]

    def test_frontier_and_gating(self, engine, learner):
        assert [t.id for t in engine.get_frontier(learner)] == ["a", "b"]
        assert engine.can_advance(learner, "c") is False
        engine.update_mastery(learner, "a", 80)
        assert engine.can_advance(learner, "c") is True
        assert "c" in [t.id for t in engine.get_frontier(learner)]

    def test_domain_mastery(self, engine, learner):
        engine.update_mastery(learner, "d", 100)
        summary = engine.get_domain_mastery(learner, "algebra")
        assert summary.mastered == 1
        assert summary.percentage == 50

    def test_anonymous_and_user_isolated(self, engine):
        engine.update_mastery(LearnerRef.anonymous("s1"), "a", 90)
        assert engine.get_mastery(LearnerRef.user("s1"), "a") is None


class TestReviews:
    def test_calculate_interval(self, engine):
        assert engine.calculate_interval(80, 95) == 21
        assert engine.calculate_interval(80, 80, previous_interval=20) == 40

    def test_schedule_then_due(self, engine, learner, clock):
        result = engine.schedule_review(learner, "a", 70, 80)
        assert result.interval_days == 10
        clock.advance(days=11)
        assert [r.topic_id for r in engine.get_due_reviews(learner)] == ["a"]
        optimal = engine.get_optimal_review_set(learner)
        assert [c.topic.id for c in optimal.topics] == ["a"]
        assert optimal.compression_ratio == 1.0

    def test_implicit_threshold_from_settings(self, sample_graph, store, tmp_path, learner, clock):
        settings = Settings(
            implicit_repetition_min_accuracy=95,
            diagnostic_session_dir=str(tmp_path),
        )
        engine = MasteryEngine(sample_graph, store, settings=settings, clock=clock)
        engine.schedule_review(learner, "a", 70, 80)
        result = engine.schedule_review(learner, "c", 85, 90)
        assert result.implicit_updates == []
