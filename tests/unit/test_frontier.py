"""
Unit tests for frontier computation and prerequisite gating.
"""

import pytest

from mastery_engine.adaptive.frontier import FrontierCalculator
from mastery_engine.core.errors import NotFoundError
from mastery_engine.core.models import LearnerRef


@pytest.fixture
def calculator(sample_graph, store):
    return FrontierCalculator(sample_graph, store)


def _ids(topics):
    return [t.id for t in topics]


class TestComputeFrontier:
    def test_new_learner_sees_only_roots(self, calculator, learner):
        assert _ids(calculator.compute_frontier(learner)) == ["a", "b"]

    def test_gating_prerequisite_unlocks_dependent(self, calculator, store, learner):
        store.upsert(learner, "a", 85)
        assert _ids(calculator.compute_frontier(learner)) == ["a", "b", "c"]

    def test_just_below_threshold_stays_locked(self, calculator, store, learner):
        store.upsert(learner, "a", 79.9)
        assert "c" not in _ids(calculator.compute_frontier(learner))

    def test_full_mastery_leaves_frontier(self, calculator, store, learner):
        store.upsert(learner, "a", 100)
        store.upsert(learner, "b", 80)
        assert _ids(calculator.compute_frontier(learner)) == ["b", "c", "d"]

    def test_every_prerequisite_required(self, calculator, store, learner):
        store.upsert(learner, "a", 100)
        store.upsert(learner, "b", 60)
        assert "d" not in _ids(calculator.compute_frontier(learner))

    def test_preloaded_records_used(self, calculator, store, learner):
        record = store.upsert(learner, "a", 90)
        store.clear()
        frontier = calculator.compute_frontier(learner, records={"a": record})
        assert "c" in _ids(frontier)

    def test_other_learner_unaffected(self, calculator, store, learner):
        store.upsert(LearnerRef.user("bob"), "a", 100)
        assert _ids(calculator.compute_frontier(learner)) == ["a", "b"]


class TestGating:
    def test_can_advance_root(self, calculator, learner):
        assert calculator.can_advance(learner, "a") is True

    def test_can_advance_requires_prerequisites(self, calculator, store, learner):
        assert calculator.can_advance(learner, "c") is False
        store.upsert(learner, "a", 80)
        assert calculator.can_advance(learner, "c") is True

    def test_mastered_topic_cannot_advance(self, calculator, store, learner):
        store.upsert(learner, "a", 100)
        assert calculator.is_mastered(learner, "a") is True
        assert calculator.can_advance(learner, "a") is False

    def test_unknown_topic(self, calculator, learner):
        with pytest.raises(NotFoundError):
            calculator.can_advance(learner, "zzz")


class TestDomainMastery:
    def test_counts(self, calculator, store, learner):
        store.upsert(learner, "a", 100)
        store.upsert(learner, "b", 50)
        summary = calculator.domain_mastery(learner, "arithmetic")
        assert (summary.total, summary.mastered, summary.in_progress, summary.not_started) == (
            3,
            1,
            1,
            1,
        )
        assert summary.percentage == 33
        assert summary.to_dict()["domain"] == "arithmetic"

    def test_unknown_domain_is_empty(self, calculator, learner):
        summary = calculator.domain_mastery(learner, "geometry")
        assert summary.total == 0
        assert summary.percentage == 0
