"""
Unit tests for mastery levels, validation helpers and core models.
"""

from datetime import datetime

import pytest

from mastery_engine.core.errors import InvalidInputError
from mastery_engine.core.mastery import (
    MasteryLevel,
    clamp_mastery,
    days_between,
    ensure_utc,
    format_progress_bar,
    validate_accuracy,
    validate_mastery,
    whole_days_between,
)
from mastery_engine.core.models import AnswerKind, DiagnosticResult, LearnerRef


class TestMasteryLevel:
    @pytest.mark.parametrize(
        "score, level",
        [
            (None, MasteryLevel.NOT_STARTED),
            (0, MasteryLevel.NOT_STARTED),
            (30, MasteryLevel.DEVELOPING),
            (55, MasteryLevel.NEARLY_COMPLETE),
            (80, MasteryLevel.PROFICIENT),
            (99.9, MasteryLevel.PROFICIENT),
            (100, MasteryLevel.MASTERED),
        ],
    )
    def test_from_score(self, score, level):
        assert MasteryLevel.from_score(score) == level

    def test_display_name(self):
        assert MasteryLevel.NEARLY_COMPLETE.display_name == "Nearly Complete"


class TestValidation:
    def test_clamp(self):
        assert clamp_mastery(-1) == 0
        assert clamp_mastery(101) == 100

    @pytest.mark.parametrize("value", [-0.1, 100.1, float("nan"), "abc"])
    def test_invalid_values_rejected(self, value):
        with pytest.raises(InvalidInputError):
            validate_mastery(value)
        with pytest.raises(InvalidInputError):
            validate_accuracy(value)

    def test_bounds_accepted(self):
        assert validate_mastery(0) == 0
        assert validate_accuracy(100) == 100


class TestTimeHelpers:
    def test_naive_treated_as_utc(self, clock):
        naive = datetime(2024, 1, 1, 12, 0)
        assert ensure_utc(naive) == clock()
        assert ensure_utc(None) is None

    def test_days_between(self, clock):
        start = clock()
        end = clock.advance(days=2, hours=12)
        assert days_between(start, end) == 2.5
        assert whole_days_between(start, end) == 2
        assert whole_days_between(end, start) == -3

    def test_progress_bar(self):
        assert format_progress_bar(50, width=4) == "██░░"
        assert format_progress_bar(150, width=2) == "██"


class TestModels:
    @pytest.mark.parametrize("raw", ["correct", " Correct ", AnswerKind.CORRECT])
    def test_answer_kind_parse(self, raw):
        assert AnswerKind.parse(raw) == AnswerKind.CORRECT

    def test_answer_kind_rejects_unknown(self):
        with pytest.raises(InvalidInputError, match="idontknow"):
            AnswerKind.parse("maybe")

    def test_learner_requires_exactly_one_identity(self):
        with pytest.raises(InvalidInputError):
            LearnerRef()
        with pytest.raises(InvalidInputError):
            LearnerRef(user_id="u", session_id="s")
        assert LearnerRef(user_id="", session_id="s").key == ("session", "s")

    def test_learner_round_trip(self):
        learner = LearnerRef.user("alice")
        assert LearnerRef.from_dict(learner.to_dict()) == learner
        assert str(learner) == "user:alice"

    def test_diagnostic_result_from_dict(self):
        result = DiagnosticResult.from_dict({"topic_id": "a", "answer_kind": "incorrect"})
        assert result.answer_kind == AnswerKind.INCORRECT
        assert result.tentative_mastery == 0.0
