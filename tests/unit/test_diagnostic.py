"""
Unit tests for the adaptive diagnostic state machine.

Graphs are small enough that every answer pattern can be walked.
"""

import itertools

import pytest

from mastery_engine.adaptive.diagnostic import (
    Complete,
    CompletionReason,
    DiagnosticEngine,
    DiagnosticState,
    DiagnosticStatus,
    Probe,
    ProbeDirection,
    tentative_mastery_for,
)
from mastery_engine.core.errors import ContentError, InvalidInputError, NotFoundError
from mastery_engine.core.models import AnswerKind, LearnerRef, Topic
from mastery_engine.graph.topic_graph import TopicGraph


def _run(engine, learner, answers):
    """Answer with answers[i] for the i-th question until the session completes."""
    start = engine.start(learner)
    state, topic = start.state, start.first_topic
    asked = []
    for answer in answers:
        asked.append(topic.id)
        step = engine.submit_answer(state, topic.id, answer)
        state = step.state
        if step.is_complete:
            return asked, step
        topic = step.next_topic
    raise AssertionError(f"Diagnostic still running after {asked}")


class TestStart:
    def test_starts_at_easiest_root(self, sample_graph, learner, clock):
        start = DiagnosticEngine(sample_graph, clock=clock).start(learner)
        assert start.first_topic.id == "a"
        assert start.state.status == DiagnosticStatus.IN_PROGRESS
        assert start.state.root_topics_to_test == ["a", "b"]
        assert start.state.current_topic_id == "a"
        assert start.state.session_id.startswith("diagnostic_")
        assert start.state.started_at == clock().isoformat()

    def test_empty_graph(self, learner):
        with pytest.raises(ContentError):
            DiagnosticEngine(TopicGraph([])).start(learner)

    def test_invalid_bounds(self, sample_graph):
        with pytest.raises(InvalidInputError):
            DiagnosticEngine(sample_graph, min_questions=5, max_questions=3)


class TestRouting:
    def test_three_roots_sideways_and_fallback(self, three_root_graph, learner):
        engine = DiagnosticEngine(three_root_graph)
        asked, step = _run(engine, learner, ["correct", "incorrect", "idontknow"])

        assert asked == ["A", "B", "C"]
        assert step.questions_asked == 3
        assert step.route == Complete(CompletionReason.EXHAUSTED)
        assert step.state.tentative_mastery == {"A": 55.0, "B": 30.0, "C": 0.0}

    def test_first_correct_on_isolated_root_falls_back(self, three_root_graph, learner):
        engine = DiagnosticEngine(three_root_graph)
        start = engine.start(learner)
        step = engine.submit_answer(start.state, "A", "correct")
        assert step.route == Probe(ProbeDirection.FALLBACK, ("B", "C"))
        assert step.next_topic.id == "B"

    def test_upward_then_downward(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        asked, step = _run(
            engine, learner, ["correct", "correct", "incorrect", "incorrect", "incorrect"]
        )
        assert asked == ["a", "c", "e", "d", "b"]
        assert step.state.completion_reason == CompletionReason.EXHAUSTED

    def test_correct_streak_completes_after_minimum(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        asked, step = _run(engine, learner, ["correct"] * 5)
        assert asked == ["a", "c", "e"]
        assert step.is_complete

    def test_upward_candidates_sorted_by_difficulty(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        start = engine.start(learner)
        step = engine.submit_answer(start.state, "a", AnswerKind.CORRECT)
        assert step.route == Probe(ProbeDirection.UPWARD, ("c", "d"))
        assert step.state.last_direction == ProbeDirection.UPWARD

    def test_downward_probes_last_prerequisite_first(self, learner):
        graph = TopicGraph(
            [
                Topic(id="p1", name="p1", difficulty=1),
                Topic(id="p2", name="p2", difficulty=2),
                Topic(id="t", name="t", difficulty=3),
            ],
            prerequisites=[("t", "p1"), ("t", "p2")],
        )
        state = DiagnosticState(
            session_id="s",
            learner=learner,
            root_topics_to_test=["p1", "p2"],
            status=DiagnosticStatus.IN_PROGRESS,
            topics_tested=["t"],
        )
        route = DiagnosticEngine(graph).route(state, "t", AnswerKind.INCORRECT)
        assert route == Probe(ProbeDirection.DOWNWARD, ("p2", "p1"))

    def test_incorrect_and_idontknow_route_identically(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        asked_wrong, _ = _run(engine, learner, ["correct", "incorrect", "incorrect"] + ["correct"] * 3)
        asked_idk, _ = _run(engine, learner, ["correct", "idontknow", "idontknow"] + ["correct"] * 3)
        assert asked_wrong == asked_idk

    def test_max_questions_cap(self, learner):
        topics = [Topic(id=f"t{i:02d}", name=f"T{i}", difficulty=i + 1) for i in range(15)]
        chain = [(f"t{i:02d}", f"t{i - 1:02d}") for i in range(1, 15)]
        engine = DiagnosticEngine(TopicGraph(topics, prerequisites=chain))

        asked, step = _run(engine, learner, ["correct"] * 15)
        assert len(asked) == 10
        assert asked[-1] == "t09"
        assert step.state.completion_reason == CompletionReason.MAX_QUESTIONS

    @pytest.mark.parametrize(
        "answers",
        list(itertools.product(["correct", "incorrect", "idontknow"], repeat=5)),
    )
    def test_never_repeats_and_terminates(self, sample_graph, learner, answers):
        engine = DiagnosticEngine(sample_graph)
        asked, step = _run(engine, learner, answers)
        assert len(asked) == len(set(asked))
        assert step.state.status == DiagnosticStatus.COMPLETE
        assert step.next_topic is None


class TestSubmitValidation:
    def test_input_state_not_mutated(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        start = engine.start(learner)
        engine.submit_answer(start.state, "a", "correct")
        assert start.state.topics_tested == []
        assert start.state.current_topic_id == "a"

    def test_wrong_topic(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        start = engine.start(learner)
        with pytest.raises(InvalidInputError, match="current topic"):
            engine.submit_answer(start.state, "b", "correct")

    def test_unknown_topic(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        start = engine.start(learner)
        with pytest.raises(NotFoundError):
            engine.submit_answer(start.state, "nope", "correct")

    def test_bad_answer_kind(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        start = engine.start(learner)
        with pytest.raises(InvalidInputError):
            engine.submit_answer(start.state, "a", "maybe")

    def test_complete_session_rejects_answers(self, three_root_graph, learner):
        engine = DiagnosticEngine(three_root_graph)
        _, step = _run(engine, learner, ["incorrect"] * 3)
        with pytest.raises(InvalidInputError, match="complete"):
            engine.submit_answer(step.state, "A", "correct")

    def test_not_started_session(self, sample_graph, learner):
        state = DiagnosticState(session_id="s", learner=learner, root_topics_to_test=["a"])
        with pytest.raises(InvalidInputError, match="not started"):
            DiagnosticEngine(sample_graph).submit_answer(state, "a", "correct")


class TestSerialization:
    def test_resume_from_dict(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        start = engine.start(learner)
        step = engine.submit_answer(start.state, "a", "correct")

        restored = DiagnosticState.from_dict(step.state.to_dict())
        assert restored.learner == learner
        assert restored.topics_tested == ["a"]
        assert restored.results[0].tentative_mastery == 55.0

        follow_up = engine.submit_answer(restored, restored.current_topic_id, "correct")
        assert follow_up.topics_tested == ["a", "c"]

    def test_malformed_state(self):
        with pytest.raises(InvalidInputError):
            DiagnosticState.from_dict({"learner": {"user_id": "u"}})
        with pytest.raises(InvalidInputError):
            DiagnosticState.from_dict({"session_id": "s", "learner": {}})
        with pytest.raises(InvalidInputError):
            DiagnosticState.from_dict(
                {"session_id": "s", "learner": {"user_id": "u"}, "status": "paused"}
            )

    def test_step_to_dict(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph)
        start = engine.start(learner)
        data = engine.submit_answer(start.state, "a", "idontknow").to_dict()
        assert data["tentative_mastery"] == 0.0
        assert data["next_topic"]["id"] == "b"
        assert data["questions_asked"] == 1
        assert data["is_complete"] is False


class TestTentativeMastery:
    def test_values(self):
        assert tentative_mastery_for("correct") == 55.0
        assert tentative_mastery_for("incorrect") == 30.0
        assert tentative_mastery_for(AnswerKind.IDONTKNOW) == 0.0

    def test_anonymous_learner_allowed(self, sample_graph):
        start = DiagnosticEngine(sample_graph).start(LearnerRef.anonymous("anon-1"))
        assert start.state.learner.session_id == "anon-1"


class TestQuestionBounds:
    def test_engine_cap_overrides_serialized_bounds(self, sample_graph, learner):
        engine = DiagnosticEngine(sample_graph, min_questions=1, max_questions=1)
        blob = engine.start(learner).state.to_dict()
        blob["max_questions"] = 99

        step = engine.submit_answer(DiagnosticState.from_dict(blob), "a", "correct")

        assert step.is_complete is True
        assert step.next_topic is None
        assert step.state.completion_reason == CompletionReason.MAX_QUESTIONS
        assert step.state.max_questions == 1

    def test_engine_minimum_overrides_serialized_bounds(self, three_root_graph, learner):
        engine = DiagnosticEngine(three_root_graph, min_questions=3, max_questions=10)
        blob = engine.start(learner).state.to_dict()
        blob["min_questions"] = 1

        step = engine.submit_answer(DiagnosticState.from_dict(blob), "A", "correct")

        assert step.is_complete is False
        assert step.route == Probe(ProbeDirection.FALLBACK, ("B", "C"))
