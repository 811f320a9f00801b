"""
Integration tests for the Typer CLI using an in-memory store.
"""

import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from mastery_engine.cli.main import app
from mastery_engine.config import get_settings

runner = CliRunner()

CONTENT = """
topics:
  - id: A
    name: Alpha
    difficulty: 1
  - id: B
    name: Beta
    difficulty: 2
  - id: C
    name: Gamma
    difficulty: 3
    encompasses: [A]
"""


@pytest.fixture
def content_file(tmp_path):
    path = tmp_path / "cli_topics.yaml"
    path.write_text(CONTENT, encoding="utf-8")
    return path


@pytest.fixture
def session_dir(tmp_path, monkeypatch):
    directory = tmp_path / "cli_sessions"
    monkeypatch.setenv("MASTERY_DIAGNOSTIC_SESSION_DIR", str(directory))
    get_settings.cache_clear()
    yield directory
    get_settings.cache_clear()
    # The CLI callback rebinds loguru to the runner's captured stderr
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


def _invoke(content_file, *args, input=None):
    return runner.invoke(
        app,
        ["--memory", "--content", str(content_file), "--log-level", "WARNING", *args],
        input=input,
    )


class TestContentCommands:
    def test_topics(self, content_file, session_dir):
        result = _invoke(content_file, "topics")
        assert result.exit_code == 0
        assert "Alpha" in result.stdout
        assert "Gamma" in result.stdout

    def test_frontier_for_new_learner(self, content_file, session_dir):
        result = _invoke(content_file, "frontier", "-u", "alice")
        assert result.exit_code == 0
        assert "Beta" in result.stdout

    def test_missing_identity(self, content_file, session_dir):
        result = _invoke(content_file, "frontier")
        assert result.exit_code == 2


class TestDiagnoseCommand:
    def test_full_diagnostic(self, content_file, session_dir):
        result = _invoke(content_file, "diagnose", "-u", "alice", input="c\ni\n?\n")
        assert result.exit_code == 0, result.stdout
        assert "Placement" in result.stdout
        assert "Start with: Alpha" in result.stdout
        assert list(session_dir.glob("*.json")) == []

    def test_quit_and_resume(self, content_file, session_dir):
        first = _invoke(content_file, "diagnose", "-u", "alice", input="c\nq\n")
        assert first.exit_code == 0
        assert len(list(session_dir.glob("*.json"))) == 1

        second = _invoke(content_file, "diagnose", "-u", "alice", input="i\n?\n")
        assert second.exit_code == 0, second.stdout
        assert "Resuming diagnostic" in second.stdout
        assert "Topics tested: 3" in second.stdout

    def test_new_ignores_saved_session(self, content_file, session_dir):
        _invoke(content_file, "diagnose", "-u", "alice", input="c\nq\n")
        result = _invoke(content_file, "diagnose", "-u", "alice", "--new", input="?\n?\n?\n")
        assert result.exit_code == 0
        assert "Resuming" not in result.stdout


class TestReviewCommands:
    def test_schedule(self, content_file, session_dir):
        result = _invoke(
            content_file, "schedule", "A", "-u", "alice", "--mastery", "80", "--accuracy", "95"
        )
        assert result.exit_code == 0
        assert "21" in result.stdout

    def test_schedule_rejects_out_of_range(self, content_file, session_dir):
        result = _invoke(
            content_file, "schedule", "A", "-u", "alice", "--mastery", "80", "--accuracy", "120"
        )
        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_unknown_topic(self, content_file, session_dir):
        result = _invoke(
            content_file, "schedule", "Z", "-u", "alice", "--mastery", "80", "--accuracy", "80"
        )
        assert result.exit_code == 1

    def test_nothing_due(self, content_file, session_dir):
        assert "all caught up" in _invoke(content_file, "reviews", "-u", "alice").stdout
        assert "all caught up" in _invoke(content_file, "optimal", "-u", "alice").stdout


class TestPracticeCommand:
    def test_practice_blends_mastery(self, content_file, session_dir):
        result = _invoke(
            content_file, "practice", "A", "-u", "alice", "--correct", "4", "--total", "5"
        )
        assert result.exit_code == 0, result.stdout
        assert "0% -> 48%" in result.stdout
        assert "Next review in 3 days" in result.stdout

    def test_practice_rejects_impossible_counts(self, content_file, session_dir):
        result = _invoke(
            content_file, "practice", "A", "-u", "alice", "--correct", "6", "--total", "5"
        )
        assert result.exit_code == 1
