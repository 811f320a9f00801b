"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from mastery_engine.config import Settings
from mastery_engine.core.models import LearnerRef, Topic
from mastery_engine.engine import MasteryEngine
from mastery_engine.graph.topic_graph import TopicGraph
from mastery_engine.store.memory import InMemoryMasteryStore


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite, API, CLI)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FixedClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float = 0, hours: float = 0) -> datetime:
        self.now = self.now + timedelta(days=days, hours=hours)
        return self.now


DAY0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_topic(topic_id: str, difficulty: int = 1, domain: str = "math") -> Topic:
    return Topic(id=topic_id, name=topic_id.upper(), domain=domain, difficulty=difficulty)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Clock frozen at DAY0; advance() moves it forward."""
    return FixedClock(DAY0)


@pytest.fixture
def sample_graph():
    """
    Five-topic graph.

        a (1)   b (2)        roots
        c (3) requires a
        d (4) requires a, b
        e (5) requires c, d

    c encompasses a; d encompasses a, b; e encompasses c, d.
    """
    topics = [
        make_topic("a", 1, "arithmetic"),
        make_topic("b", 2, "arithmetic"),
        make_topic("c", 3, "arithmetic"),
        make_topic("d", 4, "algebra"),
        make_topic("e", 5, "algebra"),
    ]
    prerequisites = [("c", "a"), ("d", "a"), ("d", "b"), ("e", "c"), ("e", "d")]
    encompassings = [("c", "a"), ("d", "a"), ("d", "b"), ("e", "c"), ("e", "d")]
    return TopicGraph(topics, prerequisites, encompassings)


@pytest.fixture
def three_root_graph():
    """Three independent roots A (1), B (2), C (3)."""
    return TopicGraph([make_topic("A", 1), make_topic("B", 2), make_topic("C", 3)])


@pytest.fixture
def store(clock):
    return InMemoryMasteryStore(clock=clock)


@pytest.fixture
def learner():
    return LearnerRef.user("alice")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        diagnostic_session_dir=str(tmp_path / "diagnostics"),
    )


@pytest.fixture
def engine(sample_graph, store, settings, clock):
    return MasteryEngine(sample_graph, store, settings=settings, clock=clock)


@pytest.fixture
def topics_yaml(tmp_path):
    """Write a small YAML content file and return its path."""
    path = tmp_path / "topics.yaml"
    path.write_text(
        """
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
  - id: D
    name: Delta
    domain: advanced
    difficulty: 4
    prerequisites: [A, B]
    encompasses: [A, B]
""",
        encoding="utf-8",
    )
    return path
