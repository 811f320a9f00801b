"""
Mastery persistence.

Components:
- MasteryStore: abstract contract the engine depends on
- InMemoryMasteryStore: process-local backing for tests and the CLI
- SqlMasteryStore: SQLAlchemy backing with atomic ON CONFLICT upserts
"""

from mastery_engine.store.base import MasteryStore
from mastery_engine.store.memory import InMemoryMasteryStore
from mastery_engine.store.sql import SqlMasteryStore

__all__ = ["MasteryStore", "InMemoryMasteryStore", "SqlMasteryStore"]
