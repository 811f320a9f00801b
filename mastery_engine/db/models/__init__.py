# SQLAlchemy models
from .base import Base
from .content import (
    TopicEncompassingRow,
    TopicPrerequisiteRow,
    TopicRow,
)
from .mastery import StudentMastery

__all__ = [
    # Base
    "Base",
    # Content
    "TopicRow",
    "TopicPrerequisiteRow",
    "TopicEncompassingRow",
    # Learner state
    "StudentMastery",
]
