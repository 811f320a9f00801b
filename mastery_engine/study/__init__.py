"""
Review scheduling and practice recording.

Components:
- ReviewScheduler: FIRe scheduling, implicit repetition and review-set compression
- PracticeRecorder: blends practice accuracy into mastery and reschedules
- calculate_spacing_interval: mastery/accuracy -> interval in days
"""
from mastery_engine.study.practice import (
    PracticeAnswer,
    PracticeRecorder,
    PracticeSummary,
    TopicPractice,
)
from mastery_engine.study.review_scheduler import (
    ImplicitUpdate,
    OptimalReviewSet,
    ReviewCandidate,
    ReviewSchedule,
    ReviewScheduler,
    ScheduleResult,
    calculate_spacing_interval,
    days_until_review,
    is_due,
)

__all__ = [
    "ReviewScheduler",
    "ReviewSchedule",
    "ReviewCandidate",
    "ScheduleResult",
    "ImplicitUpdate",
    "OptimalReviewSet",
    "PracticeRecorder",
    "PracticeAnswer",
    "PracticeSummary",
    "TopicPractice",
    "calculate_spacing_interval",
    "days_until_review",
    "is_due",
]
