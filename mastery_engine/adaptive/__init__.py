"""
Adaptive placement.

Components:
- FrontierCalculator: topics a learner is ready to learn next
- DiagnosticEngine: bounded adaptive placement state machine
- PlacementCalculator: persists diagnostic results and ranks the frontier
- DiagnosticSessionStore: JSON save/resume for diagnostic sessions
"""
from mastery_engine.adaptive.diagnostic import (
    TENTATIVE_MASTERY,
    Complete,
    CompletionReason,
    DiagnosticEngine,
    DiagnosticStart,
    DiagnosticState,
    DiagnosticStatus,
    DiagnosticStep,
    Probe,
    ProbeDirection,
    tentative_mastery_for,
)
from mastery_engine.adaptive.frontier import DomainMastery, FrontierCalculator
from mastery_engine.adaptive.placement import (
    Placement,
    PlacementCalculator,
    PlacementSummary,
    RankedTopic,
    rank_frontier,
)
from mastery_engine.adaptive.session_store import DiagnosticSessionStore

__all__ = [
    "FrontierCalculator",
    "DomainMastery",
    "DiagnosticEngine",
    "DiagnosticState",
    "DiagnosticStatus",
    "DiagnosticStart",
    "DiagnosticStep",
    "Probe",
    "Complete",
    "ProbeDirection",
    "CompletionReason",
    "TENTATIVE_MASTERY",
    "tentative_mastery_for",
    "PlacementCalculator",
    "Placement",
    "PlacementSummary",
    "RankedTopic",
    "rank_frontier",
    "DiagnosticSessionStore",
]
