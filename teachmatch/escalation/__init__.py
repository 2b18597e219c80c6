"""Automated teaching request matching and timeout escalation."""

from .engine import EscalationEngine, RequestCriteria, RequestTransition, SweepResult
from .policy import RankedCandidate, Escalate, Fail, initial_assignment, decide_timeout
from .ranking import CandidateRanker
from .store import RequestStore

__all__ = [
    "EscalationEngine",
    "RequestCriteria",
    "RequestTransition",
    "SweepResult",
    "RankedCandidate",
    "Escalate",
    "Fail",
    "initial_assignment",
    "decide_timeout",
    "CandidateRanker",
    "RequestStore",
]
