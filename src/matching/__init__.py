"""Matching engine modules"""

from src.matching.errors import (
    InfeasibleGrouping,
    InsufficientParticipants,
    MatchingError,
    RetriesExhausted,
)
from src.matching.feasibility import FeasibilityResult, check_feasible, family_group_counts
from src.matching.matching_engine import MatchingEngine, generate_matches

__all__ = [
    "MatchingEngine",
    "generate_matches",
    "check_feasible",
    "family_group_counts",
    "FeasibilityResult",
    "MatchingError",
    "InsufficientParticipants",
    "InfeasibleGrouping",
    "RetriesExhausted",
]
