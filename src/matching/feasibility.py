"""Feasibility check - reject family group layouts that can never be matched"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from src.data.schema import Participant
from src.matching.errors import infeasible_group_reason


@dataclass(frozen=True)
class FeasibilityResult:
    """Outcome of the group size check"""
    possible: bool
    reason: Optional[str] = None
    family_group: Optional[int] = None
    group_size: int = 0
    others_count: int = 0


def family_group_counts(participants: Sequence[Participant]) -> Dict[int, int]:
    """Count participants per family group, in order of first appearance"""
    counts: Dict[int, int] = {}
    for participant in participants:
        counts[participant.family_group] = counts.get(participant.family_group, 0) + 1
    return counts


def check_feasible(participants: Sequence[Participant]) -> FeasibilityResult:
    """
    Check that no family group outnumbers everyone outside it

    Every member of a group needs a distinct receiver from another group,
    so a group of size c needs at least c people outside it. This is a
    necessary condition only: passing it does not guarantee that a full
    assignment exists.

    Args:
        participants: Eligible participants (non-admin, ready)

    Returns:
        FeasibilityResult describing the first offending group, if any
    """
    total = len(participants)

    for group, count in family_group_counts(participants).items():
        others_count = total - count
        if count > others_count:
            return FeasibilityResult(
                possible=False,
                reason=infeasible_group_reason(group, count, others_count),
                family_group=group,
                group_size=count,
                others_count=others_count,
            )

    return FeasibilityResult(possible=True)
