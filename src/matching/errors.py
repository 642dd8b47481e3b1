"""Errors raised by the matching engine"""

from typing import Dict


class MatchingError(Exception):
    """Base class for every match generation failure"""


class InsufficientParticipants(MatchingError):
    """Fewer than two participants are eligible for the draw"""

    def __init__(self, eligible_count: int):
        self.eligible_count = eligible_count
        super().__init__("Need at least 2 participants")


def infeasible_group_reason(family_group: int, group_size: int, others_count: int) -> str:
    return (
        f"Family group {family_group} has {group_size} members but there are only "
        f"{others_count} people in other groups. Each person in family {family_group} "
        f"needs someone from a different family to match with."
    )


class InfeasibleGrouping(MatchingError):
    """A family group is larger than the rest of the pool combined"""

    def __init__(self, family_group: int, group_size: int, others_count: int):
        self.family_group = family_group
        self.group_size = group_size
        self.others_count = others_count
        super().__init__(infeasible_group_reason(family_group, group_size, others_count))


class RetriesExhausted(MatchingError):
    """Every shuffled attempt failed to produce a complete assignment"""

    def __init__(self, attempts: int, group_counts: Dict[int, int]):
        self.attempts = attempts
        self.group_counts = dict(group_counts)
        distribution = ", ".join(
            f"family {group}: {count}" for group, count in self.group_counts.items()
        )
        super().__init__(
            f"Failed to generate valid matches after {attempts} attempts "
            f"(family group sizes: {distribution}). "
            f"Please ensure there are enough participants in different family groups."
        )
