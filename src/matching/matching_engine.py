"""Matching Engine - Draw gift exchange pairs across family groups"""

import random
from typing import Any, List, Mapping, Optional, Sequence, Union
from loguru import logger

from src.config import settings
from src.data.schema import Match, MatchResult, Participant
from src.matching.errors import InfeasibleGrouping, InsufficientParticipants, RetriesExhausted
from src.matching.feasibility import check_feasible, family_group_counts

UserInput = Union[Participant, Mapping[str, Any]]


class MatchingEngine:
    """
    Randomized match generator for a gift exchange

    Every eligible participant (non-admin, ready) gives exactly one gift and
    receives exactly one gift, never to themselves and never inside their own
    family group. The search is rejection sampling: shuffle, assign greedily,
    and start over from a new shuffle on the first dead end.

    Features:
    - Upfront feasibility check on family group sizes
    - Bounded number of attempts
    - Returns new user objects, never mutates the input
    """

    def __init__(self,
                 rng: Optional[random.Random] = None,
                 max_retries: Optional[int] = None):
        """
        Initialize matching engine

        Args:
            rng: Random source (if None, seeded from settings.random_seed)
            max_retries: Default attempt budget (if None, settings.max_retries)
        """
        self.rng = rng if rng is not None else random.Random(settings.random_seed)
        self.max_retries = max_retries if max_retries is not None else settings.max_retries

    @staticmethod
    def eligible_participants(users: Sequence[Participant]) -> List[Participant]:
        """Participants taking part in the draw: non-admin and ready"""
        return [user for user in users if not user.is_admin and user.ready]

    @staticmethod
    def is_valid_pair(giver: Participant, receiver: Participant) -> bool:
        """A giver may not draw themselves or anyone from the same family group"""
        if giver.id == receiver.id:
            return False
        # Ungrouped participants (family 0) form an exclusion class of their own
        return giver.family_group != receiver.family_group

    def shuffle(self, participants: Sequence[Participant]) -> List[Participant]:
        """Return a new uniformly shuffled list (Fisher-Yates)"""
        shuffled = list(participants)
        self.rng.shuffle(shuffled)
        return shuffled

    def attempt(self, ordered: Sequence[Participant]) -> Optional[List[Match]]:
        """
        Try to build one complete match set from a fixed giver ordering

        Args:
            ordered: Eligible participants in the order they draw

        Returns:
            List of matches, or None when some giver is left without a valid receiver
        """
        if not ordered:
            return []

        available = list(ordered)
        first = ordered[0]
        last_index = len(ordered) - 1
        matches: List[Match] = []

        logger.debug(f"Attempting matching round: {', '.join(p.label for p in ordered)}")

        for index, giver in enumerate(ordered):
            # The last giver must be able to hand back to the first giver's family
            if index == last_index and not self.is_valid_pair(giver, first):
                logger.debug(f"Closing check failed: {giver.label} vs first giver {first.label}")
                return None

            candidates = [receiver for receiver in available if self.is_valid_pair(giver, receiver)]

            if not candidates:
                logger.debug(f"No valid receivers found for {giver.label}")
                return None

            receiver = self.rng.choice(candidates)
            available.remove(receiver)
            matches.append(Match(giver_id=giver.id, receiver_id=receiver.id))

            logger.debug(
                f"{giver.label} -> {receiver.label} "
                f"(picked from {len(candidates)} candidates)"
            )

        return matches

    def generate_matches(
        self,
        users: Sequence[UserInput],
        max_retries: Optional[int] = None
    ) -> MatchResult:
        """
        Generate a full set of matches for the current user list

        Args:
            users: Complete user collection, including admins and unready users
            max_retries: Attempt budget (default: engine setting, 50)

        Returns:
            MatchResult with the matches and the full updated user collection

        Raises:
            InsufficientParticipants: fewer than 2 eligible participants
            InfeasibleGrouping: a family group outnumbers everybody else
            RetriesExhausted: no attempt produced a complete assignment
        """
        budget = self.max_retries if max_retries is None else max_retries
        all_users = [
            user if isinstance(user, Participant) else Participant.model_validate(user)
            for user in users
        ]
        participants = self.eligible_participants(all_users)

        logger.info(
            f"Starting match generation: {len(all_users)} users, "
            f"{len(participants)} eligible participants"
        )

        if len(participants) < 2:
            raise InsufficientParticipants(len(participants))

        feasibility = check_feasible(participants)
        if not feasibility.possible:
            logger.warning(f"Matching impossible: {feasibility.reason}")
            raise InfeasibleGrouping(
                feasibility.family_group,
                feasibility.group_size,
                feasibility.others_count,
            )

        attempts = 0
        matches: Optional[List[Match]] = None
        ordering = list(participants)

        while attempts < budget and matches is None:
            attempts += 1
            ordering = self.shuffle(ordering)
            matches = self.attempt(ordering)
            if matches is None:
                logger.debug(f"Attempt {attempts} of {budget} failed")

        if matches is None:
            group_counts = family_group_counts(participants)
            logger.warning(
                f"Failed to generate matches after {attempts} attempts. "
                f"Family group distribution: {group_counts}"
            )
            raise RetriesExhausted(attempts, group_counts)

        receiver_by_giver = {match.giver_id: match.receiver_id for match in matches}
        updated_users = [
            user.model_copy(update={"matched_with": receiver_by_giver[user.id]})
            if user.id in receiver_by_giver else user.model_copy()
            for user in all_users
        ]

        logger.info(f"Successfully generated {len(matches)} matches after {attempts} attempts")

        return MatchResult(matches=matches, updated_users=updated_users, attempts=attempts)


def generate_matches(
    users: Sequence[UserInput],
    max_retries: int = 50,
    rng: Optional[random.Random] = None
) -> MatchResult:
    """Convenience wrapper around MatchingEngine.generate_matches"""
    return MatchingEngine(rng=rng).generate_matches(users, max_retries=max_retries)
