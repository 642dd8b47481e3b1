"""Unit tests for the matching engine"""

import random
import pytest
from unittest.mock import patch
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.data.schema import Match, Participant
from src.matching import (
    InfeasibleGrouping,
    InsufficientParticipants,
    MatchingEngine,
    RetriesExhausted,
    generate_matches,
)


def make_users(groups, ready=True):
    """One ready, non-admin participant per family group entry"""
    return [
        Participant(id=i + 1, username=f"user{i + 1}", family_group=group, ready=ready)
        for i, group in enumerate(groups)
    ]


def assert_valid_assignment(result, participants):
    """Check the structural invariants of a successful draw"""
    eligible_ids = sorted(p.id for p in participants)
    group_of = {p.id: p.family_group for p in participants}

    givers = [m.giver_id for m in result.matches]
    receivers = [m.receiver_id for m in result.matches]

    assert sorted(givers) == eligible_ids
    assert sorted(receivers) == eligible_ids
    for match in result.matches:
        assert match.giver_id != match.receiver_id
        assert group_of[match.giver_id] != group_of[match.receiver_id]


class TestScenarios:
    """End-to-end draws on small, hand-checked inputs"""

    @pytest.fixture
    def engine(self):
        return MatchingEngine(rng=random.Random(1234))

    def test_two_families_of_two(self, engine):
        """Groups {1,1,2,2}: every match crosses between family 1 and 2"""
        users = make_users([1, 1, 2, 2])
        result = engine.generate_matches(users)

        assert_valid_assignment(result, users)
        group_of = {u.id: u.family_group for u in users}
        for match in result.matches:
            assert {group_of[match.giver_id], group_of[match.receiver_id]} == {1, 2}

    def test_single_family_is_infeasible(self, engine):
        """Groups {1,1,1}: family 1 has 3 members and nobody outside it"""
        with pytest.raises(InfeasibleGrouping) as exc_info:
            engine.generate_matches(make_users([1, 1, 1]))

        assert exc_info.value.family_group == 1
        assert exc_info.value.group_size == 3
        assert exc_info.value.others_count == 0

    def test_one_ready_participant(self, engine):
        users = make_users([1, 2])
        users[1] = users[1].model_copy(update={"ready": False})

        with pytest.raises(InsufficientParticipants) as exc_info:
            engine.generate_matches(users)

        assert exc_info.value.eligible_count == 1
        assert "at least 2 participants" in str(exc_info.value)

    def test_majority_family_is_infeasible(self, engine):
        """Groups {1,1,1,2,2}: family 1 (3) outnumbers everybody else (2)"""
        with pytest.raises(InfeasibleGrouping) as exc_info:
            engine.generate_matches(make_users([1, 1, 1, 2, 2]))

        assert exc_info.value.group_size == 3
        assert exc_info.value.others_count == 2

    def test_three_families(self, engine):
        """Groups {1,1,2,2,3}: largest family (2) <= others (3)"""
        users = make_users([1, 1, 2, 2, 3])
        result = engine.generate_matches(users)

        assert_valid_assignment(result, users)

    def test_zero_retries_never_builds(self, engine):
        users = make_users([1, 1, 2, 2])

        with patch.object(engine, "attempt") as mock_attempt:
            with pytest.raises(RetriesExhausted) as exc_info:
                engine.generate_matches(users, max_retries=0)

        mock_attempt.assert_not_called()
        assert exc_info.value.attempts == 0
        assert exc_info.value.group_counts == {1: 2, 2: 2}
        assert "after 0 attempts" in str(exc_info.value)


class TestInvariants:
    """Properties that hold for every successful draw"""

    @pytest.mark.parametrize("seed", range(25))
    def test_valid_assignment_for_many_seeds(self, seed):
        users = make_users([1, 1, 2, 2, 3, 3, 4, 0])
        result = MatchingEngine(rng=random.Random(seed)).generate_matches(users, max_retries=200)

        assert_valid_assignment(result, users)

    @pytest.mark.parametrize("seed", range(10))
    def test_oversized_family_always_fails(self, seed):
        users = make_users([7, 7, 7, 7, 1, 2, 3])
        engine = MatchingEngine(rng=random.Random(seed))

        with pytest.raises(InfeasibleGrouping):
            engine.generate_matches(users)

    def test_ungrouped_participants_do_not_match_each_other(self):
        """Family 0 is treated like any other family"""
        users = make_users([0, 0, 1, 1])
        result = MatchingEngine(rng=random.Random(7)).generate_matches(users, max_retries=200)

        assert_valid_assignment(result, users)

    def test_two_ungrouped_participants_are_infeasible(self):
        with pytest.raises(InfeasibleGrouping) as exc_info:
            MatchingEngine(rng=random.Random(0)).generate_matches(make_users([0, 0]))

        assert exc_info.value.family_group == 0

    def test_same_seed_same_draw(self):
        users = make_users([1, 1, 2, 2, 3, 3])
        first = MatchingEngine(rng=random.Random(99)).generate_matches(users)
        second = MatchingEngine(rng=random.Random(99)).generate_matches(users)

        assert first.matches == second.matches


class TestResultSynthesis:
    """updated_users covers the whole input collection"""

    @pytest.fixture
    def users(self):
        return [
            Participant(id=1, username="admin", is_admin=True, ready=True),
            Participant(id=2, username="anna", family_group=1, ready=True),
            Participant(id=3, username="bert", family_group=1, ready=True),
            Participant(id=4, username="carl", family_group=2, ready=True),
            Participant(id=5, username="dora", family_group=2, ready=True),
            Participant(id=6, username="emil", family_group=3, ready=False, matched_with=2),
        ]

    def test_updated_users_keeps_everyone(self, users):
        result = MatchingEngine(rng=random.Random(3)).generate_matches(users)

        assert len(result.updated_users) == len(users)
        assert [u.id for u in result.updated_users] == [u.id for u in users]

    def test_ineligible_users_unchanged(self, users):
        result = MatchingEngine(rng=random.Random(3)).generate_matches(users)
        updated = {u.id: u for u in result.updated_users}

        assert updated[1] == users[0]
        assert updated[1].matched_with is None
        assert updated[6] == users[5]
        assert updated[6].matched_with == 2

    def test_matched_with_set_for_givers(self, users):
        result = MatchingEngine(rng=random.Random(3)).generate_matches(users)
        updated = {u.id: u for u in result.updated_users}

        assert len(result.matches) == 4
        for match in result.matches:
            assert updated[match.giver_id].matched_with == match.receiver_id

    def test_input_not_mutated(self, users):
        snapshot = [u.model_copy() for u in users]
        MatchingEngine(rng=random.Random(3)).generate_matches(users)

        assert users == snapshot
        assert all(u.matched_with is None for u in users[:5])

    def test_updated_users_are_new_objects(self, users):
        result = MatchingEngine(rng=random.Random(3)).generate_matches(users)

        for original, updated in zip(users, result.updated_users):
            assert updated is not original

        result.updated_users[0].username = "renamed"
        result.updated_users[5].ready = True
        assert users[0].username == "admin"
        assert users[5].ready is False

    def test_accepts_plain_dicts(self):
        users = [
            {"id": 1, "username": "anna", "familyGroup": 1, "isAdmin": False, "ready": True},
            {"id": 2, "username": "bert", "familyGroup": 2, "isAdmin": False, "ready": True},
            {"id": 3, "username": "root", "familyGroup": 0, "isAdmin": True, "ready": False},
        ]
        result = generate_matches(users, rng=random.Random(5))

        assert sorted((m.giver_id, m.receiver_id) for m in result.matches) == [(1, 2), (2, 1)]
        assert result.updated_users[2].matched_with is None

    def test_reports_attempt_count(self, users):
        result = MatchingEngine(rng=random.Random(3)).generate_matches(users)

        assert 1 <= result.attempts <= 50


class TestAttempt:
    """Single attempt on a fixed ordering"""

    @pytest.fixture
    def engine(self):
        return MatchingEngine(rng=random.Random(0))

    def test_closing_check_rejects_same_family_as_first(self, engine):
        """Last giver shares the first giver's family: attempt is rejected"""
        ordering = make_users([1, 2, 2, 1])

        assert engine.attempt(ordering) is None

    def test_dead_end_returns_none(self, engine):
        """Both family 1 givers need the single family 2 receiver"""
        ordering = make_users([2, 1, 1])

        assert engine.attempt(ordering) is None

    def test_forced_draw(self, engine):
        ordering = make_users([1, 2])

        assert engine.attempt(ordering) == [
            Match(giver_id=1, receiver_id=2),
            Match(giver_id=2, receiver_id=1),
        ]

    def test_successful_attempt_is_valid(self):
        ordering = make_users([1, 2, 3])
        engine = MatchingEngine(rng=random.Random(0))

        for _ in range(20):
            matches = engine.attempt(ordering)
            if matches is not None:
                givers = [m.giver_id for m in matches]
                receivers = [m.receiver_id for m in matches]
                assert givers == [1, 2, 3]
                assert sorted(receivers) == [1, 2, 3]
                assert all(m.giver_id != m.receiver_id for m in matches)

    def test_retries_exhausted_when_every_attempt_fails(self):
        engine = MatchingEngine(rng=random.Random(0))
        users = make_users([1, 1, 2, 2])

        with patch.object(engine, "attempt", return_value=None) as mock_attempt:
            with pytest.raises(RetriesExhausted) as exc_info:
                engine.generate_matches(users, max_retries=5)

        assert mock_attempt.call_count == 5
        assert exc_info.value.attempts == 5


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
