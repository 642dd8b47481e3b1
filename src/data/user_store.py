"""User Store - JSON file backed user collection for the admin shell"""

import json
import os
import tempfile
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from src.data.schema import MatchResult, Participant, ParticipantStats, UserId
from src.matching.matching_engine import MatchingEngine


class UserNotFoundError(KeyError):
    """No user with the requested id"""


class UserExistsError(ValueError):
    """A user with the same username already exists"""


class NotAllReadyError(RuntimeError):
    """Some non-admin participants have not marked themselves ready"""

    def __init__(self, not_ready: int):
        self.not_ready = not_ready
        super().__init__("All participants must be ready before generating matches.")



class UserStore:
    """
    Reads and writes the user collection as a JSON list

    The matching engine never persists anything; this store is the caller
    that loads users, hands them to the engine and saves the result.
    Writes go through a temporary file so a failed write never leaves a
    half-written users file behind.

    Every store on the same file shares one re-entrant lock, held across
    each whole load -> change -> save sequence.
    """

    _locks: Dict[Path, Any] = {}
    _registry_lock = Lock()

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = self._lock_for(self.path)

    @classmethod
    def _lock_for(cls, path: Path):
        key = path.resolve()
        with cls._registry_lock:
            if key not in cls._locks:
                cls._locks[key] = RLock()
            return cls._locks[key]

    def get_users(self) -> List[Participant]:
        """Load all users (empty list when the file does not exist yet)"""
        with self._lock:
            if not self.path.exists():
                logger.warning(f"Users file not found: {self.path}")
                return []

            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)

        return [Participant.model_validate(item) for item in raw]

    def save_users(self, users: List[Participant]):
        """Persist the full user collection"""
        payload = [user.model_dump(mode="json", by_alias=True) for user in users]

        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                os.unlink(tmp_path)
                raise

        logger.info(f"Saved {len(users)} users to {self.path}")

    def get_user(self, user_id: UserId) -> Participant:
        for user in self.get_users():
            if user.id == user_id:
                return user
        raise UserNotFoundError(user_id)

    def add_user(
        self,
        username: str,
        family_group: int = 0,
        is_admin: bool = False,
        **extra: Any
    ) -> Participant:
        """
        Create a new user with the next free numeric id

        Args:
            username: Unique username
            family_group: Family group id (0 = no group)
            is_admin: Create an admin instead of a participant
            **extra: Additional fields stored as-is (email, ...)

        Returns:
            The created user
        """
        with self._lock:
            users = self.get_users()

            if any(user.username == username for user in users):
                raise UserExistsError(f"User {username} already exists")

            numeric_ids = [user.id for user in users if isinstance(user.id, int)]
            user = Participant.model_validate({
                **extra,
                "id": max(numeric_ids, default=0) + 1,
                "username": username,
                "family_group": family_group,
                "is_admin": is_admin,
            })
            users.append(user)
            self.save_users(users)

        logger.info(f"Added user {user.label} with id {user.id}")
        return user

    def delete_user(self, user_id: UserId) -> Participant:
        """
        Remove a user

        Anyone who had drawn the removed user keeps a dangling matched_with;
        reset matches before drawing again.
        """
        with self._lock:
            users = self.get_users()
            remaining = [user for user in users if user.id != user_id]

            if len(remaining) == len(users):
                raise UserNotFoundError(user_id)

            self.save_users(remaining)

        deleted = next(user for user in users if user.id == user_id)
        logger.info(f"Deleted user {deleted.label}")
        return deleted

    def update_user(self, user_id: UserId, **changes) -> Participant:
        """
        Apply field changes to one user and persist

        Args:
            user_id: User identifier
            **changes: Field names (snake_case) and their new values

        Returns:
            The updated user
        """
        with self._lock:
            users = self.get_users()
            updated: Optional[Participant] = None

            for index, user in enumerate(users):
                if user.id == user_id:
                    updated = Participant.model_validate(
                        {**user.model_dump(), **changes}
                    )
                    users[index] = updated
                    break

            if updated is None:
                raise UserNotFoundError(user_id)

            self.save_users(users)
        return updated

    def toggle_ready(self, user_id: UserId) -> Participant:
        with self._lock:
            user = self.get_user(user_id)
            return self.update_user(user_id, ready=not user.ready)

    def set_family_group(self, user_id: UserId, family_group: int) -> Participant:
        if family_group < 0:
            raise ValueError(f"Family group must be >= 0, got {family_group}")
        return self.update_user(user_id, family_group=family_group)

    def reset_matches(self, keep_ready: bool = True) -> int:
        """
        Clear every participant's match

        Args:
            keep_ready: Keep ready flags (False also marks everyone not ready)

        Returns:
            Number of participants reset
        """
        changes = {"matched_with": None} if keep_ready else {"matched_with": None, "ready": False}

        with self._lock:
            users = self.get_users()
            reset_users = [
                user if user.is_admin else user.model_copy(update=changes)
                for user in users
            ]
            self.save_users(reset_users)

        count = sum(1 for user in users if not user.is_admin)
        logger.info(f"Reset matches for {count} participants (keep_ready={keep_ready})")
        return count

    def stats(self) -> ParticipantStats:
        participants = [user for user in self.get_users() if not user.is_admin]
        ready = sum(1 for user in participants if user.ready)
        return ParticipantStats(
            total=len(participants),
            ready=ready,
            not_ready=len(participants) - ready,
            matched=sum(1 for user in participants if user.matched_with is not None),
        )

    def run_matching(
        self,
        engine: MatchingEngine,
        max_retries: Optional[int] = None,
        require_all_ready: bool = True,
        persist: bool = True
    ) -> MatchResult:
        """
        Load users, generate matches and persist them

        The store stays locked for the whole draw so concurrent edits wait
        for it instead of being overwritten. Nothing is written when the
        engine raises, or when persist is False.
        """
        with self._lock:
            users = self.get_users()

            if require_all_ready:
                not_ready = sum(1 for user in users if not user.is_admin and not user.ready)
                if not_ready:
                    raise NotAllReadyError(not_ready)

            result = engine.generate_matches(users, max_retries=max_retries)
            if persist:
                self.save_users(result.updated_users)
        return result
