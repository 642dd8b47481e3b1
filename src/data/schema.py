"""Data schema definitions for gift exchange participants and matches"""

from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

UserId = Union[int, str]


class Participant(BaseModel):
    """A user of the gift exchange (admins included)"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: UserId
    username: str = ""
    family_group: int = Field(0, alias="familyGroup", ge=0)  # 0 = no family group
    is_admin: bool = Field(False, alias="isAdmin")
    ready: bool = False
    matched_with: Optional[UserId] = Field(None, alias="matchedWith")

    @field_validator("family_group", mode="before")
    @classmethod
    def _missing_group_is_zero(cls, value):
        return 0 if value is None else value

    @property
    def label(self) -> str:
        """Short name used in log lines"""
        name = self.username or str(self.id)
        return f"{name}(Family {self.family_group})"


class Match(BaseModel):
    """A directed giver -> receiver assignment"""

    model_config = ConfigDict(populate_by_name=True)

    giver_id: UserId = Field(..., alias="giverId")
    receiver_id: UserId = Field(..., alias="receiverId")


class MatchResult(BaseModel):
    """Outcome of a successful match generation run"""

    model_config = ConfigDict(populate_by_name=True)

    matches: list[Match] = Field(default_factory=list)
    updated_users: list[Participant] = Field(default_factory=list, alias="updatedUsers")
    attempts: int = 0


class ParticipantStats(BaseModel):
    """Readiness overview over non-admin users"""

    total: int = 0
    ready: int = 0
    not_ready: int = 0
    matched: int = 0

    @property
    def all_ready(self) -> bool:
        return self.total > 0 and self.ready == self.total
