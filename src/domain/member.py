"""Member domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class MemberRole(StrEnum):
    """Member role in the family group."""

    ADMIN = "admin"
    MEMBER = "member"


class Member(BaseModel):
    """Member data transfer object.

    Members are owned by the account layer; the engines only read them.
    """

    id: str = Field(..., description="Unique member ID from database")
    group_id: str = Field(..., description="ID of the family group the member belongs to")
    name: str = Field(..., description="Display name of the member")
    role: MemberRole = Field(default=MemberRole.MEMBER, description="Member role in the group")

    @property
    def is_eligible(self) -> bool:
        """Whether the member takes part in distribution, rotation and the leaderboard."""
        return self.role == MemberRole.MEMBER

    @property
    def is_privileged(self) -> bool:
        """Whether the member may act on other members' records."""
        return self.role == MemberRole.ADMIN
