"""Member progression model."""

from pydantic import BaseModel, Field


class MemberProgression(BaseModel):
    """Level and cumulative XP of a member. Level is always derived from total XP."""

    member_id: str = Field(..., description="ID of the member")
    level: int = Field(default=1, ge=1, description="Current level")
    total_xp: int = Field(default=0, ge=0, description="Cumulative experience points")
