"""Rotating weekly duty models."""

from pydantic import BaseModel, Field


class DutyType(BaseModel):
    """A category of weekly responsibility that rotates through the group (e.g. dish duty)."""

    id: str = Field(..., description="Unique duty type ID from database")
    group_id: str = Field(..., description="ID of the owning family group")
    name: str = Field(..., description="Duty name, unique within the group")
    description: str = Field(default="", description="What the duty involves")
    icon: str = Field(default="", description="Display icon")
    is_active: bool = Field(default=True, description="Inactive duty types are not rotated")


class RotationOrder(BaseModel):
    """Cyclic member order for one duty type in one group."""

    group_id: str
    duty_type_id: str
    member_ids: list[str] = Field(default_factory=list, description="Members in rotation order")
    is_configured: bool = Field(default=False, description="False when the default order is in use")
