"""Task definition domain model."""

from pydantic import BaseModel, Field


class TaskDefinition(BaseModel):
    """A chore that can be handed out for a day, or picked up as a bonus."""

    id: str = Field(..., description="Unique task ID from database")
    group_id: str = Field(..., description="ID of the owning family group")
    name: str = Field(..., description="Task name (e.g., 'Empty dishwasher')")
    description: str = Field(default="", description="Detailed task description")
    points: int = Field(default=1, ge=0, description="Points (and base XP) awarded on completion")
    is_active: bool = Field(default=True, description="Inactive tasks are never assigned")
    is_bonus: bool = Field(
        default=False,
        description="Bonus tasks are opt-in, never scheduler-assigned, and award double XP",
    )
