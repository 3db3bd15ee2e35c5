"""Assignment and completion record models."""

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class AssignmentType(StrEnum):
    """Origin of a completion."""

    DAILY = "daily"
    BONUS = "bonus"


class DailyAssignment(BaseModel):
    """One task handed to one member for one day."""

    id: str = Field(..., description="Unique assignment ID from database")
    group_id: str = Field(..., description="ID of the family group")
    member_id: str = Field(..., description="ID of the assigned member")
    task_id: str = Field(..., description="ID of the assigned task")
    assigned_date: date = Field(..., description="Day the task is due")
    points_earned: int = Field(default=0, ge=0, description="Points awarded on completion")
    is_completed: bool = Field(default=False, description="Whether the member finished the task")
    completed_at: datetime | None = Field(default=None, description="When the task was completed")


class WeeklyAssignment(BaseModel):
    """A rotating duty held by one member for one period."""

    id: str = Field(..., description="Unique assignment ID from database")
    group_id: str = Field(..., description="ID of the family group")
    duty_type_id: str = Field(..., description="ID of the rotating duty type")
    member_id: str = Field(..., description="ID of the member on duty")
    week_start: date = Field(..., description="First day of the period")
    week_end: date = Field(..., description="Last day of the period")
    is_active: bool = Field(default=True, description="Only the latest period's record is active")
    created: str | None = Field(default=None, description="Creation timestamp (ISO format)")


class CompletionRecord(BaseModel):
    """Completion history entry for reporting."""

    id: str
    group_id: str
    member_id: str
    task_id: str
    assignment_type: AssignmentType
    assignment_id: str | None = None
    completed_at: datetime
    completed_date: date
    points_earned: int = 0
    xp_awarded: int = 0
    week_start: date
