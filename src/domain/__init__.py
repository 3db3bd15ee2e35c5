"""Domain models and DTOs."""

from src.domain.assignment import AssignmentType, CompletionRecord, DailyAssignment, WeeklyAssignment
from src.domain.duty import DutyType, RotationOrder
from src.domain.member import Member, MemberRole
from src.domain.progression import MemberProgression
from src.domain.task import TaskDefinition


__all__ = [
    "AssignmentType",
    "CompletionRecord",
    "DailyAssignment",
    "DutyType",
    "Member",
    "MemberProgression",
    "MemberRole",
    "RotationOrder",
    "TaskDefinition",
    "WeeklyAssignment",
]
