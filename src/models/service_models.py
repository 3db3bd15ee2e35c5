"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from datetime import date

from pydantic import BaseModel

from src.domain.assignment import CompletionRecord, DailyAssignment, WeeklyAssignment


class XPProgress(BaseModel):
    """Progress inside the current level."""

    current_xp: int
    needed_xp: int
    percentage: int


class ExperienceAward(BaseModel):
    """Outcome of awarding experience to a member."""

    member_id: str
    leveled_up: bool
    old_level: int
    new_level: int
    xp_gained: int
    total_xp: int
    progress: XPProgress


class LevelStats(BaseModel):
    """Current level overview for one member."""

    member_id: str
    level: int
    total_xp: int
    title: str
    progress: XPProgress


class LeaderboardEntry(BaseModel):
    """Member entry in the level leaderboard."""

    rank: int
    member_id: str
    member_name: str
    level: int
    total_xp: int
    title: str
    progress: XPProgress


class CompletionResult(BaseModel):
    """A completed daily assignment and the experience it earned."""

    assignment: DailyAssignment
    award: ExperienceAward


class BonusCompletionResult(BaseModel):
    """A completed bonus task and the (doubled) experience it earned."""

    completion: CompletionRecord
    award: ExperienceAward


class MemberWeekStats(BaseModel):
    """Per-member totals for one period."""

    member_id: str
    member_name: str
    total_assigned: int = 0
    total_completed: int = 0
    total_points: int = 0
    bonus_completed: int = 0


class WeeklySummary(BaseModel):
    """Household report for one period."""

    group_id: str
    week_start: date
    week_end: date
    weekly_assignments: list[WeeklyAssignment]
    daily_assignments: list[DailyAssignment]
    completions: list[CompletionRecord]
    stats: list[MemberWeekStats]
