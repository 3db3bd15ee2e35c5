"""HTTP endpoints for chore assignment, duty rotation and progression.

The acting member is identified by the ``X-Member-Id`` header; authenticating
that header is the job of whatever sits in front of this service.
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from src.core.errors import NotFoundError, PermissionDeniedError, require_privileged
from src.domain.assignment import DailyAssignment, WeeklyAssignment
from src.domain.duty import DutyType, RotationOrder
from src.domain.member import Member
from src.domain.task import TaskDefinition
from src.models.service_models import (
    BonusCompletionResult,
    CompletionResult,
    LeaderboardEntry,
    LevelStats,
    WeeklySummary,
)
from src.services import (
    analytics_service,
    assignment_store,
    bonus_service,
    distribution_service,
    leveling_service,
    rotation_service,
)


logger = logging.getLogger(__name__)

router = APIRouter(tags=["assignments"])


class ManualAssignmentRequest(BaseModel):
    member_id: str = Field(..., description="Member receiving the chore")
    task_id: str = Field(..., description="Chore to assign")
    date: str | None = Field(default=None, description="Day to assign (YYYY-MM-DD, defaults to today)")


class RotationOrderRequest(BaseModel):
    member_ids: list[str] = Field(..., description="Members in the order they take the duty")


class DutyTypeCreateRequest(BaseModel):
    name: str
    description: str = ""
    icon: str | None = None


class DutyTypeUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    icon: str | None = None
    is_active: bool | None = None


class BonusCompletionRequest(BaseModel):
    date: str | None = Field(default=None, description="Day of completion (YYYY-MM-DD, defaults to today)")


async def get_acting_member(x_member_id: str | None = Header(default=None)) -> Member:
    """Resolve the acting member from the X-Member-Id header."""
    if not x_member_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Member-Id header")
    try:
        return await assignment_store.get_member(member_id=x_member_id)
    except NotFoundError as e:
        logger.warning("Unknown acting member", extra={"member_id": x_member_id})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown member") from e


def _require_group_member(acting_member: Member, group_id: str) -> None:
    if acting_member.group_id != group_id:
        msg = "You can only access your own family"
        raise PermissionDeniedError(msg)


# Daily assignments


@router.post("/groups/{group_id}/daily-assignments/distribute")
async def distribute_daily(
    group_id: str,
    date: str | None = None,
    acting_member: Member = Depends(get_acting_member),
) -> list[DailyAssignment]:
    """Run today's (or the given day's) distribution now."""
    require_privileged(acting_member, group_id=group_id)
    return await distribution_service.distribute_daily(group_id=group_id, assigned_date=date)


@router.get("/groups/{group_id}/daily-assignments")
async def list_daily_assignments(
    group_id: str,
    date: str | None = None,
    acting_member: Member = Depends(get_acting_member),
) -> list[DailyAssignment]:
    return await distribution_service.get_daily_assignments(
        group_id=group_id, acting_member=acting_member, assigned_date=date
    )


@router.post("/groups/{group_id}/daily-assignments", status_code=status.HTTP_201_CREATED)
async def assign_manual(
    group_id: str,
    request: ManualAssignmentRequest,
    acting_member: Member = Depends(get_acting_member),
) -> DailyAssignment:
    return await distribution_service.assign_manual(
        group_id=group_id,
        member_id=request.member_id,
        task_id=request.task_id,
        acting_member=acting_member,
        assigned_date=request.date,
    )


@router.delete("/daily-assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assignment(assignment_id: str, acting_member: Member = Depends(get_acting_member)) -> None:
    await distribution_service.delete_assignment(assignment_id=assignment_id, acting_member=acting_member)


@router.post("/daily-assignments/{assignment_id}/complete")
async def complete_assignment(
    assignment_id: str,
    acting_member: Member = Depends(get_acting_member),
) -> CompletionResult:
    return await distribution_service.complete_assignment(assignment_id=assignment_id, acting_member=acting_member)


# Weekly duties


@router.get("/groups/{group_id}/duties")
async def list_duty_types(group_id: str, acting_member: Member = Depends(get_acting_member)) -> list[DutyType]:
    _require_group_member(acting_member, group_id)
    return await rotation_service.list_duty_types(group_id=group_id)


@router.post("/groups/{group_id}/duties", status_code=status.HTTP_201_CREATED)
async def create_duty_type(
    group_id: str,
    request: DutyTypeCreateRequest,
    acting_member: Member = Depends(get_acting_member),
) -> DutyType:
    return await rotation_service.create_duty_type(
        group_id=group_id,
        name=request.name,
        description=request.description,
        icon=request.icon,
        acting_member=acting_member,
    )


@router.patch("/groups/{group_id}/duties/{duty_type_id}")
async def update_duty_type(
    group_id: str,
    duty_type_id: str,
    request: DutyTypeUpdateRequest,
    acting_member: Member = Depends(get_acting_member),
) -> DutyType:
    return await rotation_service.update_duty_type(
        group_id=group_id,
        duty_type_id=duty_type_id,
        acting_member=acting_member,
        **request.model_dump(exclude_unset=True),
    )


@router.get("/groups/{group_id}/duties/current")
async def current_duties(
    group_id: str,
    date: str | None = None,
    acting_member: Member = Depends(get_acting_member),
) -> list[WeeklyAssignment]:
    _require_group_member(acting_member, group_id)
    return await rotation_service.get_current_assignments(group_id=group_id, reference_date=date)


@router.post("/groups/{group_id}/duties/rotate")
async def rotate_all(
    group_id: str,
    date: str | None = None,
    acting_member: Member = Depends(get_acting_member),
) -> list[WeeklyAssignment]:
    """Rotate every active duty now."""
    require_privileged(acting_member, group_id=group_id)
    return await rotation_service.rotate_all(group_id=group_id, reference_date=date)


@router.post("/groups/{group_id}/duties/{duty_type_id}/rotate")
async def rotate_duty(
    group_id: str,
    duty_type_id: str,
    date: str | None = None,
    acting_member: Member = Depends(get_acting_member),
) -> WeeklyAssignment | None:
    require_privileged(acting_member, group_id=group_id)
    return await rotation_service.rotate_weekly(group_id=group_id, duty_type_id=duty_type_id, reference_date=date)


@router.get("/groups/{group_id}/duties/{duty_type_id}/rotation-order")
async def get_rotation_order(
    group_id: str,
    duty_type_id: str,
    acting_member: Member = Depends(get_acting_member),
) -> RotationOrder:
    _require_group_member(acting_member, group_id)
    return await rotation_service.get_rotation_order(group_id=group_id, duty_type_id=duty_type_id)


@router.put("/groups/{group_id}/duties/{duty_type_id}/rotation-order")
async def set_rotation_order(
    group_id: str,
    duty_type_id: str,
    request: RotationOrderRequest,
    acting_member: Member = Depends(get_acting_member),
) -> RotationOrder:
    return await rotation_service.set_rotation_order(
        group_id=group_id,
        duty_type_id=duty_type_id,
        member_ids=request.member_ids,
        acting_member=acting_member,
    )


# Progression


@router.get("/groups/{group_id}/leaderboard")
async def get_leaderboard(group_id: str, acting_member: Member = Depends(get_acting_member)) -> list[LeaderboardEntry]:
    _require_group_member(acting_member, group_id)
    return await leveling_service.get_leaderboard(group_id=group_id)


@router.get("/members/{member_id}/level")
async def get_level_stats(member_id: str, acting_member: Member = Depends(get_acting_member)) -> LevelStats:
    member = await assignment_store.get_member(member_id=member_id)
    _require_group_member(acting_member, member.group_id)
    return await leveling_service.get_level_stats(member_id=member_id)


# Bonus tasks


@router.get("/groups/{group_id}/bonus-tasks")
async def list_bonus_tasks(group_id: str, acting_member: Member = Depends(get_acting_member)) -> list[TaskDefinition]:
    _require_group_member(acting_member, group_id)
    return await bonus_service.list_bonus_tasks(group_id=group_id)


@router.post("/groups/{group_id}/bonus-tasks/{task_id}/complete")
async def complete_bonus_task(
    group_id: str,
    task_id: str,
    request: BonusCompletionRequest | None = None,
    acting_member: Member = Depends(get_acting_member),
) -> BonusCompletionResult:
    return await bonus_service.complete_bonus_task(
        group_id=group_id,
        task_id=task_id,
        acting_member=acting_member,
        completed_date=request.date if request else None,
    )


# Reports


@router.get("/groups/{group_id}/summary")
async def get_weekly_summary(
    group_id: str,
    week: str | None = None,
    acting_member: Member = Depends(get_acting_member),
) -> WeeklySummary:
    _require_group_member(acting_member, group_id)
    return await analytics_service.get_weekly_summary(group_id=group_id, week=week)
