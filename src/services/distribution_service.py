"""Daily distribution service: hands each eligible member one task per day."""

import logging
import random
from datetime import UTC, date, datetime

from src.core.config import constants
from src.core.db_client import DuplicateRecordError
from src.core.errors import (
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    require_group_id,
    require_privileged,
)
from src.core.logging import span
from src.core.periods import get_week_start_date, parse_period_date
from src.domain.assignment import AssignmentType, DailyAssignment
from src.domain.member import Member
from src.domain.task import TaskDefinition
from src.models.service_models import CompletionResult
from src.services import assignment_store, leveling_service


logger = logging.getLogger(__name__)


def _resolve_date(assigned_date: date | datetime | str | None) -> date:
    if assigned_date is None:
        return datetime.now(UTC).date()
    return parse_period_date(assigned_date)


def _pick_tasks(tasks: list[TaskDefinition], member_count: int, rng: random.Random) -> list[TaskDefinition]:
    """Choose one task per member, spreading tasks as evenly as possible.

    Member i gets shuffled[i mod len]; a task already handed out this round is
    swapped for the first unused one while any remain.
    """
    shuffled = list(tasks)
    rng.shuffle(shuffled)

    used: set[str] = set()
    picks = []
    for index in range(member_count):
        task = shuffled[index % len(shuffled)]
        if task.id in used:
            task = next((t for t in shuffled if t.id not in used), task)
        used.add(task.id)
        picks.append(task)
    return picks


async def distribute_daily(
    *,
    group_id: str,
    assigned_date: date | datetime | str | None = None,
    rng: random.Random | None = None,
) -> list[DailyAssignment]:
    """Assign one active task to every eligible member for a date.

    Running it again for a date that already has assignments changes nothing.

    Args:
        group_id: Family group to distribute for
        assigned_date: Day to assign (defaults to today, UTC)
        rng: Random source for the task shuffle (for reproducible runs)

    Returns:
        The records created by this run (empty when nothing was done)

    Raises:
        InvalidInputError: If the group identifier is empty or the date is malformed
    """
    with span("distribution_service.distribute_daily"):
        group_id = require_group_id(group_id)
        day = _resolve_date(assigned_date)

        if await assignment_store.has_daily_assignments(group_id=group_id, assigned_date=day):
            logger.info("Daily chores already assigned", extra={"group_id": group_id, "date": day.isoformat()})
            return []

        members = await assignment_store.list_eligible_members(group_id=group_id)
        if not members:
            logger.info("No eligible members to assign chores to", extra={"group_id": group_id})
            return []

        tasks = await assignment_store.list_active_tasks(group_id=group_id)
        if not tasks:
            logger.info("No active chores to assign", extra={"group_id": group_id})
            return []

        picks = _pick_tasks(tasks, len(members), rng or random.Random())  # noqa: S311 - not security sensitive

        created: list[DailyAssignment] = []
        for member, task in zip(members, picks, strict=True):
            try:
                record = await assignment_store.create_daily_assignment(
                    group_id=group_id,
                    member_id=member.id,
                    task=task,
                    assigned_date=day,
                )
            except DuplicateRecordError:
                logger.warning(
                    "Concurrent distribution detected, stopping",
                    extra={"group_id": group_id, "date": day.isoformat(), "member_id": member.id},
                )
                return created
            created.append(record)

        logger.info(
            "Assigned daily chores",
            extra={"group_id": group_id, "date": day.isoformat(), "count": len(created)},
        )
        return created


async def assign_manual(
    *,
    group_id: str,
    member_id: str,
    task_id: str,
    acting_member: Member,
    assigned_date: date | datetime | str | None = None,
) -> DailyAssignment:
    """Override a member's task for a day (admin only).

    Replaces the existing record for that member and date (resetting its
    completion) or creates one.

    Raises:
        PermissionDeniedError: If the acting member is not an admin of the group
        NotFoundError: If the member or task is not in the group
        InvalidInputError: If the member is not eligible or the task is inactive
    """
    with span("distribution_service.assign_manual"):
        group_id = require_group_id(group_id)
        require_privileged(acting_member, group_id=group_id, action="assign chores manually")
        day = _resolve_date(assigned_date)

        member = await assignment_store.get_member(member_id=member_id)
        if member.group_id != group_id:
            msg = f"Member {member_id} not found in group {group_id}"
            raise NotFoundError(msg)
        if not member.is_eligible:
            msg = f"{member.name} cannot receive chores"
            raise InvalidInputError(msg)

        task = await assignment_store.get_task(group_id=group_id, task_id=task_id)
        if not task.is_active:
            msg = f"Chore '{task.name}' is not active"
            raise InvalidInputError(msg)

        existing = await assignment_store.find_daily_assignment(
            group_id=group_id, member_id=member_id, assigned_date=day
        )
        if existing is None:
            try:
                record = await assignment_store.create_daily_assignment(
                    group_id=group_id,
                    member_id=member_id,
                    task=task,
                    assigned_date=day,
                )
            except DuplicateRecordError:
                existing = await assignment_store.find_daily_assignment(
                    group_id=group_id, member_id=member_id, assigned_date=day
                )
                if existing is None:
                    raise
            else:
                logger.info("Manually assigned chore", extra={"assignment_id": record.id, "member_id": member_id})
                return record

        record = await assignment_store.update_daily_assignment(
            assignment_id=existing.id,
            data={"task_id": task.id, "points_earned": task.points, "is_completed": False, "completed_at": None},
        )
        logger.info("Replaced daily assignment", extra={"assignment_id": record.id, "member_id": member_id})
        return record


async def delete_assignment(*, assignment_id: str, acting_member: Member) -> None:
    """Delete a daily record (admin only)."""
    with span("distribution_service.delete_assignment"):
        record = await assignment_store.get_daily_assignment(assignment_id=assignment_id)
        if record.group_id != acting_member.group_id:
            msg = f"Assignment {assignment_id} not found"
            raise NotFoundError(msg)
        require_privileged(acting_member, group_id=record.group_id, action="delete assignments")

        await assignment_store.delete_daily_assignment(assignment_id=assignment_id)
        logger.info("Deleted daily assignment", extra={"assignment_id": assignment_id})


async def get_daily_assignments(
    *,
    group_id: str,
    acting_member: Member,
    assigned_date: date | datetime | str | None = None,
) -> list[DailyAssignment]:
    """List a day's records: the whole group for admins, own records otherwise."""
    with span("distribution_service.get_daily_assignments"):
        group_id = require_group_id(group_id)
        if acting_member.group_id != group_id:
            msg = "You can only view assignments of your own family"
            raise PermissionDeniedError(msg)
        day = _resolve_date(assigned_date)

        return await assignment_store.list_daily_assignments(
            group_id=group_id,
            start_date=day,
            end_date=day,
            member_id=None if acting_member.is_privileged else acting_member.id,
        )


async def complete_assignment(*, assignment_id: str, acting_member: Member) -> CompletionResult:
    """Mark a daily record completed and award its points as XP.

    Args:
        assignment_id: Daily assignment to complete
        acting_member: The assignee, or an admin of the same group

    Returns:
        CompletionResult with the updated record and the experience award

    Raises:
        NotFoundError: If the record does not exist in the actor's group
        PermissionDeniedError: If a non-admin completes someone else's record
        InvalidStateTransitionError: If the record is already completed
        InvalidInputError: If the assignee can no longer earn XP (nothing is written)
    """
    with span("distribution_service.complete_assignment"):
        record = await assignment_store.get_daily_assignment(assignment_id=assignment_id)
        if record.group_id != acting_member.group_id:
            msg = f"Assignment {assignment_id} not found"
            raise NotFoundError(msg)
        if not acting_member.is_privileged and record.member_id != acting_member.id:
            msg = "You can only complete your own assignments"
            raise PermissionDeniedError(msg)
        if record.is_completed:
            msg = "Assignment already completed"
            raise InvalidStateTransitionError(msg)

        assignee = await assignment_store.get_member(member_id=record.member_id)
        if not assignee.is_eligible:
            msg = f"{assignee.name} can no longer earn points for chores"
            raise InvalidInputError(msg)

        completed_at = datetime.now(UTC)
        if not await assignment_store.mark_daily_assignment_completed(
            assignment_id=assignment_id, completed_at=completed_at
        ):
            msg = "Assignment already completed"
            raise InvalidStateTransitionError(msg)

        await assignment_store.record_completion(
            group_id=record.group_id,
            member_id=record.member_id,
            task_id=record.task_id,
            assignment_type=AssignmentType.DAILY,
            assignment_id=record.id,
            completed_at=completed_at,
            completed_date=completed_at.date(),
            week_start=get_week_start_date(completed_at),
            points_earned=record.points_earned,
            xp_awarded=record.points_earned * constants.REGULAR_XP_MULTIPLIER,
        )

        xp = record.points_earned * constants.REGULAR_XP_MULTIPLIER
        award = await leveling_service.award_experience(member_id=record.member_id, amount=xp)

        logger.info(
            "Completed daily assignment",
            extra={"assignment_id": assignment_id, "member_id": record.member_id, "points": record.points_earned},
        )
        updated = await assignment_store.get_daily_assignment(assignment_id=assignment_id)
        return CompletionResult(assignment=updated, award=award)
