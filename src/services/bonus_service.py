"""Bonus task service: opt-in chores that pay double XP."""

import logging
from datetime import UTC, date, datetime

from src.core.config import constants
from src.core.db_client import DuplicateRecordError
from src.core.errors import InvalidInputError, InvalidStateTransitionError, PermissionDeniedError, require_group_id
from src.core.logging import span
from src.core.periods import get_week_start_date, parse_period_date
from src.domain.assignment import AssignmentType
from src.domain.member import Member
from src.domain.task import TaskDefinition
from src.models.service_models import BonusCompletionResult
from src.services import assignment_store, leveling_service


logger = logging.getLogger(__name__)


async def list_bonus_tasks(*, group_id: str) -> list[TaskDefinition]:
    """List the group's active bonus tasks, highest paying first."""
    return await assignment_store.list_bonus_tasks(group_id=require_group_id(group_id))


async def complete_bonus_task(
    *,
    group_id: str,
    task_id: str,
    acting_member: Member,
    completed_date: date | datetime | str | None = None,
) -> BonusCompletionResult:
    """Record a bonus task completion and award double XP.

    A member can claim a given bonus task once per day.

    Args:
        group_id: Family group
        task_id: Bonus task completed
        acting_member: Member who did the task
        completed_date: Day of completion (defaults to today, UTC)

    Returns:
        BonusCompletionResult with the history row and the experience award

    Raises:
        PermissionDeniedError: If the member belongs to another group
        NotFoundError: If the task does not belong to the group
        InvalidInputError: If the task is not an active bonus task, or the
            member cannot earn XP
        InvalidStateTransitionError: If the member already claimed it that day
    """
    with span("bonus_service.complete_bonus_task"):
        group_id = require_group_id(group_id)
        if acting_member.group_id != group_id:
            msg = "You can only complete bonus tasks of your own family"
            raise PermissionDeniedError(msg)
        if not acting_member.is_eligible:
            msg = "Only family members earn XP from bonus tasks"
            raise InvalidInputError(msg)

        task = await assignment_store.get_task(group_id=group_id, task_id=task_id)
        if not task.is_bonus or not task.is_active:
            msg = f"'{task.name}' is not an available bonus task"
            raise InvalidInputError(msg)

        now = datetime.now(UTC)
        day = now.date() if completed_date is None else parse_period_date(completed_date)

        if await assignment_store.has_bonus_completion(member_id=acting_member.id, task_id=task.id, completed_date=day):
            msg = f"'{task.name}' was already completed today"
            raise InvalidStateTransitionError(msg)

        xp = task.points * constants.BONUS_XP_MULTIPLIER
        try:
            completion = await assignment_store.record_completion(
                group_id=group_id,
                member_id=acting_member.id,
                task_id=task.id,
                assignment_type=AssignmentType.BONUS,
                completed_at=now,
                completed_date=day,
                week_start=get_week_start_date(day),
                points_earned=task.points,
                xp_awarded=xp,
            )
        except DuplicateRecordError as e:
            msg = f"'{task.name}' was already completed today"
            raise InvalidStateTransitionError(msg) from e

        award = await leveling_service.award_experience(member_id=acting_member.id, amount=xp)

        logger.info(
            "Completed bonus task",
            extra={"member_id": acting_member.id, "task_id": task.id, "xp": xp, "leveled_up": award.leveled_up},
        )
        return BonusCompletionResult(completion=completion, award=award)
