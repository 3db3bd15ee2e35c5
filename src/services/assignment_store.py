"""Assignment store: group-scoped persistence operations used by the engines.

Every read and write takes the family group explicitly. Each write is atomic
for its own record; no operation here spans several records in a transaction.
Unique indexes (see src.core.schema) make concurrent duplicate writes fail
with DuplicateRecordError instead of silently double-assigning.
"""

import logging
from datetime import date, datetime
from typing import Any

from src.core import db_client
from src.core.db_client import DuplicateRecordError, RecordNotFoundError, sanitize_param
from src.core.errors import NotFoundError
from src.domain.assignment import AssignmentType, CompletionRecord, DailyAssignment, WeeklyAssignment
from src.domain.duty import DutyType
from src.domain.member import Member, MemberRole
from src.domain.progression import MemberProgression
from src.domain.task import TaskDefinition


logger = logging.getLogger(__name__)


def _group_filter(group_id: str) -> str:
    return f'group_id = "{sanitize_param(group_id)}"'


# Groups & members


async def list_groups() -> list[str]:
    """Return the IDs of every family group."""
    records = await db_client.list_records(collection="household_groups")
    return [record["id"] for record in records]


async def get_member(*, member_id: str) -> Member:
    """Fetch a member by ID.

    Raises:
        NotFoundError: If the member does not exist
    """
    try:
        record = await db_client.get_record(collection="members", record_id=member_id)
    except RecordNotFoundError as e:
        msg = f"Member {member_id} not found"
        raise NotFoundError(msg) from e
    return Member(**record)


async def list_eligible_members(*, group_id: str) -> list[Member]:
    """List the group's non-administrative members in creation order."""
    records = await db_client.list_records(
        collection="members",
        filter_query=f'{_group_filter(group_id)} && role = "{MemberRole.MEMBER}"',
        sort="id ASC",
    )
    return [Member(**record) for record in records]


# Tasks


async def list_active_tasks(*, group_id: str) -> list[TaskDefinition]:
    """List active, scheduler-assignable (non-bonus) tasks."""
    records = await db_client.list_records(
        collection="tasks",
        filter_query=f'{_group_filter(group_id)} && is_active = "1" && is_bonus = "0"',
        sort="id ASC",
    )
    return [TaskDefinition(**record) for record in records]


async def list_bonus_tasks(*, group_id: str) -> list[TaskDefinition]:
    """List active bonus tasks members can opt into."""
    records = await db_client.list_records(
        collection="tasks",
        filter_query=f'{_group_filter(group_id)} && is_active = "1" && is_bonus = "1"',
        sort="points DESC",
    )
    return [TaskDefinition(**record) for record in records]


async def get_task(*, group_id: str, task_id: str) -> TaskDefinition:
    """Fetch a task that belongs to the group.

    Raises:
        NotFoundError: If the task is missing or owned by another group
    """
    try:
        record = await db_client.get_record(collection="tasks", record_id=task_id)
    except RecordNotFoundError as e:
        msg = f"Task {task_id} not found"
        raise NotFoundError(msg) from e
    task = TaskDefinition(**record)
    if task.group_id != group_id:
        msg = f"Task {task_id} not found in group {group_id}"
        raise NotFoundError(msg)
    return task


# Duty types & rotation order


async def list_active_duty_types(*, group_id: str) -> list[DutyType]:
    records = await db_client.list_records(
        collection="duty_types",
        filter_query=f'{_group_filter(group_id)} && is_active = "1"',
        sort="name ASC",
    )
    return [DutyType(**record) for record in records]


async def list_duty_types(*, group_id: str) -> list[DutyType]:
    records = await db_client.list_records(
        collection="duty_types", filter_query=_group_filter(group_id), sort="name ASC"
    )
    return [DutyType(**record) for record in records]


async def get_duty_type(*, group_id: str, duty_type_id: str) -> DutyType:
    """Fetch a duty type that belongs to the group.

    Raises:
        NotFoundError: If the duty type is missing or owned by another group
    """
    try:
        record = await db_client.get_record(collection="duty_types", record_id=duty_type_id)
    except RecordNotFoundError as e:
        msg = f"Duty type {duty_type_id} not found"
        raise NotFoundError(msg) from e
    duty_type = DutyType(**record)
    if duty_type.group_id != group_id:
        msg = f"Duty type {duty_type_id} not found in group {group_id}"
        raise NotFoundError(msg)
    return duty_type


async def create_duty_type(*, group_id: str, name: str, description: str, icon: str) -> DutyType:
    """Create a duty type. Raises DuplicateRecordError if the name is taken in the group."""
    record = await db_client.create_record(
        collection="duty_types",
        data={"group_id": group_id, "name": name, "description": description, "icon": icon, "is_active": True},
    )
    return DutyType(**record)


async def update_duty_type(*, duty_type_id: str, data: dict[str, Any]) -> DutyType:
    record = await db_client.update_record(collection="duty_types", record_id=duty_type_id, data=data)
    return DutyType(**record)


async def get_rotation_order(*, group_id: str, duty_type_id: str) -> list[str]:
    """Return the configured member order, or an empty list when unconfigured."""
    records = await db_client.list_records(
        collection="rotation_orders",
        filter_query=f'{_group_filter(group_id)} && duty_type_id = "{sanitize_param(duty_type_id)}"',
        sort="position ASC",
    )
    return [record["member_id"] for record in records]


async def set_rotation_order(*, group_id: str, duty_type_id: str, member_ids: list[str]) -> None:
    """Replace the configured order for (group, duty type)."""
    await db_client.delete_records(
        collection="rotation_orders",
        filter_query=f'{_group_filter(group_id)} && duty_type_id = "{sanitize_param(duty_type_id)}"',
    )
    for position, member_id in enumerate(member_ids):
        await db_client.create_record(
            collection="rotation_orders",
            data={"group_id": group_id, "duty_type_id": duty_type_id, "member_id": member_id, "position": position},
        )
    logger.info(
        "Rotation order stored",
        extra={"group_id": group_id, "duty_type_id": duty_type_id, "size": len(member_ids)},
    )


# Daily assignments


async def has_daily_assignments(*, group_id: str, assigned_date: date) -> bool:
    count = await db_client.count_records(
        collection="daily_assignments",
        filter_query=f'{_group_filter(group_id)} && assigned_date = "{assigned_date.isoformat()}"',
    )
    return count > 0


async def create_daily_assignment(
    *,
    group_id: str,
    member_id: str,
    task: TaskDefinition,
    assigned_date: date,
) -> DailyAssignment:
    """Create a daily record. Raises DuplicateRecordError if the member already has one that day."""
    record = await db_client.create_record(
        collection="daily_assignments",
        data={
            "group_id": group_id,
            "member_id": member_id,
            "task_id": task.id,
            "assigned_date": assigned_date,
            "points_earned": task.points,
            "is_completed": False,
        },
    )
    return DailyAssignment(**record)


async def get_daily_assignment(*, assignment_id: str) -> DailyAssignment:
    try:
        record = await db_client.get_record(collection="daily_assignments", record_id=assignment_id)
    except RecordNotFoundError as e:
        msg = f"Assignment {assignment_id} not found"
        raise NotFoundError(msg) from e
    return DailyAssignment(**record)


async def find_daily_assignment(*, group_id: str, member_id: str, assigned_date: date) -> DailyAssignment | None:
    record = await db_client.get_first_record(
        collection="daily_assignments",
        filter_query=(
            f'{_group_filter(group_id)} && member_id = "{sanitize_param(member_id)}"'
            f' && assigned_date = "{assigned_date.isoformat()}"'
        ),
    )
    return DailyAssignment(**record) if record else None


async def list_daily_assignments(
    *,
    group_id: str,
    start_date: date,
    end_date: date,
    member_id: str | None = None,
) -> list[DailyAssignment]:
    """List daily records in an inclusive date range, optionally for one member."""
    filter_query = (
        f'{_group_filter(group_id)} && assigned_date >= "{start_date.isoformat()}"'
        f' && assigned_date <= "{end_date.isoformat()}"'
    )
    if member_id:
        filter_query += f' && member_id = "{sanitize_param(member_id)}"'
    records = await db_client.list_records(
        collection="daily_assignments", filter_query=filter_query, sort="assigned_date ASC"
    )
    return [DailyAssignment(**record) for record in records]


async def update_daily_assignment(*, assignment_id: str, data: dict[str, Any]) -> DailyAssignment:
    record = await db_client.update_record(collection="daily_assignments", record_id=assignment_id, data=data)
    return DailyAssignment(**record)


async def mark_daily_assignment_completed(*, assignment_id: str, completed_at: datetime) -> bool:
    """Flip an open record to completed. Returns False if it was already completed."""
    changed = await db_client.update_records(
        collection="daily_assignments",
        filter_query=f'id = "{sanitize_param(assignment_id)}" && is_completed = "0"',
        data={"is_completed": True, "completed_at": completed_at},
    )
    return changed > 0


async def delete_daily_assignment(*, assignment_id: str) -> None:
    try:
        await db_client.delete_record(collection="daily_assignments", record_id=assignment_id)
    except RecordNotFoundError as e:
        msg = f"Assignment {assignment_id} not found"
        raise NotFoundError(msg) from e


# Weekly assignments


def _duty_filter(group_id: str, duty_type_id: str) -> str:
    return f'{_group_filter(group_id)} && duty_type_id = "{sanitize_param(duty_type_id)}"'


async def find_last_weekly_assignment(*, group_id: str, duty_type_id: str) -> WeeklyAssignment | None:
    """Return the most recently created record for (group, duty type), active or not."""
    record = await db_client.get_first_record(
        collection="weekly_assignments",
        filter_query=_duty_filter(group_id, duty_type_id),
        sort="id DESC",
    )
    return WeeklyAssignment(**record) if record else None


async def has_weekly_assignment(*, group_id: str, duty_type_id: str, period_start: date) -> bool:
    count = await db_client.count_records(
        collection="weekly_assignments",
        filter_query=f'{_duty_filter(group_id, duty_type_id)} && week_start = "{period_start.isoformat()}"',
    )
    return count > 0


async def deactivate_weekly_assignments(
    *,
    group_id: str,
    duty_type_id: str,
    except_period_start: date | None = None,
) -> int:
    """Deactivate active records for (group, duty type); rows are kept for history."""
    filter_query = f'{_duty_filter(group_id, duty_type_id)} && is_active = "1"'
    if except_period_start is not None:
        filter_query += f' && week_start != "{except_period_start.isoformat()}"'
    return await db_client.update_records(
        collection="weekly_assignments", filter_query=filter_query, data={"is_active": False}
    )


async def create_weekly_assignment(
    *,
    group_id: str,
    duty_type_id: str,
    member_id: str,
    period_start: date,
    period_end: date,
) -> WeeklyAssignment:
    """Create an active record. Raises DuplicateRecordError if the period is already assigned."""
    record = await db_client.create_record(
        collection="weekly_assignments",
        data={
            "group_id": group_id,
            "duty_type_id": duty_type_id,
            "member_id": member_id,
            "week_start": period_start,
            "week_end": period_end,
            "is_active": True,
        },
    )
    return WeeklyAssignment(**record)


async def list_weekly_assignments(
    *,
    group_id: str,
    period_start: date | None = None,
    active_only: bool = False,
) -> list[WeeklyAssignment]:
    filter_query = _group_filter(group_id)
    if period_start is not None:
        filter_query += f' && week_start = "{period_start.isoformat()}"'
    if active_only:
        filter_query += ' && is_active = "1"'
    records = await db_client.list_records(collection="weekly_assignments", filter_query=filter_query)
    return [WeeklyAssignment(**record) for record in records]


# Progression


def _to_progression(record: dict[str, Any]) -> MemberProgression:
    return MemberProgression(member_id=record["member_id"], level=record["level"], total_xp=record["total_xp"])


async def _find_progression_record(member_id: str) -> dict[str, Any] | None:
    return await db_client.get_first_record(
        collection="progressions",
        filter_query=f'member_id = "{sanitize_param(member_id)}"',
    )


async def get_progression(*, member_id: str) -> MemberProgression:
    """Return the member's progression, creating the level 1 / 0 XP default if absent."""
    record = await _find_progression_record(member_id)
    if record is None:
        try:
            record = await db_client.create_record(
                collection="progressions",
                data={"member_id": member_id, "level": 1, "total_xp": 0},
            )
            logger.info("Created default progression", extra={"member_id": member_id})
        except DuplicateRecordError:
            # Created concurrently; read the winner's row
            record = await _find_progression_record(member_id)
            if record is None:
                raise
    return _to_progression(record)


async def find_progressions(*, member_ids: list[str]) -> dict[str, MemberProgression]:
    """Read-only bulk lookup; members without a row get the default progression."""
    if not member_ids:
        return {}
    id_filter = " || ".join(f'member_id = "{sanitize_param(member_id)}"' for member_id in member_ids)
    records = await db_client.list_records(collection="progressions", filter_query=f"({id_filter})")
    found = {record["member_id"]: _to_progression(record) for record in records}
    return {member_id: found.get(member_id, MemberProgression(member_id=member_id)) for member_id in member_ids}


async def set_progression(*, member_id: str, level: int, total_xp: int) -> MemberProgression:
    """Persist level and total XP for a member (creating the row if needed)."""
    record = await _find_progression_record(member_id)
    if record is None:
        await get_progression(member_id=member_id)
        record = await _find_progression_record(member_id)
    updated = await db_client.update_record(
        collection="progressions",
        record_id=record["id"],
        data={"level": level, "total_xp": total_xp},
    )
    return _to_progression(updated)


async def increment_total_xp(*, member_id: str, amount: int) -> MemberProgression:
    """Atomically add XP to the member's total and return the new state (level untouched)."""
    await get_progression(member_id=member_id)
    record = await _find_progression_record(member_id)
    updated = await db_client.increment_field(
        collection="progressions",
        record_id=record["id"],
        field="total_xp",
        amount=amount,
    )
    return _to_progression(updated)


# Completion history


async def record_completion(
    *,
    group_id: str,
    member_id: str,
    task_id: str,
    assignment_type: AssignmentType,
    completed_at: datetime,
    completed_date: date,
    week_start: date,
    points_earned: int,
    xp_awarded: int,
    assignment_id: str | None = None,
) -> CompletionRecord:
    """Append a completion history row. Bonus rows are unique per (member, task, day)."""
    record = await db_client.create_record(
        collection="completion_history",
        data={
            "group_id": group_id,
            "member_id": member_id,
            "task_id": task_id,
            "assignment_type": assignment_type,
            "assignment_id": assignment_id,
            "completed_at": completed_at,
            "completed_date": completed_date,
            "points_earned": points_earned,
            "xp_awarded": xp_awarded,
            "week_start": week_start,
        },
    )
    return CompletionRecord(**record)


async def list_completions(*, group_id: str, week_start: date) -> list[CompletionRecord]:
    records = await db_client.list_records(
        collection="completion_history",
        filter_query=f'{_group_filter(group_id)} && week_start = "{week_start.isoformat()}"',
        sort="completed_at ASC",
    )
    return [CompletionRecord(**record) for record in records]


async def has_bonus_completion(*, member_id: str, task_id: str, completed_date: date) -> bool:
    count = await db_client.count_records(
        collection="completion_history",
        filter_query=(
            f'member_id = "{sanitize_param(member_id)}" && task_id = "{sanitize_param(task_id)}"'
            f' && completed_date = "{completed_date.isoformat()}" && assignment_type = "{AssignmentType.BONUS}"'
        ),
    )
    return count > 0
