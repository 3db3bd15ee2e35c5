"""Weekly rotation service: cycles shared duties through the group's members.

Each active duty type has at most one active holder per period. The next
holder is the member after the previous one in the rotation order; members
that joined since the order was configured are appended to it, members that
left are skipped.
"""

import logging
from datetime import date, datetime

from src.core.config import constants
from src.core.db_client import DuplicateRecordError
from src.core.errors import InvalidInputError, NotFoundError, require_group_id, require_privileged
from src.core.logging import span
from src.core.periods import get_period_bounds
from src.domain.assignment import WeeklyAssignment
from src.domain.duty import DutyType, RotationOrder
from src.domain.member import Member
from src.services import assignment_store


logger = logging.getLogger(__name__)


def build_candidates(configured_order: list[str], eligible_ids: list[str]) -> list[str]:
    """Merge a configured order with the current eligible members.

    Configured members that are no longer eligible are dropped; eligible
    members missing from the order are appended in creation order.
    """
    eligible = set(eligible_ids)
    candidates = [member_id for member_id in dict.fromkeys(configured_order) if member_id in eligible]
    candidates.extend(member_id for member_id in eligible_ids if member_id not in candidates)
    return candidates


def next_assignee(candidates: list[str], last_member_id: str | None) -> str:
    """Pick the member after ``last_member_id``, wrapping around.

    Falls back to the first candidate when there is no previous holder or the
    previous holder is no longer a candidate.
    """
    if last_member_id in candidates:
        return candidates[(candidates.index(last_member_id) + 1) % len(candidates)]
    return candidates[0]


async def rotate_weekly(
    *,
    group_id: str,
    duty_type_id: str,
    reference_date: date | datetime | str | None = None,
) -> WeeklyAssignment | None:
    """Hand a duty to the next member for the period containing ``reference_date``.

    Args:
        group_id: Family group
        duty_type_id: Duty type to rotate
        reference_date: Any moment inside the target period (defaults to now)

    Returns:
        The new weekly record, or None when nothing was assigned (inactive duty,
        already assigned this period, no eligible members, lost a concurrent race)

    Raises:
        InvalidInputError: If the group identifier or date is invalid
        NotFoundError: If the duty type does not belong to the group
    """
    with span("rotation_service.rotate_weekly"):
        group_id = require_group_id(group_id)
        duty_type = await assignment_store.get_duty_type(group_id=group_id, duty_type_id=duty_type_id)
        if not duty_type.is_active:
            logger.info("Duty type inactive, skipping rotation", extra={"duty_type_id": duty_type_id})
            return None

        period = get_period_bounds(reference_date)
        log_context = {
            "group_id": group_id,
            "duty_type_id": duty_type_id,
            "period_start": period.start_date.isoformat(),
        }

        if await assignment_store.has_weekly_assignment(
            group_id=group_id, duty_type_id=duty_type_id, period_start=period.start_date
        ):
            logger.info("Duty already assigned for this period", extra=log_context)
            return None

        members = await assignment_store.list_eligible_members(group_id=group_id)
        configured = await assignment_store.get_rotation_order(group_id=group_id, duty_type_id=duty_type_id)
        candidates = build_candidates(configured, [member.id for member in members])
        if not candidates:
            logger.info("No eligible members for duty rotation", extra=log_context)
            return None

        last = await assignment_store.find_last_weekly_assignment(group_id=group_id, duty_type_id=duty_type_id)
        member_id = next_assignee(candidates, last.member_id if last else None)

        try:
            record = await assignment_store.create_weekly_assignment(
                group_id=group_id,
                duty_type_id=duty_type_id,
                member_id=member_id,
                period_start=period.start_date,
                period_end=period.end_date,
            )
        except DuplicateRecordError:
            logger.warning("Concurrent rotation detected, skipping", extra=log_context)
            return None

        deactivated = await assignment_store.deactivate_weekly_assignments(
            group_id=group_id,
            duty_type_id=duty_type_id,
            except_period_start=period.start_date,
        )

        logger.info(
            "Rotated weekly duty",
            extra={**log_context, "member_id": member_id, "deactivated": deactivated},
        )
        return record


async def rotate_all(
    *,
    group_id: str,
    reference_date: date | datetime | str | None = None,
) -> list[WeeklyAssignment]:
    """Rotate every active duty type of the group. Returns the records created."""
    with span("rotation_service.rotate_all"):
        group_id = require_group_id(group_id)
        rotated = []
        for duty_type in await assignment_store.list_active_duty_types(group_id=group_id):
            record = await rotate_weekly(group_id=group_id, duty_type_id=duty_type.id, reference_date=reference_date)
            if record is not None:
                rotated.append(record)
        return rotated


async def get_rotation_order(*, group_id: str, duty_type_id: str) -> RotationOrder:
    """Get the rotation order, defaulting to eligible members in creation order."""
    with span("rotation_service.get_rotation_order"):
        group_id = require_group_id(group_id)
        await assignment_store.get_duty_type(group_id=group_id, duty_type_id=duty_type_id)

        configured = await assignment_store.get_rotation_order(group_id=group_id, duty_type_id=duty_type_id)
        if configured:
            return RotationOrder(
                group_id=group_id, duty_type_id=duty_type_id, member_ids=configured, is_configured=True
            )

        members = await assignment_store.list_eligible_members(group_id=group_id)
        return RotationOrder(group_id=group_id, duty_type_id=duty_type_id, member_ids=[m.id for m in members])


async def set_rotation_order(
    *,
    group_id: str,
    duty_type_id: str,
    member_ids: list[str],
    acting_member: Member,
) -> RotationOrder:
    """Store a custom rotation order (admin only).

    Raises:
        PermissionDeniedError: If the acting member is not an admin of the group
        NotFoundError: If the duty type does not belong to the group
        InvalidInputError: If the order is empty, has duplicates, or names
            someone who is not an eligible member of the group
    """
    with span("rotation_service.set_rotation_order"):
        group_id = require_group_id(group_id)
        require_privileged(acting_member, group_id=group_id, action="change the rotation order")
        await assignment_store.get_duty_type(group_id=group_id, duty_type_id=duty_type_id)

        if not member_ids:
            msg = "Rotation order must contain at least one member"
            raise InvalidInputError(msg)
        if len(set(member_ids)) != len(member_ids):
            msg = "Rotation order must not list a member twice"
            raise InvalidInputError(msg)

        eligible = {member.id for member in await assignment_store.list_eligible_members(group_id=group_id)}
        unknown = [member_id for member_id in member_ids if member_id not in eligible]
        if unknown:
            msg = f"Not eligible members of this family: {', '.join(unknown)}"
            raise InvalidInputError(msg)

        await assignment_store.set_rotation_order(group_id=group_id, duty_type_id=duty_type_id, member_ids=member_ids)
        return RotationOrder(group_id=group_id, duty_type_id=duty_type_id, member_ids=member_ids, is_configured=True)


async def get_current_assignments(
    *,
    group_id: str,
    reference_date: date | datetime | str | None = None,
) -> list[WeeklyAssignment]:
    """Active duty holders for the period containing ``reference_date``."""
    group_id = require_group_id(group_id)
    period = get_period_bounds(reference_date)
    return await assignment_store.list_weekly_assignments(
        group_id=group_id, period_start=period.start_date, active_only=True
    )


# Duty type administration


async def list_duty_types(*, group_id: str) -> list[DutyType]:
    return await assignment_store.list_duty_types(group_id=require_group_id(group_id))


async def create_duty_type(
    *,
    group_id: str,
    name: str,
    acting_member: Member,
    description: str = "",
    icon: str | None = None,
) -> DutyType:
    """Create a rotating duty type (admin only).

    Raises:
        InvalidInputError: If the name is blank or already used in the group
    """
    with span("rotation_service.create_duty_type"):
        group_id = require_group_id(group_id)
        require_privileged(acting_member, group_id=group_id, action="create duty types")
        if not name.strip():
            msg = "Duty type name must not be empty"
            raise InvalidInputError(msg)

        try:
            duty_type = await assignment_store.create_duty_type(
                group_id=group_id,
                name=name.strip(),
                description=description,
                icon=icon or constants.FALLBACK_DUTY_ICON,
            )
        except DuplicateRecordError as e:
            msg = f"A duty type named '{name.strip()}' already exists"
            raise InvalidInputError(msg) from e

        logger.info("Created duty type", extra={"group_id": group_id, "duty_type_id": duty_type.id})
        return duty_type


async def update_duty_type(
    *,
    group_id: str,
    duty_type_id: str,
    acting_member: Member,
    name: str | None = None,
    description: str | None = None,
    icon: str | None = None,
    is_active: bool | None = None,
) -> DutyType:
    """Rename, describe, or (de)activate a duty type (admin only)."""
    with span("rotation_service.update_duty_type"):
        group_id = require_group_id(group_id)
        require_privileged(acting_member, group_id=group_id, action="edit duty types")
        duty_type = await assignment_store.get_duty_type(group_id=group_id, duty_type_id=duty_type_id)

        changes: dict[str, str | bool] = {}
        if name is not None:
            if not name.strip():
                msg = "Duty type name must not be empty"
                raise InvalidInputError(msg)
            changes["name"] = name.strip()
        if description is not None:
            changes["description"] = description
        if icon is not None:
            changes["icon"] = icon
        if is_active is not None:
            changes["is_active"] = is_active

        if not changes:
            return duty_type

        try:
            updated = await assignment_store.update_duty_type(duty_type_id=duty_type_id, data=changes)
        except DuplicateRecordError as e:
            msg = f"A duty type named '{changes['name']}' already exists"
            raise InvalidInputError(msg) from e

        logger.info("Updated duty type", extra={"duty_type_id": duty_type_id, "fields": sorted(changes)})
        return updated


async def ensure_default_duty_type(*, group_id: str) -> DutyType:
    """Return the group's default dish duty, creating it on first use."""
    group_id = require_group_id(group_id)
    for duty_type in await assignment_store.list_duty_types(group_id=group_id):
        if duty_type.name == constants.DEFAULT_DUTY_NAME:
            return duty_type

    try:
        duty_type = await assignment_store.create_duty_type(
            group_id=group_id,
            name=constants.DEFAULT_DUTY_NAME,
            description=constants.DEFAULT_DUTY_DESCRIPTION,
            icon=constants.DEFAULT_DUTY_ICON,
        )
    except DuplicateRecordError:
        # Created concurrently
        for existing in await assignment_store.list_duty_types(group_id=group_id):
            if existing.name == constants.DEFAULT_DUTY_NAME:
                return existing
        raise

    logger.info("Created default duty type", extra={"group_id": group_id, "duty_type_id": duty_type.id})
    return duty_type
