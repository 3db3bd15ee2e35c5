"""Unit tests for rotation_service module."""

import asyncio
from collections import Counter
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from src.core import db_client
from src.core.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from src.services import assignment_store, rotation_service


MONDAY = date(2026, 1, 5)


def week(n: int) -> date:
    """A Wednesday inside the n-th period after MONDAY."""
    return MONDAY + timedelta(weeks=n, days=2)


@pytest.mark.unit
class TestCandidateSelection:
    """Tests for the pure candidate helpers."""

    def test_configured_order_first_then_missing_members(self):
        assert rotation_service.build_candidates(["3", "1"], ["1", "2", "3", "4"]) == ["3", "1", "2", "4"]

    def test_departed_members_are_dropped(self):
        assert rotation_service.build_candidates(["9", "2", "1"], ["1", "2"]) == ["2", "1"]

    def test_next_assignee_wraps(self):
        assert rotation_service.next_assignee(["a", "b", "c"], "c") == "a"
        assert rotation_service.next_assignee(["a", "b", "c"], "a") == "b"

    def test_unknown_or_missing_last_falls_back_to_first(self):
        assert rotation_service.next_assignee(["a", "b"], None) == "a"
        assert rotation_service.next_assignee(["a", "b"], "gone") == "a"


@pytest.mark.asyncio
class TestRotateWeekly:
    """Tests for rotate_weekly function."""

    async def test_first_rotation_picks_first_candidate(self, family, seed):
        duty = await seed.duty(family["group_id"])

        record = await rotation_service.rotate_weekly(
            group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(0)
        )

        assert record is not None
        assert record.member_id == family["kids"][0].id
        assert record.week_start == MONDAY
        assert record.week_end == MONDAY + timedelta(days=6)
        assert record.is_active is True

    async def test_same_period_is_a_no_op(self, family, seed):
        duty = await seed.duty(family["group_id"])
        await rotation_service.rotate_weekly(group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(0))

        again = await rotation_service.rotate_weekly(
            group_id=family["group_id"], duty_type_id=duty.id, reference_date=MONDAY + timedelta(days=6)
        )

        assert again is None
        assert await db_client.count_records(collection="weekly_assignments") == 1

    async def test_fair_over_many_periods(self, family, seed):
        duty = await seed.duty(family["group_id"])
        kids = family["kids"]

        holders = []
        for n in range(len(kids) * 4):
            record = await rotation_service.rotate_weekly(
                group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(n)
            )
            holders.append(record.member_id)

        assert set(Counter(holders).values()) == {4}
        assert holders[:3] == [kid.id for kid in kids]

    async def test_previous_records_deactivated_not_deleted(self, family, seed):
        duty = await seed.duty(family["group_id"])
        for n in range(3):
            await rotation_service.rotate_weekly(
                group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(n)
            )

        records = await assignment_store.list_weekly_assignments(group_id=family["group_id"])
        active = [record for record in records if record.is_active]

        assert len(records) == 3
        assert len(active) == 1
        assert active[0].week_start == MONDAY + timedelta(weeks=2)

    async def test_removed_member_falls_back_to_first_candidate(self, family, seed):
        duty = await seed.duty(family["group_id"])
        alice, bob, _ = family["kids"]
        await rotation_service.rotate_weekly(group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(0))
        await rotation_service.rotate_weekly(group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(1))

        # Bob (current holder) becomes an admin and leaves the rotation
        await db_client.update_record(collection="members", record_id=bob.id, data={"role": "admin"})

        record = await rotation_service.rotate_weekly(
            group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(2)
        )

        assert record.member_id == alice.id

    async def test_configured_order_is_followed(self, family, seed):
        duty = await seed.duty(family["group_id"])
        alice, bob, carol = family["kids"]
        await rotation_service.set_rotation_order(
            group_id=family["group_id"],
            duty_type_id=duty.id,
            member_ids=[carol.id, alice.id, bob.id],
            acting_member=family["admin"],
        )

        holders = []
        for n in range(3):
            record = await rotation_service.rotate_weekly(
                group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(n)
            )
            holders.append(record.member_id)

        assert holders == [carol.id, alice.id, bob.id]

    async def test_new_member_appended_to_partial_order(self, family, seed):
        duty = await seed.duty(family["group_id"])
        alice, bob, carol = family["kids"]
        await rotation_service.set_rotation_order(
            group_id=family["group_id"],
            duty_type_id=duty.id,
            member_ids=[bob.id, alice.id],
            acting_member=family["admin"],
        )

        holders = []
        for n in range(3):
            record = await rotation_service.rotate_weekly(
                group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(n)
            )
            holders.append(record.member_id)

        assert holders == [bob.id, alice.id, carol.id]

    async def test_inactive_duty_is_skipped(self, family, seed):
        duty = await seed.duty(family["group_id"], is_active=False)

        assert await rotation_service.rotate_weekly(group_id=family["group_id"], duty_type_id=duty.id) is None

    async def test_no_eligible_members_is_a_no_op(self, seed):
        group_id = await seed.group()
        await seed.admin(group_id)
        duty = await seed.duty(group_id)

        assert await rotation_service.rotate_weekly(group_id=group_id, duty_type_id=duty.id) is None

    async def test_duty_of_other_group_not_found(self, family, seed):
        other_group = await seed.group("The Joneses")
        foreign_duty = await seed.duty(other_group)

        with pytest.raises(NotFoundError):
            await rotation_service.rotate_weekly(group_id=family["group_id"], duty_type_id=foreign_duty.id)

    async def test_rotate_all_covers_every_active_duty(self, family, seed):
        await seed.duty(family["group_id"], "Dish Duty")
        await seed.duty(family["group_id"], "Trash Duty")
        await seed.duty(family["group_id"], "Pet Duty", is_active=False)

        rotated = await rotation_service.rotate_all(group_id=family["group_id"], reference_date=week(0))
        current = await rotation_service.get_current_assignments(group_id=family["group_id"], reference_date=week(0))

        assert len(rotated) == 2
        assert {record.id for record in current} == {record.id for record in rotated}


@pytest.mark.asyncio
class TestConcurrentRotation:
    """Tests for overlapping rotation triggers of the same duty and period."""

    async def test_parallel_triggers_write_one_record(self, family, seed):
        duty = await seed.duty(family["group_id"])

        group_id = family["group_id"]

        results = await asyncio.gather(
            *(
                rotation_service.rotate_weekly(group_id=group_id, duty_type_id=duty.id, reference_date=week(0))
                for _ in range(5)
            )
        )

        records = await db_client.list_records(collection="weekly_assignments")
        assert len(records) == 1
        assert records[0]["is_active"]
        assert [record.id for record in results if record is not None] == [records[0]["id"]]

    async def test_trigger_that_loses_the_race_keeps_winner_active(self, family, seed):
        duty = await seed.duty(family["group_id"])
        winner = await rotation_service.rotate_weekly(
            group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(0)
        )

        # The existence check ran before the winner's record was written
        with patch.object(assignment_store, "has_weekly_assignment", AsyncMock(return_value=False)):
            loser = await rotation_service.rotate_weekly(
                group_id=family["group_id"], duty_type_id=duty.id, reference_date=week(0)
            )

        current = await rotation_service.get_current_assignments(group_id=family["group_id"], reference_date=week(0))
        assert loser is None
        assert [record.id for record in current] == [winner.id]
        assert await db_client.count_records(collection="weekly_assignments") == 1


@pytest.mark.asyncio
class TestRotationOrder:
    """Tests for get_rotation_order and set_rotation_order."""

    async def test_default_order_is_creation_order(self, family, seed):
        duty = await seed.duty(family["group_id"])

        order = await rotation_service.get_rotation_order(group_id=family["group_id"], duty_type_id=duty.id)

        assert order.member_ids == [kid.id for kid in family["kids"]]
        assert order.is_configured is False

    async def test_set_then_get(self, family, seed):
        duty = await seed.duty(family["group_id"])
        ids = [kid.id for kid in reversed(family["kids"])]

        await rotation_service.set_rotation_order(
            group_id=family["group_id"], duty_type_id=duty.id, member_ids=ids, acting_member=family["admin"]
        )
        order = await rotation_service.get_rotation_order(group_id=family["group_id"], duty_type_id=duty.id)

        assert order.member_ids == ids
        assert order.is_configured is True

    async def test_orders_are_per_duty_type(self, family, seed):
        dishes = await seed.duty(family["group_id"], "Dish Duty")
        trash = await seed.duty(family["group_id"], "Trash Duty")
        ids = [kid.id for kid in reversed(family["kids"])]

        await rotation_service.set_rotation_order(
            group_id=family["group_id"], duty_type_id=dishes.id, member_ids=ids, acting_member=family["admin"]
        )
        trash_order = await rotation_service.get_rotation_order(group_id=family["group_id"], duty_type_id=trash.id)

        assert trash_order.is_configured is False

    async def test_empty_order_rejected(self, family, seed):
        duty = await seed.duty(family["group_id"])

        with pytest.raises(InvalidInputError):
            await rotation_service.set_rotation_order(
                group_id=family["group_id"], duty_type_id=duty.id, member_ids=[], acting_member=family["admin"]
            )

    async def test_duplicate_member_rejected(self, family, seed):
        duty = await seed.duty(family["group_id"])
        kid = family["kids"][0]

        with pytest.raises(InvalidInputError):
            await rotation_service.set_rotation_order(
                group_id=family["group_id"],
                duty_type_id=duty.id,
                member_ids=[kid.id, kid.id],
                acting_member=family["admin"],
            )

    async def test_admin_or_stranger_in_order_rejected(self, family, seed):
        duty = await seed.duty(family["group_id"])

        with pytest.raises(InvalidInputError):
            await rotation_service.set_rotation_order(
                group_id=family["group_id"],
                duty_type_id=duty.id,
                member_ids=[family["kids"][0].id, family["admin"].id],
                acting_member=family["admin"],
            )

    async def test_non_admin_cannot_set_order(self, family, seed):
        duty = await seed.duty(family["group_id"])
        kid = family["kids"][0]

        with pytest.raises(PermissionDeniedError):
            await rotation_service.set_rotation_order(
                group_id=family["group_id"], duty_type_id=duty.id, member_ids=[kid.id], acting_member=kid
            )


@pytest.mark.asyncio
class TestDutyTypes:
    """Tests for duty type administration."""

    async def test_create_and_update(self, family):
        duty = await rotation_service.create_duty_type(
            group_id=family["group_id"], name="Trash Duty", acting_member=family["admin"]
        )
        assert duty.icon == "🏠"

        updated = await rotation_service.update_duty_type(
            group_id=family["group_id"], duty_type_id=duty.id, acting_member=family["admin"], is_active=False
        )
        assert updated.is_active is False
        assert updated.name == "Trash Duty"

    async def test_duplicate_name_rejected(self, family):
        await rotation_service.create_duty_type(
            group_id=family["group_id"], name="Trash", acting_member=family["admin"]
        )

        with pytest.raises(InvalidInputError):
            await rotation_service.create_duty_type(
                group_id=family["group_id"], name="Trash", acting_member=family["admin"]
            )

    async def test_members_cannot_create(self, family):
        with pytest.raises(PermissionDeniedError):
            await rotation_service.create_duty_type(
                group_id=family["group_id"], name="Trash", acting_member=family["kids"][0]
            )

    async def test_ensure_default_duty_type_is_idempotent(self, family):
        first = await rotation_service.ensure_default_duty_type(group_id=family["group_id"])
        second = await rotation_service.ensure_default_duty_type(group_id=family["group_id"])

        assert first.id == second.id
        assert first.name == "Dish Duty"
        assert first.icon == "🍽️"
