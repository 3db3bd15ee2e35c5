"""Unit tests for distribution_service module."""

import asyncio
import random
from collections import Counter
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from src.core import db_client
from src.core.errors import InvalidInputError, InvalidStateTransitionError, NotFoundError, PermissionDeniedError
from src.services import assignment_store, distribution_service


DAY = date(2026, 3, 4)


@pytest.mark.asyncio
class TestDistributeDaily:
    """Tests for distribute_daily function."""

    async def test_every_eligible_member_gets_one_task(self, family, seed):
        group_id = family["group_id"]
        await seed.task(group_id, "Dishes", points=10)
        await seed.task(group_id, "Vacuum", points=15)
        await seed.task(group_id, "Trash", points=5)

        created = await distribution_service.distribute_daily(
            group_id=group_id, assigned_date=DAY, rng=random.Random(1)
        )

        assert len(created) == 3
        assert {record.member_id for record in created} == {kid.id for kid in family["kids"]}
        assert len({record.task_id for record in created}) == 3
        assert all(not record.is_completed for record in created)

    async def test_points_copied_from_task(self, family, seed):
        task = await seed.task(family["group_id"], "Dishes", points=12)

        created = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)

        assert all(record.task_id == task.id and record.points_earned == 12 for record in created)

    async def test_admins_get_nothing(self, family, seed):
        await seed.task(family["group_id"], "Dishes")

        created = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)

        assert family["admin"].id not in {record.member_id for record in created}

    async def test_second_run_is_a_no_op(self, family, seed):
        await seed.task(family["group_id"], "Dishes")
        await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)

        again = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)

        assert again == []
        assert await db_client.count_records(collection="daily_assignments") == 3

    async def test_two_tasks_over_five_members_split_three_two(self, seed):
        group_id = await seed.group()
        for name in ("A", "B", "C", "D", "E"):
            await seed.member(group_id, name)
        await seed.task(group_id, "Dishes")
        await seed.task(group_id, "Laundry")

        created = await distribution_service.distribute_daily(
            group_id=group_id, assigned_date=DAY, rng=random.Random(7)
        )

        counts = sorted(Counter(record.task_id for record in created).values())
        assert counts == [2, 3]

    async def test_bonus_and_inactive_tasks_are_never_assigned(self, family, seed):
        group_id = family["group_id"]
        regular = await seed.task(group_id, "Dishes")
        await seed.task(group_id, "Wash car", is_bonus=True)
        await seed.task(group_id, "Old chore", is_active=False)

        created = await distribution_service.distribute_daily(group_id=group_id, assigned_date=DAY)

        assert {record.task_id for record in created} == {regular.id}

    async def test_no_tasks_is_a_no_op(self, family):
        assert await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY) == []

    async def test_no_eligible_members_is_a_no_op(self, seed):
        group_id = await seed.group()
        await seed.admin(group_id)
        await seed.task(group_id, "Dishes")

        assert await distribution_service.distribute_daily(group_id=group_id, assigned_date=DAY) == []

    async def test_groups_are_isolated(self, family, seed):
        other_group = await seed.group("The Joneses")
        await seed.member(other_group, "Dave")
        await seed.task(other_group, "Garden")
        await seed.task(family["group_id"], "Dishes")

        await distribution_service.distribute_daily(group_id=other_group, assigned_date=DAY)
        created = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)

        assert len(created) == 3

    async def test_iso_string_date(self, family, seed):
        await seed.task(family["group_id"], "Dishes")

        created = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date="2026-03-04")

        assert all(record.assigned_date == DAY for record in created)

    async def test_invalid_input_rejected(self, family):
        with pytest.raises(InvalidInputError):
            await distribution_service.distribute_daily(group_id="", assigned_date=DAY)
        with pytest.raises(InvalidInputError):
            await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date="04/03/2026")


@pytest.mark.asyncio
class TestManualAssignment:
    """Tests for assign_manual and delete_assignment."""

    async def test_admin_creates_assignment(self, family, seed):
        task = await seed.task(family["group_id"], "Dishes", points=8)
        kid = family["kids"][0]

        record = await distribution_service.assign_manual(
            group_id=family["group_id"],
            member_id=kid.id,
            task_id=task.id,
            acting_member=family["admin"],
            assigned_date=DAY,
        )

        assert record.member_id == kid.id
        assert record.points_earned == 8

    async def test_override_replaces_and_resets_completion(self, family, seed):
        group_id = family["group_id"]
        first = await seed.task(group_id, "Dishes", points=5)
        second = await seed.task(group_id, "Vacuum", points=20)
        kid = family["kids"][0]
        original = await distribution_service.assign_manual(
            group_id=group_id, member_id=kid.id, task_id=first.id, acting_member=family["admin"], assigned_date=DAY
        )
        await distribution_service.complete_assignment(assignment_id=original.id, acting_member=kid)

        replaced = await distribution_service.assign_manual(
            group_id=group_id, member_id=kid.id, task_id=second.id, acting_member=family["admin"], assigned_date=DAY
        )

        assert replaced.id == original.id
        assert replaced.task_id == second.id
        assert replaced.points_earned == 20
        assert replaced.is_completed is False
        assert replaced.completed_at is None

    async def test_non_admin_cannot_assign(self, family, seed):
        task = await seed.task(family["group_id"], "Dishes")
        kid = family["kids"][0]

        with pytest.raises(PermissionDeniedError):
            await distribution_service.assign_manual(
                group_id=family["group_id"], member_id=kid.id, task_id=task.id, acting_member=kid, assigned_date=DAY
            )

    async def test_inactive_task_rejected(self, family, seed):
        task = await seed.task(family["group_id"], "Old chore", is_active=False)

        with pytest.raises(InvalidInputError):
            await distribution_service.assign_manual(
                group_id=family["group_id"],
                member_id=family["kids"][0].id,
                task_id=task.id,
                acting_member=family["admin"],
                assigned_date=DAY,
            )

    async def test_member_from_other_group_not_found(self, family, seed):
        other_group = await seed.group("The Joneses")
        outsider = await seed.member(other_group, "Dave")
        task = await seed.task(family["group_id"], "Dishes")

        with pytest.raises(NotFoundError):
            await distribution_service.assign_manual(
                group_id=family["group_id"],
                member_id=outsider.id,
                task_id=task.id,
                acting_member=family["admin"],
                assigned_date=DAY,
            )

    async def test_delete_requires_admin(self, family, seed):
        await seed.task(family["group_id"], "Dishes")
        created = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)
        kid = family["kids"][0]

        with pytest.raises(PermissionDeniedError):
            await distribution_service.delete_assignment(assignment_id=created[0].id, acting_member=kid)

        await distribution_service.delete_assignment(assignment_id=created[0].id, acting_member=family["admin"])
        with pytest.raises(NotFoundError):
            await assignment_store.get_daily_assignment(assignment_id=created[0].id)


@pytest.mark.asyncio
class TestGetDailyAssignments:
    """Tests for get_daily_assignments visibility rules."""

    async def test_admin_sees_everyone_members_see_themselves(self, family, seed):
        await seed.task(family["group_id"], "Dishes")
        await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)
        kid = family["kids"][1]

        everyone = await distribution_service.get_daily_assignments(
            group_id=family["group_id"], acting_member=family["admin"], assigned_date=DAY
        )
        own = await distribution_service.get_daily_assignments(
            group_id=family["group_id"], acting_member=kid, assigned_date=DAY
        )

        assert len(everyone) == 3
        assert [record.member_id for record in own] == [kid.id]

    async def test_other_group_denied(self, family, seed):
        other_group = await seed.group("The Joneses")

        with pytest.raises(PermissionDeniedError):
            await distribution_service.get_daily_assignments(
                group_id=other_group, acting_member=family["admin"], assigned_date=DAY
            )


@pytest.mark.asyncio
class TestCompleteAssignment:
    """Tests for complete_assignment function."""

    async def _assign(self, family, seed, points=30):
        task = await seed.task(family["group_id"], "Dishes", points=points)
        kid = family["kids"][0]
        record = await distribution_service.assign_manual(
            group_id=family["group_id"],
            member_id=kid.id,
            task_id=task.id,
            acting_member=family["admin"],
            assigned_date=DAY,
        )
        return kid, record

    async def test_owner_completes_and_earns_points_as_xp(self, family, seed):
        kid, record = await self._assign(family, seed, points=30)

        result = await distribution_service.complete_assignment(assignment_id=record.id, acting_member=kid)

        assert result.assignment.is_completed is True
        assert result.assignment.completed_at is not None
        assert result.award.xp_gained == 30
        assert result.award.total_xp == 30

    async def test_completion_writes_history(self, family, seed):
        kid, record = await self._assign(family, seed)

        await distribution_service.complete_assignment(assignment_id=record.id, acting_member=kid)

        history = await db_client.list_records(collection="completion_history")
        assert len(history) == 1
        assert history[0]["assignment_type"] == "daily"
        assert history[0]["assignment_id"] == record.id
        assert history[0]["xp_awarded"] == 30

    async def test_admin_can_complete_for_member(self, family, seed):
        kid, record = await self._assign(family, seed)

        result = await distribution_service.complete_assignment(assignment_id=record.id, acting_member=family["admin"])

        assert result.award.member_id == kid.id

    async def test_other_member_denied(self, family, seed):
        _, record = await self._assign(family, seed)
        sibling = family["kids"][1]

        with pytest.raises(PermissionDeniedError):
            await distribution_service.complete_assignment(assignment_id=record.id, acting_member=sibling)

    async def test_second_completion_rejected(self, family, seed):
        kid, record = await self._assign(family, seed)
        await distribution_service.complete_assignment(assignment_id=record.id, acting_member=kid)

        with pytest.raises(InvalidStateTransitionError):
            await distribution_service.complete_assignment(assignment_id=record.id, acting_member=kid)

        progression = await assignment_store.get_progression(member_id=kid.id)
        assert progression.total_xp == 30

    async def test_missing_assignment(self, family):
        with pytest.raises(NotFoundError):
            await distribution_service.complete_assignment(assignment_id="424242", acting_member=family["admin"])

    async def test_assignment_of_other_group_not_found(self, family, seed):
        _, record = await self._assign(family, seed)
        other_group = await seed.group("The Joneses")
        outsider_admin = await seed.admin(other_group, "Mr Jones")

        with pytest.raises(NotFoundError):
            await distribution_service.complete_assignment(assignment_id=record.id, acting_member=outsider_admin)

    async def test_assignee_promoted_to_admin_leaves_record_untouched(self, family, seed):
        kid, record = await self._assign(family, seed)
        await db_client.update_record(collection="members", record_id=kid.id, data={"role": "admin"})

        with pytest.raises(InvalidInputError):
            await distribution_service.complete_assignment(assignment_id=record.id, acting_member=family["admin"])

        reloaded = await assignment_store.get_daily_assignment(assignment_id=record.id)
        assert reloaded.is_completed is False
        assert reloaded.completed_at is None
        assert await db_client.count_records(collection="completion_history") == 0
        assert await db_client.count_records(collection="progressions") == 0


@pytest.mark.asyncio
class TestConcurrentDistribution:
    """Tests for overlapping runs of the same group and day."""

    async def test_parallel_runs_write_one_record_per_member(self, family, seed):
        await seed.task(family["group_id"], "Dishes")
        await seed.task(family["group_id"], "Vacuum")

        results = await asyncio.gather(
            *(distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY) for _ in range(4))
        )

        records = await db_client.list_records(collection="daily_assignments")
        assert len(records) == 3
        assert sorted(record["member_id"] for record in records) == sorted(kid.id for kid in family["kids"])
        assert sum(len(created) for created in results) == 3

    async def test_run_that_loses_the_race_stops_quietly(self, family, seed):
        await seed.task(family["group_id"], "Dishes")
        first = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)

        # The existence check ran before the other run's writes landed
        with patch.object(assignment_store, "has_daily_assignments", AsyncMock(return_value=False)):
            second = await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)

        assert second == []
        assert await db_client.count_records(collection="daily_assignments") == len(first)

    async def test_manual_assignment_racing_distribution_updates_existing(self, family, seed):
        task = await seed.task(family["group_id"], "Dishes", points=7)
        kid = family["kids"][0]
        await distribution_service.distribute_daily(group_id=family["group_id"], assigned_date=DAY)
        existing = await assignment_store.find_daily_assignment(
            group_id=family["group_id"], member_id=kid.id, assigned_date=DAY
        )

        # First lookup misses the row the distribution run just wrote
        with patch.object(assignment_store, "find_daily_assignment", AsyncMock(side_effect=[None, existing])):
            record = await distribution_service.assign_manual(
                group_id=family["group_id"],
                member_id=kid.id,
                task_id=task.id,
                acting_member=family["admin"],
                assigned_date=DAY,
            )

        assert record.id == existing.id
        assert await db_client.count_records(collection="daily_assignments") == 3
