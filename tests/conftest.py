"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from src.core import db_client
from src.core.config import settings
from src.domain.duty import DutyType
from src.domain.member import Member, MemberRole
from src.domain.task import TaskDefinition


class Seeder:
    """Creates fixture data directly through db_client.

    Groups, members and tasks are owned by the account layer in production,
    so the services never write them; tests insert them here.
    """

    async def group(self, name: str = "The Smiths") -> str:
        record = await db_client.create_record(collection="household_groups", data={"name": name})
        return record["id"]

    async def member(self, group_id: str, name: str, role: MemberRole = MemberRole.MEMBER) -> Member:
        record = await db_client.create_record(
            collection="members",
            data={"group_id": group_id, "name": name, "role": role},
        )
        return Member(**record)

    async def admin(self, group_id: str, name: str = "Parent") -> Member:
        return await self.member(group_id, name, role=MemberRole.ADMIN)

    async def task(
        self,
        group_id: str,
        name: str,
        points: int = 10,
        *,
        is_bonus: bool = False,
        is_active: bool = True,
    ) -> TaskDefinition:
        record = await db_client.create_record(
            collection="tasks",
            data={
                "group_id": group_id,
                "name": name,
                "description": f"{name} description",
                "points": points,
                "is_bonus": is_bonus,
                "is_active": is_active,
            },
        )
        return TaskDefinition(**record)

    async def duty(self, group_id: str, name: str = "Dish Duty", *, is_active: bool = True) -> DutyType:
        record = await db_client.create_record(
            collection="duty_types",
            data={"group_id": group_id, "name": name, "description": "", "icon": "🍽️", "is_active": is_active},
        )
        return DutyType(**record)


@pytest.fixture
async def test_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[Path]:
    """Fresh SQLite database with the full schema, closed after the test."""
    db_path = tmp_path / "choreworld-test.db"
    monkeypatch.setattr(settings, "sqlite_db_path", str(db_path))

    await db_client.init_db()
    yield db_path
    await db_client.close_connection()


@pytest.fixture
def seed(test_db: Path) -> Seeder:
    """Helper for inserting groups, members, tasks and duty types."""
    return Seeder()


@pytest.fixture
async def family(seed: Seeder) -> dict:
    """A group with one admin and three kids (created in this order)."""
    group_id = await seed.group()
    admin = await seed.admin(group_id)
    kids = [await seed.member(group_id, name) for name in ("Alice", "Bob", "Carol")]
    return {"group_id": group_id, "admin": admin, "kids": kids}
