"""SQLite schema management (code-first approach).

Unique indexes double as the concurrency guard for the assignment engines:
two triggers that both pass an "already assigned?" check cannot both write
a record for the same (group, member, date) or (group, duty type, period).
"""

import logging
from typing import Any

from src.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema, in dependency order
COLLECTIONS = [
    "household_groups",
    "members",
    "tasks",
    "daily_assignments",
    "duty_types",
    "rotation_orders",
    "weekly_assignments",
    "progressions",
    "completion_history",
]


def _get_collection_schema(*, collection_name: str) -> dict[str, Any]:
    """Get the table definition and indexes for a collection."""
    schemas: dict[str, dict[str, Any]] = {
        "household_groups": {
            "name": "household_groups",
            "fields": [
                "name TEXT NOT NULL",
            ],
            "indexes": [],
        },
        "members": {
            "name": "members",
            "fields": [
                "group_id INTEGER NOT NULL REFERENCES household_groups(id)",
                "name TEXT NOT NULL",
                "role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('admin', 'member'))",
            ],
            "indexes": ["CREATE INDEX IF NOT EXISTS idx_members_group ON members (group_id)"],
        },
        "tasks": {
            "name": "tasks",
            "fields": [
                "group_id INTEGER NOT NULL REFERENCES household_groups(id)",
                "name TEXT NOT NULL",
                "description TEXT NOT NULL DEFAULT ''",
                "points INTEGER NOT NULL DEFAULT 1 CHECK (points >= 0)",
                "is_active INTEGER NOT NULL DEFAULT 1",
                "is_bonus INTEGER NOT NULL DEFAULT 0",
            ],
            "indexes": ["CREATE INDEX IF NOT EXISTS idx_tasks_group ON tasks (group_id, is_active)"],
        },
        "daily_assignments": {
            "name": "daily_assignments",
            "fields": [
                "group_id INTEGER NOT NULL REFERENCES household_groups(id)",
                "member_id INTEGER NOT NULL REFERENCES members(id)",
                "task_id INTEGER NOT NULL REFERENCES tasks(id)",
                "assigned_date TEXT NOT NULL",
                "points_earned INTEGER NOT NULL DEFAULT 0",
                "is_completed INTEGER NOT NULL DEFAULT 0",
                "completed_at TEXT",
            ],
            "indexes": [
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_daily_member_date "
                "ON daily_assignments (group_id, member_id, assigned_date)",
                "CREATE INDEX IF NOT EXISTS idx_daily_group_date ON daily_assignments (group_id, assigned_date)",
            ],
        },
        "duty_types": {
            "name": "duty_types",
            "fields": [
                "group_id INTEGER NOT NULL REFERENCES household_groups(id)",
                "name TEXT NOT NULL",
                "description TEXT NOT NULL DEFAULT ''",
                "icon TEXT NOT NULL DEFAULT ''",
                "is_active INTEGER NOT NULL DEFAULT 1",
            ],
            "indexes": ["CREATE UNIQUE INDEX IF NOT EXISTS idx_duty_type_name ON duty_types (group_id, name)"],
        },
        "rotation_orders": {
            "name": "rotation_orders",
            "fields": [
                "group_id INTEGER NOT NULL REFERENCES household_groups(id)",
                "duty_type_id INTEGER NOT NULL REFERENCES duty_types(id)",
                "member_id INTEGER NOT NULL REFERENCES members(id)",
                "position INTEGER NOT NULL",
            ],
            "indexes": [
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_rotation_member "
                "ON rotation_orders (group_id, duty_type_id, member_id)",
            ],
        },
        "weekly_assignments": {
            "name": "weekly_assignments",
            "fields": [
                "group_id INTEGER NOT NULL REFERENCES household_groups(id)",
                "duty_type_id INTEGER NOT NULL REFERENCES duty_types(id)",
                "member_id INTEGER NOT NULL REFERENCES members(id)",
                "week_start TEXT NOT NULL",
                "week_end TEXT NOT NULL",
                "is_active INTEGER NOT NULL DEFAULT 1",
            ],
            "indexes": [
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_weekly_period "
                "ON weekly_assignments (group_id, duty_type_id, week_start)",
            ],
        },
        "progressions": {
            "name": "progressions",
            "fields": [
                "member_id INTEGER NOT NULL REFERENCES members(id)",
                "level INTEGER NOT NULL DEFAULT 1 CHECK (level >= 1)",
                "total_xp INTEGER NOT NULL DEFAULT 0 CHECK (total_xp >= 0)",
            ],
            "indexes": ["CREATE UNIQUE INDEX IF NOT EXISTS idx_progression_member ON progressions (member_id)"],
        },
        "completion_history": {
            "name": "completion_history",
            "fields": [
                "group_id INTEGER NOT NULL REFERENCES household_groups(id)",
                "member_id INTEGER NOT NULL REFERENCES members(id)",
                "task_id INTEGER NOT NULL REFERENCES tasks(id)",
                "assignment_type TEXT NOT NULL CHECK (assignment_type IN ('daily', 'bonus'))",
                "assignment_id INTEGER",  # no FK: history outlives deleted assignments
                "completed_at TEXT NOT NULL",
                "completed_date TEXT NOT NULL",
                "points_earned INTEGER NOT NULL DEFAULT 0",
                "xp_awarded INTEGER NOT NULL DEFAULT 0",
                "week_start TEXT NOT NULL",
            ],
            "indexes": [
                "CREATE INDEX IF NOT EXISTS idx_history_week ON completion_history (group_id, week_start)",
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_history_bonus_once "
                "ON completion_history (member_id, task_id, completed_date) WHERE assignment_type = 'bonus'",
            ],
        },
    }
    return schemas[collection_name]


def _build_create_table(schema: dict[str, Any]) -> str:
    columns = [
        "id INTEGER PRIMARY KEY AUTOINCREMENT",
        *schema["fields"],
        "created TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))",
    ]
    columns_sql = ",\n    ".join(columns)
    return f"CREATE TABLE IF NOT EXISTS {schema['name']} (\n    {columns_sql}\n)"


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes (idempotent)."""
    logger.info("Starting SQLite schema sync...")

    conn = await db_client.get_connection(db_path=db_path)

    for collection_name in COLLECTIONS:
        schema = _get_collection_schema(collection_name=collection_name)
        await conn.execute(_build_create_table(schema))
        for index_sql in schema["indexes"]:
            await conn.execute(index_sql)
        logger.debug("Ensured collection %s", collection_name)

    await conn.commit()
    logger.info("SQLite schema sync complete")
