# src/tasknest/db/seeder.py

from __future__ import annotations

import logging
import sqlite3
import uuid

from .baseline import CORE_TABLE
from .database import transaction
from .schema import count_rows, table_exists

logger = logging.getLogger(__name__)

DAY = 24 * 60 * 60

# (title, completed, due offset in seconds, priority)
EXAMPLE_TASKS: tuple[tuple[str, bool, int, str], ...] = (
    ("Complete project setup", False, 0, "high"),
    ("Review design mockups", False, 2 * DAY, "medium"),
    ("Write documentation", True, -DAY, "low"),
    ("Schedule team meeting", False, 5 * DAY, "medium"),
    ("Fix bug in authentication", True, 0, "high"),
)


def seed_if_empty(conn: sqlite3.Connection, *, now: int) -> int:
    """
    Insert the example tasks when the task table exists and is empty.

    Returns the number of rows inserted (0 when seeding was not needed).
    All rows go in one transaction.
    """
    if not table_exists(conn, CORE_TABLE):
        logger.debug("Seeder: no %s table, nothing to seed", CORE_TABLE)
        return 0
    if count_rows(conn, CORE_TABLE) > 0:
        return 0

    with transaction(conn):
        for title, completed, due_offset, priority in EXAMPLE_TASKS:
            conn.execute(
                "INSERT INTO tasks (id, title, description, due_at, created_at, updated_at, "
                "priority, completed_at, project_id, order_index, metadata) "
                "VALUES (?, ?, NULL, ?, ?, ?, ?, ?, NULL, 0, NULL)",
                (
                    str(uuid.uuid4()),
                    title,
                    now + due_offset,
                    now,
                    now,
                    priority,
                    now if completed else None,
                ),
            )

    logger.info("Seeded %d example tasks", len(EXAMPLE_TASKS))
    return len(EXAMPLE_TASKS)
