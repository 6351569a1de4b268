# src/tasknest/db/reconciler.py

"""
Defensive reconciler.

Runs after the engine on every startup, whatever the engine did. It does not
trust the ledger: it inspects the live schema and restores the facts the
application cannot work without. Every repair is idempotent.
"""

from __future__ import annotations

import logging
import sqlite3

from .baseline import (
    ATTACHMENTS_DDL,
    CORE_TABLE,
    GAMIFICATION_DDL,
    TASK_TEMPLATES_DDL,
    insert_default_progress,
)
from .catalog import ATTACHMENT_SIZE_COLUMNS, NOTIFICATION_COLUMNS, RECURRENCE_COLUMNS
from .database import transaction
from .engine import add_missing_columns
from .errors import ReconcileError
from .schema import run_script, table_exists

logger = logging.getLogger(__name__)

TABLE_CREATED = "TABLE_CREATED"
DEFAULT_ROW_INSERTED = "DEFAULT_ROW_INSERTED"

GAMIFICATION_TABLES = ("user_progress", "badges", "xp_history")


def _ensure_table(conn: sqlite3.Connection, table: str, ddl: str, repairs: dict[str, list[str]]) -> bool:
    if table_exists(conn, table):
        return False
    run_script(conn, ddl)
    repairs.setdefault(table, []).append(TABLE_CREATED)
    return True


def _ensure_columns(
    conn: sqlite3.Connection,
    table: str,
    columns: tuple[tuple[str, str], ...],
    repairs: dict[str, list[str]],
) -> None:
    added = add_missing_columns(conn, table, columns)
    if added:
        repairs.setdefault(table, []).extend(added)


def _reconcile(conn: sqlite3.Connection, now: int) -> dict[str, list[str]]:
    repairs: dict[str, list[str]] = {}

    # attachments: the table itself, then the size column
    if not _ensure_table(conn, "attachments", ATTACHMENTS_DDL, repairs):
        _ensure_columns(conn, "attachments", ATTACHMENT_SIZE_COLUMNS, repairs)

    # Everything below hangs off tasks; a fresh file is the bootstrap's job.
    if not table_exists(conn, CORE_TABLE):
        return repairs

    _ensure_columns(conn, CORE_TABLE, RECURRENCE_COLUMNS + NOTIFICATION_COLUMNS, repairs)
    _ensure_table(conn, "task_templates", TASK_TEMPLATES_DDL, repairs)

    missing = [t for t in GAMIFICATION_TABLES if not table_exists(conn, t)]
    if missing:
        run_script(conn, GAMIFICATION_DDL)
        for table in missing:
            repairs.setdefault(table, []).append(TABLE_CREATED)
    if insert_default_progress(conn, now):
        repairs.setdefault("user_progress", []).append(DEFAULT_ROW_INSERTED)

    return repairs


def reconcile(conn: sqlite3.Connection, *, now: int) -> dict[str, list[str]]:
    """
    Verify and repair critical schema facts in one transaction.

    Returns {table: [added column names or TABLE_CREATED]}; empty when the
    schema was already sound. Raises ReconcileError on any database error.
    """
    try:
        with transaction(conn):
            repairs = _reconcile(conn, now)
    except sqlite3.Error as e:
        raise ReconcileError(f"Schema reconciliation failed: {e}") from e

    if repairs:
        for table, items in repairs.items():
            logger.warning("Schema repaired: %s -> %s", table, ", ".join(items))
    else:
        logger.debug("Schema reconciliation: nothing to repair")
    return repairs
