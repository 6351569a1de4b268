# src/tasknest/db/engine.py

"""
Convergence engine.

Applies every pending catalog unit (catalog minus ledger, catalog order) in
its own transaction. The ledger row is written inside the same transaction,
so a unit is recorded if and only if its effects are committed. The first
failure rolls back that unit and aborts: no retry, no skip.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Sequence

from .catalog import GuardedAddColumns, GuardedCreateTable, MigrationUnit, RunRawSQL, Strategy
from .database import transaction
from .errors import MigrationError
from .ledger import MigrationLedger
from .schema import column_names, run_script, table_exists

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def wall_clock() -> int:
    return int(time.time())


def add_missing_columns(
    conn: sqlite3.Connection,
    table: str,
    columns: Sequence[tuple[str, str]],
) -> list[str]:
    """ALTER TABLE ADD COLUMN for each column not already present. Returns the added names."""
    cols = column_names(conn, table)
    added: list[str] = []
    for name, decl in columns:
        if name in cols:
            continue
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
        cols.add(name)
        added.append(name)
    return added


def _apply_step(conn: sqlite3.Connection, unit: MigrationUnit, step: Strategy) -> None:
    if isinstance(step, RunRawSQL):
        body = unit.read_body() if step.sql is None else step.sql
        n = run_script(conn, body)
        logger.debug("Migration %s: ran %d statements", unit.name, n)
        return

    if isinstance(step, GuardedAddColumns):
        added = add_missing_columns(conn, step.table, step.columns)
        if added:
            logger.info("Migration %s: added %s.%s", unit.name, step.table, ",".join(added))
        else:
            logger.info("Migration %s: %s columns already present, skipped", unit.name, step.table)
        return

    if isinstance(step, GuardedCreateTable):
        if table_exists(conn, step.table):
            logger.info("Migration %s: table %s already exists, skipped", unit.name, step.table)
        else:
            run_script(conn, step.ddl)
            logger.info("Migration %s: created table %s", unit.name, step.table)
        return

    raise TypeError(f"Unknown migration strategy: {step!r}")


def pending_units(catalog: Sequence[MigrationUnit], applied: set[str]) -> list[MigrationUnit]:
    return [u for u in catalog if u.name not in applied]


def apply_pending(
    conn: sqlite3.Connection,
    catalog: Sequence[MigrationUnit],
    ledger: MigrationLedger,
    *,
    clock: Clock = wall_clock,
) -> list[str]:
    """
    Apply pending units in order; return the names applied in this run.

    Raises MigrationError on the first failing unit. Units applied before it
    stay committed and recorded.
    """
    pending = pending_units(catalog, ledger.list_applied())
    if not pending:
        logger.info("No pending migrations (catalog=%d)", len(catalog))
        return []

    applied_now: list[str] = []
    for unit in pending:
        logger.info("Applying migration %s", unit.name)
        try:
            with transaction(conn):
                for step in unit.steps:
                    _apply_step(conn, unit, step)
                ledger.record(unit.name, clock())
        except Exception as e:
            logger.error("Migration %s failed and was rolled back: %s", unit.name, e)
            raise MigrationError(unit.name, e) from e
        applied_now.append(unit.name)

    logger.info("Applied %d migration(s): %s", len(applied_now), ", ".join(applied_now))
    return applied_now
