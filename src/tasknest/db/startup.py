# src/tasknest/db/startup.py

"""
Startup sequence.

Uninitialized -> ensure ledger table -> apply pending units -> reconcile
-> bootstrap fallback (ledger empty and no tasks table) -> seed if empty
-> Ready. Ledger, engine, reconcile and bootstrap failures are fatal.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .bootstrap import bootstrap_if_needed
from .catalog import MigrationUnit, candidate_dirs, load_catalog
from .database import Database
from .engine import Clock, apply_pending, wall_clock
from .errors import DatabaseInitError, LedgerError
from .ledger import MigrationLedger
from .reconciler import reconcile
from .seeder import seed_if_empty

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StartupReport:
    applied: list[str] = field(default_factory=list)
    repaired: dict[str, list[str]] = field(default_factory=dict)
    bootstrapped: bool = False
    seeded: int = 0


def run_startup(
    conn: sqlite3.Connection,
    catalog: Sequence[MigrationUnit],
    *,
    seed: bool = True,
    clock: Clock = wall_clock,
) -> StartupReport:
    """Run the whole convergence sequence against one connection."""
    report = StartupReport()
    ledger = MigrationLedger(conn)

    try:
        ledger.ensure_table()
    except sqlite3.Error as e:
        raise LedgerError(f"Cannot prepare migrations ledger: {e}") from e

    report.applied = apply_pending(conn, catalog, ledger, clock=clock)
    report.repaired = reconcile(conn, now=clock())

    report.bootstrapped = bootstrap_if_needed(
        conn,
        ledger_empty=not ledger.list_applied(),
        now=clock(),
    )

    if seed:
        try:
            report.seeded = seed_if_empty(conn, now=clock())
        except sqlite3.Error:
            logger.exception("Seeding example data failed; continuing with an empty task list")

    return report


def converge(
    db: Database,
    catalog: Sequence[MigrationUnit],
    *,
    seed: bool = False,
    clock: Clock | None = None,
) -> StartupReport:
    """
    Run the startup sequence on an already open handle, under its lock.

    Used by init_db and again after the live contents are replaced (restore).
    Any failure surfaces as DatabaseInitError.
    """
    try:
        with db.session() as conn:
            return run_startup(conn, catalog, seed=seed, clock=clock or wall_clock)
    except sqlite3.Error as e:
        raise DatabaseInitError(f"Database initialization failed: {e}") from e


def init_db(
    settings: Settings | None = None,
    *,
    catalog_dirs: Sequence[Path | str] | None = None,
    clock: Clock | None = None,
) -> Database:
    """
    Open the application database and converge its schema.

    Returns a ready Database handle. Raises DatabaseInitError when the
    database cannot be made usable; the handle is closed in that case.
    """
    if settings is None:
        from ..config import get_settings

        settings = get_settings()

    db_path = Path(settings.db_path)
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DatabaseInitError(f"Cannot create data directory {db_path.parent}: {e}") from e

    dirs = list(catalog_dirs) if catalog_dirs is not None else candidate_dirs(settings.migrations_dir)
    catalog = load_catalog(dirs)

    try:
        db = Database(db_path)
    except sqlite3.Error as e:
        raise DatabaseInitError(f"Cannot open database {db_path}: {e}") from e

    try:
        report = converge(db, catalog, seed=bool(settings.seed_example_data), clock=clock)
    except DatabaseInitError:
        logger.error("Database initialization failed path=%s", db_path)
        db.close()
        raise

    logger.info(
        "Database ready path=%s applied=%d repaired=%d bootstrapped=%s seeded=%d",
        db_path,
        len(report.applied),
        len(report.repaired),
        report.bootstrapped,
        report.seeded,
    )
    return db
