# src/tasknest/db/bootstrap.py

"""
Bootstrap fallback.

When the catalog could not be found on a fresh install, the engine applies
nothing and the database would stay empty. This creates the whole baseline
schema directly, bypassing the catalog.
"""

from __future__ import annotations

import logging
import sqlite3

from .baseline import (
    BASELINE_SCHEMA,
    CORE_TABLE,
    DOMAIN_TABLES,
    insert_default_pomodoro_streak,
    insert_default_progress,
)
from .database import transaction
from .errors import BootstrapError
from .schema import run_script, table_exists

logger = logging.getLogger(__name__)



def bootstrap_if_needed(conn: sqlite3.Connection, *, ledger_empty: bool, now: int) -> bool:
    """
    Create the baseline schema when the ledger is empty AND the core table is absent.

    Returns True if the baseline was created.
    """
    if not ledger_empty or table_exists(conn, CORE_TABLE):
        return False

    logger.warning("No migrations applied and no %s table: creating baseline schema directly", CORE_TABLE)
    try:
        with transaction(conn):
            run_script(conn, BASELINE_SCHEMA)
            insert_default_progress(conn, now)
            insert_default_pomodoro_streak(conn, now)
    except sqlite3.Error as e:
        raise BootstrapError(f"Baseline schema creation failed: {e}") from e

    logger.info("Baseline schema created (%d tables)", len(DOMAIN_TABLES))
    return True
