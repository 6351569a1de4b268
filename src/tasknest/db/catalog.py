# src/tasknest/db/catalog.py

"""
Schema catalog.

Migration units are *.sql files whose lexical order is the apply order
(names carry a numeric prefix). Most units run their SQL body as-is; a few
contain statements that are not idempotent (ALTER TABLE ADD COLUMN) and are
applied through guarded strategies that check the live schema first.

Strategies form a closed set:
- RunRawSQL(sql=None)            -> run the unit body (or the given SQL)
- GuardedAddColumns(table, cols) -> add only the columns that are missing
- GuardedCreateTable(table, ddl) -> run ddl only if the table is missing
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .baseline import NOTIFICATION_SCHEDULE_DDL, RANKS_DDL

logger = logging.getLogger(__name__)

PACKAGED_MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


@dataclass(slots=True, frozen=True)
class RunRawSQL:
    sql: str | None = None


@dataclass(slots=True, frozen=True)
class GuardedAddColumns:
    table: str
    # (column name, column declaration) pairs, applied in order
    columns: tuple[tuple[str, str], ...]


@dataclass(slots=True, frozen=True)
class GuardedCreateTable:
    table: str
    ddl: str


Strategy = RunRawSQL | GuardedAddColumns | GuardedCreateTable


@dataclass(slots=True, frozen=True)
class MigrationUnit:
    name: str
    path: Path
    steps: tuple[Strategy, ...] = (RunRawSQL(),)

    def read_body(self) -> str:
        return self.path.read_text(encoding="utf-8")

_ATTACHMENT_VERSION_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_attachments_parent_id ON attachments(parent_id);
CREATE INDEX IF NOT EXISTS idx_attachments_is_current ON attachments(is_current);
CREATE INDEX IF NOT EXISTS idx_attachments_task_current ON attachments(task_id, is_current);
"""

RECURRENCE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("recurrence_type", "TEXT DEFAULT 'none'"),
    ("recurrence_interval", "INTEGER DEFAULT 1"),
    ("recurrence_parent_id", "TEXT"),
)

NOTIFICATION_COLUMNS: tuple[tuple[str, str], ...] = (
    ("reminder_minutes_before", "INTEGER DEFAULT NULL"),
    ("notification_repeat", "INTEGER DEFAULT 0"),
)

ATTACHMENT_SIZE_COLUMNS: tuple[tuple[str, str], ...] = (("size", "INTEGER"),)

# Units whose bodies are not idempotent. Everything else is RunRawSQL().
GUARDED_UNITS: dict[str, tuple[Strategy, ...]] = {
    "0004_add_recurrence.sql": (GuardedAddColumns("tasks", RECURRENCE_COLUMNS),),
    "0006_add_notification_preferences.sql": (
        GuardedAddColumns("tasks", NOTIFICATION_COLUMNS),
        GuardedCreateTable("notification_schedule", NOTIFICATION_SCHEDULE_DDL),
    ),
    "0008_add_attachment_size.sql": (GuardedAddColumns("attachments", ATTACHMENT_SIZE_COLUMNS),),
    "0013_add_attachment_versioning.sql": (
        GuardedAddColumns(
            "attachments",
            (
                ("version", "INTEGER DEFAULT 1 NOT NULL"),
                ("parent_id", "TEXT"),
                ("is_current", "INTEGER DEFAULT 1 NOT NULL"),
            ),
        ),
        RunRawSQL(_ATTACHMENT_VERSION_INDEXES),
    ),
    "0014_add_rank_system.sql": (
        GuardedCreateTable("ranks", RANKS_DDL),
        GuardedAddColumns(
            "user_progress",
            (
                ("current_rank_tier", "TEXT DEFAULT 'iron'"),
                ("current_rank_division", "INTEGER DEFAULT 4"),
                ("rank_progress", "INTEGER DEFAULT 0"),
            ),
        ),
        RunRawSQL(
            "UPDATE user_progress SET current_rank_tier = 'iron', current_rank_division = 4 "
            "WHERE current_rank_tier IS NULL;"
        ),
    ),
}


def steps_for(name: str) -> tuple[Strategy, ...]:
    return GUARDED_UNITS.get(name, (RunRawSQL(),))


def candidate_dirs(explicit: Path | str | None = None) -> list[Path]:
    """
    Directories that may hold the catalog, in priority order:
    explicit setting, packaged resources, working directory, executable directory.
    """
    out: list[Path] = []
    if explicit:
        out.append(Path(explicit).expanduser())
    out.append(PACKAGED_MIGRATIONS_DIR)
    out.append(Path(os.getcwd()) / "migrations")
    exe = sys.argv[0] if sys.argv and sys.argv[0] else sys.executable
    if exe:
        out.append(Path(exe).resolve().parent / "migrations")
    return out


def resolve_catalog_dir(candidates: Iterable[Path | str]) -> Path | None:
    for raw in candidates:
        path = Path(raw)
        try:
            if path.is_dir():
                return path
        except OSError:
            logger.debug("Catalog candidate not accessible: %s", path, exc_info=True)
    return None


def load_catalog(candidates: Sequence[Path | str] | None = None) -> list[MigrationUnit]:
    """
    Return the ordered migration units from the first existing candidate dir.

    A missing catalog is not an error: it yields an empty list and later
    startup steps (reconciler, bootstrap) cover the gap.
    """
    dirs = list(candidates) if candidates is not None else candidate_dirs()
    directory = resolve_catalog_dir(dirs)
    if directory is None:
        logger.warning("Migration catalog not found (tried: %s); continuing with empty catalog", dirs)
        return []

    files = sorted(
        (p for p in directory.iterdir() if p.is_file() and p.suffix == ".sql"),
        key=lambda p: p.name,
    )
    units = [MigrationUnit(name=p.name, path=p, steps=steps_for(p.name)) for p in files]
    logger.info("Migration catalog dir=%s units=%d", directory, len(units))
    return units
