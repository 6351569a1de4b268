# src/tasknest/tasks/transfer.py

"""
Data transfer: JSON export/import and whole-database backup/restore.

Export format (one JSON object):
    tasks, projects, subtasks, attachments: lists of row objects
    settings: {key: value}
    exported_at: unix seconds
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from collections.abc import Sequence
from typing import Any

from ..db.catalog import candidate_dirs, load_catalog
from ..db.database import Database, transaction
from ..db.startup import converge
from .task_models import ImportSummary

logger = logging.getLogger(__name__)


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def _task_to_json(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "description": row["description"],
        "due_date": row["due_at"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "priority": row["priority"],
        "completed": row["completed_at"] is not None,
        "project_id": row["project_id"],
        "order_index": row["order_index"] or 0,
        "recurrence_type": row["recurrence_type"] or "none",
        "recurrence_interval": row["recurrence_interval"] or 1,
        "recurrence_parent_id": row["recurrence_parent_id"],
    }


def collect_export(conn: sqlite3.Connection, now: int) -> dict[str, Any]:
    tasks = [
        _task_to_json(r)
        for r in conn.execute("SELECT * FROM tasks ORDER BY order_index, created_at").fetchall()
    ]
    projects = [
        dict(r)
        for r in conn.execute(
            "SELECT id, name, color, created_at, updated_at FROM projects ORDER BY created_at"
        ).fetchall()
    ]
    subtasks = [
        {"id": r["id"], "task_id": r["task_id"], "title": r["title"], "completed": bool(r["completed"])}
        for r in conn.execute("SELECT id, task_id, title, completed FROM subtasks ORDER BY id").fetchall()
    ]
    attachments = [
        dict(r)
        for r in conn.execute(
            "SELECT id, task_id, filename, path, mime, size, created_at FROM attachments ORDER BY created_at"
        ).fetchall()
    ]
    settings = {str(r["key"]): str(r["value"]) for r in conn.execute("SELECT key, value FROM settings").fetchall()}

    return {
        "tasks": tasks,
        "projects": projects,
        "subtasks": subtasks,
        "attachments": attachments,
        "settings": settings,
        "exported_at": now,
    }


def export_data(db: Database, directory: str | Path) -> Path:
    """Write todo_export_<UTC stamp>.json into directory; returns its path."""
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"todo_export_{_stamp()}.json"

    with db.session() as conn:
        data = collect_export(conn, int(time.time()))

    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
    logger.info("Exported %d tasks, %d projects to %s", len(data["tasks"]), len(data["projects"]), path)
    return path


def _exists(conn: sqlite3.Connection, table: str, row_id: str) -> bool:
    return conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (row_id,)).fetchone() is not None


def _import_project(conn: sqlite3.Connection, p: dict[str, Any], now: int, summary: ImportSummary) -> None:
    if _exists(conn, "projects", p["id"]):
        conn.execute(
            "UPDATE projects SET name = ?, color = ?, updated_at = ? WHERE id = ?",
            (p["name"], p.get("color"), now, p["id"]),
        )
        summary.projects_updated += 1
    else:
        conn.execute(
            "INSERT INTO projects (id, name, color, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (p["id"], p["name"], p.get("color"), p.get("created_at", now), p.get("updated_at", now)),
        )
        summary.projects_added += 1


def _import_task(conn: sqlite3.Connection, t: dict[str, Any], now: int, summary: ImportSummary) -> None:
    completed = bool(t.get("completed"))
    if _exists(conn, "tasks", t["id"]):
        conn.execute(
            "UPDATE tasks SET title = ?, description = ?, due_at = ?, priority = ?, completed_at = ?, "
            "project_id = ?, order_index = ?, recurrence_type = ?, recurrence_interval = ?, updated_at = ? "
            "WHERE id = ?",
            (
                t["title"],
                t.get("description"),
                t.get("due_date"),
                t.get("priority", "medium"),
                now if completed else None,
                t.get("project_id"),
                int(t.get("order_index") or 0),
                t.get("recurrence_type") or "none",
                int(t.get("recurrence_interval") or 1),
                now,
                t["id"],
            ),
        )
        summary.tasks_updated += 1
    else:
        created_at = t.get("created_at", now)
        updated_at = t.get("updated_at", now)
        conn.execute(
            "INSERT INTO tasks (id, title, description, due_at, created_at, updated_at, priority, completed_at, "
            "project_id, order_index, metadata, recurrence_type, recurrence_interval, recurrence_parent_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, ?)",
            (
                t["id"],
                t["title"],
                t.get("description"),
                t.get("due_date"),
                created_at,
                updated_at,
                t.get("priority", "medium"),
                updated_at if completed else None,
                t.get("project_id"),
                int(t.get("order_index") or 0),
                t.get("recurrence_type") or "none",
                int(t.get("recurrence_interval") or 1),
                t.get("recurrence_parent_id"),
            ),
        )
        summary.tasks_added += 1


def import_data(db: Database, path: str | Path) -> ImportSummary:
    """
    Merge an export file into the database in one transaction.

    Existing ids are updated, new ids inserted. Rows that are malformed or
    violate a constraint (e.g. a subtask of an unknown task) are skipped and
    counted. Raises ValueError when the file is not an export object.
    """
    try:
        data = json.loads(Path(path).read_text("utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Import file must contain a JSON object")

    summary = ImportSummary()
    now = int(time.time())

    def each(key: str) -> list[dict[str, Any]]:
        items = data.get(key)
        return [x for x in items if isinstance(x, dict)] if isinstance(items, list) else []

    with db.session() as conn, transaction(conn):
        steps = [
            *((_import_project, p) for p in each("projects")),
            *((_import_task, t) for t in each("tasks")),
        ]
        for fn, item in steps:
            try:
                fn(conn, item, now, summary)
            except (KeyError, TypeError, ValueError, sqlite3.IntegrityError):
                logger.warning("Import: skipped %s record id=%s", fn.__name__[len("_import_"):], item.get("id"))
                summary.skipped += 1

        for s in each("subtasks"):
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO subtasks (id, task_id, title, completed) VALUES (?, ?, ?, ?)",
                    (s["id"], s["task_id"], s["title"], 1 if s.get("completed") else 0),
                )
            except (KeyError, sqlite3.IntegrityError):
                logger.warning("Import: skipped subtask id=%s", s.get("id"))
                summary.skipped += 1

        settings = data.get("settings")
        if isinstance(settings, dict):
            for key, value in settings.items():
                if isinstance(value, str):
                    conn.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (str(key), value))

    logger.info(
        "Imported tasks +%d ~%d, projects +%d ~%d, skipped %d from %s",
        summary.tasks_added,
        summary.tasks_updated,
        summary.projects_added,
        summary.projects_updated,
        summary.skipped,
        path,
    )
    return summary


def create_backup(db: Database, backups_dir: str | Path) -> Path:
    out_dir = Path(backups_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"todo_backup_{_stamp()}.db"
    db.backup_to(path)
    logger.info("Backup written to %s", path)
    return path


def restore_backup(
    db: Database,
    backup_path: str | Path,
    *,
    catalog_dirs: Sequence[Path | str] | None = None,
) -> Path:
    """
    Replace the live data with a backup file and converge its schema.

    The current data is first saved next to the database as <name>.db.bak.
    An older backup is brought up to date with the same startup sequence
    init_db runs (without seeding); DatabaseInitError if that fails.
    Returns the path of that safety copy.
    """
    src = Path(backup_path)
    if not src.is_file():
        raise FileNotFoundError(f"Backup file does not exist: {src}")

    safety = db.path.with_suffix(".db.bak")
    db.backup_to(safety)
    db.restore_from(src)
    dirs = list(catalog_dirs) if catalog_dirs is not None else candidate_dirs()
    report = converge(db, load_catalog(dirs), seed=False)
    logger.info(
        "Restored database from %s (previous data kept in %s) applied=%d repaired=%d",
        src,
        safety,
        len(report.applied),
        len(report.repaired),
    )
    return safety
