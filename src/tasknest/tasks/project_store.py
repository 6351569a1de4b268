# src/tasknest/tasks/project_store.py

"""Projects, key/value settings and task templates."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Callable
from typing import Any

from ..db.database import Database
from ..db.engine import wall_clock
from ..db.errors import NotFoundError
from .task_models import Priority, Project, Task, Template
from .task_store import fetch_task, insert_task

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class ProjectStore:
    def __init__(self, db: Database, *, clock: Callable[[], int] = wall_clock) -> None:
        self._db = db
        self._clock = clock

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=str(row["id"]),
            name=str(row["name"]),
            color=row["color"],
            created_at=int(row["created_at"] or 0),
            updated_at=int(row["updated_at"] or 0),
        )

    def list_projects(self) -> list[Project]:
        with self._db.session() as conn:
            rows = conn.execute("SELECT * FROM projects ORDER BY created_at").fetchall()
            return [self._row_to_project(r) for r in rows]

    def get_project(self, project_id: str) -> Project:
        with self._db.session() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            if row is None:
                raise NotFoundError(f"Project not found: {project_id}")
            return self._row_to_project(row)

    def create_project(self, name: str, color: str | None = None) -> Project:
        if not name or not name.strip():
            raise ValueError("name is required")
        now = self._clock()
        project = Project(id=str(uuid.uuid4()), name=name.strip(), color=color, created_at=now, updated_at=now)
        with self._db.session() as conn:
            conn.execute(
                "INSERT INTO projects (id, name, color, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (project.id, project.name, project.color, now, now),
            )
        logger.debug("Project created id=%s name=%s", project.id, project.name)
        return project

    def update_project(self, project_id: str, *, name: str | None = None, color: str | None = _UNSET) -> Project:
        fields: list[str] = []
        params: list[Any] = []
        if name is not None:
            if not name.strip():
                raise ValueError("name cannot be empty")
            fields.append("name = ?")
            params.append(name.strip())
        if color is not _UNSET:
            fields.append("color = ?")
            params.append(color)

        if fields:
            fields.append("updated_at = ?")
            params.extend([self._clock(), project_id])
            with self._db.session() as conn:
                cur = conn.execute(f"UPDATE projects SET {', '.join(fields)} WHERE id = ?", params)
                if cur.rowcount == 0:
                    raise NotFoundError(f"Project not found: {project_id}")
        return self.get_project(project_id)

    def delete_project(self, project_id: str) -> None:
        # tasks.project_id is ON DELETE SET NULL
        with self._db.session() as conn:
            conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))


class SettingsStore:
    """Plain key/value application settings (the `settings` table)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get_all(self) -> dict[str, str]:
        with self._db.session() as conn:
            rows = conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
            return {str(r["key"]): str(r["value"]) for r in rows}

    def get(self, key: str, default: str | None = None) -> str | None:
        with self._db.session() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
            return str(row["value"]) if row else default

    def set(self, key: str, value: str) -> None:
        if not key:
            raise ValueError("key is required")
        with self._db.session() as conn:
            conn.execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, str(value)),
            )


class TemplateStore:
    def __init__(self, db: Database, *, clock: Callable[[], int] = wall_clock) -> None:
        self._db = db
        self._clock = clock

    @staticmethod
    def _row_to_template(row: sqlite3.Row) -> Template:
        return Template(
            id=str(row["id"]),
            name=str(row["name"]),
            title=str(row["title"]),
            description=row["description"],
            priority=Priority.from_db(row["priority"]),
            project_id=row["project_id"],
            created_at=int(row["created_at"] or 0),
            updated_at=int(row["updated_at"] or 0),
        )

    def _fetch(self, conn: sqlite3.Connection, template_id: str) -> Template:
        row = conn.execute("SELECT * FROM task_templates WHERE id = ?", (template_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Template not found: {template_id}")
        return self._row_to_template(row)

    def list_templates(self) -> list[Template]:
        with self._db.session() as conn:
            rows = conn.execute("SELECT * FROM task_templates ORDER BY created_at DESC").fetchall()
            return [self._row_to_template(r) for r in rows]

    def get_template(self, template_id: str) -> Template:
        with self._db.session() as conn:
            return self._fetch(conn, template_id)

    def create_template(
        self,
        name: str,
        title: str,
        *,
        description: str | None = None,
        priority: str = "medium",
        project_id: str | None = None,
    ) -> Template:
        if not name or not name.strip():
            raise ValueError("name is required")
        if not title or not title.strip():
            raise ValueError("title is required")
        prio = Priority(priority)
        now = self._clock()
        template_id = str(uuid.uuid4())
        with self._db.session() as conn:
            conn.execute(
                "INSERT INTO task_templates (id, name, title, description, priority, project_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (template_id, name.strip(), title.strip(), description, prio.value, project_id, now, now),
            )
            return self._fetch(conn, template_id)

    def update_template(
        self,
        template_id: str,
        *,
        name: str | None = None,
        title: str | None = None,
        description: str | None = _UNSET,
        priority: str | None = None,
        project_id: str | None = _UNSET,
    ) -> Template:
        fields: list[str] = []
        params: list[Any] = []
        if name is not None:
            fields.append("name = ?")
            params.append(name.strip())
        if title is not None:
            fields.append("title = ?")
            params.append(title.strip())
        if description is not _UNSET:
            fields.append("description = ?")
            params.append(description)
        if priority is not None:
            fields.append("priority = ?")
            params.append(Priority(priority).value)
        if project_id is not _UNSET:
            fields.append("project_id = ?")
            params.append(project_id)

        with self._db.session() as conn:
            if fields:
                fields.append("updated_at = ?")
                params.extend([self._clock(), template_id])
                conn.execute(f"UPDATE task_templates SET {', '.join(fields)} WHERE id = ?", params)
            return self._fetch(conn, template_id)

    def delete_template(self, template_id: str) -> None:
        with self._db.session() as conn:
            conn.execute("DELETE FROM task_templates WHERE id = ?", (template_id,))

    def create_task_from_template(self, template_id: str, due_at: int | None = None) -> Task:
        with self._db.session() as conn:
            tpl = self._fetch(conn, template_id)
            task_id = insert_task(
                conn,
                title=tpl.title,
                now=self._clock(),
                description=tpl.description,
                due_at=due_at,
                priority=tpl.priority.value,
                project_id=tpl.project_id,
            )
            logger.debug("Task %s created from template %s", task_id, template_id)
            return fetch_task(conn, task_id)
