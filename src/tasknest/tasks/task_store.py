# src/tasknest/tasks/task_store.py

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Callable
from typing import Any

from ..db.database import Database, transaction
from ..db.engine import wall_clock
from ..db.errors import NotFoundError
from ..db.schema import table_exists
from . import progress
from .task_models import (
    Priority,
    RecurrenceType,
    Subtask,
    Tag,
    Task,
    TaskFilter,
    ToggleResult,
)

logger = logging.getLogger(__name__)

DAY = 24 * 60 * 60

# Days added to due_at per interval unit. CUSTOM keeps the same due date.
RECURRENCE_STEP_DAYS = {
    RecurrenceType.DAILY: 1,
    RecurrenceType.WEEKLY: 7,
    RecurrenceType.MONTHLY: 30,
    RecurrenceType.CUSTOM: 0,
}

_UNSET: Any = object()


def _check_priority(priority: str) -> Priority:
    try:
        return Priority(priority)
    except ValueError:
        raise ValueError(f"priority must be one of {[p.value for p in Priority]}, got {priority!r}") from None


def _check_recurrence(recurrence_type: str) -> RecurrenceType:
    try:
        return RecurrenceType(recurrence_type)
    except ValueError:
        raise ValueError(
            f"recurrence_type must be one of {[r.value for r in RecurrenceType]}, got {recurrence_type!r}"
        ) from None


def next_due_at(due_at: int | None, recurrence_type: RecurrenceType, interval: int) -> int | None:
    if due_at is None:
        return None
    return int(due_at) + RECURRENCE_STEP_DAYS.get(recurrence_type, 0) * max(1, int(interval)) * DAY


def row_to_task(row: sqlite3.Row, tags: list[Tag] | None = None) -> Task:
    keys = row.keys()

    def opt(name: str) -> Any:
        return row[name] if name in keys else None

    return Task(
        id=str(row["id"]),
        title=str(row["title"]),
        description=row["description"],
        due_at=row["due_at"],
        created_at=int(row["created_at"] or 0),
        updated_at=int(row["updated_at"] or 0),
        priority=Priority.from_db(row["priority"]),
        completed_at=row["completed_at"],
        project_id=row["project_id"],
        order_index=int(row["order_index"] or 0),
        recurrence_type=RecurrenceType.from_db(opt("recurrence_type")),
        recurrence_interval=int(opt("recurrence_interval") or 1),
        recurrence_parent_id=opt("recurrence_parent_id"),
        reminder_minutes_before=opt("reminder_minutes_before"),
        notification_repeat=bool(opt("notification_repeat") or 0),
        tags=list(tags or []),
    )


def row_to_tag(row: sqlite3.Row) -> Tag:
    return Tag(
        id=str(row["id"]),
        name=str(row["name"]),
        color=row["color"],
        created_at=int(row["created_at"] or 0),
        usage_count=int(row["usage_count"] or 0),
    )


def fetch_task_tags(conn: sqlite3.Connection, task_id: str) -> list[Tag]:
    if not table_exists(conn, "task_tags"):
        return []
    rows = conn.execute(
        """
        SELECT t.* FROM tags t
        JOIN task_tags tt ON tt.tag_id = t.id
        WHERE tt.task_id = ?
        ORDER BY t.name
        """,
        (task_id,),
    ).fetchall()
    return [row_to_tag(r) for r in rows]


def fetch_task(conn: sqlite3.Connection, task_id: str) -> Task:
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Task not found: {task_id}")
    return row_to_task(row, fetch_task_tags(conn, task_id))


def insert_task(
    conn: sqlite3.Connection,
    *,
    title: str,
    now: int,
    description: str | None = None,
    due_at: int | None = None,
    priority: str = "medium",
    project_id: str | None = None,
    order_index: int = 0,
    recurrence_type: str = "none",
    recurrence_interval: int = 1,
    recurrence_parent_id: str | None = None,
    reminder_minutes_before: int | None = None,
    notification_repeat: bool = False,
) -> str:
    """Validate and insert one task row; returns its id."""
    if not title or not title.strip():
        raise ValueError("title is required")
    prio = _check_priority(priority)
    rec = _check_recurrence(recurrence_type)
    if int(recurrence_interval) < 1:
        raise ValueError("recurrence_interval must be >= 1")

    task_id = str(uuid.uuid4())
    conn.execute(
        """
        INSERT INTO tasks (
            id, title, description, due_at, created_at, updated_at,
            priority, completed_at, project_id, order_index, metadata,
            recurrence_type, recurrence_interval, recurrence_parent_id,
            reminder_minutes_before, notification_repeat
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, NULL, ?, ?, ?, ?, ?)
        """,
        (
            task_id,
            title.strip(),
            description,
            due_at,
            now,
            now,
            prio.value,
            project_id,
            int(order_index),
            rec.value,
            int(recurrence_interval),
            recurrence_parent_id,
            reminder_minutes_before,
            1 if notification_repeat else 0,
        ),
    )
    return task_id


class TaskStore:
    """
    Task CRUD, completion toggling and subtasks.

    Every public method holds the database lock for its whole duration.
    """

    def __init__(self, db: Database, *, clock: Callable[[], int] = wall_clock) -> None:
        self._db = db
        self._clock = clock

    # ---- tasks ----

    def count_tasks(self) -> int:
        with self._db.session() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def list_tasks(self, flt: TaskFilter | None = None) -> list[Task]:
        flt = flt or TaskFilter()
        where: list[str] = []
        params: list[Any] = []

        if flt.project_id is not None:
            where.append("project_id = ?")
            params.append(flt.project_id)
        if flt.completed is not None:
            where.append("completed_at IS NOT NULL" if flt.completed else "completed_at IS NULL")
        if flt.due_before is not None:
            where.append("due_at <= ?")
            params.append(int(flt.due_before))
        if flt.due_after is not None:
            where.append("due_at >= ?")
            params.append(int(flt.due_after))
        if flt.search:
            where.append("(title LIKE ? OR description LIKE ?)")
            pattern = f"%{flt.search}%"
            params.extend([pattern, pattern])

        with self._db.session() as conn:
            if flt.tag_id is not None and table_exists(conn, "task_tags"):
                where.append("id IN (SELECT task_id FROM task_tags WHERE tag_id = ?)")
                params.append(flt.tag_id)

            sql = "SELECT * FROM tasks"
            if where:
                sql += " WHERE " + " AND ".join(where)
            sql += " ORDER BY order_index, created_at"

            rows = conn.execute(sql, params).fetchall()
            return [row_to_task(r, fetch_task_tags(conn, str(r["id"]))) for r in rows]

    def get_task(self, task_id: str) -> Task:
        with self._db.session() as conn:
            return fetch_task(conn, task_id)

    def create_task(
        self,
        title: str,
        *,
        description: str | None = None,
        due_at: int | None = None,
        priority: str = "medium",
        project_id: str | None = None,
        recurrence_type: str = "none",
        recurrence_interval: int = 1,
        reminder_minutes_before: int | None = None,
        notification_repeat: bool = False,
    ) -> Task:
        with self._db.session() as conn:
            task_id = insert_task(
                conn,
                title=title,
                now=self._clock(),
                description=description,
                due_at=due_at,
                priority=priority,
                project_id=project_id,
                recurrence_type=recurrence_type,
                recurrence_interval=recurrence_interval,
                reminder_minutes_before=reminder_minutes_before,
                notification_repeat=notification_repeat,
            )
            logger.debug("Task created id=%s priority=%s due_at=%s", task_id, priority, due_at)
            return fetch_task(conn, task_id)

    def update_task(
        self,
        task_id: str,
        *,
        title: str | None = None,
        description: str | None = _UNSET,
        due_at: int | None = _UNSET,
        priority: str | None = None,
        project_id: str | None = _UNSET,
        order_index: int | None = None,
        recurrence_type: str | None = None,
        recurrence_interval: int | None = None,
        reminder_minutes_before: int | None = _UNSET,
        notification_repeat: bool | None = None,
    ) -> Task:
        """
        Partial update: only the provided fields change.

        Nullable columns (description, due_at, project_id, reminder) accept an
        explicit None to clear them.
        """
        fields: list[str] = []
        params: list[Any] = []

        if title is not None:
            if not title.strip():
                raise ValueError("title cannot be empty")
            fields.append("title = ?")
            params.append(title.strip())
        if description is not _UNSET:
            fields.append("description = ?")
            params.append(description)
        if due_at is not _UNSET:
            fields.append("due_at = ?")
            params.append(due_at)
        if priority is not None:
            fields.append("priority = ?")
            params.append(_check_priority(priority).value)
        if project_id is not _UNSET:
            fields.append("project_id = ?")
            params.append(project_id)
        if order_index is not None:
            fields.append("order_index = ?")
            params.append(int(order_index))
        if recurrence_type is not None:
            fields.append("recurrence_type = ?")
            params.append(_check_recurrence(recurrence_type).value)
        if recurrence_interval is not None:
            if int(recurrence_interval) < 1:
                raise ValueError("recurrence_interval must be >= 1")
            fields.append("recurrence_interval = ?")
            params.append(int(recurrence_interval))
        if reminder_minutes_before is not _UNSET:
            fields.append("reminder_minutes_before = ?")
            params.append(reminder_minutes_before)
        if notification_repeat is not None:
            fields.append("notification_repeat = ?")
            params.append(1 if notification_repeat else 0)

        with self._db.session() as conn:
            if not fields:
                return fetch_task(conn, task_id)

            fields.append("updated_at = ?")
            params.append(self._clock())
            params.append(task_id)
            cur = conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            if cur.rowcount == 0:
                raise NotFoundError(f"Task not found: {task_id}")
            return fetch_task(conn, task_id)

    def delete_task(self, task_id: str) -> None:
        with self._db.session() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            if cur.rowcount == 0:
                raise NotFoundError(f"Task not found: {task_id}")
            logger.debug("Task deleted id=%s", task_id)

    def toggle_complete(self, task_id: str) -> ToggleResult:
        """
        Flip completion.

        Completing: spawn the next instance of a recurring task, grant XP by
        priority, advance the streak, award badges. Un-completing: revoke the
        XP granted for this task. All in one transaction.
        """
        now = self._clock()
        with self._db.session() as conn, transaction(conn):
            task = fetch_task(conn, task_id)
            completing = task.completed_at is None

            conn.execute(
                "UPDATE tasks SET completed_at = ?, updated_at = ? WHERE id = ?",
                (now if completing else None, now, task_id),
            )

            result = ToggleResult(task=task)
            if completing:
                if task.recurrence_type != RecurrenceType.NONE:
                    next_id = insert_task(
                        conn,
                        title=task.title,
                        now=now,
                        description=task.description,
                        due_at=next_due_at(task.due_at, task.recurrence_type, task.recurrence_interval),
                        priority=task.priority.value,
                        project_id=task.project_id,
                        order_index=task.order_index,
                        recurrence_type=task.recurrence_type.value,
                        recurrence_interval=task.recurrence_interval,
                        recurrence_parent_id=task.id,
                    )
                    result.next_instance = fetch_task(conn, next_id)
                    logger.info("Recurring task %s -> next instance %s", task.id, next_id)

                result.xp = progress.grant_xp(
                    conn,
                    progress.xp_for_priority(task.priority.value),
                    progress.TASK_COMPLETION,
                    task_id=task.id,
                    now=now,
                )
                progress.update_streak(conn, now=now)
                result.new_badges = progress.check_and_award_badges(conn, now=now)
            else:
                result.xp = progress.revoke_task_xp(conn, task.id, now=now)
                if result.xp is not None:
                    progress.update_streak(conn, now=now)

            result.task = fetch_task(conn, task_id)
            return result

    # ---- subtasks ----

    @staticmethod
    def _row_to_subtask(row: sqlite3.Row) -> Subtask:
        return Subtask(
            id=str(row["id"]),
            task_id=str(row["task_id"]),
            title=str(row["title"]),
            completed=bool(row["completed"]),
        )

    def list_subtasks(self, task_id: str) -> list[Subtask]:
        with self._db.session() as conn:
            rows = conn.execute(
                "SELECT * FROM subtasks WHERE task_id = ? ORDER BY rowid",
                (task_id,),
            ).fetchall()
            return [self._row_to_subtask(r) for r in rows]

    def add_subtask(self, task_id: str, title: str) -> Subtask:
        if not title or not title.strip():
            raise ValueError("title is required")
        sub = Subtask(id=str(uuid.uuid4()), task_id=task_id, title=title.strip(), completed=False)
        with self._db.session() as conn:
            fetch_task(conn, task_id)
            conn.execute(
                "INSERT INTO subtasks (id, task_id, title, completed) VALUES (?, ?, ?, 0)",
                (sub.id, sub.task_id, sub.title),
            )
        return sub

    def update_subtask(self, subtask_id: str, *, title: str | None = None, completed: bool | None = None) -> Subtask:
        fields: list[str] = []
        params: list[Any] = []
        if title is not None:
            if not title.strip():
                raise ValueError("title cannot be empty")
            fields.append("title = ?")
            params.append(title.strip())
        if completed is not None:
            fields.append("completed = ?")
            params.append(1 if completed else 0)

        with self._db.session() as conn:
            if fields:
                params.append(subtask_id)
                conn.execute(f"UPDATE subtasks SET {', '.join(fields)} WHERE id = ?", params)
            row = conn.execute("SELECT * FROM subtasks WHERE id = ?", (subtask_id,)).fetchone()
            if row is None:
                raise NotFoundError(f"Subtask not found: {subtask_id}")
            return self._row_to_subtask(row)

    def delete_subtask(self, subtask_id: str) -> None:
        with self._db.session() as conn:
            conn.execute("DELETE FROM subtasks WHERE id = ?", (subtask_id,))
