# src/tasknest/tasks/tag_store.py

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Callable, Sequence

from ..db.database import Database, transaction
from ..db.engine import wall_clock
from ..db.errors import NotFoundError
from .task_models import RelationshipType, Tag, Task, TaskRelationship
from .task_store import fetch_task_tags, row_to_tag, row_to_task

logger = logging.getLogger(__name__)

MAX_DEPENDENCY_DEPTH = 100
SUGGESTION_LIMIT = 10


def would_create_cycle(conn: sqlite3.Connection, blocking_id: str, blocked_id: str) -> bool:
    """
    True if `blocking_id blocks blocked_id` would close a cycle.

    Walks the existing blockers of blocking_id transitively (depth-bounded);
    reaching blocked_id means blocked_id already blocks blocking_id.
    """
    (n,) = conn.execute(
        """
        WITH RECURSIVE chain(task_id, depth) AS (
            SELECT ?, 0
            UNION ALL
            SELECT tr.task_id_1, chain.depth + 1
            FROM task_relationships tr
            JOIN chain ON tr.task_id_2 = chain.task_id
            WHERE tr.relationship_type = 'blocks' AND chain.depth < ?
        )
        SELECT COUNT(*) FROM chain WHERE task_id = ?
        """,
        (blocking_id, MAX_DEPENDENCY_DEPTH, blocked_id),
    ).fetchone()
    return int(n) > 0


class TagStore:
    """Tags, task<->tag links and task relationships."""

    def __init__(self, db: Database, *, clock: Callable[[], int] = wall_clock) -> None:
        self._db = db
        self._clock = clock

    def _tasks(self, conn: sqlite3.Connection, sql: str, params: Sequence[object]) -> list[Task]:
        rows = conn.execute(sql, params).fetchall()
        return [row_to_task(r, fetch_task_tags(conn, str(r["id"]))) for r in rows]

    # ---- tags ----

    def list_tags(self) -> list[Tag]:
        with self._db.session() as conn:
            rows = conn.execute("SELECT * FROM tags ORDER BY name").fetchall()
            return [row_to_tag(r) for r in rows]

    def task_tags(self, task_id: str) -> list[Tag]:
        with self._db.session() as conn:
            return fetch_task_tags(conn, task_id)

    def create_tag(self, name: str, color: str | None = None) -> Tag:
        """Create a tag; a name that already exists (after normalizing) returns the existing tag."""
        normalized = (name or "").strip().lower()
        if not normalized:
            raise ValueError("Tag name cannot be empty")

        with self._db.session() as conn:
            row = conn.execute("SELECT * FROM tags WHERE name = ?", (normalized,)).fetchone()
            if row is not None:
                return row_to_tag(row)

            tag = Tag(id=str(uuid.uuid4()), name=normalized, color=color, created_at=self._clock(), usage_count=0)
            conn.execute(
                "INSERT INTO tags (id, name, color, created_at, usage_count) VALUES (?, ?, ?, ?, 0)",
                (tag.id, tag.name, tag.color, tag.created_at),
            )
            return tag

    def delete_tag(self, tag_id: str) -> None:
        with self._db.session() as conn:
            conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))

    def add_tag_to_task(self, task_id: str, tag_id: str) -> bool:
        """Attach a tag. Returns False when it was already attached."""
        with self._db.session() as conn, transaction(conn):
            cur = conn.execute(
                "INSERT OR IGNORE INTO task_tags (id, task_id, tag_id, created_at) VALUES (?, ?, ?, ?)",
                (str(uuid.uuid4()), task_id, tag_id, self._clock()),
            )
            if cur.rowcount == 0:
                return False
            conn.execute("UPDATE tags SET usage_count = usage_count + 1 WHERE id = ?", (tag_id,))
            return True

    def remove_tag_from_task(self, task_id: str, tag_id: str) -> bool:
        with self._db.session() as conn, transaction(conn):
            cur = conn.execute("DELETE FROM task_tags WHERE task_id = ? AND tag_id = ?", (task_id, tag_id))
            if cur.rowcount == 0:
                return False
            conn.execute("UPDATE tags SET usage_count = MAX(0, usage_count - 1) WHERE id = ?", (tag_id,))
            return True

    def suggest_tags(self, search: str) -> list[Tag]:
        pattern = f"%{(search or '').strip().lower()}%"
        with self._db.session() as conn:
            rows = conn.execute(
                "SELECT * FROM tags WHERE name LIKE ? ORDER BY usage_count DESC, name LIMIT ?",
                (pattern, SUGGESTION_LIMIT),
            ).fetchall()
            return [row_to_tag(r) for r in rows]

    def tasks_by_tag(self, tag_id: str) -> list[Task]:
        return self.tasks_by_tags([tag_id])

    def tasks_by_tags(self, tag_ids: Sequence[str]) -> list[Task]:
        """Tasks carrying any of the given tags."""
        if not tag_ids:
            return []
        placeholders = ",".join("?" for _ in tag_ids)
        with self._db.session() as conn:
            return self._tasks(
                conn,
                f"""
                SELECT DISTINCT t.* FROM tasks t
                JOIN task_tags tt ON tt.task_id = t.id
                WHERE tt.tag_id IN ({placeholders})
                ORDER BY t.order_index, t.created_at
                """,
                list(tag_ids),
            )

    # ---- relationships ----

    def create_relationship(
        self,
        task_id_1: str,
        task_id_2: str,
        relationship_type: str = RelationshipType.RELATED,
    ) -> TaskRelationship:
        if task_id_1 == task_id_2:
            raise ValueError("Cannot create relationship between a task and itself")
        rel_type = RelationshipType(relationship_type)

        rel = TaskRelationship(
            id=str(uuid.uuid4()),
            task_id_1=task_id_1,
            task_id_2=task_id_2,
            relationship_type=rel_type,
            created_at=self._clock(),
        )
        with self._db.session() as conn:
            if rel_type == RelationshipType.BLOCKS and would_create_cycle(conn, task_id_1, task_id_2):
                raise ValueError("Cannot create blocking relationship: would create circular dependency")
            try:
                conn.execute(
                    "INSERT INTO task_relationships (id, task_id_1, task_id_2, relationship_type, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (rel.id, rel.task_id_1, rel.task_id_2, rel.relationship_type.value, rel.created_at),
                )
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e):
                    raise ValueError("Relationship already exists between these tasks") from e
                raise
        logger.debug("Relationship %s: %s -> %s", rel_type.value, task_id_1, task_id_2)
        return rel

    def delete_relationship(self, relationship_id: str) -> None:
        with self._db.session() as conn:
            cur = conn.execute("DELETE FROM task_relationships WHERE id = ?", (relationship_id,))
            if cur.rowcount == 0:
                raise NotFoundError(f"Relationship not found: {relationship_id}")

    def related_tasks(self, task_id: str) -> list[Task]:
        """Tasks linked to task_id by any relationship, in either direction."""
        with self._db.session() as conn:
            return self._tasks(
                conn,
                """
                SELECT DISTINCT t.* FROM tasks t
                JOIN task_relationships tr
                  ON (tr.task_id_1 = ? AND tr.task_id_2 = t.id)
                  OR (tr.task_id_2 = ? AND tr.task_id_1 = t.id)
                ORDER BY t.created_at
                """,
                (task_id, task_id),
            )

    def blocking_tasks(self, task_id: str) -> list[Task]:
        """Tasks that block task_id."""
        with self._db.session() as conn:
            return self._tasks(
                conn,
                """
                SELECT DISTINCT t.* FROM tasks t
                JOIN task_relationships tr ON tr.task_id_1 = t.id
                WHERE tr.task_id_2 = ? AND tr.relationship_type = 'blocks'
                ORDER BY t.created_at
                """,
                (task_id,),
            )

    def blocked_tasks(self, task_id: str) -> list[Task]:
        """Tasks blocked by task_id."""
        with self._db.session() as conn:
            return self._tasks(
                conn,
                """
                SELECT DISTINCT t.* FROM tasks t
                JOIN task_relationships tr ON tr.task_id_2 = t.id
                WHERE tr.task_id_1 = ? AND tr.relationship_type = 'blocks'
                ORDER BY t.created_at
                """,
                (task_id,),
            )
