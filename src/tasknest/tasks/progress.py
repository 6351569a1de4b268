# src/tasknest/tasks/progress.py

"""
Gamification: XP, levels, daily streaks and badges.

Single-user: every row belongs to the 'default' user_progress row.
Module-level functions take a connection so toggle_complete can compose
them inside its own transaction; ProgressStore wraps them for callers that
hold only the Database handle.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
import uuid
from collections.abc import Callable

from ..db.baseline import insert_default_progress
from ..db.database import Database, transaction
from ..db.engine import wall_clock
from .task_models import Badge, GrantXpResult, UserProgress

logger = logging.getLogger(__name__)

DAY = 86400
USER_ID = "default"
TASK_COMPLETION = "task_completion"

XP_BY_PRIORITY = {"low": 10, "medium": 25, "high": 50}


def xp_for_priority(priority: str | None) -> int:
    return XP_BY_PRIORITY.get(str(priority or ""), 25)


def level_for_xp(total_xp: int) -> int:
    if total_xp <= 0:
        return 1
    return int(math.floor(math.sqrt(total_xp / 100.0))) + 1


def xp_for_level(level: int) -> int:
    return 100 * level * level


def current_level_xp(total_xp: int, level: int) -> int:
    """XP earned inside the current level."""
    spent = sum(xp_for_level(i) for i in range(1, level))
    return max(0, total_xp - spent)


def day_start(ts: int) -> int:
    return (int(ts) // DAY) * DAY


def next_streak(current: int, last_day: int | None, today: int) -> int:
    """
    Streak after activity on `today` (a day bucket start).

    Same day: unchanged. Previous day: +1. Gap or first activity: 1.
    A last day after `today` (clock moved back) leaves the streak as it is.
    """
    if last_day is None:
        return 1
    last = day_start(last_day)
    if last > today:
        return current
    if last == today:
        return max(1, current)
    if last == today - DAY:
        return current + 1
    return 1


def _row_to_progress(row: sqlite3.Row) -> UserProgress:
    return UserProgress(
        id=str(row["id"]),
        total_xp=int(row["total_xp"] or 0),
        current_level=int(row["current_level"] or 1),
        current_streak=int(row["current_streak"] or 0),
        longest_streak=int(row["longest_streak"] or 0),
        last_completion_date=row["last_completion_date"],
        created_at=int(row["created_at"] or 0),
        updated_at=int(row["updated_at"] or 0),
    )


def _row_to_badge(row: sqlite3.Row) -> Badge:
    return Badge(
        id=str(row["id"]),
        badge_type=str(row["badge_type"]),
        earned_at=int(row["earned_at"]),
        metadata=row["metadata"],
    )


def load_progress(conn: sqlite3.Connection, now: int) -> UserProgress:
    """Return the default progress row, creating it when missing."""
    row = conn.execute("SELECT * FROM user_progress WHERE id = ?", (USER_ID,)).fetchone()
    if row is None:
        insert_default_progress(conn, now)
        row = conn.execute("SELECT * FROM user_progress WHERE id = ?", (USER_ID,)).fetchone()
    return _row_to_progress(row)


def _result(total_xp: int, level_up: bool) -> GrantXpResult:
    level = level_for_xp(total_xp)
    return GrantXpResult(
        level_up=level_up,
        new_level=level,
        total_xp=total_xp,
        current_xp=current_level_xp(total_xp, level),
        xp_to_next_level=xp_for_level(level),
    )


def grant_xp(
    conn: sqlite3.Connection,
    amount: int,
    source: str,
    *,
    task_id: str | None = None,
    now: int,
) -> GrantXpResult:
    progress = load_progress(conn, now)
    total = max(0, progress.total_xp + int(amount))
    level = level_for_xp(total)

    conn.execute(
        "UPDATE user_progress SET total_xp = ?, current_level = ?, updated_at = ? WHERE id = ?",
        (total, level, now, USER_ID),
    )
    conn.execute(
        "INSERT INTO xp_history (id, user_id, xp_amount, source, task_id, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (str(uuid.uuid4()), USER_ID, int(amount), source, task_id, now),
    )
    if level > progress.current_level:
        logger.info("Level up: %d -> %d (total_xp=%d)", progress.current_level, level, total)
    return _result(total, level > progress.current_level)


def revoke_task_xp(conn: sqlite3.Connection, task_id: str, *, now: int) -> GrantXpResult | None:
    """
    Undo the most recent completion grant for task_id.

    Returns None when the task has no recorded grant.
    """
    row = conn.execute(
        "SELECT id, xp_amount FROM xp_history WHERE task_id = ? AND source = ? "
        "ORDER BY created_at DESC LIMIT 1",
        (task_id, TASK_COMPLETION),
    ).fetchone()
    if row is None:
        return None

    progress = load_progress(conn, now)
    total = max(0, progress.total_xp - int(row["xp_amount"]))
    conn.execute(
        "UPDATE user_progress SET total_xp = ?, current_level = ?, updated_at = ? WHERE id = ?",
        (total, level_for_xp(total), now, USER_ID),
    )
    conn.execute("DELETE FROM xp_history WHERE id = ?", (row["id"],))
    return _result(total, False)


def update_streak(conn: sqlite3.Connection, *, now: int) -> UserProgress:
    """Advance the completion streak if at least one task was completed today."""
    progress = load_progress(conn, now)
    today = day_start(now)

    (done_today,) = conn.execute(
        "SELECT COUNT(*) FROM tasks WHERE completed_at IS NOT NULL AND completed_at >= ? AND completed_at < ?",
        (today, today + DAY),
    ).fetchone()

    if int(done_today) > 0:
        progress.current_streak = next_streak(progress.current_streak, progress.last_completion_date, today)
        progress.longest_streak = max(progress.longest_streak, progress.current_streak)
        progress.last_completion_date = today

    progress.updated_at = now
    conn.execute(
        "UPDATE user_progress SET current_streak = ?, longest_streak = ?, last_completion_date = ?, "
        "updated_at = ? WHERE id = ?",
        (
            progress.current_streak,
            progress.longest_streak,
            progress.last_completion_date,
            now,
            USER_ID,
        ),
    )
    return progress


def _award(conn: sqlite3.Connection, badge_type: str, metadata: dict, now: int) -> Badge:
    badge = Badge(
        id=str(uuid.uuid4()),
        badge_type=badge_type,
        earned_at=now,
        metadata=json.dumps(metadata),
    )
    conn.execute(
        "INSERT INTO badges (id, user_id, badge_type, earned_at, metadata) VALUES (?, ?, ?, ?, ?)",
        (badge.id, USER_ID, badge.badge_type, badge.earned_at, badge.metadata),
    )
    logger.info("Badge awarded: %s", badge_type)
    return badge


def check_and_award_badges(conn: sqlite3.Connection, *, now: int) -> list[Badge]:
    """Award every badge whose criterion now holds; each type at most once."""
    progress = load_progress(conn, now)
    (completed,) = conn.execute("SELECT COUNT(*) FROM tasks WHERE completed_at IS NOT NULL").fetchone()
    completed = int(completed)

    earned = {
        str(r["badge_type"])
        for r in conn.execute("SELECT badge_type FROM badges WHERE user_id = ?", (USER_ID,)).fetchall()
    }

    criteria: list[tuple[str, bool, dict]] = [
        ("first_task", completed >= 1, {"tasks_completed": completed}),
        ("task_master_100", completed >= 100, {"tasks_completed": completed}),
        ("week_warrior", progress.current_streak == 7, {"streak": 7}),
        ("level_10", progress.current_level == 10, {"level": 10}),
    ]

    awarded: list[Badge] = []
    for badge_type, holds, metadata in criteria:
        if holds and badge_type not in earned:
            awarded.append(_award(conn, badge_type, metadata, now))
    return awarded


class ProgressStore:
    """Database-handle facade over the gamification functions."""

    def __init__(self, db: Database, *, clock: Callable[[], int] = wall_clock) -> None:
        self._db = db
        self._clock = clock

    def get_progress(self) -> UserProgress:
        with self._db.session() as conn:
            return load_progress(conn, self._clock())

    def grant_xp(self, amount: int, source: str, task_id: str | None = None) -> GrantXpResult:
        with self._db.session() as conn, transaction(conn):
            return grant_xp(conn, amount, source, task_id=task_id, now=self._clock())

    def update_streak(self) -> UserProgress:
        with self._db.session() as conn, transaction(conn):
            return update_streak(conn, now=self._clock())

    def check_and_award_badges(self) -> list[Badge]:
        with self._db.session() as conn, transaction(conn):
            return check_and_award_badges(conn, now=self._clock())

    def list_badges(self) -> list[Badge]:
        with self._db.session() as conn:
            rows = conn.execute(
                "SELECT * FROM badges WHERE user_id = ? ORDER BY earned_at DESC",
                (USER_ID,),
            ).fetchall()
            return [_row_to_badge(r) for r in rows]
