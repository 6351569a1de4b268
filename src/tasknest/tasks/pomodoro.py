# src/tasknest/tasks/pomodoro.py

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Callable

from ..db.database import Database, transaction
from ..db.engine import wall_clock
from .progress import USER_ID, day_start, load_progress, next_streak
from .task_models import PomodoroSession, PomodoroStreak

logger = logging.getLogger(__name__)

MODES = ("pomodoro", "shortBreak", "longBreak")


def _row_to_session(row: sqlite3.Row) -> PomodoroSession:
    return PomodoroSession(
        id=str(row["id"]),
        task_id=row["task_id"],
        started_at=int(row["started_at"]),
        completed_at=int(row["completed_at"]),
        duration_seconds=int(row["duration_seconds"]),
        mode=str(row["mode"]),
        was_completed=bool(row["was_completed"]),
        task_completed=bool(row["task_completed"]),
        created_at=int(row["created_at"]),
    )


def _read_streak(conn: sqlite3.Connection) -> PomodoroStreak | None:
    row = conn.execute(
        "SELECT current_streak, longest_streak, last_session_date FROM pomodoro_streaks WHERE user_id = ?",
        (USER_ID,),
    ).fetchone()
    if row is None:
        return None
    return PomodoroStreak(
        current_streak=int(row["current_streak"] or 0),
        longest_streak=int(row["longest_streak"] or 0),
        last_session_date=row["last_session_date"],
    )


def _advance_streak(conn: sqlite3.Connection, session_date: int, now: int) -> PomodoroStreak:
    prev = _read_streak(conn)
    if prev is None or prev.last_session_date is None:
        current = 1
        longest = max(1, prev.longest_streak if prev else 0)
    else:
        current = next_streak(prev.current_streak, prev.last_session_date, day_start(session_date))
        longest = max(current, prev.longest_streak)

    conn.execute(
        """
        INSERT OR REPLACE INTO pomodoro_streaks
            (id, user_id, current_streak, longest_streak, last_session_date, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?,
                COALESCE((SELECT created_at FROM pomodoro_streaks WHERE id = ?), ?), ?)
        """,
        (USER_ID, USER_ID, current, longest, session_date, USER_ID, now, now),
    )
    return PomodoroStreak(current_streak=current, longest_streak=longest, last_session_date=session_date)


class PomodoroStore:
    """Focus-session log plus the daily session streak."""

    def __init__(self, db: Database, *, clock: Callable[[], int] = wall_clock) -> None:
        self._db = db
        self._clock = clock

    def create_session(
        self,
        *,
        started_at: int,
        completed_at: int,
        duration_seconds: int,
        mode: str = "pomodoro",
        task_id: str | None = None,
        was_completed: bool = True,
        task_completed: bool = False,
    ) -> PomodoroSession:
        if mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
        if int(duration_seconds) < 0:
            raise ValueError("duration_seconds must be >= 0")
        if int(completed_at) < int(started_at):
            raise ValueError("completed_at must not precede started_at")

        now = self._clock()
        session = PomodoroSession(
            id=str(uuid.uuid4()),
            task_id=task_id,
            started_at=int(started_at),
            completed_at=int(completed_at),
            duration_seconds=int(duration_seconds),
            mode=mode,
            was_completed=bool(was_completed),
            task_completed=bool(task_completed),
            created_at=now,
        )

        with self._db.session() as conn, transaction(conn):
            load_progress(conn, now)
            conn.execute(
                "INSERT INTO pomodoro_sessions (id, user_id, task_id, started_at, completed_at, "
                "duration_seconds, mode, was_completed, task_completed, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    USER_ID,
                    session.task_id,
                    session.started_at,
                    session.completed_at,
                    session.duration_seconds,
                    session.mode,
                    1 if session.was_completed else 0,
                    1 if session.task_completed else 0,
                    session.created_at,
                ),
            )
            streak = _advance_streak(conn, session.completed_at, now)

        logger.debug("Pomodoro session %s mode=%s streak=%d", session.id, mode, streak.current_streak)
        return session

    def get_streak(self) -> PomodoroStreak:
        with self._db.session() as conn:
            return _read_streak(conn) or PomodoroStreak(current_streak=0, longest_streak=0, last_session_date=None)

    def list_sessions(self, task_id: str | None = None) -> list[PomodoroSession]:
        with self._db.session() as conn:
            if task_id is None:
                rows = conn.execute("SELECT * FROM pomodoro_sessions ORDER BY started_at DESC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM pomodoro_sessions WHERE task_id = ? ORDER BY started_at DESC",
                    (task_id,),
                ).fetchall()
            return [_row_to_session(r) for r in rows]
