# src/tasknest/tasks/notifications.py

from __future__ import annotations

"""
Due/overdue reminders.

A small polling loop that, once per interval:
- try-locks the database (skips the cycle if another operation holds it),
- finds incomplete tasks due within the lookahead window,
- hands each (task, due-soon/overdue) pair to the NotificationSink once.

Failures inside a cycle are logged and swallowed; the loop keeps running.
Presentation (OS notification, console line) belongs to the sink.
"""

import asyncio
import contextlib
import logging
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..core.ports import NotificationSink
from ..db.database import Database
from ..db.errors import NotFoundError
from .task_models import DueNotification

if TYPE_CHECKING:
    from ..core.state import AppState

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_SECONDS = 3600


def find_due_notifications(
    conn: sqlite3.Connection,
    now: int,
    lookahead_seconds: int = DEFAULT_LOOKAHEAD_SECONDS,
) -> list[DueNotification]:
    """Incomplete tasks due before now + lookahead, minus the ones snoozed past now."""
    rows = conn.execute(
        """
        SELECT id, title, due_at FROM tasks
        WHERE due_at IS NOT NULL AND due_at <= ? AND completed_at IS NULL
          AND id NOT IN (
            SELECT task_id FROM notification_schedule
            WHERE snooze_until IS NOT NULL AND snooze_until > ?
          )
        ORDER BY due_at
        """,
        (int(now) + int(lookahead_seconds), int(now)),
    ).fetchall()

    out: list[DueNotification] = []
    for r in rows:
        title = str(r["title"])
        if int(r["due_at"]) > now:
            out.append(DueNotification(str(r["id"]), "Task Due Soon", f"{title} is due soon", overdue=False))
        else:
            out.append(DueNotification(str(r["id"]), "Task Overdue", f"{title} is overdue", overdue=True))
    return out


def schedule_notification(db: Database, task_id: str, scheduled_at: int) -> str:
    notification_id = str(uuid.uuid4())
    with db.session() as conn:
        conn.execute(
            "INSERT INTO notification_schedule (id, task_id, scheduled_at, snooze_until, created_at) "
            "VALUES (?, ?, ?, NULL, ?)",
            (notification_id, task_id, int(scheduled_at), int(time.time())),
        )
    return notification_id


def snooze_notification(db: Database, notification_id: str, minutes: int, *, now: int | None = None) -> int:
    """Push a scheduled notification back; returns the new snooze_until."""
    if int(minutes) <= 0:
        raise ValueError("minutes must be > 0")
    until = int(time.time() if now is None else now) + int(minutes) * 60
    with db.session() as conn:
        cur = conn.execute(
            "UPDATE notification_schedule SET snooze_until = ? WHERE id = ?",
            (until, notification_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Notification not found: {notification_id}")
    return until


def notification_cycle(
    db: Database,
    sink: NotificationSink,
    *,
    now: int,
    lookahead_seconds: int,
    sent: set[tuple[str, bool]],
) -> int | None:
    """
    One scheduler pass. Returns how many notifications were delivered, or
    None when the database was busy and the cycle was skipped.
    """
    with db.try_session() as conn:
        if conn is None:
            return None
        due = find_due_notifications(conn, now, lookahead_seconds)

    delivered = 0
    for n in due:
        key = (n.task_id, n.overdue)
        if key in sent:
            continue
        sink.notify(title=n.title, body=n.body, task_id=n.task_id)
        sent.add(key)
        delivered += 1
    return delivered


async def run_notification_scheduler(
    db: Database,
    sink: NotificationSink,
    *,
    interval_seconds: float = 60.0,
    lookahead_seconds: int = DEFAULT_LOOKAHEAD_SECONDS,
    stop_event: asyncio.Event | None = None,
) -> None:
    """
    Polling loop; stop it by setting stop_event or cancelling the task.
    """
    sleep_s = max(0.05, float(interval_seconds))
    sent: set[tuple[str, bool]] = set()

    while stop_event is None or not stop_event.is_set():
        try:
            n = notification_cycle(
                db,
                sink,
                now=int(time.time()),
                lookahead_seconds=int(lookahead_seconds),
                sent=sent,
            )
            if n is None:
                logger.debug("Notification cycle skipped: database busy")
            elif n:
                logger.info("Delivered %d notification(s)", n)
        except Exception:
            logger.exception("Notification cycle failed")

        if stop_event is None:
            await asyncio.sleep(sleep_s)
        else:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)

    logger.info("Notification scheduler stopped.")


@dataclass
class NotificationRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal notification stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_notifications_in_background(state: AppState) -> NotificationRunner | None:
    """
    Run the notification scheduler in a daemon thread with its own event loop,
    so the blocking console REPL can run in parallel.
    """
    settings = state.settings
    if not state.notifications_enabled:
        logger.info("Notifications disabled, not starting.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_notification_scheduler(
                    state.db,
                    state.notifier,
                    interval_seconds=float(getattr(settings, "notification_interval_seconds", 60.0)),
                    lookahead_seconds=int(getattr(settings, "notification_lookahead_seconds", DEFAULT_LOOKAHEAD_SECONDS)),
                    stop_event=stop_event,
                )
            )
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="tasknest-notifications", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Notification thread did not initialize properly.")
        return None

    logger.info("Notification background thread started.")
    return NotificationRunner(thread=t, loop=loop, stop_event=stop_event)
