# tests/test_progress.py

from __future__ import annotations

from tasknest.db.database import Database, transaction
from tasknest.tasks import progress
from tasknest.tasks.progress import (
    DAY,
    ProgressStore,
    current_level_xp,
    level_for_xp,
    next_streak,
    xp_for_level,
    xp_for_priority,
)

from .conftest import FIXED_NOW


def test_xp_and_level_formulas() -> None:
    assert xp_for_priority("low") == 10
    assert xp_for_priority("medium") == 25
    assert xp_for_priority("high") == 50
    assert xp_for_priority("bogus") == 25
    assert xp_for_priority(None) == 25

    assert level_for_xp(0) == 1
    assert level_for_xp(-5) == 1
    assert level_for_xp(99) == 1
    assert level_for_xp(100) == 2
    assert level_for_xp(400) == 3
    assert level_for_xp(8100) == 10

    assert xp_for_level(3) == 900
    # Level 3 means levels 1 and 2 (100 + 400 XP) are behind us.
    assert current_level_xp(600, 3) == 100
    assert current_level_xp(100, 3) == 0


def test_next_streak_rules() -> None:
    today = (FIXED_NOW // DAY) * DAY
    assert next_streak(0, None, today) == 1
    assert next_streak(3, today, today) == 3
    assert next_streak(0, today, today) == 1
    assert next_streak(3, today - DAY, today) == 4
    assert next_streak(3, today - 2 * DAY, today) == 1
    assert next_streak(3, today + DAY, today) == 3
    assert next_streak(0, today + 5 * DAY, today) == 0


def test_default_progress_row(db: Database) -> None:
    p = ProgressStore(db).get_progress()
    assert p.id == "default"
    assert p.total_xp == 0
    assert p.current_level == 1


def test_grant_xp_levels_up_and_logs_history(db: Database) -> None:
    store = ProgressStore(db)
    first = store.grant_xp(60, "bonus")
    assert not first.level_up
    second = store.grant_xp(60, "bonus")
    assert second.level_up
    assert second.new_level == 2
    assert second.total_xp == 120
    assert second.current_xp == 20

    with db.session() as conn:
        (n,) = conn.execute("SELECT COUNT(*) FROM xp_history WHERE source = 'bonus'").fetchone()
    assert n == 2


def test_revoke_without_grant_is_none(db: Database) -> None:
    with db.session() as conn:
        assert progress.revoke_task_xp(conn, "never-completed", now=FIXED_NOW) is None


def _complete_task_on(db: Database, task_id: str, ts: int) -> None:
    with db.session() as conn:
        conn.execute(
            "INSERT INTO tasks (id, title, created_at, updated_at, completed_at) VALUES (?, ?, ?, ?, ?)",
            (task_id, task_id, ts, ts, ts),
        )


def test_streak_counts_consecutive_days_and_awards_week_warrior(db: Database) -> None:
    start = (FIXED_NOW // DAY) * DAY + 3600
    awarded: list[str] = []

    for day in range(7):
        ts = start + day * DAY
        _complete_task_on(db, f"t{day}", ts)
        with db.session() as conn, transaction(conn):
            p = progress.update_streak(conn, now=ts)
            awarded += [b.badge_type for b in progress.check_and_award_badges(conn, now=ts)]

    assert p.current_streak == 7
    assert p.longest_streak == 7
    assert awarded == ["first_task", "week_warrior"]

    # A gap resets the streak but keeps the longest.
    ts = start + 9 * DAY
    _complete_task_on(db, "late", ts)
    with db.session() as conn, transaction(conn):
        p = progress.update_streak(conn, now=ts)
    assert p.current_streak == 1
    assert p.longest_streak == 7
    assert sorted(b.badge_type for b in ProgressStore(db).list_badges()) == ["first_task", "week_warrior"]


def test_streak_unchanged_without_completion_today(db: Database) -> None:
    with db.session() as conn, transaction(conn):
        p = progress.update_streak(conn, now=FIXED_NOW)
    assert p.current_streak == 0
    assert p.last_completion_date is None
