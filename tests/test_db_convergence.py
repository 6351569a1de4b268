# tests/test_db_convergence.py

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest

from tasknest.db.baseline import DOMAIN_TABLES
from tasknest.db.catalog import PACKAGED_MIGRATIONS_DIR, MigrationUnit, load_catalog
from tasknest.db.database import Database
from tasknest.db.errors import DatabaseInitError, MigrationError
from tasknest.db.ledger import MigrationLedger
from tasknest.db.reconciler import DEFAULT_ROW_INSERTED, TABLE_CREATED
from tasknest.db.schema import column_names, count_rows, run_script, table_exists
from tasknest.db.seeder import EXAMPLE_TASKS, seed_if_empty
from tasknest.db.startup import run_startup

from .conftest import FIXED_NOW


def _clock() -> int:
    return FIXED_NOW


@pytest.fixture()
def raw_db(tmp_path: Path) -> Iterator[Database]:
    database = Database(tmp_path / "raw.db")
    yield database
    database.close()


def _schema(conn: sqlite3.Connection) -> list[tuple]:
    rows = conn.execute(
        "SELECT type, name, tbl_name, sql FROM sqlite_master "
        "WHERE name NOT LIKE 'sqlite_%' ORDER BY type, name"
    ).fetchall()
    return [tuple(r) for r in rows]


def _packaged() -> list[MigrationUnit]:
    return load_catalog([PACKAGED_MIGRATIONS_DIR])


def _only(*names: str) -> list[MigrationUnit]:
    return [u for u in _packaged() if u.name in names]


def _write_catalog(directory: Path, files: dict[str, str]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    for name, body in files.items():
        (directory / name).write_text(body, encoding="utf-8")
    return directory


def test_startup_twice_yields_identical_schema(raw_db: Database) -> None:
    with raw_db.session() as conn:
        first = run_startup(conn, _packaged(), seed=False, clock=_clock)
        after_first = _schema(conn)

        second = run_startup(conn, _packaged(), seed=False, clock=_clock)
        after_second = _schema(conn)

    assert len(first.applied) == len(_packaged())
    assert first.repaired == {}
    assert first.bootstrapped is False

    assert second.applied == []
    assert second.repaired == {}
    assert after_first == after_second


def test_each_migration_recorded_at_most_once(raw_db: Database) -> None:
    with raw_db.session() as conn:
        for _ in range(3):
            run_startup(conn, _packaged(), seed=False, clock=_clock)

        dupes = conn.execute(
            "SELECT name, COUNT(*) FROM migrations GROUP BY name HAVING COUNT(*) > 1"
        ).fetchall()
        assert dupes == []
        assert count_rows(conn, "migrations") == len(_packaged())

        ledger = MigrationLedger(conn)
        with pytest.raises(sqlite3.IntegrityError):
            ledger.record("0001_create_tables.sql", FIXED_NOW)


def test_full_schema_with_empty_ledger_converges_without_errors(raw_db: Database) -> None:
    with raw_db.session() as conn:
        run_startup(conn, _packaged(), seed=False, clock=_clock)
        before = _schema(conn)
        conn.execute("DELETE FROM migrations")

        report = run_startup(conn, _packaged(), seed=False, clock=_clock)

        # Every unit re-ran against the existing schema and was recorded again.
        assert report.applied == [u.name for u in _packaged()]
        assert report.repaired == {}
        assert report.bootstrapped is False
        assert _schema(conn) == before

        cols = [r["name"] for r in conn.execute("PRAGMA table_info(tasks)").fetchall()]
        assert cols.count("recurrence_type") == 1
        assert cols.count("notification_repeat") == 1


def test_bootstrap_builds_full_schema_when_catalog_is_missing(raw_db: Database) -> None:
    with raw_db.session() as conn:
        report = run_startup(conn, [], seed=False, clock=_clock)

        assert report.applied == []
        assert report.bootstrapped is True
        # The reconciler ran first; with no tasks table it only restores attachments.
        assert report.repaired == {"attachments": [TABLE_CREATED]}

        for table in DOMAIN_TABLES:
            assert table_exists(conn, table), table
        assert table_exists(conn, "migrations")
        assert count_rows(conn, "tasks") == 0
        assert count_rows(conn, "projects") == 0

        # Ready for the seeder.
        assert seed_if_empty(conn, now=FIXED_NOW) == len(EXAMPLE_TASKS)


def test_bootstrapped_schema_matches_recurrence_and_reminder_columns(raw_db: Database) -> None:
    with raw_db.session() as conn:
        run_startup(conn, [], seed=False, clock=_clock)
        cols = column_names(conn, "tasks")
        assert {
            "recurrence_type",
            "recurrence_interval",
            "recurrence_parent_id",
            "reminder_minutes_before",
            "notification_repeat",
        } <= cols
        assert "size" in column_names(conn, "attachments")
        assert count_rows(conn, "user_progress") == 1
        assert count_rows(conn, "pomodoro_streaks") == 1

        # A second pass sees the core table and leaves everything alone.
        again = run_startup(conn, [], seed=False, clock=_clock)
        assert again.bootstrapped is False
        assert again.repaired == {}


def test_seeding_twice_never_duplicates(raw_db: Database) -> None:
    with raw_db.session() as conn:
        run_startup(conn, _packaged(), seed=False, clock=_clock)

        assert seed_if_empty(conn, now=FIXED_NOW) == len(EXAMPLE_TASKS)
        assert seed_if_empty(conn, now=FIXED_NOW) == 0
        assert count_rows(conn, "tasks") == len(EXAMPLE_TASKS)

        report = run_startup(conn, _packaged(), seed=True, clock=_clock)
        assert report.seeded == 0
        assert count_rows(conn, "tasks") == len(EXAMPLE_TASKS)

        completed = conn.execute("SELECT COUNT(*) FROM tasks WHERE completed_at IS NOT NULL").fetchone()[0]
        assert completed == 2


def test_seeder_skips_non_empty_table(raw_db: Database) -> None:
    with raw_db.session() as conn:
        run_startup(conn, _packaged(), seed=False, clock=_clock)
        conn.execute(
            "INSERT INTO tasks (id, title, created_at, updated_at) VALUES ('t1', 'mine', ?, ?)",
            (FIXED_NOW, FIXED_NOW),
        )
        assert seed_if_empty(conn, now=FIXED_NOW) == 0
        assert count_rows(conn, "tasks") == 1


def test_single_unit_catalog_creates_projects(tmp_path: Path, raw_db: Database) -> None:
    catalog_dir = _write_catalog(
        tmp_path / "catalog",
        {"0001_init.sql": "CREATE TABLE projects (id TEXT PRIMARY KEY, name TEXT NOT NULL);\n"},
    )

    with raw_db.session() as conn:
        report = run_startup(conn, load_catalog([catalog_dir]), clock=_clock)

        assert report.applied == ["0001_init.sql"]
        assert MigrationLedger(conn).entries() == [("0001_init.sql", FIXED_NOW)]
        assert column_names(conn, "projects") == {"id", "name"}
        # The ledger is not empty, so no bootstrap; no tasks table, so no seeding.
        assert report.bootstrapped is False
        assert report.seeded == 0
        assert not table_exists(conn, "tasks")


def test_guarded_recurrence_unit_adds_columns_once(raw_db: Database) -> None:
    old_tasks = (PACKAGED_MIGRATIONS_DIR / "0001_create_tables.sql").read_text(encoding="utf-8")

    with raw_db.session() as conn:
        run_script(conn, old_tasks)
        assert "recurrence_type" not in column_names(conn, "tasks")

        run_startup(conn, _packaged(), seed=False, clock=_clock)
        info = {r["name"]: r for r in conn.execute("PRAGMA table_info(tasks)").fetchall()}
        assert info["recurrence_type"]["dflt_value"] == "'none'"

        run_startup(conn, _packaged(), seed=False, clock=_clock)
        conn.execute("DELETE FROM migrations WHERE name = '0004_add_recurrence.sql'")
        report = run_startup(conn, _packaged(), seed=False, clock=_clock)

        assert report.applied == ["0004_add_recurrence.sql"]
        cols = [r["name"] for r in conn.execute("PRAGMA table_info(tasks)").fetchall()]
        assert cols.count("recurrence_type") == 1


def test_reconciler_repairs_column_missing_despite_ledger(raw_db: Database) -> None:
    catalog = _only("0001_create_tables.sql", "0004_add_recurrence.sql")

    with raw_db.session() as conn:
        # A partial earlier run: both units recorded, recurrence_parent_id never added.
        run_script(conn, catalog[0].read_body())
        conn.execute("ALTER TABLE tasks ADD COLUMN recurrence_type TEXT DEFAULT 'none'")
        conn.execute("ALTER TABLE tasks ADD COLUMN recurrence_interval INTEGER DEFAULT 1")
        ledger = MigrationLedger(conn)
        ledger.ensure_table()
        for unit in catalog:
            ledger.record(unit.name, FIXED_NOW)

        report = run_startup(conn, catalog, seed=False, clock=_clock)

        assert report.applied == []
        assert "recurrence_parent_id" in report.repaired["tasks"]
        assert "recurrence_type" not in report.repaired["tasks"]
        assert "recurrence_parent_id" in column_names(conn, "tasks")


def test_reconciler_restores_critical_tables(raw_db: Database) -> None:
    with raw_db.session() as conn:
        run_startup(conn, _packaged(), seed=False, clock=_clock)
        # pomodoro_streaks still points at the default user row.
        conn.execute("PRAGMA foreign_keys=OFF")
        conn.execute("DROP TABLE task_templates")
        conn.execute("DROP TABLE xp_history")
        conn.execute("DROP TABLE badges")
        conn.execute("DROP TABLE user_progress")
        conn.execute("PRAGMA foreign_keys=ON")

        report = run_startup(conn, _packaged(), seed=False, clock=_clock)

        assert report.applied == []
        assert report.repaired["task_templates"] == [TABLE_CREATED]
        assert report.repaired["user_progress"] == [TABLE_CREATED, DEFAULT_ROW_INSERTED]
        assert report.repaired["badges"] == [TABLE_CREATED]
        assert report.repaired["xp_history"] == [TABLE_CREATED]
        row = conn.execute("SELECT total_xp, current_level FROM user_progress WHERE id = 'default'").fetchone()
        assert tuple(row) == (0, 1)


@pytest.mark.parametrize("table", ["badges", "xp_history"])
def test_reconciler_restores_gamification_side_table(raw_db: Database, table: str) -> None:
    with raw_db.session() as conn:
        run_startup(conn, _packaged(), seed=False, clock=_clock)
        conn.execute(f"DROP TABLE {table}")

        report = run_startup(conn, _packaged(), seed=False, clock=_clock)

        assert report.repaired == {table: [TABLE_CREATED]}
        assert table_exists(conn, table)
        assert count_rows(conn, "user_progress") == 1


def test_reconciler_restores_default_progress_row(raw_db: Database) -> None:
    with raw_db.session() as conn:
        run_startup(conn, _packaged(), seed=False, clock=_clock)
        conn.execute("PRAGMA foreign_keys=OFF")
        conn.execute("DELETE FROM user_progress WHERE id = 'default'")
        conn.execute("PRAGMA foreign_keys=ON")

        report = run_startup(conn, _packaged(), seed=False, clock=_clock)

        assert report.repaired == {"user_progress": [DEFAULT_ROW_INSERTED]}
        row = conn.execute("SELECT total_xp, current_level FROM user_progress WHERE id = 'default'").fetchone()
        assert tuple(row) == (0, 1)

        again = run_startup(conn, _packaged(), seed=False, clock=_clock)
        assert again.repaired == {}

def test_failing_unit_rolls_back_and_stops(tmp_path: Path, raw_db: Database) -> None:
    catalog_dir = _write_catalog(
        tmp_path / "catalog",
        {
            "0001_ok.sql": "CREATE TABLE alpha (x INTEGER);",
            "0002_bad.sql": "CREATE TABLE beta (x INTEGER);\nINSERT INTO no_such_table VALUES (1);",
            "0003_later.sql": "CREATE TABLE gamma (x INTEGER);",
        },
    )

    with raw_db.session() as conn:
        with pytest.raises(MigrationError) as excinfo:
            run_startup(conn, load_catalog([catalog_dir]), clock=_clock)

        assert excinfo.value.name == "0002_bad.sql"
        assert isinstance(excinfo.value, DatabaseInitError)
        assert MigrationLedger(conn).list_applied() == {"0001_ok.sql"}
        assert table_exists(conn, "alpha")
        assert not table_exists(conn, "beta")
        assert not table_exists(conn, "gamma")
        assert not conn.in_transaction

        # Fails identically on the next launch; nothing is skipped.
        with pytest.raises(MigrationError):
            run_startup(conn, load_catalog([catalog_dir]), clock=_clock)
        assert MigrationLedger(conn).list_applied() == {"0001_ok.sql"}
