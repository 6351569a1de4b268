# tests/test_catalog.py

from __future__ import annotations

import threading
from pathlib import Path
from types import SimpleNamespace

import pytest

from tasknest.db.catalog import (
    PACKAGED_MIGRATIONS_DIR,
    GuardedAddColumns,
    GuardedCreateTable,
    RunRawSQL,
    candidate_dirs,
    load_catalog,
    steps_for,
)
from tasknest.db.database import Database, transaction
from tasknest.db.errors import DatabaseInitError
from tasknest.db.schema import run_script, split_statements, table_exists
from tasknest.db.startup import init_db


def test_packaged_catalog_is_sorted_and_complete() -> None:
    units = load_catalog([PACKAGED_MIGRATIONS_DIR])
    names = [u.name for u in units]

    assert len(names) == 15
    assert names == sorted(names)
    assert names[0] == "0001_create_tables.sql"
    assert names[-1] == "0015_add_performance_indexes.sql"


def test_catalog_ignores_non_sql_and_uses_first_existing_dir(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    for d in (first, second):
        d.mkdir()
    (first / "0002_b.sql").write_text("SELECT 1;", "utf-8")
    (first / "0001_a.sql").write_text("SELECT 1;", "utf-8")
    (first / "README.md").write_text("notes", "utf-8")
    (second / "0001_other.sql").write_text("SELECT 1;", "utf-8")

    units = load_catalog([tmp_path / "missing", first, second])

    assert [u.name for u in units] == ["0001_a.sql", "0002_b.sql"]


def test_missing_catalog_is_empty_not_an_error(tmp_path: Path) -> None:
    assert load_catalog([tmp_path / "nope", tmp_path / "also-nope"]) == []


def test_candidate_dirs_order(tmp_path: Path) -> None:
    dirs = candidate_dirs(tmp_path)
    assert dirs[0] == tmp_path
    assert dirs[1] == PACKAGED_MIGRATIONS_DIR
    assert dirs[2] == Path.cwd() / "migrations"
    assert candidate_dirs(None)[0] == PACKAGED_MIGRATIONS_DIR


def test_guarded_strategies_by_name() -> None:
    assert steps_for("0001_create_tables.sql") == (RunRawSQL(),)
    assert isinstance(steps_for("0004_add_recurrence.sql")[0], GuardedAddColumns)
    assert isinstance(steps_for("0008_add_attachment_size.sql")[0], GuardedAddColumns)
    notif = steps_for("0006_add_notification_preferences.sql")
    assert isinstance(notif[0], GuardedAddColumns)
    assert isinstance(notif[1], GuardedCreateTable)
    assert notif[1].table == "notification_schedule"


def test_split_statements_respects_strings_and_comments() -> None:
    script = """
    -- leading comment
    CREATE TABLE t (x TEXT);
    INSERT INTO t VALUES ('a;b'); -- trailing comment
    -- only a comment;
    INSERT INTO t VALUES ('c')
    """
    stmts = split_statements(script)

    assert len(stmts) == 3
    assert "'a;b'" in stmts[1]
    assert "VALUES ('c')" in stmts[2]
    assert "CREATE TABLE" not in stmts[2]


def test_run_script_stays_inside_transaction(tmp_path: Path) -> None:
    db = Database(tmp_path / "t.db")
    try:
        with db.session() as conn:
            with pytest.raises(RuntimeError):
                with transaction(conn):
                    run_script(conn, "CREATE TABLE a (x INTEGER); CREATE TABLE b (y INTEGER);")
                    raise RuntimeError("abort")
            assert not table_exists(conn, "a")
            assert not table_exists(conn, "b")
    finally:
        db.close()


def test_try_session_skips_when_lock_is_held(tmp_path: Path) -> None:
    db = Database(tmp_path / "t.db")
    held = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with db.session():
            held.set()
            release.wait(timeout=5.0)

    t = threading.Thread(target=holder)
    t.start()
    try:
        assert held.wait(timeout=5.0)
        with db.try_session() as conn:
            assert conn is None
    finally:
        release.set()
        t.join(timeout=5.0)

    with db.try_session() as conn:
        assert conn is not None
    db.close()


def test_init_db_fails_fast_and_closes(tmp_path: Path) -> None:
    catalog = tmp_path / "catalog"
    catalog.mkdir()
    (catalog / "0001_bad.sql").write_text("CREATE TABLE oops (;", "utf-8")
    settings = SimpleNamespace(db_path=tmp_path / "data" / "todo.db", migrations_dir=None, seed_example_data=True)

    with pytest.raises(DatabaseInitError) as excinfo:
        init_db(settings, catalog_dirs=[catalog])

    assert excinfo.value.stage == "migrate"
    assert (tmp_path / "data").is_dir()


def test_init_db_seeds_fresh_install(tmp_path: Path) -> None:
    settings = SimpleNamespace(db_path=tmp_path / "todo.db", migrations_dir=None, seed_example_data=True)

    db = init_db(settings, catalog_dirs=[PACKAGED_MIGRATIONS_DIR])
    db.close()
    db = init_db(settings, catalog_dirs=[PACKAGED_MIGRATIONS_DIR])
    try:
        with db.session() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
        assert n == 5
    finally:
        db.close()
