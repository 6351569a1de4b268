# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from tasknest.core.state import AppState
from tasknest.db.catalog import PACKAGED_MIGRATIONS_DIR
from tasknest.db.database import Database
from tasknest.db.startup import init_db

from .fakes import FakeNotificationSink, FakeTranslator

# 2023-11-14 22:13:20 UTC
FIXED_NOW = 1_700_000_000


class FakeClock:
    """Settable integer clock for stores that accept `clock=`."""

    def __init__(self, now: int = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with init_db, AppState and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasknest-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        db_path=tmp_path / "todo.db",
        backups_dir=tmp_path / "backups",
        exports_dir=tmp_path / "exports",
        migrations_dir=None,
        # Features
        seed_example_data=False,
        notifications_enabled=False,
        notification_interval_seconds=0.05,
        notification_lookahead_seconds=3600,
        # No remote translation in tests
        translate_api_key=None,
        translate_base_url="",
        translate_models=[],
        translate_timeout_seconds=5.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def db(settings: SimpleNamespace) -> Iterator[Database]:
    """A converged database built from the packaged catalog."""
    database = init_db(settings, catalog_dirs=[PACKAGED_MIGRATIONS_DIR])
    yield database
    database.close()


@pytest.fixture()
def translator(db: Database) -> FakeTranslator:
    return FakeTranslator(db)


@pytest.fixture()
def state(settings: SimpleNamespace, db: Database, translator: FakeTranslator) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: the database is real SQLite because its behavior is what we test.
    """
    return AppState(
        settings=settings,
        db=db,
        translator=translator,
        notifier=FakeNotificationSink(),
        notifications_enabled=False,
    )
