# src/tasknest/db/database.py

"""
Single-connection database handle.

All access to the SQLite file goes through one connection guarded by one
exclusive lock. The handle is created once by init_db() and passed
explicitly to every store and command.

Transactions are controlled explicitly (isolation_level=None): statements
outside transaction() autocommit, statements inside it commit or roll back
together.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, db_path: str | Path, *, timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(self._db_path),
            timeout=timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._configure_conn(self._conn)
        logger.debug("Database opened path=%s", self._db_path)

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    @property
    def path(self) -> Path:
        return self._db_path

    @contextlib.contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """Hold the exclusive lock for the whole block."""
        with self._lock:
            yield self._conn

    @contextlib.contextmanager
    def try_session(self) -> Iterator[sqlite3.Connection | None]:
        """
        Non-blocking variant of session().

        Yields None when another caller holds the lock; the caller is expected
        to skip its work in that case.
        """
        if not self._lock.acquire(blocking=False):
            yield None
            return
        try:
            yield self._conn
        finally:
            self._lock.release()

    def backup_to(self, target: str | Path) -> None:
        """Copy the live database into target using the SQLite online backup API."""
        with self.session() as conn:
            dest = sqlite3.connect(str(target))
            try:
                conn.backup(dest)
            finally:
                dest.close()

    def restore_from(self, source: str | Path) -> None:
        """Replace the live database contents with source."""
        with self.session() as conn:
            src = sqlite3.connect(str(source))
            try:
                src.backup(conn)
            finally:
                src.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("Database closed path=%s", self._db_path)


@contextlib.contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """BEGIN ... COMMIT, or ROLLBACK and re-raise on any failure."""
    conn.execute("BEGIN")
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        # SQLite may already have rolled back on its own (e.g. disk full).
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
