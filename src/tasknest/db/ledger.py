# src/tasknest/db/ledger.py

from __future__ import annotations

import sqlite3


class MigrationLedger:
    """
    Append-only record of applied migration units (`migrations` table).

    The UNIQUE constraint on name is the at-most-once guard: recording the
    same name twice raises sqlite3.IntegrityError.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def ensure_table(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                applied_at INTEGER NOT NULL
            )
            """
        )

    def list_applied(self) -> set[str]:
        rows = self._conn.execute("SELECT name FROM migrations ORDER BY name").fetchall()
        return {str(r["name"]) for r in rows}

    def record(self, name: str, applied_at: int) -> None:
        self._conn.execute(
            "INSERT INTO migrations (name, applied_at) VALUES (?, ?)",
            (name, int(applied_at)),
        )

    def entries(self) -> list[tuple[str, int]]:
        rows = self._conn.execute("SELECT name, applied_at FROM migrations ORDER BY name").fetchall()
        return [(str(r["name"]), int(r["applied_at"])) for r in rows]
