# src/tasknest/db/schema.py

"""Live-schema introspection and script execution helpers."""

from __future__ import annotations

import sqlite3


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name = ?",
        (table,),
    ).fetchone()
    return int(row[0]) > 0


def column_names(conn: sqlite3.Connection, table: str) -> set[str]:
    # PRAGMA does not accept bound parameters; table names come from code, never from users.
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def count_rows(conn: sqlite3.Connection, table: str) -> int:
    (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return int(n)


def _is_blank(fragment: str) -> bool:
    code = [
        line
        for line in fragment.splitlines()
        if line.strip() and not line.strip().startswith("--")
    ]
    return not "".join(code).strip().strip(";").strip()


def split_statements(script: str) -> list[str]:
    """
    Split a multi-statement SQL script into complete statements.

    sqlite3.complete_statement() decides where a statement ends, so
    semicolons inside string literals, comments and trigger bodies do not
    split a statement. Comment-only fragments are dropped.
    """
    statements: list[str] = []
    buf = ""
    for piece in script.split(";"):
        buf += piece + ";"
        if sqlite3.complete_statement(buf):
            if not _is_blank(buf):
                statements.append(buf.strip())
            buf = ""
    if buf and not _is_blank(buf):
        # Trailing text without a terminator.
        statements.append(buf.strip().rstrip(";"))
    return statements


def run_script(conn: sqlite3.Connection, script: str) -> int:
    """
    Execute a SQL script statement by statement.

    Unlike Connection.executescript() this never issues an implicit COMMIT,
    so the statements stay inside the caller's transaction.
    """
    statements = split_statements(script)
    for stmt in statements:
        conn.execute(stmt)
    return len(statements)
