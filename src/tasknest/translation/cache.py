# src/tasknest/translation/cache.py

"""
Translation cache (`translations` table).

Rows are keyed by (sha256 of source text, source_lang, target_lang,
field_type). Rows with is_user_edited=1 are manual overrides tied to a task
and always win over machine translations.
"""

from __future__ import annotations

import hashlib
import sqlite3
import uuid


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def get_cached(
    conn: sqlite3.Connection,
    text: str,
    source_lang: str,
    target_lang: str,
    field_type: str,
) -> str | None:
    row = conn.execute(
        """
        SELECT translated_text FROM translations
        WHERE source_text_hash = ? AND source_lang = ? AND target_lang = ? AND field_type = ?
        ORDER BY is_user_edited DESC, updated_at DESC
        LIMIT 1
        """,
        (hash_text(text), source_lang, target_lang, field_type),
    ).fetchone()
    return str(row["translated_text"]) if row else None


def get_user_translation(
    conn: sqlite3.Connection,
    task_id: str,
    field_type: str,
    target_lang: str,
) -> str | None:
    row = conn.execute(
        """
        SELECT translated_text FROM translations
        WHERE task_id = ? AND field_type = ? AND target_lang = ? AND is_user_edited = 1
        ORDER BY updated_at DESC
        LIMIT 1
        """,
        (task_id, field_type, target_lang),
    ).fetchone()
    return str(row["translated_text"]) if row else None


def save(
    conn: sqlite3.Connection,
    *,
    text: str,
    source_lang: str,
    target_lang: str,
    translated: str,
    field_type: str,
    task_id: str | None,
    user_edited: bool,
    now: int,
) -> None:
    """Store a translation, replacing the previous one for the same key, task and edit flag."""
    text_hash = hash_text(text)
    flag = 1 if user_edited else 0
    conn.execute(
        """
        DELETE FROM translations
        WHERE source_text_hash = ? AND source_lang = ? AND target_lang = ? AND field_type = ?
          AND task_id IS ? AND is_user_edited = ?
        """,
        (text_hash, source_lang, target_lang, field_type, task_id, flag),
    )
    conn.execute(
        """
        INSERT INTO translations (
            id, source_text_hash, source_text, source_lang, target_lang, translated_text,
            field_type, task_id, is_user_edited, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (str(uuid.uuid4()), text_hash, text, source_lang, target_lang, translated, field_type, task_id, flag, now, now),
    )
