# src/tasknest/translation/service.py

"""
Task translation flow.

The database lock is held only for short reads and writes. Every call to
the Translator (which may block on the network) happens with the lock
released, and the result is written back under a fresh acquisition.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from ..core.ports import Translator
from ..db.database import Database, transaction
from ..tasks.task_store import fetch_task
from . import cache

logger = logging.getLogger(__name__)

FIELDS = ("title", "description")

_TURKISH_LETTERS = frozenset("çğıöşüÇĞİÖŞÜ")


@dataclass(slots=True, frozen=True)
class TranslatedContent:
    title: str
    description: str | None
    source_lang: str
    target_lang: str


def detect_language(text: str) -> str:
    """Cheap local heuristic: Turkish-specific letters mean 'tr', everything else 'en'."""
    if not text or not text.strip():
        return "en"
    if any(ch in _TURKISH_LETTERS for ch in text):
        return "tr"
    return "en"


def _check_field(field: str) -> None:
    if field not in FIELDS:
        raise ValueError("Invalid field type. Must be 'title' or 'description'")


def _source_text(db: Database, task_id: str, field: str) -> str:
    with db.session() as conn:
        task = fetch_task(conn, task_id)
    return task.title if field == "title" else (task.description or "")


def _translate_field(
    db: Database,
    translator: Translator,
    *,
    task_id: str,
    field: str,
    text: str,
    target_lang: str,
) -> str:
    if not text.strip():
        return text

    with db.session() as conn:
        override = cache.get_user_translation(conn, task_id, field, target_lang)
    if override is not None:
        return override

    source_lang = detect_language(text)
    if source_lang == target_lang:
        return text

    with db.session() as conn:
        cached = cache.get_cached(conn, text, source_lang, target_lang, field)
    if cached is not None:
        return cached

    # Lock released: the remote call may take seconds.
    translated = translator.translate(text, source_lang, target_lang)

    with db.session() as conn, transaction(conn):
        cache.save(
            conn,
            text=text,
            source_lang=source_lang,
            target_lang=target_lang,
            translated=translated,
            field_type=field,
            task_id=task_id,
            user_edited=False,
            now=int(time.time()),
        )
    logger.debug("Translated task=%s field=%s %s->%s", task_id, field, source_lang, target_lang)
    return translated


def translate_task_content(
    db: Database,
    translator: Translator,
    task_id: str,
    target_lang: str,
) -> TranslatedContent:
    with db.session() as conn:
        task = fetch_task(conn, task_id)

    title = _translate_field(
        db, translator, task_id=task_id, field="title", text=task.title, target_lang=target_lang
    )

    description: str | None = None
    if task.description and task.description.strip():
        description = _translate_field(
            db,
            translator,
            task_id=task_id,
            field="description",
            text=task.description,
            target_lang=target_lang,
        )

    return TranslatedContent(
        title=title,
        description=description,
        source_lang=detect_language(task.title),
        target_lang=target_lang,
    )


def save_translation_override(
    db: Database,
    task_id: str,
    field: str,
    target_lang: str,
    translated_text: str,
) -> None:
    """Store a manual translation; it wins over machine translations from now on."""
    _check_field(field)
    text = _source_text(db, task_id, field)
    with db.session() as conn, transaction(conn):
        cache.save(
            conn,
            text=text,
            source_lang=detect_language(text),
            target_lang=target_lang,
            translated=translated_text,
            field_type=field,
            task_id=task_id,
            user_edited=True,
            now=int(time.time()),
        )
    logger.info("Saved translation override task=%s field=%s lang=%s", task_id, field, target_lang)


def get_translation(
    db: Database,
    translator: Translator,
    task_id: str,
    field: str,
    target_lang: str,
) -> str | None:
    """Translation of one field, or None when the field is empty."""
    _check_field(field)
    text = _source_text(db, task_id, field)
    if not text.strip():
        return None
    return _translate_field(db, translator, task_id=task_id, field=field, text=text, target_lang=target_lang)
