# src/tasknest/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- opens and converges the database (init_db),
- wires the translator and the notification sink into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_connector import ConsoleNotificationSink
from ..core.ports import NotificationSink, Translator
from ..core.state import AppState
from ..db.database import Database
from ..db.startup import init_db
from ..translation.client import OpenAITranslator, TranslationError
from ..translation.offline import OfflineTranslator

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.backups_dir.mkdir(parents=True, exist_ok=True)
    settings.exports_dir.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    db: Database | None = None,
    notifier: NotificationSink | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Raises DatabaseInitError when the database cannot be made usable; the
    caller decides how to exit. A pre-opened db (tests) skips init_db().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if db is None:
        db = init_db(settings)

    translator: Translator
    try:
        translator = OpenAITranslator(settings)
    except TranslationError as e:
        # Local runs without an API key keep working, texts stay untranslated.
        logger.info("Translation disabled: %s", e)
        translator = OfflineTranslator()

    return AppState(
        settings=settings,
        db=db,
        translator=translator,
        notifier=notifier or ConsoleNotificationSink(),
        notifications_enabled=bool(getattr(settings, "notifications_enabled", True)),
    )
