# src/tasknest/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..db.database import Database
from .ports import NotificationSink, Translator


@dataclass
class AppState:
    # Settings object (real Settings or a test SimpleNamespace).
    settings: Any

    db: Database
    translator: Translator
    notifier: NotificationSink

    notifications_enabled: bool = True
