# src/tasknest/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the services.

Services depend on Protocols instead of concrete implementations, so the
translation backend and the desktop notification channel stay swappable
and tests can inject fakes.
"""

from typing import Protocol


class Translator(Protocol):
    """Remote (or offline) text translator. May block on network I/O."""

    def translate(self, text: str, source_lang: str, target_lang: str) -> str: ...


class NotificationSink(Protocol):
    """
    Where due/overdue reminders go.

    The sink decides how to present them (OS notification, console line, log).
    """

    def notify(self, *, title: str, body: str, task_id: str) -> None: ...
