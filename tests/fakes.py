# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import httpx
import openai

from tasknest.db.database import Database
from tasknest.translation.client import TranslationError


class FakeTranslator:
    """
    Deterministic translator for unit tests.

    - Captures calls for assertions
    - Records whether the database lock was free during each call
    - Returns "[<target>] <text>"
    """

    def __init__(self, db: Database | None = None) -> None:
        self.db = db
        self.calls: list[tuple[str, str, str]] = []
        self.lock_free: list[bool] = []

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        self.calls.append((text, source_lang, target_lang))
        if self.db is not None:
            with self.db.try_session() as conn:
                self.lock_free.append(conn is not None)
        return f"[{target_lang}] {text}"


class FailingTranslator:
    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        raise TranslationError("All translation models failed.")


@dataclass(slots=True)
class Notified:
    title: str
    body: str
    task_id: str


@dataclass(slots=True)
class FakeNotificationSink:
    """
    Fake NotificationSink used by scheduler tests.
    """

    sent: list[Notified] = field(default_factory=list)

    def notify(self, *, title: str, body: str, task_id: str) -> None:
        self.sent.append(Notified(title=title, body=body, task_id=task_id))


class ExplodingSink:
    """Sink whose delivery always fails; the scheduler must survive it."""

    def __init__(self) -> None:
        self.attempts = 0

    def notify(self, *, title: str, body: str, task_id: str) -> None:
        self.attempts += 1
        raise RuntimeError("notification backend down")


class ScriptedCompletions:
    """
    Stand-in for `client.chat.completions` of the OpenAI SDK.

    `script` maps a model name to either an exception to raise or the text to
    return. Every call is recorded in `calls` as the model name.
    """

    def __init__(self, script: dict[str, Exception | str]) -> None:
        self.script = script
        self.calls: list[str] = []

    def create(self, *, model: str, messages: list[dict[str, str]]) -> Any:
        self.calls.append(model)
        outcome = self.script[model]
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def scripted_client(completions: ScriptedCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def api_status_error(cls: type[openai.APIStatusError], status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "http://translate.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls(f"HTTP {status}", response=response, body=None)
