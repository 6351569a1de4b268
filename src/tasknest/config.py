# src/tasknest/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every path lives under one local data directory unless overridden.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "TASKNEST"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths ----
    data_dir: Path
    db_path: Path
    backups_dir: Path
    exports_dir: Path

    # ---- Schema catalog ----
    # Explicit catalog directory, tried before the packaged one.
    migrations_dir: Optional[Path]
    seed_example_data: bool

    # ---- Notifications ----
    notifications_enabled: bool
    notification_interval_seconds: float
    notification_lookahead_seconds: int

    # ---- Translation (OpenAI-compatible endpoint) ----
    translate_api_key: Optional[str]
    translate_base_url: str
    translate_models: List[str]
    translate_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasknest")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasknest"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "todo.db")
        backups_dir = _env_path(_k("BACKUPS_DIR"), data_dir / "backups")
        exports_dir = _env_path(_k("EXPORTS_DIR"), data_dir / "exports")

        raw_migrations_dir = _first_env(_k("MIGRATIONS_DIR"), default=None)
        migrations_dir = Path(raw_migrations_dir).expanduser() if raw_migrations_dir else None
        seed_example_data = _env_bool(_k("SEED_EXAMPLE_DATA"), True)

        notifications_enabled = _env_bool(_k("NOTIFICATIONS_ENABLED"), True)
        notification_interval_seconds = _env_float(_k("NOTIFICATION_INTERVAL_SECONDS"), 60.0)
        notification_lookahead_seconds = _env_int(_k("NOTIFICATION_LOOKAHEAD_SECONDS"), 3600)

        translate_api_key = _first_env(_k("TRANSLATE_API_KEY"), "OPENAI_API_KEY", default=None)
        translate_base_url = _env(_k("TRANSLATE_BASE_URL"), "https://api.openai.com/v1")
        translate_models = _env_list(_k("TRANSLATE_MODELS"), ["gpt-4o-mini"])
        translate_timeout_seconds = _env_float(_k("TRANSLATE_TIMEOUT_SECONDS"), 20.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            backups_dir=backups_dir,
            exports_dir=exports_dir,
            migrations_dir=migrations_dir,
            seed_example_data=seed_example_data,
            notifications_enabled=notifications_enabled,
            notification_interval_seconds=notification_interval_seconds,
            notification_lookahead_seconds=notification_lookahead_seconds,
            translate_api_key=translate_api_key,
            translate_base_url=translate_base_url,
            translate_models=translate_models,
            translate_timeout_seconds=translate_timeout_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
