# src/tasknest/cli/main.py

"""
CLI entrypoint.

Initializes logging, converges the database, then runs:
- the notification scheduler in a background thread (optional),
- the console REPL in the main thread.

A database that cannot be made usable is fatal: the process exits with
status 1 before anything else starts.
"""

from __future__ import annotations

import logging
import sys

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..db.errors import DatabaseInitError
from ..logging_setup import setup_logging
from ..tasks.notifications import NotificationRunner, start_notifications_in_background

logger = logging.getLogger(__name__)


def _shutdown(state, runner: NotificationRunner | None) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if runner is not None:
        runner.stop()
        runner.join(timeout=10.0)

    try:
        state.db.close()
    except Exception:
        logger.debug("Database close failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/tasknest")
    setup_logging(log_dir=log_dir, console_level=console_level)

    # keep noisy libs readable
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    logger.info("Starting %s...", getattr(settings, "app_name", "tasknest"))

    try:
        state = create_initial_state(settings=settings)
    except DatabaseInitError as e:
        logger.critical("Cannot start: %s", e)
        sys.exit(1)

    runner = start_notifications_in_background(state)

    try:
        run_console_loop(state)
    finally:
        _shutdown(state, runner)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
