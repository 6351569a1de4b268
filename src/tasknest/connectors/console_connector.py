# src/tasknest/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
import threading
from datetime import datetime

from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except OSError:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


class ConsoleNotificationSink:
    """
    NotificationSink that prints reminders into the console.

    Called from the notification thread, so output is serialized with a lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def notify(self, *, title: str, body: str, task_id: str) -> None:
        logger.info("Reminder task=%s: %s", task_id, title)
        with self._lock:
            print(f"\n[{_ts_local()}] [{title}] {body}", flush=True)


def run_console_loop(state: AppState) -> None:
    # Imported here: commands pulls in every store, the sink above must stay light.
    from ..cli.commands import registry as command_registry

    logger.info("Console connector started (db=%s).", state.db.path)
    _print_ts("[CONSOLE] Type a command. Use /help for the list. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g., remote translation)
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(">>> ").strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            cmd_response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is None:
            cmd_response = "Not a command. Use /help to list available commands."

        print(f"[{_ts_local()}] {cmd_response}")

    logger.info("Console connector finished.")
