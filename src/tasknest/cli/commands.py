# src/tasknest/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..core.state import AppState
from ..db.catalog import candidate_dirs
from ..db.errors import DatabaseInitError, NotFoundError
from ..db.ledger import MigrationLedger
from ..tasks import transfer
from ..tasks.progress import ProgressStore, xp_for_level
from ..tasks.project_store import ProjectStore
from ..tasks.tag_store import TagStore
from ..tasks.task_models import Task, TaskFilter
from ..tasks.task_store import TaskStore
from ..translation.client import TranslationError, friendly_translation_error
from ..translation.service import translate_task_content

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

SHORT_ID = 8


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Bad input (ValueError) and unknown ids (LookupError) become a reply;
        anything else propagates to the connector.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except (ValueError, LookupError) as e:
            logger.debug("Command /%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: int | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _parse_date(raw: str) -> int:
    try:
        return int(datetime.strptime(raw, "%Y-%m-%d").timestamp())
    except ValueError as e:
        raise ValueError(f"Bad date {raw!r}, expected YYYY-MM-DD") from e


def _resolve_task_id(state: AppState, prefix: str) -> str:
    """Accept a full id or a unique prefix of one (as printed by /tasks)."""
    with state.db.session() as conn:
        rows = conn.execute(
            "SELECT id FROM tasks WHERE id LIKE ? ORDER BY id LIMIT 2",
            (prefix.replace("%", "").replace("_", "") + "%",),
        ).fetchall()
    if not rows:
        raise NotFoundError(f"Task not found: {prefix}")
    if len(rows) > 1:
        raise ValueError(f"Ambiguous task id prefix: {prefix}")
    return str(rows[0]["id"])


def _fmt_task(t: Task) -> str:
    mark = "x" if t.completed else " "
    due = f" due {_fmt_ts(t.due_at)}" if t.due_at is not None else ""
    tags = f" #{' #'.join(tag.name for tag in t.tags)}" if t.tags else ""
    return f"[{mark}] {t.id[:SHORT_ID]} ({t.priority.value}) {t.title}{due}{tags}"


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    with state.db.session() as conn:
        (n_tasks,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
        n_migrations = len(MigrationLedger(conn).list_applied())
    translator = type(state.translator).__name__
    notif = "ON" if state.notifications_enabled else "OFF"
    return (
        "Status:\n"
        f"  Database: {state.db.path}\n"
        f"  Tasks: {n_tasks}\n"
        f"  Applied migrations: {n_migrations}\n"
        f"  Translator: {translator}\n"
        f"  Notifications: {notif}"
    )


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks              -> open tasks
    /tasks all          -> every task
    /tasks done         -> completed tasks
    /tasks <text>       -> open tasks matching text
    """
    flt = TaskFilter(completed=False)
    words = list(args)
    if words and words[0].lower() in ("all", "done", "open"):
        mode = words.pop(0).lower()
        flt.completed = {"all": None, "done": True, "open": False}[mode]
    if words:
        flt.search = " ".join(words)

    tasks = TaskStore(state.db).list_tasks(flt)
    if not tasks:
        return "No tasks."
    return "\n".join(_fmt_task(t) for t in tasks)


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title words> [!low|!medium|!high] [@YYYY-MM-DD]
    """
    priority = "medium"
    due_at: int | None = None
    words: list[str] = []
    for a in args:
        if a.startswith("!") and len(a) > 1:
            priority = a[1:].lower()
        elif a.startswith("@") and len(a) > 1:
            due_at = _parse_date(a[1:])
        else:
            words.append(a)

    if not words:
        return "Usage: /add <title> [!low|!medium|!high] [@YYYY-MM-DD]"

    task = TaskStore(state.db).create_task(" ".join(words), priority=priority, due_at=due_at)
    return f"Added: {_fmt_task(task)}"


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task id>"

    result = TaskStore(state.db).toggle_complete(_resolve_task_id(state, args[0]))
    lines = [("Completed: " if result.task.completed else "Reopened: ") + _fmt_task(result.task)]
    if result.xp is not None:
        lines.append(f"  XP total: {result.xp.total_xp} (level {result.xp.new_level})")
        if result.xp.level_up:
            lines.append(f"  Level up! You reached level {result.xp.new_level}.")
    if result.next_instance is not None:
        lines.append(f"  Next occurrence: {_fmt_task(result.next_instance)}")
    for badge in result.new_badges:
        lines.append(f"  New badge: {badge.badge_type}")
    return "\n".join(lines)


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <task id>"
    task_id = _resolve_task_id(state, args[0])
    TaskStore(state.db).delete_task(task_id)
    return f"Deleted task {task_id[:SHORT_ID]}."


def cmd_projects(state: AppState, args: list[str]) -> str:
    """
    /projects            -> list projects
    /projects add <name> -> create a project
    """
    store = ProjectStore(state.db)
    if args and args[0].lower() == "add":
        project = store.create_project(" ".join(args[1:]))
        return f"Project created: {project.id[:SHORT_ID]} {project.name}"

    projects = store.list_projects()
    if not projects:
        return "No projects."
    return "\n".join(f"{p.id[:SHORT_ID]} {p.name}" for p in projects)


def cmd_tags(state: AppState, args: list[str]) -> str:
    """
    /tags                     -> list tags by name
    /tags add <task id> <tag> -> tag a task (the tag is created on demand)
    /tags find <text>         -> suggestions, most used first
    """
    store = TagStore(state.db)
    sub = args[0].lower() if args else ""

    if sub == "add":
        if len(args) < 3:
            return "Usage: /tags add <task id> <tag>"
        task_id = _resolve_task_id(state, args[1])
        tag = store.create_tag(" ".join(args[2:]))
        added = store.add_tag_to_task(task_id, tag.id)
        return f"Tagged {task_id[:SHORT_ID]} with #{tag.name}." if added else f"Task already has #{tag.name}."

    if sub == "find":
        tags = store.suggest_tags(" ".join(args[1:]))
    else:
        tags = store.list_tags()

    if not tags:
        return "No tags."
    return "\n".join(f"#{t.name} ({t.usage_count})" for t in tags)


def cmd_progress(state: AppState, args: list[str]) -> str:
    store = ProgressStore(state.db)
    p = store.get_progress()
    badges = store.list_badges()
    lines = [
        "Progress:",
        f"  Level: {p.current_level}",
        f"  XP: {p.total_xp} (next level at {xp_for_level(p.current_level + 1)})",
        f"  Streak: {p.current_streak} day(s), longest {p.longest_streak}",
    ]
    if badges:
        lines.append("  Badges: " + ", ".join(b.badge_type for b in badges))
    return "\n".join(lines)


def cmd_translate(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /translate <task id> <lang>
    """
    if len(args) < 2:
        return "Usage: /translate <task id> <lang>"

    task_id = _resolve_task_id(state, args[0])
    if emit:
        with contextlib.suppress(Exception):
            emit("[TRANSLATE] Working...")

    try:
        content = translate_task_content(state.db, state.translator, task_id, args[1].lower())
    except TranslationError as e:
        msg = friendly_translation_error(e)
        logger.info("Translation failed: %s", msg)
        return f"[TRANSLATE] {msg}"

    out = f"[{content.source_lang}->{content.target_lang}] {content.title}"
    if content.description:
        out += f"\n  {content.description}"
    return out


def cmd_export(state: AppState, args: list[str]) -> str:
    directory = args[0] if args else state.settings.exports_dir
    path = transfer.export_data(state.db, directory)
    return f"Exported to {path}"


def cmd_import(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /import <path to export json>"
    s = transfer.import_data(state.db, args[0])
    return (
        f"Imported: tasks +{s.tasks_added} ~{s.tasks_updated}, "
        f"projects +{s.projects_added} ~{s.projects_updated}, skipped {s.skipped}"
    )


def cmd_backup(state: AppState, args: list[str]) -> str:
    path = transfer.create_backup(state.db, state.settings.backups_dir)
    return f"Backup written to {path}"


def cmd_restore(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /restore <backup file>"
    try:
        safety = transfer.restore_backup(
            state.db,
            args[0],
            catalog_dirs=candidate_dirs(getattr(state.settings, "migrations_dir", None)),
        )
    except FileNotFoundError as e:
        return f"Error: {e}"
    except DatabaseInitError as e:
        logger.error("Restore left the database unconverged: %s", e)
        return f"Error: restored data could not be brought up to date: {e}"
    return f"Restored. Previous data saved to {safety}"


def cmd_migrations(state: AppState, args: list[str]) -> str:
    with state.db.session() as conn:
        entries = MigrationLedger(conn).entries()
    if not entries:
        return "No migrations recorded."
    return "\n".join(f"{name}  {_fmt_ts(applied_at)}" for name, applied_at in entries)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show database and service status.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [all|done|open] [text].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [!high] [@YYYY-MM-DD].")
registry.register("done", cmd_done, help_text="Toggle completion: /done <task id>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task id>.")
registry.register("projects", cmd_projects, help_text="Projects: /projects | /projects add <name>.")
registry.register("tags", cmd_tags, help_text="Tags: /tags | /tags add <task id> <tag> | /tags find <text>.")
registry.register("progress", cmd_progress, help_text="Show level, XP, streak and badges.")
registry.register("translate", cmd_translate, help_text="Translate a task: /translate <task id> <lang>.")
registry.register("export", cmd_export, help_text="Export data as JSON: /export [dir].")
registry.register("import", cmd_import, help_text="Import a JSON export: /import <path>.")
registry.register("backup", cmd_backup, help_text="Write a database backup.")
registry.register("restore", cmd_restore, help_text="Restore from a backup: /restore <path>.")
registry.register("migrations", cmd_migrations, help_text="List applied schema migrations.")
