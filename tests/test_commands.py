# tests/test_commands.py

from __future__ import annotations

from pathlib import Path

from tasknest.cli.commands import CommandRegistry, registry
from tasknest.core.state import AppState
from tasknest.tasks.task_store import TaskStore


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/bee y", emit=lambda _: None) == "h3"
    assert called["h2"] == 1
    assert called["h3"] == 1


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_registry_turns_bad_input_into_reply(state) -> None:
    reg = CommandRegistry()

    def boom(state, args):
        raise ValueError("bad things")

    reg.register("boom", boom, "boom")
    assert reg.handle(state, "/boom") == "Error: bad things"


def test_add_list_done_flow(state: AppState) -> None:
    reply = registry.handle(state, "/add Pay rent !high @2030-01-15")
    assert reply is not None and reply.startswith("Added:")

    [task] = TaskStore(state.db).list_tasks()
    assert task.title == "Pay rent"
    assert task.priority.value == "high"
    assert task.due_at is not None

    listing = registry.handle(state, "/tasks") or ""
    assert task.id[:8] in listing

    done = registry.handle(state, f"/done {task.id[:8]}") or ""
    assert done.startswith("Completed:")
    assert "XP total: 50" in done
    assert "first_task" in done

    assert registry.handle(state, "/tasks") == "No tasks."
    assert "Pay rent" in (registry.handle(state, "/tasks done") or "")

    progress = registry.handle(state, "/progress") or ""
    assert "XP: 50" in progress


def test_bad_ids_and_dates_are_reported(state: AppState) -> None:
    assert (registry.handle(state, "/done deadbeef") or "").startswith("Error: ")
    assert "YYYY-MM-DD" in (registry.handle(state, "/add Thing @tomorrow") or "")
    assert "Usage" in (registry.handle(state, "/add !high") or "")


def test_tags_projects_and_translate(state: AppState) -> None:
    task = TaskStore(state.db).create_task("Buy milk")

    assert "#groceries" in (registry.handle(state, f"/tags add {task.id} Groceries") or "")
    assert "#groceries (1)" in (registry.handle(state, "/tags") or "")

    assert "Project created" in (registry.handle(state, "/projects add Home Stuff") or "")
    assert "Home Stuff" in (registry.handle(state, "/projects") or "")

    notes: list[str] = []
    out = registry.handle(state, f"/translate {task.id} tr", emit=notes.append) or ""
    assert "[en->tr] [tr] Buy milk" in out
    assert notes


def test_status_and_migrations(state: AppState) -> None:
    status = registry.handle(state, "/status") or ""
    assert "Applied migrations: 15" in status
    assert "FakeTranslator" in status

    ledger = registry.handle(state, "/migrations") or ""
    assert ledger.splitlines()[0].startswith("0001_create_tables.sql")
    assert len(ledger.splitlines()) == 15


def test_export_backup_restore_commands(state: AppState, tmp_path: Path) -> None:
    TaskStore(state.db).create_task("Keep me")

    assert "Exported to" in (registry.handle(state, "/export") or "")
    assert list(Path(state.settings.exports_dir).glob("todo_export_*.json"))

    backup_reply = registry.handle(state, "/backup") or ""
    [backup] = list(Path(state.settings.backups_dir).glob("todo_backup_*.db"))
    assert str(backup) in backup_reply

    assert "Restored" in (registry.handle(state, f"/restore {backup}") or "")
    assert "does not exist" in (registry.handle(state, f"/restore {tmp_path / 'nope.db'}") or "")
