# tests/test_project_store.py

from __future__ import annotations

import pytest

from tasknest.db.database import Database
from tasknest.db.errors import NotFoundError
from tasknest.tasks.project_store import ProjectStore, SettingsStore, TemplateStore
from tasknest.tasks.task_models import Priority

from .conftest import FakeClock


def test_project_crud(db: Database, clock: FakeClock) -> None:
    store = ProjectStore(db, clock=clock)
    a = store.create_project("Work", color="#ff0000")
    clock.advance(1)
    b = store.create_project("Home")

    assert [p.name for p in store.list_projects()] == ["Work", "Home"]

    clock.advance(1)
    renamed = store.update_project(a.id, name="Office")
    assert renamed.name == "Office"
    assert renamed.color == "#ff0000"
    assert renamed.updated_at == clock.now

    assert store.update_project(a.id, color=None).color is None

    store.delete_project(b.id)
    with pytest.raises(NotFoundError):
        store.get_project(b.id)
    with pytest.raises(ValueError):
        store.create_project("  ")


def test_settings_upsert(db: Database) -> None:
    store = SettingsStore(db)
    assert store.get("theme", "light") == "light"

    store.set("theme", "dark")
    store.set("theme", "solarized")
    store.set("language", "tr")

    assert store.get("theme") == "solarized"
    assert store.get_all() == {"language": "tr", "theme": "solarized"}


def test_templates_and_task_from_template(db: Database, clock: FakeClock) -> None:
    projects = ProjectStore(db, clock=clock)
    work = projects.create_project("Work")
    store = TemplateStore(db, clock=clock)

    tpl = store.create_template(
        "weekly",
        "Weekly review",
        description="Inbox zero",
        priority="high",
        project_id=work.id,
    )
    assert store.get_template(tpl.id).priority == Priority.HIGH

    tpl = store.update_template(tpl.id, description=None, priority="low")
    assert tpl.description is None
    assert tpl.priority == Priority.LOW
    assert tpl.title == "Weekly review"

    task = store.create_task_from_template(tpl.id, due_at=clock.now + 3600)
    assert task.title == "Weekly review"
    assert task.priority == Priority.LOW
    assert task.project_id == work.id
    assert task.due_at == clock.now + 3600

    store.delete_template(tpl.id)
    assert store.list_templates() == []
    with pytest.raises(NotFoundError):
        store.create_task_from_template(tpl.id)
