# src/tasknest/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


class RecurrenceType(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"

    @classmethod
    def from_db(cls, raw: str | None) -> RecurrenceType:
        if not raw:
            return cls.NONE
        try:
            return cls(raw)
        except ValueError:
            return cls.NONE


class RelationshipType(StrEnum):
    RELATED = "related"
    BLOCKS = "blocks"
    DUPLICATE = "duplicate"


@dataclass(slots=True)
class Tag:
    id: str
    name: str
    color: str | None
    created_at: int
    usage_count: int = 0


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str | None
    due_at: int | None
    created_at: int
    updated_at: int
    priority: Priority
    completed_at: int | None
    project_id: str | None
    order_index: int

    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_interval: int = 1
    recurrence_parent_id: str | None = None
    reminder_minutes_before: int | None = None
    notification_repeat: bool = False

    tags: list[Tag] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.completed_at is not None


@dataclass(slots=True)
class TaskFilter:
    project_id: str | None = None
    completed: bool | None = None
    due_before: int | None = None
    due_after: int | None = None
    search: str | None = None
    tag_id: str | None = None


@dataclass(slots=True)
class Subtask:
    id: str
    task_id: str
    title: str
    completed: bool


@dataclass(slots=True)
class Project:
    id: str
    name: str
    color: str | None
    created_at: int
    updated_at: int


@dataclass(slots=True)
class Template:
    id: str
    name: str
    title: str
    description: str | None
    priority: Priority
    project_id: str | None
    created_at: int
    updated_at: int


@dataclass(slots=True)
class TaskRelationship:
    id: str
    task_id_1: str
    task_id_2: str
    relationship_type: RelationshipType
    created_at: int


@dataclass(slots=True)
class UserProgress:
    id: str
    total_xp: int
    current_level: int
    current_streak: int
    longest_streak: int
    last_completion_date: int | None
    created_at: int
    updated_at: int


@dataclass(slots=True)
class Badge:
    id: str
    badge_type: str
    earned_at: int
    metadata: str | None = None


@dataclass(slots=True, frozen=True)
class GrantXpResult:
    level_up: bool
    new_level: int
    total_xp: int
    current_xp: int
    xp_to_next_level: int


@dataclass(slots=True)
class ToggleResult:
    """Outcome of toggle_complete: the task after the flip plus side effects."""

    task: Task
    next_instance: Task | None = None
    xp: GrantXpResult | None = None
    new_badges: list[Badge] = field(default_factory=list)


@dataclass(slots=True)
class PomodoroSession:
    id: str
    task_id: str | None
    started_at: int
    completed_at: int
    duration_seconds: int
    mode: str
    was_completed: bool
    task_completed: bool
    created_at: int


@dataclass(slots=True)
class PomodoroStreak:
    current_streak: int
    longest_streak: int
    last_session_date: int | None


@dataclass(slots=True, frozen=True)
class DueNotification:
    task_id: str
    title: str
    body: str
    overdue: bool


@dataclass(slots=True)
class ImportSummary:
    tasks_added: int = 0
    tasks_updated: int = 0
    projects_added: int = 0
    projects_updated: int = 0
    skipped: int = 0
