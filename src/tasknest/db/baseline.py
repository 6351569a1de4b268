# src/tasknest/db/baseline.py

"""
Baseline DDL for every domain table.

Used as one batch by the bootstrap fallback and piecewise by the reconciler
and the guarded catalog units. Every statement is IF NOT EXISTS.
"""

from __future__ import annotations

import sqlite3

CORE_TABLE = "tasks"

PROJECTS_DDL = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    color TEXT,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
"""

TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    due_at INTEGER,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    priority TEXT NOT NULL DEFAULT 'medium',
    completed_at INTEGER,
    project_id TEXT,
    order_index INTEGER DEFAULT 0,
    metadata TEXT,
    recurrence_type TEXT DEFAULT 'none',
    recurrence_interval INTEGER DEFAULT 1,
    recurrence_parent_id TEXT,
    reminder_minutes_before INTEGER DEFAULT NULL,
    notification_repeat INTEGER DEFAULT 0,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_project_id ON tasks(project_id);
CREATE INDEX IF NOT EXISTS idx_tasks_due_at ON tasks(due_at);
CREATE INDEX IF NOT EXISTS idx_tasks_completed_at ON tasks(completed_at);
"""

SETTINGS_DDL = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

SUBTASKS_DDL = """
CREATE TABLE IF NOT EXISTS subtasks (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    title TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_subtasks_task_id ON subtasks(task_id);
"""

ATTACHMENTS_DDL = """
CREATE TABLE IF NOT EXISTS attachments (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    filename TEXT NOT NULL,
    path TEXT NOT NULL,
    mime TEXT,
    size INTEGER,
    created_at INTEGER NOT NULL,
    version INTEGER DEFAULT 1 NOT NULL,
    parent_id TEXT,
    is_current INTEGER DEFAULT 1 NOT NULL,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_attachments_task_id ON attachments(task_id);
CREATE INDEX IF NOT EXISTS idx_attachments_parent_id ON attachments(parent_id);
CREATE INDEX IF NOT EXISTS idx_attachments_is_current ON attachments(is_current);
CREATE INDEX IF NOT EXISTS idx_attachments_task_current ON attachments(task_id, is_current);
"""

TASK_TEMPLATES_DDL = """
CREATE TABLE IF NOT EXISTS task_templates (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    priority TEXT NOT NULL DEFAULT 'medium',
    project_id TEXT,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_templates_name ON task_templates(name);
CREATE INDEX IF NOT EXISTS idx_templates_created ON task_templates(created_at);
"""

NOTIFICATION_SCHEDULE_DDL = """
CREATE TABLE IF NOT EXISTS notification_schedule (
    id TEXT PRIMARY KEY NOT NULL,
    task_id TEXT NOT NULL,
    scheduled_at INTEGER NOT NULL,
    snooze_until INTEGER,
    created_at INTEGER NOT NULL,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_notification_schedule_scheduled_at ON notification_schedule(scheduled_at);
CREATE INDEX IF NOT EXISTS idx_notification_schedule_task_id ON notification_schedule(task_id);
"""

GAMIFICATION_DDL = """
CREATE TABLE IF NOT EXISTS user_progress (
    id TEXT PRIMARY KEY DEFAULT 'default',
    total_xp INTEGER NOT NULL DEFAULT 0,
    current_level INTEGER NOT NULL DEFAULT 1,
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    last_completion_date INTEGER,
    current_rank_tier TEXT DEFAULT 'iron',
    current_rank_division INTEGER DEFAULT 4,
    rank_progress INTEGER DEFAULT 0,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS badges (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL DEFAULT 'default',
    badge_type TEXT NOT NULL,
    earned_at INTEGER NOT NULL,
    metadata TEXT,
    FOREIGN KEY (user_id) REFERENCES user_progress(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS xp_history (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL DEFAULT 'default',
    xp_amount INTEGER NOT NULL,
    source TEXT NOT NULL,
    task_id TEXT,
    created_at INTEGER NOT NULL,
    FOREIGN KEY (user_id) REFERENCES user_progress(id) ON DELETE CASCADE,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_badges_user_id ON badges(user_id);
CREATE INDEX IF NOT EXISTS idx_badges_badge_type ON badges(badge_type);
CREATE INDEX IF NOT EXISTS idx_xp_history_user_id ON xp_history(user_id);
CREATE INDEX IF NOT EXISTS idx_xp_history_created_at ON xp_history(created_at);
CREATE INDEX IF NOT EXISTS idx_xp_history_source ON xp_history(source);
"""

RANKS_DDL = """
CREATE TABLE IF NOT EXISTS ranks (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL DEFAULT 'default',
    rank_tier TEXT NOT NULL,
    rank_division INTEGER,
    achieved_at INTEGER NOT NULL,
    total_xp_at_achievement INTEGER NOT NULL,
    level_at_achievement INTEGER NOT NULL,
    FOREIGN KEY (user_id) REFERENCES user_progress(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_ranks_user_id ON ranks(user_id);
CREATE INDEX IF NOT EXISTS idx_ranks_achieved_at ON ranks(achieved_at);
CREATE INDEX IF NOT EXISTS idx_ranks_tier_division ON ranks(rank_tier, rank_division);
"""

TRANSLATIONS_DDL = """
CREATE TABLE IF NOT EXISTS translations (
    id TEXT PRIMARY KEY,
    source_text_hash TEXT NOT NULL,
    source_text TEXT NOT NULL,
    source_lang TEXT NOT NULL,
    target_lang TEXT NOT NULL,
    translated_text TEXT NOT NULL,
    field_type TEXT NOT NULL,
    task_id TEXT,
    is_user_edited INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_translations_cache ON translations(source_text_hash, source_lang, target_lang, field_type);
CREATE INDEX IF NOT EXISTS idx_translations_task_id ON translations(task_id);
"""

TAGS_DDL = """
CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    color TEXT,
    created_at INTEGER NOT NULL,
    usage_count INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS task_tags (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    tag_id TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE,
    UNIQUE(task_id, tag_id)
);
CREATE TABLE IF NOT EXISTS task_relationships (
    id TEXT PRIMARY KEY,
    task_id_1 TEXT NOT NULL,
    task_id_2 TEXT NOT NULL,
    relationship_type TEXT DEFAULT 'related',
    created_at INTEGER NOT NULL,
    FOREIGN KEY (task_id_1) REFERENCES tasks(id) ON DELETE CASCADE,
    FOREIGN KEY (task_id_2) REFERENCES tasks(id) ON DELETE CASCADE,
    UNIQUE(task_id_1, task_id_2),
    CHECK(task_id_1 != task_id_2)
);
CREATE INDEX IF NOT EXISTS idx_task_tags_task_id ON task_tags(task_id);
CREATE INDEX IF NOT EXISTS idx_task_tags_tag_id ON task_tags(tag_id);
CREATE INDEX IF NOT EXISTS idx_tags_name ON tags(name);
CREATE INDEX IF NOT EXISTS idx_tags_usage_count ON tags(usage_count);
CREATE INDEX IF NOT EXISTS idx_task_relationships_task_1 ON task_relationships(task_id_1);
CREATE INDEX IF NOT EXISTS idx_task_relationships_task_2 ON task_relationships(task_id_2);
CREATE INDEX IF NOT EXISTS idx_task_relationships_blocks ON task_relationships(relationship_type, task_id_2) WHERE relationship_type = 'blocks';
CREATE INDEX IF NOT EXISTS idx_task_relationships_blocks_reverse ON task_relationships(relationship_type, task_id_1) WHERE relationship_type = 'blocks';
"""

POMODORO_DDL = """
CREATE TABLE IF NOT EXISTS pomodoro_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL DEFAULT 'default',
    task_id TEXT,
    started_at INTEGER NOT NULL,
    completed_at INTEGER NOT NULL,
    duration_seconds INTEGER NOT NULL,
    mode TEXT NOT NULL DEFAULT 'pomodoro',
    was_completed INTEGER NOT NULL DEFAULT 1,
    task_completed INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    FOREIGN KEY (user_id) REFERENCES user_progress(id) ON DELETE CASCADE,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE SET NULL
);
CREATE TABLE IF NOT EXISTS pomodoro_streaks (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL DEFAULT 'default',
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    last_session_date INTEGER,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    FOREIGN KEY (user_id) REFERENCES user_progress(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_pomodoro_sessions_user_id ON pomodoro_sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_pomodoro_sessions_task_id ON pomodoro_sessions(task_id);
CREATE INDEX IF NOT EXISTS idx_pomodoro_sessions_completed_at ON pomodoro_sessions(completed_at);
CREATE INDEX IF NOT EXISTS idx_pomodoro_sessions_started_at ON pomodoro_sessions(started_at);
CREATE INDEX IF NOT EXISTS idx_pomodoro_sessions_mode ON pomodoro_sessions(mode);
CREATE INDEX IF NOT EXISTS idx_pomodoro_streaks_user_id ON pomodoro_streaks(user_id);
"""

PERFORMANCE_INDEXES_DDL = """
CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(completed_at, due_at);
CREATE INDEX IF NOT EXISTS idx_tasks_project_completed ON tasks(project_id, completed_at);
CREATE INDEX IF NOT EXISTS idx_tasks_order ON tasks(project_id, order_index);
CREATE INDEX IF NOT EXISTS idx_tasks_recurrence ON tasks(recurrence_parent_id);
"""

BASELINE_SCHEMA = "\n".join(
    [
        PROJECTS_DDL,
        TASKS_DDL,
        SETTINGS_DDL,
        SUBTASKS_DDL,
        ATTACHMENTS_DDL,
        TASK_TEMPLATES_DDL,
        NOTIFICATION_SCHEDULE_DDL,
        GAMIFICATION_DDL,
        RANKS_DDL,
        TRANSLATIONS_DDL,
        TAGS_DDL,
        POMODORO_DDL,
        PERFORMANCE_INDEXES_DDL,
    ]
)

DOMAIN_TABLES: tuple[str, ...] = (
    "projects",
    "tasks",
    "settings",
    "subtasks",
    "attachments",
    "task_templates",
    "notification_schedule",
    "user_progress",
    "badges",
    "xp_history",
    "ranks",
    "translations",
    "tags",
    "task_tags",
    "task_relationships",
    "pomodoro_sessions",
    "pomodoro_streaks",
)


def insert_default_progress(conn: sqlite3.Connection, now: int) -> bool:
    """Insert the 'default' user_progress row if absent. True when a row was added."""
    cur = conn.execute(
        "INSERT OR IGNORE INTO user_progress "
        "(id, total_xp, current_level, current_streak, longest_streak, created_at, updated_at) "
        "VALUES ('default', 0, 1, 0, 0, ?, ?)",
        (now, now),
    )
    return cur.rowcount == 1


def insert_default_pomodoro_streak(conn: sqlite3.Connection, now: int) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO pomodoro_streaks "
        "(id, user_id, current_streak, longest_streak, created_at, updated_at) "
        "VALUES ('default', 'default', 0, 0, ?, ?)",
        (now, now),
    )

