"""Database table definitions for task-board.

The schema is defined as raw DDL to keep migrations simple and explicit.
Timestamps are ISO-8601 UTC strings.
"""

TABLES = {
    "tasks": """
        CREATE TABLE IF NOT EXISTS tasks (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            title         TEXT NOT NULL,
            body          TEXT NOT NULL DEFAULT '',
            status        TEXT NOT NULL DEFAULT 'backlog',
            parent_id     INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
            output        TEXT NOT NULL DEFAULT '',
            pinned        INTEGER NOT NULL DEFAULT 0,
            scheduled_at  TEXT,
            recurrence    TEXT NOT NULL DEFAULT '',
            last_run_at   TEXT,
            created_at    TEXT NOT NULL,
            updated_at    TEXT NOT NULL,
            started_at    TEXT,
            completed_at  TEXT
        )
    """,
    "task_dependencies": """
        CREATE TABLE IF NOT EXISTS task_dependencies (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            blocker_id  INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            blocked_id  INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            auto_queue  INTEGER NOT NULL DEFAULT 0,
            created_at  TEXT NOT NULL,
            UNIQUE(blocker_id, blocked_id),
            CHECK(blocker_id != blocked_id)
        )
    """,
    "task_logs": """
        CREATE TABLE IF NOT EXISTS task_logs (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id     INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            line_type   TEXT NOT NULL DEFAULT 'output',
            content     TEXT NOT NULL,
            created_at  TEXT NOT NULL
        )
    """,
    "events": """
        CREATE TABLE IF NOT EXISTS events (
            id          TEXT PRIMARY KEY,
            type        TEXT NOT NULL,
            payload     TEXT NOT NULL,
            created_at  TEXT NOT NULL,
            consumed    INTEGER NOT NULL DEFAULT 0
        )
    """,
}

# Ordered list for creation; respects foreign key dependencies
TABLE_CREATION_ORDER = [
    "tasks",
    "task_dependencies",
    "task_logs",
    "events",
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_scheduled ON tasks(scheduled_at)",
    "CREATE INDEX IF NOT EXISTS idx_task_dependencies_blocker ON task_dependencies(blocker_id)",
    "CREATE INDEX IF NOT EXISTS idx_task_dependencies_blocked ON task_dependencies(blocked_id)",
    "CREATE INDEX IF NOT EXISTS idx_task_logs_task_id ON task_logs(task_id)",
]
