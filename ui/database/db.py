"""SQLite database connection + schema initialization.

- SQLite file stored locally (persists between restarts)
- schema created on first run
- foreign keys enabled

Used by the Streamlit UI, the demo script and `ui.database.store`.

"""

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_DB_FILENAME = "timetable.db"
DB_ENV_VAR = "SCHOOL_TIMETABLE_DB"


@dataclass(frozen=True)
class DBConfig:
    """Database configuration for the app."""

    db_path: Path


def default_db_path() -> Path:
    """Resolve DB path.

    Uses `SCHOOL_TIMETABLE_DB` env var if set, else stores under `ui/database/`.
    """

    override = os.getenv(DB_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()

    return (Path(__file__).resolve().parent / DEFAULT_DB_FILENAME).resolve()


def get_connection(config: Optional[DBConfig] = None) -> sqlite3.Connection:
    db_path = (config.db_path if config else default_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create all required tables if they do not exist."""

    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS school_settings (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            daily_periods INTEGER NOT NULL DEFAULT 6 CHECK (daily_periods BETWEEN 1 AND 10),
            saturday_periods INTEGER NOT NULL DEFAULT 0 CHECK (saturday_periods BETWEEN 0 AND 10),
            classes_per_grade_json TEXT NOT NULL DEFAULT '{}',
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS teachers (
            teacher_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            grades_json TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS subjects (
            subject_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            grades_json TEXT NOT NULL DEFAULT '[]',
            weekly_hours_json TEXT NOT NULL DEFAULT '{}',
            requires_special_classroom INTEGER NOT NULL DEFAULT 0 CHECK (requires_special_classroom IN (0,1)),
            classroom_type TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- many-to-many: teachers <-> subjects
        CREATE TABLE IF NOT EXISTS teacher_subjects (
            teacher_id TEXT NOT NULL,
            subject_id TEXT NOT NULL,
            PRIMARY KEY (teacher_id, subject_id),
            FOREIGN KEY (teacher_id) REFERENCES teachers(teacher_id) ON DELETE CASCADE,
            FOREIGN KEY (subject_id) REFERENCES subjects(subject_id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS classrooms (
            classroom_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            classroom_type TEXT NOT NULL DEFAULT 'normal',
            capacity INTEGER NOT NULL CHECK (capacity > 0),
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- -----------------------------
        -- Generated timetables (saved)
        -- -----------------------------

        CREATE TABLE IF NOT EXISTS generated_timetables (
            id TEXT PRIMARY KEY,
            grade INTEGER NOT NULL CHECK (grade BETWEEN 1 AND 6),
            class_section TEXT NOT NULL,
            timetable_json TEXT NOT NULL,
            statistics_json TEXT NOT NULL DEFAULT '{}',
            metadata_json TEXT NOT NULL DEFAULT '{}',
            generation_method TEXT NOT NULL,
            assignment_rate REAL NOT NULL DEFAULT 0,
            total_slots INTEGER NOT NULL DEFAULT 0,
            assigned_slots INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_generated_timetables_class
        ON generated_timetables(grade, class_section);
        """
    )
    conn.commit()


class db_session:
    """Context manager that opens a connection and ensures schema exists."""

    def __init__(self, config: Optional[DBConfig] = None):
        self._config = config
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> sqlite3.Connection:
        self._conn = get_connection(self._config)
        init_db(self._conn)
        return self._conn

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._conn is not None
        if exc_type is None:
            self._conn.commit()
        else:
            self._conn.rollback()
        self._conn.close()
        self._conn = None
