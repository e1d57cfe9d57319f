"""SQLite-backed data provider and timetable store for the generator.

Each call opens its own `db_session`, so the generator may issue the roster
reads from worker threads.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from modules.timetable_generator import PersistenceError
from modules.timetable_models import Classroom, SchoolSettings, Subject, Teacher

from . import crud
from .db import DBConfig, db_session


logger = logging.getLogger(__name__)


class SqliteSchoolDataProvider:
    """Reads roster data (settings, teachers, subjects, classrooms)."""

    def __init__(self, config: Optional[DBConfig] = None):
        self._config = config

    def get_school_settings(self) -> Optional[SchoolSettings]:
        with db_session(self._config) as conn:
            s = crud.get_school_settings(conn)
        if s is None:
            return None
        return SchoolSettings(
            daily_periods=int(s["daily_periods"]),
            saturday_periods=int(s["saturday_periods"]),
            classes_per_grade=dict(s["classes_per_grade"]),
        )

    def get_teachers(self) -> List[Teacher]:
        with db_session(self._config) as conn:
            rows = crud.list_teachers(conn)
        return [
            Teacher(
                teacher_id=r["teacher_id"],
                name=r["name"],
                subjects=tuple(r["subjects"]),
                grades=tuple(int(g) for g in r["grades"]),
            )
            for r in rows
        ]

    def get_subjects(self) -> List[Subject]:
        with db_session(self._config) as conn:
            rows = crud.list_subjects(conn)
        return [
            Subject(
                subject_id=r["subject_id"],
                name=r["name"],
                grades=tuple(int(g) for g in r["grades"]),
                weekly_hours=dict(r["weekly_hours"]),
                requires_special_classroom=bool(r["requires_special_classroom"]),
                classroom_type=r.get("classroom_type"),
            )
            for r in rows
        ]

    def get_classrooms(self) -> List[Classroom]:
        with db_session(self._config) as conn:
            rows = crud.list_classrooms(conn)
        return [
            Classroom(
                classroom_id=r["classroom_id"],
                name=r["name"],
                classroom_type=r["classroom_type"],
                capacity=int(r["capacity"]),
            )
            for r in rows
        ]


class SqliteTimetableStore:
    """Saves and reads generated timetables; sqlite and file system errors surface as PersistenceError."""

    def __init__(self, config: Optional[DBConfig] = None):
        self._config = config

    def save_timetable(self, record: Dict[str, Any]) -> None:
        try:
            with db_session(self._config) as conn:
                crud.create_generated_timetable(conn, record)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Could not save timetable {record.get('id')}: {exc}") from exc
        logger.info("Saved timetable %s", record.get("id"))

    def list_timetables(
        self,
        *,
        grade: Optional[int] = None,
        class_section: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            with db_session(self._config) as conn:
                return crud.list_generated_timetables(conn, grade=grade, class_section=class_section, limit=limit)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Could not list timetables: {exc}") from exc

    def get_timetable(self, timetable_id: str) -> Optional[Dict[str, Any]]:
        try:
            with db_session(self._config) as conn:
                return crud.get_generated_timetable(conn, timetable_id)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Could not read timetable {timetable_id}: {exc}") from exc
