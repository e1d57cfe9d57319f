"""CRUD operations for the Streamlit UI and the SQLite-backed store.

All DB access is centralized here so pages remain clean.

We use simple `sqlite3` + parameterized queries.

"""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, List, Mapping, Optional, Sequence


# -----------------
# Helper utilities
# -----------------


def _rows(conn: sqlite3.Connection, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    cur = conn.execute(query, params)
    return [dict(r) for r in cur.fetchall()]


def _row(conn: sqlite3.Connection, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
    cur = conn.execute(query, params)
    r = cur.fetchone()
    return dict(r) if r is not None else None


def _int_keys(d: Mapping[str, Any]) -> Dict[int, int]:
    # JSON object keys are always strings
    return {int(k): int(v) for k, v in d.items()}


# ---------------
# School settings
# ---------------


def get_school_settings(conn: sqlite3.Connection) -> Optional[Dict[str, Any]]:
    s = _row(conn, "SELECT * FROM school_settings WHERE id=1")
    if s is None:
        return None
    s["classes_per_grade"] = _int_keys(json.loads(s.get("classes_per_grade_json") or "{}"))
    return s


def update_school_settings(
    conn: sqlite3.Connection,
    *,
    daily_periods: int,
    saturday_periods: int = 0,
    classes_per_grade: Optional[Dict[int, int]] = None,
) -> None:
    conn.execute(
        """
        INSERT INTO school_settings (id, daily_periods, saturday_periods, classes_per_grade_json)
        VALUES (1, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            daily_periods=excluded.daily_periods,
            saturday_periods=excluded.saturday_periods,
            classes_per_grade_json=excluded.classes_per_grade_json,
            updated_at=datetime('now')
        """,
        (daily_periods, saturday_periods, json.dumps({str(k): v for k, v in (classes_per_grade or {}).items()})),
    )


# --------
# Subjects
# --------


def list_subjects(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = _rows(conn, "SELECT * FROM subjects ORDER BY created_at, rowid")
    for r in rows:
        r["grades"] = json.loads(r.get("grades_json") or "[]")
        r["weekly_hours"] = _int_keys(json.loads(r.get("weekly_hours_json") or "{}"))
        r["requires_special_classroom"] = bool(r.get("requires_special_classroom"))
    return rows


def upsert_subject(
    conn: sqlite3.Connection,
    *,
    subject_id: str,
    name: str,
    grades: List[int],
    weekly_hours: Dict[int, int],
    requires_special_classroom: bool = False,
    classroom_type: Optional[str] = None,
) -> None:
    conn.execute(
        """
        INSERT INTO subjects (subject_id, name, grades_json, weekly_hours_json, requires_special_classroom, classroom_type)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(subject_id) DO UPDATE SET
            name=excluded.name,
            grades_json=excluded.grades_json,
            weekly_hours_json=excluded.weekly_hours_json,
            requires_special_classroom=excluded.requires_special_classroom,
            classroom_type=excluded.classroom_type
        """,
        (
            subject_id,
            name,
            json.dumps(list(grades)),
            json.dumps({str(k): v for k, v in weekly_hours.items()}),
            1 if requires_special_classroom else 0,
            classroom_type,
        ),
    )


def delete_subject(conn: sqlite3.Connection, subject_id: str) -> None:
    conn.execute("DELETE FROM subjects WHERE subject_id=?", (subject_id,))


# --------
# Teachers
# --------


def _teacher_subjects(conn: sqlite3.Connection, teacher_id: str) -> List[str]:
    return [
        x["subject_id"]
        for x in _rows(conn, "SELECT subject_id FROM teacher_subjects WHERE teacher_id=? ORDER BY rowid", (teacher_id,))
    ]


def list_teachers(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    data = _rows(conn, "SELECT * FROM teachers ORDER BY created_at, rowid")
    for r in data:
        r["grades"] = json.loads(r.get("grades_json") or "[]")
        r["subjects"] = _teacher_subjects(conn, r["teacher_id"])
    return data


def get_teacher(conn: sqlite3.Connection, teacher_id: str) -> Optional[Dict[str, Any]]:
    r = _row(conn, "SELECT * FROM teachers WHERE teacher_id=?", (teacher_id,))
    if r is None:
        return None
    r["grades"] = json.loads(r.get("grades_json") or "[]")
    r["subjects"] = _teacher_subjects(conn, teacher_id)
    return r


def upsert_teacher(
    conn: sqlite3.Connection,
    *,
    teacher_id: str,
    name: str,
    grades: List[int],
    subject_ids: List[str],
) -> None:
    conn.execute(
        """
        INSERT INTO teachers (teacher_id, name, grades_json)
        VALUES (?, ?, ?)
        ON CONFLICT(teacher_id) DO UPDATE SET
            name=excluded.name,
            grades_json=excluded.grades_json
        """,
        (teacher_id, name, json.dumps(list(grades))),
    )

    # refresh mappings
    conn.execute("DELETE FROM teacher_subjects WHERE teacher_id=?", (teacher_id,))
    for sid in subject_ids:
        conn.execute(
            "INSERT OR IGNORE INTO teacher_subjects (teacher_id, subject_id) VALUES (?, ?)",
            (teacher_id, sid),
        )


def delete_teacher(conn: sqlite3.Connection, teacher_id: str) -> None:
    conn.execute("DELETE FROM teachers WHERE teacher_id=?", (teacher_id,))


# ----------
# Classrooms
# ----------


def list_classrooms(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    return _rows(conn, "SELECT * FROM classrooms ORDER BY created_at, rowid")


def upsert_classroom(
    conn: sqlite3.Connection,
    *,
    classroom_id: str,
    name: str,
    classroom_type: str,
    capacity: int,
) -> None:
    conn.execute(
        """
        INSERT INTO classrooms (classroom_id, name, classroom_type, capacity)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(classroom_id) DO UPDATE SET
            name=excluded.name,
            classroom_type=excluded.classroom_type,
            capacity=excluded.capacity
        """,
        (classroom_id, name, classroom_type, capacity),
    )


def delete_classroom(conn: sqlite3.Connection, classroom_id: str) -> None:
    conn.execute("DELETE FROM classrooms WHERE classroom_id=?", (classroom_id,))


# --------------------
# Generated timetables
# --------------------


def create_generated_timetable(conn: sqlite3.Connection, record: Mapping[str, Any]) -> str:
    """Insert one generated timetable.

    `timetable_data`, `statistics` and `metadata` are JSON strings (already
    serialized by the generator).
    """

    conn.execute(
        """
        INSERT INTO generated_timetables (
            id, grade, class_section,
            timetable_json, statistics_json, metadata_json,
            generation_method, assignment_rate, total_slots, assigned_slots,
            created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record["id"],
            int(record["grade"]),
            record["class_section"],
            record["timetable_data"],
            record.get("statistics") or "{}",
            record.get("metadata") or "{}",
            record["generation_method"],
            float(record.get("assignment_rate") or 0.0),
            int(record.get("total_slots") or 0),
            int(record.get("assigned_slots") or 0),
            record["created_at"],
            record["updated_at"],
        ),
    )
    return str(record["id"])


def list_generated_timetables(
    conn: sqlite3.Connection,
    *,
    grade: Optional[int] = None,
    class_section: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Summary rows (no grid), newest first."""

    where: List[str] = []
    params: List[Any] = []
    if grade is not None:
        where.append("grade=?")
        params.append(int(grade))
    if class_section:
        where.append("class_section=?")
        params.append(class_section)

    query = (
        "SELECT id, grade, class_section, statistics_json, generation_method, assignment_rate, created_at "
        "FROM generated_timetables"
    )
    if where:
        query += " WHERE " + " AND ".join(where)
    query += " ORDER BY created_at DESC, rowid DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(int(limit))

    rows = _rows(conn, query, params)
    for r in rows:
        r["statistics"] = json.loads(r.pop("statistics_json") or "{}")
    return rows


def get_generated_timetable(conn: sqlite3.Connection, timetable_id: str) -> Optional[Dict[str, Any]]:
    r = _row(conn, "SELECT * FROM generated_timetables WHERE id=?", (timetable_id,))
    if r is None:
        return None
    r["timetable_data"] = json.loads(r.pop("timetable_json") or "[]")
    r["statistics"] = json.loads(r.pop("statistics_json") or "{}")
    r["metadata"] = json.loads(r.pop("metadata_json") or "{}")
    return r

