"""Demo runner: seed a sample school and generate one class timetable.

Usage:
    python scripts/run_class_demo.py
    python scripts/run_class_demo.py --grade 2 --class-section B --seed 7
    python scripts/run_class_demo.py --seed-only

The database path follows SCHOOL_TIMETABLE_DB (or --db).

"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sqlite3
import sys

# Ensure project root is on PYTHONPATH when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from modules.timetable_generator import TimetableGenerationService
from ui.database import crud
from ui.database.db import DBConfig, db_session
from ui.database.store import SqliteSchoolDataProvider, SqliteTimetableStore
from utils.timetable_export import class_timetable_df, statistics_df, violations_df


SAMPLE_SUBJECTS = [
    # (subject_id, name, weekly hours for grades 1-3, special room type)
    ("KOR", "Korean", 5, None),
    ("MATH", "Mathematics", 5, None),
    ("ENG", "English", 3, None),
    ("SCI", "Science", 3, "lab"),
    ("PE", "Physical Education", 2, "gym"),
    ("MUS", "Music", 2, None),
]

SAMPLE_TEACHERS = [
    ("T-KIM", "Kim", ["KOR"]),
    ("T-LEE", "Lee", ["MATH"]),
    ("T-PARK", "Park", ["ENG", "MUS"]),
    ("T-CHOI", "Choi", ["SCI"]),
    ("T-JUNG", "Jung", ["PE"]),
]

SAMPLE_CLASSROOMS = [
    ("R-101", "Room 101", "normal", 30),
    ("LAB-1", "Science Lab", "lab", 24),
    ("GYM", "Gymnasium", "gym", 60),
]


def seed_sample_school(conn: sqlite3.Connection) -> None:
    grades = [1, 2, 3]
    crud.update_school_settings(conn, daily_periods=6, saturday_periods=0, classes_per_grade={g: 2 for g in grades})
    for sid, name, hours, room_type in SAMPLE_SUBJECTS:
        crud.upsert_subject(
            conn,
            subject_id=sid,
            name=name,
            grades=grades,
            weekly_hours={g: hours for g in grades},
            requires_special_classroom=room_type is not None,
            classroom_type=room_type,
        )
    for tid, name, subject_ids in SAMPLE_TEACHERS:
        crud.upsert_teacher(conn, teacher_id=tid, name=name, grades=grades, subject_ids=subject_ids)
    for rid, name, rtype, capacity in SAMPLE_CLASSROOMS:
        crud.upsert_classroom(conn, classroom_id=rid, name=name, classroom_type=rtype, capacity=capacity)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample weekly class timetable")
    parser.add_argument("--db", type=Path, default=None, help="SQLite file (default: SCHOOL_TIMETABLE_DB or ui/database)")
    parser.add_argument("--grade", type=int, default=1)
    parser.add_argument("--class-section", default="A")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--max-iterations", type=int, default=1000)
    parser.add_argument("--seed-only", action="store_true", help="Only load the sample roster")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = DBConfig(db_path=args.db.expanduser().resolve()) if args.db else None
    with db_session(config) as conn:
        seed_sample_school(conn)
    if args.seed_only:
        print("Sample school data loaded.")
        return

    service = TimetableGenerationService(SqliteSchoolDataProvider(config), SqliteTimetableStore(config))
    options = {"max_iterations": args.max_iterations}
    if args.seed is not None:
        options["seed"] = args.seed
    result = service.generate_timetable_for_class(args.grade, args.class_section, options)

    print(f"\n=== {result.message} ===")
    for err in result.errors:
        print(f"- {err.field}: {err.message}")

    if result.timetable:
        print("\n=== Class Timetable ===")
        print(class_timetable_df(result.timetable).to_string(index=False))

    print("\n=== Statistics ===")
    print(statistics_df(result.statistics).to_string(index=False))

    if result.violations:
        print("\n=== Violations ===")
        print(violations_df(result.violations).to_string(index=False))

    if result.persisted:
        print(f"\nSaved as {result.timetable_id}")
    elif result.persistence_error:
        print(f"\nNot saved: {result.persistence_error}")


if __name__ == "__main__":
    main()
