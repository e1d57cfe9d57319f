from __future__ import annotations

import io
import sys
import zipfile
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pandas as pd

from modules.timetable_models import (
    ConstraintViolation,
    GenerationConstraints,
    GenerationStatistics,
    SchoolSettings,
    SlotRef,
    build_empty_timetable,
)
from utils.timetable_export import (
    _safe_sheet_name,
    class_timetable_df,
    df_to_markdown,
    df_to_png_bytes,
    statistics_df,
    teacher_ids,
    teacher_timetable_df,
    timetable_reports_zip_bytes,
    timetable_workbook_bytes,
    violations_df,
)


def _timetable():
    tt = build_empty_timetable(SchoolSettings(daily_periods=3), GenerationConstraints(grade=2, class_section="B"))
    tt[0][0][0] = replace(tt[0][0][0], subject_id="MATH", teacher_id="T1", is_fixed=True)
    tt[1][2][0] = replace(tt[1][2][0], subject_id="ENG", teacher_id="T2")
    return tt


def _violation():
    return ConstraintViolation(
        violation_id="v1",
        kind="subject_hours",
        severity="high",
        description="Subject MATH has 1 lessons per week (required: 2)",
        affected_slots=(SlotRef(day="Mon", period=1, grade=2, class_section="B"),),
        constraint_id="subject_hours_MATH",
        suggested_fix="Adjust the number of lessons for this subject",
    )


def test_df_to_markdown_basic() -> None:
    df = pd.DataFrame([["A", "B"], ["C", "D"]], columns=["Col1", "Col2"])
    md = df_to_markdown(df)
    assert "| Col1 | Col2 |" in md
    assert "| A | B |" in md


def test_class_timetable_df_layout() -> None:
    df = class_timetable_df(_timetable())

    assert list(df.columns) == ["DAY", "1", "2", "3"]
    assert list(df["DAY"]) == ["Mon", "Tue", "Wed", "Thu", "Fri"]
    assert df.iloc[0]["1"] == "MATH (T1) *"
    assert df.iloc[1]["3"] == "ENG (T2)"
    assert df.iloc[2]["2"] == ""


def test_teacher_timetable_df() -> None:
    tt = _timetable()
    assert teacher_ids(tt) == ["T1", "T2"]

    df = teacher_timetable_df(tt, "T2")
    assert df.iloc[1]["3"] == "ENG (2-B)"
    assert df.iloc[0]["1"] == ""


def test_violation_and_statistics_tables() -> None:
    vdf = violations_df([_violation()])
    assert vdf.iloc[0]["slots"] == "Mon P1"
    assert list(violations_df([]).columns) == ["kind", "severity", "description", "slots", "suggested_fix"]

    stats = GenerationStatistics(
        total_slots=15,
        assigned_slots=2,
        unassigned_slots=13,
        constraint_violations=1,
        backtrack_count=0,
        generation_time_ms=5,
        assignment_rate=13.33,
        quality_score=8.33,
    )
    sdf = statistics_df(stats)
    assert dict(zip(sdf["metric"], sdf["value"]))["total_slots"] == 15
    assert statistics_df(None).empty


def test_safe_sheet_name() -> None:
    assert _safe_sheet_name("Teacher-A/B:C") == "Teacher-A-B-C"
    assert len(_safe_sheet_name("x" * 40)) == 31


def test_workbook_has_expected_sheets() -> None:
    data = timetable_workbook_bytes(
        timetable=_timetable(),
        grade=2,
        class_section="B",
        violations=[_violation()],
    )
    sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, engine="openpyxl")
    assert set(sheets) == {"Class 2-B", "Teacher-T1", "Teacher-T2", "Statistics", "Violations"}


def test_zip_bundle_contents() -> None:
    data = timetable_reports_zip_bytes(timetable=_timetable(), grade=2, class_section="B")
    names = set(zipfile.ZipFile(io.BytesIO(data)).namelist())
    assert {
        "timetable.xlsx",
        "timetables/class_2B.csv",
        "timetables/teachers/T1.csv",
        "tables/statistics.csv",
        "tables/violations.csv",
    } <= names


def test_png_export() -> None:
    png = df_to_png_bytes(class_timetable_df(_timetable()))
    assert png[:8] == b"\x89PNG\r\n\x1a\n"
