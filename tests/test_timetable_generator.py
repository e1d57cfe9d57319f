import random
import sys
from pathlib import Path

# Ensure project root is on PYTHONPATH
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import json

from modules.timetable_generator import (
    PersistenceError,
    TimetableGenerationEngine,
    TimetableGenerationService,
    compute_statistics,
)
from modules.timetable_models import (
    Classroom,
    GenerationConstraints,
    SchoolSettings,
    Subject,
    Teacher,
    build_empty_timetable,
    lesson_counts,
)
from utils.validators import validate_constraints


MATH = Subject(subject_id="MATH", name="Math", grades=(1,), weekly_hours={1: 6})
ENG = Subject(subject_id="ENG", name="English", grades=(1,), weekly_hours={1: 6})
T1 = Teacher(teacher_id="T1", name="Kim", subjects=("MATH", "ENG"), grades=(1,))
R1 = Classroom(classroom_id="R1", name="Room 1", classroom_type="normal", capacity=30)


class FakeProvider:
    def __init__(self, settings=SchoolSettings(daily_periods=6), teachers=(T1,), subjects=(MATH,), classrooms=(R1,)):
        self.settings = settings
        self.teachers = list(teachers)
        self.subjects = list(subjects)
        self.classrooms = list(classrooms)
        self.calls = 0

    def get_school_settings(self):
        self.calls += 1
        return self.settings

    def get_teachers(self):
        self.calls += 1
        return self.teachers

    def get_subjects(self):
        self.calls += 1
        return self.subjects

    def get_classrooms(self):
        self.calls += 1
        return self.classrooms


class BrokenProvider(FakeProvider):
    def get_teachers(self):
        raise RuntimeError("roster database unavailable")


class MemoryStore:
    def __init__(self):
        self.records = []

    def save_timetable(self, record):
        self.records.append(dict(record))

    def list_timetables(self, *, grade=None, class_section=None, limit=None):
        rows = [
            r
            for r in reversed(self.records)
            if (grade is None or r["grade"] == grade) and (class_section is None or r["class_section"] == class_section)
        ]
        rows = rows[:limit] if limit else rows
        return [
            {
                "id": r["id"],
                "grade": r["grade"],
                "class_section": r["class_section"],
                "statistics": json.loads(r["statistics"]),
                "created_at": r["created_at"],
            }
            for r in rows
        ]

    def get_timetable(self, timetable_id):
        for r in self.records:
            if r["id"] == timetable_id:
                out = dict(r)
                out["timetable_data"] = json.loads(r["timetable_data"])
                return out
        return None


class FailingStore(MemoryStore):
    def save_timetable(self, record):
        raise PersistenceError("disk full")

    def list_timetables(self, **kwargs):
        raise PersistenceError("disk full")


def _service(provider=None, store=None):
    return TimetableGenerationService(provider or FakeProvider(), store if store is not None else MemoryStore())


def test_single_subject_week_is_generated_and_saved():
    store = MemoryStore()
    service = _service(store=store)

    result = service.generate_timetable_for_class(1, "A", {"seed": 1}, rng=random.Random(1))

    assert result.success
    assert result.violations == ()
    stats = result.statistics
    assert stats.total_slots == 30
    assert stats.assigned_slots == 6
    assert stats.unassigned_slots == 24
    assert stats.constraint_violations == 0
    assert stats.assignment_rate == 20.0
    assert stats.quality_score == 20.0
    assert lesson_counts(result.timetable) == {"MATH": 6}

    assert result.persisted
    assert result.timetable_id == store.records[0]["id"]
    saved = store.records[0]
    assert saved["grade"] == 1 and saved["class_section"] == "A"
    assert saved["total_slots"] == 30 and saved["assigned_slots"] == 6
    assert json.loads(saved["metadata"])["seed"] == 1


def test_saturday_adds_a_day():
    provider = FakeProvider(settings=SchoolSettings(daily_periods=5, saturday_periods=3))
    result = _service(provider).generate_timetable_for_class(1, "A")

    assert result.statistics.total_slots == 30
    assert [day[0][0].day for day in result.timetable][-1] == "Sat"


def test_fixed_slot_survives_generation():
    result = _service().generate_timetable_for_class(
        1,
        "A",
        {"max_iterations": 300, "quality_threshold": 100},
        constraints={"fixed_slots": [{"subject_id": "MATH", "day": "Mon", "period": 1, "teacher_id": "T1"}]},
        rng=random.Random(4),
    )

    cell = result.timetable[0][0][0]
    assert cell.subject_id == "MATH"
    assert cell.is_fixed
    # the fixed lesson counts toward the weekly hours
    assert lesson_counts(result.timetable) == {"MATH": 6}
    assert result.success


def test_fixed_slot_outside_grid_is_skipped():
    provider = FakeProvider(settings=SchoolSettings(daily_periods=4))
    result = _service(provider).generate_timetable_for_class(
        1,
        "A",
        constraints={"fixed_slots": [{"subject_id": "MATH", "day": "Sat", "period": 1}]},
    )

    assert result.success
    assert not any(slot.is_fixed for day in result.timetable for cells in day for slot in cells)


def test_overloaded_week_reports_subject_hours_and_is_not_saved():
    store = MemoryStore()
    provider = FakeProvider(settings=SchoolSettings(daily_periods=2), subjects=(MATH, ENG))

    result = _service(provider, store).generate_timetable_for_class(1, "A", rng=random.Random(2))

    assert not result.success
    assert any(v.kind == "subject_hours" for v in result.violations)
    assert result.statistics.constraint_violations == len(result.violations)
    assert result.timetable is not None
    assert not result.persisted
    assert store.records == []


def test_invalid_request_returns_field_errors_without_loading_data():
    provider = FakeProvider()
    result = _service(provider).generate_timetable_for_class(9, "AA", {"max_iterations": -1})

    assert not result.success
    fields = {e.field for e in result.errors}
    assert {"grade", "class_section", "options.max_iterations"} <= fields
    assert result.statistics.total_slots == 0
    assert provider.calls == 0


def test_validation_is_idempotent():
    raw = {"grade": 0, "class_section": "a", "fixed_slots": [{"subject_id": "", "day": "Sun", "period": 11}]}
    assert validate_constraints(raw) == validate_constraints(raw)


def test_dataclass_constraints_are_accepted():
    engine = TimetableGenerationEngine(FakeProvider(), MemoryStore())
    result = engine.generate(GenerationConstraints(grade=1, class_section="A"), None, rng=random.Random(0))
    assert result.success


def test_missing_settings_is_a_failure_result():
    result = _service(FakeProvider(settings=None)).generate_timetable_for_class(1, "A")

    assert not result.success
    assert result.message == "School settings are not configured"
    assert result.statistics.assignment_rate == 0.0


def test_no_teachers_is_a_failure_result():
    result = _service(FakeProvider(teachers=())).generate_timetable_for_class(1, "A")
    assert not result.success
    assert result.message == "No teachers registered"


def test_no_subjects_for_grade_is_a_failure_result():
    result = _service().generate_timetable_for_class(2, "A")
    assert not result.success
    assert "grade 2" in result.message


def test_empty_classroom_roster_still_generates():
    result = _service(FakeProvider(classrooms=())).generate_timetable_for_class(1, "A")
    assert result.success
    assert all(slot.classroom_id is None for day in result.timetable for cells in day for slot in cells)


def test_provider_fault_is_converted_to_failure():
    result = _service(BrokenProvider()).generate_timetable_for_class(1, "A")

    assert not result.success
    assert result.message == "roster database unavailable"
    assert result.timetable is None
    assert result.statistics.total_slots == 0


def test_persistence_failure_keeps_successful_result():
    result = _service(store=FailingStore()).generate_timetable_for_class(1, "A")

    assert result.success
    assert not result.persisted
    assert result.persistence_error == "disk full"
    assert result.timetable is not None


class CrashingStore(MemoryStore):
    def save_timetable(self, record):
        raise RuntimeError("disk full")


def test_unexpected_store_error_keeps_successful_result():
    result = _service(store=CrashingStore()).generate_timetable_for_class(1, "A")

    assert result.success
    assert not result.persisted
    assert result.timetable_id is None
    assert result.persistence_error == "disk full"
    assert result.timetable is not None
    assert result.statistics.assigned_slots == 6


def test_saved_timetables_newest_first_with_filters():
    store = MemoryStore()
    provider = FakeProvider(
        subjects=(Subject(subject_id="MATH", name="Math", grades=(1, 2), weekly_hours={1: 6, 2: 4}),),
        teachers=(Teacher(teacher_id="T1", name="Kim", subjects=("MATH",), grades=(1, 2)),),
    )
    service = _service(provider, store)
    first = service.generate_timetable_for_class(1, "A")
    second = service.generate_timetable_for_class(1, "B")
    third = service.generate_timetable_for_class(2, "A")

    listed = service.get_saved_timetables()["timetables"]
    assert [t["id"] for t in listed] == [third.timetable_id, second.timetable_id, first.timetable_id]
    assert listed[0]["statistics"]["total_slots"] == 30

    grade1 = service.get_saved_timetables({"grade": 1, "limit": 1})["timetables"]
    assert [t["id"] for t in grade1] == [second.timetable_id]

    record = service.get_saved_timetable(first.timetable_id)
    assert record["timetable"] == first.timetable
    assert service.get_saved_timetable("missing") is None


def test_saved_timetables_invalid_filter_and_store_failure():
    out = _service().get_saved_timetables({"grade": 12})
    assert out["timetables"] == []
    assert out["errors"][0]["field"] == "filters.grade"

    out = _service(store=FailingStore()).get_saved_timetables()
    assert out == {"timetables": [], "error": "disk full"}


def test_same_seed_gives_same_timetable():
    provider = FakeProvider(settings=SchoolSettings(daily_periods=4), subjects=(MATH, ENG))
    options = {"seed": 5, "quality_threshold": 100, "max_iterations": 200}

    a = _service(provider).generate_timetable_for_class(1, "A", options)
    b = _service(provider).generate_timetable_for_class(1, "A", options)

    assert a.timetable == b.timetable


def test_compute_statistics_on_empty_grid():
    stats = compute_statistics([], [], 0, 0)
    assert stats.total_slots == 0
    assert stats.assignment_rate == 0.0
    assert stats.quality_score == 0.0


def test_quality_score_is_floored_at_zero():
    settings = SchoolSettings(daily_periods=1)
    tt = build_empty_timetable(settings, GenerationConstraints(grade=1, class_section="A"))
    fake_violations = [object()] * 30
    stats = compute_statistics(tt, fake_violations, 3, 12)
    assert stats.quality_score == 0.0
    assert stats.backtrack_count == 3
    assert stats.generation_time_ms == 12
