"""Data model for weekly class timetable generation.

One generation run produces the weekly timetable of a single grade + class
section. The timetable is a 3-D grid indexed [day][period][class_slot]; the
class dimension is always 1 for a single-class request but every helper
walks it so conflict checks stay meaningful.

Grid cells (`TimetableSlot`) are frozen dataclasses. Assigning a lesson
replaces the cell with `dataclasses.replace`, and grid copies are cheap
shallow copies of the nested lists.

Inputs
------
- Roster data: `SchoolSettings`, `Teacher`, `Subject`, `Classroom`
- Declarative constraints: `GenerationConstraints`
- Run options: `GenerationOptions`

Outputs
-------
- `ConstraintViolation` records, `GenerationStatistics`, `GenerationResult`

"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import time


DAY_NAMES: Tuple[str, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

GENERATION_METHODS: Tuple[str, ...] = ("standard", "optimized", "ai-enhanced")

VIOLATION_KINDS: Tuple[str, ...] = (
    "teacher_conflict",
    "classroom_conflict",
    "subject_hours",
    "resource_shortage",
    "time_restriction",
    "workload_exceeded",
)

SEVERITIES: Tuple[str, ...] = ("critical", "high", "medium", "low")


# ----------------------------
# Roster data
# ----------------------------


@dataclass(frozen=True)
class SchoolSettings:
    daily_periods: int
    saturday_periods: int = 0
    # grade -> number of class sections
    classes_per_grade: Dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Teacher:
    teacher_id: str
    name: str
    subjects: Tuple[str, ...]
    grades: Tuple[int, ...]


@dataclass(frozen=True)
class Subject:
    subject_id: str
    name: str
    grades: Tuple[int, ...]
    # grade -> lessons per week
    weekly_hours: Dict[int, int]
    requires_special_classroom: bool = False
    classroom_type: Optional[str] = None


@dataclass(frozen=True)
class Classroom:
    classroom_id: str
    name: str
    classroom_type: str
    capacity: int


# ----------------------------
# Constraints / options
# ----------------------------


@dataclass(frozen=True)
class PreferredSlot:
    subject_id: str
    day: str
    period: int


@dataclass(frozen=True)
class FixedSlot:
    subject_id: str
    day: str
    period: int
    teacher_id: Optional[str] = None
    classroom_id: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityWindow:
    day: str
    periods: Tuple[int, ...]


@dataclass(frozen=True)
class GenerationConstraints:
    grade: int
    class_section: str
    max_periods_per_day: int = 6
    allow_consecutive_lessons: bool = True
    preferred_slots: Tuple[PreferredSlot, ...] = ()
    fixed_slots: Tuple[FixedSlot, ...] = ()
    # teacher_id -> declared availability. Once a teacher declares any window,
    # only the listed (day, period) pairs are available.
    teacher_availability: Dict[str, Tuple[AvailabilityWindow, ...]] = field(default_factory=dict)
    # classroom_id -> priority 1..10 (higher first)
    classroom_priority: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ConstraintWeights:
    # Recorded with the run; the fitness formula uses fixed coefficients.
    teacher_conflict: float = 100.0
    classroom_conflict: float = 90.0
    subject_distribution: float = 80.0
    teacher_workload: float = 70.0
    classroom_utilization: float = 60.0


@dataclass(frozen=True)
class GenerationOptions:
    method: str = "optimized"
    max_iterations: int = 1000
    timeout_ms: int = 60_000
    quality_threshold: float = 75.0
    # Accepted for compatibility; a run never parallelises its search.
    enable_parallel_processing: bool = True
    constraint_weights: ConstraintWeights = ConstraintWeights()
    seed: Optional[int] = None


# ----------------------------
# Violations / grid cells
# ----------------------------


@dataclass(frozen=True)
class SlotRef:
    day: str
    period: int
    grade: int
    class_section: str


@dataclass(frozen=True)
class ConstraintViolation:
    violation_id: str
    kind: str
    severity: str
    description: str
    affected_slots: Tuple[SlotRef, ...]
    constraint_id: str
    suggested_fix: str


@dataclass(frozen=True)
class TimetableSlot:
    grade: int
    class_section: str
    day: str
    period: int  # 1-indexed
    class_index: int = 0
    subject_id: Optional[str] = None
    teacher_id: Optional[str] = None
    classroom_id: Optional[str] = None
    is_fixed: bool = False
    violations: Tuple[ConstraintViolation, ...] = ()

    @property
    def is_assigned(self) -> bool:
        return self.subject_id is not None


# [day][period][class_slot]
Timetable = List[List[List[TimetableSlot]]]


# ----------------------------
# Run state / results
# ----------------------------


@dataclass
class GenerationState:
    """Mutable run-scoped state. Owned by one run; written by one component at a time."""

    start_time: float
    last_update: float
    current_iteration: int = 0
    best_quality_score: float = 0.0
    constraint_violations: List[ConstraintViolation] = field(default_factory=list)
    backtrack_count: int = 0

    @classmethod
    def start(cls) -> "GenerationState":
        now = time.time()
        return cls(start_time=now, last_update=now)


@dataclass(frozen=True)
class GenerationStatistics:
    total_slots: int
    assigned_slots: int
    unassigned_slots: int
    constraint_violations: int
    backtrack_count: int
    generation_time_ms: int
    assignment_rate: float
    quality_score: float

    @classmethod
    def empty(cls) -> "GenerationStatistics":
        return cls(
            total_slots=0,
            assigned_slots=0,
            unassigned_slots=0,
            constraint_violations=0,
            backtrack_count=0,
            generation_time_ms=0,
            assignment_rate=0.0,
            quality_score=0.0,
        )


@dataclass(frozen=True)
class GenerationResult:
    success: bool
    message: str
    generated_at: str
    method: str
    timetable: Optional[Timetable] = None
    statistics: Optional[GenerationStatistics] = None
    violations: Tuple[ConstraintViolation, ...] = ()
    # FieldError records when the request was rejected before any work
    errors: Tuple[Any, ...] = ()
    persisted: bool = False
    persistence_error: Optional[str] = None
    timetable_id: Optional[str] = None


@dataclass(frozen=True)
class GenerationProblem:
    """Everything one run needs besides the grid itself."""

    constraints: GenerationConstraints
    settings: SchoolSettings
    teachers: Tuple[Teacher, ...]
    subjects: Tuple[Subject, ...]
    classrooms: Tuple[Classroom, ...]
    required: Dict[str, int] = field(default_factory=dict)

    @property
    def grade(self) -> int:
        return self.constraints.grade


# ----------------------------
# Grid helpers
# ----------------------------


def day_names_for(settings: SchoolSettings) -> Tuple[str, ...]:
    days = 6 if int(settings.saturday_periods) > 0 else 5
    return DAY_NAMES[:days]


def day_index(day: str) -> int:
    try:
        return DAY_NAMES.index(day)
    except ValueError:
        return -1


def build_empty_timetable(settings: SchoolSettings, constraints: GenerationConstraints, classes: int = 1) -> Timetable:
    """Create the [day][period][class_slot] grid with real coordinates on every cell."""

    return [
        [
            [
                TimetableSlot(
                    grade=constraints.grade,
                    class_section=constraints.class_section,
                    day=day,
                    period=p + 1,
                    class_index=c,
                )
                for c in range(classes)
            ]
            for p in range(int(settings.daily_periods))
        ]
        for day in day_names_for(settings)
    ]


def copy_timetable(timetable: Timetable) -> Timetable:
    # Cells are immutable; copying the list structure is enough.
    return [[list(cells) for cells in day] for day in timetable]


def iter_cells(timetable: Timetable) -> Iterator[Tuple[int, int, int, TimetableSlot]]:
    """Yield (day_idx, period_idx, class_idx, slot) day-major, then period, then class slot."""

    for d, day in enumerate(timetable):
        for p, cells in enumerate(day):
            for c, slot in enumerate(cells):
                yield d, p, c, slot


def count_cells(timetable: Timetable) -> Tuple[int, int]:
    """Return (total, assigned) cell counts."""

    total = 0
    assigned = 0
    for _d, _p, _c, slot in iter_cells(timetable):
        total += 1
        if slot.is_assigned:
            assigned += 1
    return total, assigned


def apply_fixed_slots(
    timetable: Timetable,
    fixed_slots: Iterable[FixedSlot],
) -> Tuple[Timetable, List[FixedSlot]]:
    """Place fixed lessons into class slot 0 and mark them immutable.

    Returns the new grid and the fixed slots that fall outside it.
    """

    result = copy_timetable(timetable)
    skipped: List[FixedSlot] = []
    for fs in fixed_slots:
        d = day_index(fs.day)
        p = int(fs.period) - 1
        if d < 0 or d >= len(result) or p < 0 or p >= len(result[d]):
            skipped.append(fs)
            continue
        result[d][p][0] = replace(
            result[d][p][0],
            subject_id=fs.subject_id,
            teacher_id=fs.teacher_id,
            classroom_id=fs.classroom_id,
            is_fixed=True,
        )
    return result, skipped


def required_lessons(subjects: Iterable[Subject], grade: int) -> Dict[str, int]:
    """Weekly lesson count per subject taught in `grade`, in roster order.

    A subject listing the grade without an hours entry needs one lesson.
    """

    out: Dict[str, int] = {}
    for subj in subjects:
        if grade not in subj.grades:
            continue
        out[subj.subject_id] = int(subj.weekly_hours.get(grade) or 1)
    return out


def lesson_counts(timetable: Timetable) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for _d, _p, _c, slot in iter_cells(timetable):
        if slot.subject_id:
            counts[slot.subject_id] = counts.get(slot.subject_id, 0) + 1
    return counts


def remaining_lessons(required: Mapping[str, int], timetable: Timetable) -> Dict[str, int]:
    """Subtract lessons already on the grid (fixed slots) from the required counts."""

    placed = lesson_counts(timetable)
    return {sid: max(0, int(n) - placed.get(sid, 0)) for sid, n in required.items()}


def attach_violations(timetable: Timetable, violations: Iterable[ConstraintViolation]) -> Timetable:
    """Return a grid where every slot carries the violations that touch it."""

    touching: Dict[Tuple[str, int], List[ConstraintViolation]] = {}
    for v in violations:
        for ref in v.affected_slots:
            touching.setdefault((ref.day, ref.period), []).append(v)

    result = copy_timetable(timetable)
    for d, p, c, slot in iter_cells(result):
        found = touching.get((slot.day, slot.period))
        if found:
            result[d][p][c] = replace(slot, violations=tuple(found))
    return result


# ----------------------------
# Serialization
# ----------------------------


def timetable_to_rows(timetable: Timetable) -> List[List[List[Dict[str, Any]]]]:
    """JSON-ready nested lists mirroring the grid."""

    return [[[asdict(slot) for slot in cells] for cells in day] for day in timetable]


def violation_from_dict(raw: Mapping[str, Any]) -> ConstraintViolation:
    return ConstraintViolation(
        violation_id=str(raw["violation_id"]),
        kind=str(raw["kind"]),
        severity=str(raw["severity"]),
        description=str(raw.get("description") or ""),
        affected_slots=tuple(SlotRef(**ref) for ref in (raw.get("affected_slots") or [])),
        constraint_id=str(raw.get("constraint_id") or ""),
        suggested_fix=str(raw.get("suggested_fix") or ""),
    )


def timetable_from_rows(rows: List[List[List[Mapping[str, Any]]]]) -> Timetable:
    out: Timetable = []
    for day in rows:
        out_day: List[List[TimetableSlot]] = []
        for cells in day:
            out_cells: List[TimetableSlot] = []
            for raw in cells:
                data = dict(raw)
                data["violations"] = tuple(violation_from_dict(v) for v in (data.get("violations") or []))
                out_cells.append(TimetableSlot(**data))
            out_day.append(out_cells)
        out.append(out_day)
    return out


def constraints_from_dict(raw: Mapping[str, Any]) -> GenerationConstraints:
    """Build constraints from an already validated mapping."""

    availability: Dict[str, Tuple[AvailabilityWindow, ...]] = {}
    for tid, windows in (raw.get("teacher_availability") or {}).items():
        availability[str(tid)] = tuple(
            AvailabilityWindow(day=str(w["day"]), periods=tuple(int(x) for x in (w.get("periods") or [])))
            for w in windows
        )

    return GenerationConstraints(
        grade=int(raw["grade"]),
        class_section=str(raw["class_section"]),
        max_periods_per_day=int(raw.get("max_periods_per_day", 6)),
        allow_consecutive_lessons=bool(raw.get("allow_consecutive_lessons", True)),
        preferred_slots=tuple(
            PreferredSlot(subject_id=str(p["subject_id"]), day=str(p["day"]), period=int(p["period"]))
            for p in (raw.get("preferred_slots") or [])
        ),
        fixed_slots=tuple(
            FixedSlot(
                subject_id=str(f["subject_id"]),
                day=str(f["day"]),
                period=int(f["period"]),
                teacher_id=(str(f["teacher_id"]) if f.get("teacher_id") else None),
                classroom_id=(str(f["classroom_id"]) if f.get("classroom_id") else None),
            )
            for f in (raw.get("fixed_slots") or [])
        ),
        teacher_availability=availability,
        classroom_priority={str(k): int(v) for k, v in (raw.get("classroom_priority") or {}).items()},
    )


def options_from_dict(raw: Mapping[str, Any]) -> GenerationOptions:
    """Build options from an already validated mapping; missing keys take defaults."""

    defaults = GenerationOptions()
    weights_raw = raw.get("constraint_weights") or {}
    dw = defaults.constraint_weights
    weights = ConstraintWeights(
        teacher_conflict=float(weights_raw.get("teacher_conflict", dw.teacher_conflict)),
        classroom_conflict=float(weights_raw.get("classroom_conflict", dw.classroom_conflict)),
        subject_distribution=float(weights_raw.get("subject_distribution", dw.subject_distribution)),
        teacher_workload=float(weights_raw.get("teacher_workload", dw.teacher_workload)),
        classroom_utilization=float(weights_raw.get("classroom_utilization", dw.classroom_utilization)),
    )
    seed = raw.get("seed", defaults.seed)
    return GenerationOptions(
        method=str(raw.get("method", defaults.method)),
        max_iterations=int(raw.get("max_iterations", defaults.max_iterations)),
        timeout_ms=int(raw.get("timeout_ms", defaults.timeout_ms)),
        quality_threshold=float(raw.get("quality_threshold", defaults.quality_threshold)),
        enable_parallel_processing=bool(raw.get("enable_parallel_processing", defaults.enable_parallel_processing)),
        constraint_weights=weights,
        seed=(int(seed) if seed is not None else None),
    )


# ----------------------------
# Formatting helpers
# ----------------------------


def format_class_timetable(timetable: Timetable, class_index: int = 0) -> List[List[str]]:
    """Return a table (rows=days, cols=periods) with 'SUBJECT (TEACHER)' or ''."""

    table: List[List[str]] = []
    for day in timetable:
        row: List[str] = []
        for cells in day:
            slot = cells[class_index]
            if not slot.is_assigned:
                row.append("")
                continue
            label = str(slot.subject_id)
            if slot.teacher_id:
                label = f"{label} ({slot.teacher_id})"
            if slot.is_fixed:
                label = f"{label} *"
            row.append(label)
        table.append(row)
    return table


def format_teacher_timetable(timetable: Timetable, teacher_id: str) -> List[List[str]]:
    """Return a table (rows=days, cols=periods) of one teacher's lessons."""

    table: List[List[str]] = []
    for day in timetable:
        row: List[str] = []
        for cells in day:
            labels = [
                f"{s.subject_id} ({s.grade}-{s.class_section})"
                for s in cells
                if s.teacher_id == teacher_id and s.is_assigned
            ]
            row.append(" / ".join(labels))
        table.append(row)
    return table
