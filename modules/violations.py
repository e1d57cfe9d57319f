"""Constraint violation detection for a candidate timetable.

Pure inspection: nothing here mutates the grid, and the same grid always
yields the same violations (ids are derived from the constraint id and the
affected coordinates).

Checks
------
- teacher_conflict (critical): a teacher appears more than once in one (day, period)
- classroom_conflict (high): a classroom appears more than once in one (day, period)
- subject_hours: assigned lessons differ from the weekly requirement
  (high when under-assigned, medium when over-assigned)
- time_restriction (medium): a non-fixed lesson sits outside its teacher's
  declared availability
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import uuid

from .slot_assignment import is_teacher_available
from .timetable_models import (
    ConstraintViolation,
    GenerationProblem,
    SlotRef,
    Timetable,
    TimetableSlot,
    lesson_counts,
)


_VIOLATION_NAMESPACE = uuid.UUID("6f1c2d0e-5b7a-4e43-9a51-0c8e7f3b2a19")


def _violation_id(constraint_id: str, refs: Tuple[SlotRef, ...]) -> str:
    key = constraint_id + "|" + ";".join(f"{r.day}-{r.period}" for r in refs)
    return str(uuid.uuid5(_VIOLATION_NAMESPACE, key))


def _ref(slot: TimetableSlot) -> SlotRef:
    return SlotRef(day=slot.day, period=slot.period, grade=slot.grade, class_section=slot.class_section)


def _violation(
    *,
    kind: str,
    severity: str,
    description: str,
    refs: Tuple[SlotRef, ...],
    constraint_id: str,
    suggested_fix: str,
) -> ConstraintViolation:
    return ConstraintViolation(
        violation_id=_violation_id(constraint_id, refs),
        kind=kind,
        severity=severity,
        description=description,
        affected_slots=refs,
        constraint_id=constraint_id,
        suggested_fix=suggested_fix,
    )


def _grouped_conflicts(timetable: Timetable, attr: str) -> List[Tuple[str, List[TimetableSlot]]]:
    """(resource_id, slots) for every resource used more than once in one (day, period)."""

    out: List[Tuple[str, List[TimetableSlot]]] = []
    for day in timetable:
        for cells in day:
            by_id: Dict[str, List[TimetableSlot]] = {}
            for slot in cells:
                rid: Optional[str] = getattr(slot, attr)
                if rid:
                    by_id.setdefault(rid, []).append(slot)
            for rid, slots in by_id.items():
                if len(slots) > 1:
                    out.append((rid, slots))
    return out


def check_teacher_conflicts(problem: GenerationProblem, timetable: Timetable) -> List[ConstraintViolation]:
    violations: List[ConstraintViolation] = []
    for teacher_id, slots in _grouped_conflicts(timetable, "teacher_id"):
        violations.append(
            _violation(
                kind="teacher_conflict",
                severity="critical",
                description=f"Teacher {teacher_id} is assigned to {len(slots)} classes at the same time",
                refs=(_ref(slots[0]),),
                constraint_id=f"teacher_conflict_{teacher_id}",
                suggested_fix="Move one of the lessons to another period or assign another teacher",
            )
        )
    return violations


def check_classroom_conflicts(problem: GenerationProblem, timetable: Timetable) -> List[ConstraintViolation]:
    violations: List[ConstraintViolation] = []
    for classroom_id, slots in _grouped_conflicts(timetable, "classroom_id"):
        violations.append(
            _violation(
                kind="classroom_conflict",
                severity="high",
                description=f"Classroom {classroom_id} is used by {len(slots)} classes at the same time",
                refs=(_ref(slots[0]),),
                constraint_id=f"classroom_conflict_{classroom_id}",
                suggested_fix="Move one of the lessons or use another classroom",
            )
        )
    return violations


def check_subject_hours(problem: GenerationProblem, timetable: Timetable) -> List[ConstraintViolation]:
    violations: List[ConstraintViolation] = []
    actual = lesson_counts(timetable)
    for subject_id, required in problem.required.items():
        got = actual.get(subject_id, 0)
        if got == required:
            continue
        violations.append(
            _violation(
                kind="subject_hours",
                severity="high" if got < required else "medium",
                description=f"Subject {subject_id} has {got} lessons per week (required: {required})",
                refs=(),
                constraint_id=f"subject_hours_{subject_id}",
                suggested_fix="Adjust the number of lessons for this subject",
            )
        )
    return violations


def check_time_restrictions(problem: GenerationProblem, timetable: Timetable) -> List[ConstraintViolation]:
    violations: List[ConstraintViolation] = []
    if not problem.constraints.teacher_availability:
        return violations

    for day in timetable:
        for cells in day:
            for slot in cells:
                if slot.is_fixed or not slot.teacher_id:
                    continue
                if is_teacher_available(problem, slot.teacher_id, slot.day, slot.period):
                    continue
                violations.append(
                    _violation(
                        kind="time_restriction",
                        severity="medium",
                        description=(
                            f"Teacher {slot.teacher_id} is not available on {slot.day} period {slot.period}"
                        ),
                        refs=(_ref(slot),),
                        constraint_id=f"time_restriction_{slot.teacher_id}",
                        suggested_fix="Move the lesson into the teacher's available periods",
                    )
                )
    return violations


def detect_violations(problem: GenerationProblem, timetable: Timetable) -> List[ConstraintViolation]:
    """Run every check; order is teacher, classroom, subject hours, time restrictions."""

    violations: List[ConstraintViolation] = []
    violations.extend(check_teacher_conflicts(problem, timetable))
    violations.extend(check_classroom_conflicts(problem, timetable))
    violations.extend(check_subject_hours(problem, timetable))
    violations.extend(check_time_restrictions(problem, timetable))
    return violations
