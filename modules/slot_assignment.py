"""Greedy seeding of a class timetable.

For every subject (roster order) and every required lesson, all open cells are
scored and the lesson goes to the best one. Scores start at 100:

- +50  preferred (subject, day, period)
- -100 selected teacher already teaches at that (day, period) in another class slot
- -100 selected teacher declared availability that excludes (day, period)
- -80  selected classroom already used at that (day, period) in another class slot
- -30  subject already has a lesson that day
- -50  consecutive lessons disallowed and an adjacent period holds the subject

Ties go to the first cell in day-major, period, class-slot order.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Tuple

import logging

from .timetable_models import (
    Classroom,
    GenerationProblem,
    Teacher,
    Timetable,
    copy_timetable,
    iter_cells,
)


logger = logging.getLogger(__name__)

BASE_SCORE = 100.0
PREFERRED_BONUS = 50.0
TEACHER_CONFLICT_PENALTY = 100.0
TEACHER_UNAVAILABLE_PENALTY = 100.0
CLASSROOM_CONFLICT_PENALTY = 80.0
SAME_DAY_PENALTY = 30.0
CONSECUTIVE_PENALTY = 50.0


# ----------------------------
# Resource selection
# ----------------------------


def select_teacher(problem: GenerationProblem, subject_id: str) -> Optional[Teacher]:
    """First roster teacher who teaches the subject in the requested grade."""

    for teacher in problem.teachers:
        if subject_id in teacher.subjects and problem.grade in teacher.grades:
            return teacher
    return None


def _classrooms_by_priority(problem: GenerationProblem) -> List[Classroom]:
    priority = problem.constraints.classroom_priority
    if not priority:
        return list(problem.classrooms)
    # sorted() is stable: unlisted rooms keep their roster order after listed ones
    return sorted(problem.classrooms, key=lambda r: -int(priority.get(r.classroom_id, 0)))


def select_classroom(problem: GenerationProblem, subject_id: str) -> Optional[Classroom]:
    """Matching special room if the subject needs one, else the first room."""

    subject = next((s for s in problem.subjects if s.subject_id == subject_id), None)
    if subject is None:
        return None

    rooms = _classrooms_by_priority(problem)
    for room in rooms:
        if not subject.requires_special_classroom or room.classroom_type == subject.classroom_type:
            return room
    return rooms[0] if rooms else None


def is_teacher_available(problem: GenerationProblem, teacher_id: str, day: str, period: int) -> bool:
    windows = problem.constraints.teacher_availability.get(teacher_id) or ()
    if not windows:
        return True
    return any(w.day == day and period in w.periods for w in windows)


# ----------------------------
# Grid scans
# ----------------------------


def has_teacher_conflict(timetable: Timetable, day_idx: int, period_idx: int, teacher_id: str) -> bool:
    return any(slot.teacher_id == teacher_id for slot in timetable[day_idx][period_idx])


def has_classroom_conflict(timetable: Timetable, day_idx: int, period_idx: int, classroom_id: str) -> bool:
    return any(slot.classroom_id == classroom_id for slot in timetable[day_idx][period_idx])


def count_subject_in_day(timetable: Timetable, day_idx: int, subject_id: str) -> int:
    return sum(1 for cells in timetable[day_idx] for slot in cells if slot.subject_id == subject_id)


def _adjacent_has_subject(timetable: Timetable, day_idx: int, period_idx: int, subject_id: str) -> bool:
    day = timetable[day_idx]
    for p in (period_idx - 1, period_idx + 1):
        if 0 <= p < len(day) and any(slot.subject_id == subject_id for slot in day[p]):
            return True
    return False


def _lessons_in_day(timetable: Timetable, day_idx: int) -> int:
    return sum(1 for cells in timetable[day_idx] for slot in cells if slot.is_assigned)


# ----------------------------
# Scoring
# ----------------------------


def score_slot(
    problem: GenerationProblem,
    timetable: Timetable,
    day_idx: int,
    period_idx: int,
    subject_id: str,
    *,
    teacher: Optional[Teacher] = None,
    classroom: Optional[Classroom] = None,
) -> float:
    """Score placing `subject_id` at (day_idx, period_idx). Higher is better.

    `teacher`/`classroom` default to the selected resources for the subject;
    callers scoring many cells pass them in to avoid re-selecting.
    """

    if teacher is None:
        teacher = select_teacher(problem, subject_id)
    if classroom is None:
        classroom = select_classroom(problem, subject_id)

    cell = timetable[day_idx][period_idx][0]
    day = cell.day
    period = period_idx + 1
    constraints = problem.constraints

    score = BASE_SCORE

    if any(
        pref.subject_id == subject_id and pref.day == day and int(pref.period) == period
        for pref in constraints.preferred_slots
    ):
        score += PREFERRED_BONUS

    if teacher is not None:
        if has_teacher_conflict(timetable, day_idx, period_idx, teacher.teacher_id):
            score -= TEACHER_CONFLICT_PENALTY
        if not is_teacher_available(problem, teacher.teacher_id, day, period):
            score -= TEACHER_UNAVAILABLE_PENALTY

    if classroom is not None and has_classroom_conflict(timetable, day_idx, period_idx, classroom.classroom_id):
        score -= CLASSROOM_CONFLICT_PENALTY

    if count_subject_in_day(timetable, day_idx, subject_id) > 0:
        score -= SAME_DAY_PENALTY

    if not constraints.allow_consecutive_lessons and _adjacent_has_subject(timetable, day_idx, period_idx, subject_id):
        score -= CONSECUTIVE_PENALTY

    return score


def find_best_slot(
    problem: GenerationProblem,
    timetable: Timetable,
    subject_id: str,
    *,
    teacher: Optional[Teacher] = None,
    classroom: Optional[Classroom] = None,
) -> Optional[Tuple[int, int, int]]:
    """Return (day_idx, period_idx, class_idx) of the best open cell, or None."""

    max_per_day = int(problem.constraints.max_periods_per_day)
    full_days = {d for d in range(len(timetable)) if _lessons_in_day(timetable, d) >= max_per_day}

    best: Optional[Tuple[int, int, int]] = None
    best_score = 0.0
    for d, p, c, slot in iter_cells(timetable):
        if slot.is_assigned or slot.is_fixed or d in full_days:
            continue
        s = score_slot(problem, timetable, d, p, subject_id, teacher=teacher, classroom=classroom)
        # strict '>' keeps the first-encountered cell on ties
        if best is None or s > best_score:
            best = (d, p, c)
            best_score = s
    return best


def greedy_assign(problem: GenerationProblem, timetable: Timetable, required: Mapping[str, int]) -> Timetable:
    """Place every subject's required lessons into the best-scoring open cells.

    Lessons that find no open cell stay unassigned. The input grid is not modified.
    """

    result = copy_timetable(timetable)
    placed: Dict[str, int] = {}

    for subject_id, count in required.items():
        teacher = select_teacher(problem, subject_id)
        classroom = select_classroom(problem, subject_id)
        placed[subject_id] = 0

        for _k in range(int(count)):
            pos = find_best_slot(problem, result, subject_id, teacher=teacher, classroom=classroom)
            if pos is None:
                break
            d, p, c = pos
            result[d][p][c] = replace(
                result[d][p][c],
                subject_id=subject_id,
                teacher_id=teacher.teacher_id if teacher else None,
                classroom_id=classroom.classroom_id if classroom else None,
            )
            placed[subject_id] += 1

    logger.info("Greedy assignment placed lessons: %s", placed)
    return result
