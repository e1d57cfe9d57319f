import itertools
import random
import sys
from dataclasses import replace
from pathlib import Path

# Ensure project root is on PYTHONPATH
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from modules.class_optimizer import (
    global_fitness,
    optimize_timetable,
    subject_distribution_score,
    swap_neighbor,
    teacher_workload_score,
)
from modules.slot_assignment import greedy_assign
from modules.timetable_models import (
    Classroom,
    FixedSlot,
    GenerationConstraints,
    GenerationOptions,
    GenerationProblem,
    GenerationState,
    SchoolSettings,
    Subject,
    Teacher,
    TimetableSlot,
    apply_fixed_slots,
    build_empty_timetable,
    iter_cells,
    lesson_counts,
    required_lessons,
)


SUBJECTS = (
    Subject(subject_id="MATH", name="Math", grades=(1,), weekly_hours={1: 5}),
    Subject(subject_id="ENG", name="English", grades=(1,), weekly_hours={1: 5}),
    Subject(subject_id="ART", name="Art", grades=(1,), weekly_hours={1: 2}),
)
TEACHERS = (
    Teacher(teacher_id="T1", name="Kim", subjects=("MATH",), grades=(1,)),
    Teacher(teacher_id="T2", name="Lee", subjects=("ENG",), grades=(1,)),
    Teacher(teacher_id="T3", name="Park", subjects=("ART",), grades=(1,)),
)
TEACHER_OF = {"MATH": "T1", "ENG": "T2", "ART": "T3"}


def _problem(**constraint_kwargs):
    return GenerationProblem(
        constraints=GenerationConstraints(grade=1, class_section="A", **constraint_kwargs),
        settings=SchoolSettings(daily_periods=4),
        teachers=TEACHERS,
        subjects=SUBJECTS,
        classrooms=(Classroom(classroom_id="R1", name="Room 1", classroom_type="normal", capacity=30),),
        required=required_lessons(SUBJECTS, 1),
    )


def _clustered_timetable(problem):
    """Every MATH lesson on Monday, every ENG lesson on Tuesday: poor spread."""

    tt = build_empty_timetable(problem.settings, problem.constraints)
    order = ["MATH"] * 4 + ["ENG"] * 4 + ["MATH", "ENG", "ART", "ART"]
    cells = [(d, p) for d in range(len(tt)) for p in range(len(tt[d]))]
    for (d, p), sid in zip(cells, order):
        tt[d][p][0] = replace(tt[d][p][0], subject_id=sid, teacher_id=TEACHER_OF[sid])
    return tt


def _state():
    return GenerationState(start_time=0.0, last_update=0.0)


def test_distribution_scores():
    problem = _problem()
    tt = build_empty_timetable(problem.settings, problem.constraints)
    tt[0][0][0] = replace(tt[0][0][0], subject_id="MATH", teacher_id="T1")
    tt[0][1][0] = replace(tt[0][1][0], subject_id="MATH", teacher_id="T1")

    # 2 lessons over 5 days: cap 1 per day, one lesson clustered
    assert subject_distribution_score(tt) == 50.0
    assert teacher_workload_score(tt) == 50.0

    tt[0][1][0] = TimetableSlot(grade=1, class_section="A", day="Mon", period=2)
    tt[1][0][0] = replace(tt[1][0][0], subject_id="MATH", teacher_id="T1")
    assert subject_distribution_score(tt) == 100.0


def test_empty_timetable_scores_full_spread():
    problem = _problem()
    tt = build_empty_timetable(problem.settings, problem.constraints)
    assert subject_distribution_score(tt) == 100.0
    assert teacher_workload_score(tt) == 100.0


def test_global_fitness_components():
    problem = _problem()
    empty = build_empty_timetable(problem.settings, problem.constraints)
    spread = greedy_assign(problem, empty, problem.required)

    # greedy puts at most one lesson of a subject per day here: nothing clustered, no violations
    assert global_fitness(problem, spread) == pytest.approx(100.0)
    # the empty grid misses all three subjects
    assert global_fitness(problem, empty) == pytest.approx(0.6 * (100 - 5 * 3) + 0.25 * 100 + 0.15 * 100)
    assert global_fitness(problem, _clustered_timetable(problem)) < global_fitness(problem, spread)


def test_swap_neighbor_keeps_counts_and_fixed_cells():
    problem = _problem()
    tt, _ = apply_fixed_slots(
        _clustered_timetable(problem),
        (FixedSlot(subject_id="ART", day="Fri", period=4, teacher_id="T3"),),
    )
    rng = random.Random(5)

    current = tt
    for _ in range(50):
        nxt = swap_neighbor(current, rng)
        assert lesson_counts(nxt) == lesson_counts(current)
        assert nxt[4][3][0].subject_id == "ART" and nxt[4][3][0].is_fixed
        current = nxt

    # input grid untouched
    assert tt[0][0][0].subject_id == "MATH"


def test_swap_neighbor_with_too_few_cells_returns_copy():
    problem = _problem()
    tt = build_empty_timetable(problem.settings, problem.constraints)
    tt[0][0][0] = replace(tt[0][0][0], subject_id="MATH", teacher_id="T1")

    out = swap_neighbor(tt, random.Random(1))

    assert out == tt
    assert out is not tt


def test_zero_iterations_returns_input_unchanged():
    problem = _problem()
    tt = _clustered_timetable(problem)
    state = _state()

    out, metrics = optimize_timetable(
        problem, tt, GenerationOptions(max_iterations=0), state, rng=random.Random(1)
    )

    assert out == tt
    assert metrics["iterations"] == 0
    assert state.current_iteration == 0


def test_threshold_zero_runs_at_most_one_iteration():
    problem = _problem()
    state = _state()

    _out, metrics = optimize_timetable(
        problem,
        _clustered_timetable(problem),
        GenerationOptions(quality_threshold=0.0, max_iterations=500),
        state,
        rng=random.Random(1),
    )

    assert metrics["iterations"] <= 1


def test_optimizer_improves_spread_and_tracks_state():
    problem = _problem()
    tt = _clustered_timetable(problem)
    state = _state()
    before = global_fitness(problem, tt)

    out, metrics = optimize_timetable(
        problem,
        tt,
        GenerationOptions(quality_threshold=100.0, max_iterations=300, seed=11),
        state,
        rng=random.Random(11),
    )

    assert global_fitness(problem, out) >= before
    assert metrics["fitness_score"] == global_fitness(problem, out)
    assert lesson_counts(out) == lesson_counts(tt)
    assert state.backtrack_count == int(metrics["rejected_moves"])
    assert state.best_quality_score == metrics["fitness_score"]
    assert state.current_iteration == int(metrics["iterations"]) - 1


def test_fixed_slots_survive_optimization():
    problem = _problem()
    tt, _ = apply_fixed_slots(
        _clustered_timetable(problem),
        (FixedSlot(subject_id="MATH", day="Mon", period=1, teacher_id="T1"),),
    )

    out, _ = optimize_timetable(
        problem,
        tt,
        GenerationOptions(quality_threshold=100.0, max_iterations=400),
        _state(),
        rng=random.Random(3),
    )

    assert out[0][0][0].subject_id == "MATH"
    assert out[0][0][0].is_fixed


def test_same_seed_gives_same_timetable():
    problem = _problem()
    options = GenerationOptions(quality_threshold=100.0, max_iterations=200)

    a, _ = optimize_timetable(problem, _clustered_timetable(problem), options, _state(), rng=random.Random(21))
    b, _ = optimize_timetable(problem, _clustered_timetable(problem), options, _state(), rng=random.Random(21))

    assert a == b


def test_time_budget_stops_search():
    problem = _problem()
    ticks = itertools.count()

    _out, metrics = optimize_timetable(
        problem,
        _clustered_timetable(problem),
        GenerationOptions(quality_threshold=100.0, max_iterations=500, timeout_ms=1),
        _state(),
        rng=random.Random(1),
        clock=lambda: float(next(ticks)),
    )

    assert metrics["timed_out"] == 1.0
    assert metrics["iterations"] == 0


def test_every_cell_keeps_its_coordinates():
    problem = _problem()
    out, _ = optimize_timetable(
        problem,
        _clustered_timetable(problem),
        GenerationOptions(quality_threshold=100.0, max_iterations=100),
        _state(),
        rng=random.Random(8),
    )
    days = ("Mon", "Tue", "Wed", "Thu", "Fri")
    for d, p, _c, slot in iter_cells(out):
        assert slot.day == days[d]
        assert slot.period == p + 1
