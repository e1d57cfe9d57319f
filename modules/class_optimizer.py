"""Local-search improvement of a seeded class timetable.

Plugs a two-cell swap neighbour and a global fitness into
`optimizer.local_search`.

Global fitness (0..100, higher is better)
-----------------------------------------
    max(0, 0.6 * (100 - 5 * violations)
           + 0.25 * subject_distribution_score
           + 0.15 * teacher_workload_score)

Both sub-scores use the same "clustering" measure over a grouping of lessons
(by subject, or by teacher): with n lessons over D days, anything above
ceil(n / D) on a single day counts as clustered, and

    score = 100 * (1 - clustered / total_lessons)

Swaps keep per-subject and per-teacher weekly totals constant, so these
scores only reward spreading lessons across the week.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

import logging
import math
import random
import time

from optimizer import SearchConfig, local_search

from .timetable_models import (
    GenerationOptions,
    GenerationProblem,
    GenerationState,
    Timetable,
    copy_timetable,
    iter_cells,
)
from .violations import detect_violations


logger = logging.getLogger(__name__)

VIOLATION_WEIGHT = 0.6
DISTRIBUTION_WEIGHT = 0.25
WORKLOAD_WEIGHT = 0.15
VIOLATION_PENALTY = 5.0


# ----------------------------
# Fitness
# ----------------------------


def _spread_score(per_day: Dict[str, List[int]]) -> float:
    total = 0
    clustered = 0
    for counts in per_day.values():
        n = sum(counts)
        if n == 0:
            continue
        cap = math.ceil(n / len(counts))
        total += n
        clustered += sum(max(0, c - cap) for c in counts)
    if total == 0:
        return 100.0
    return 100.0 * (1.0 - clustered / total)


def _per_day_counts(timetable: Timetable, attr: str) -> Dict[str, List[int]]:
    days = len(timetable)
    out: Dict[str, List[int]] = {}
    for d, _p, _c, slot in iter_cells(timetable):
        key = getattr(slot, attr)
        if not key:
            continue
        if key not in out:
            out[key] = [0] * days
        out[key][d] += 1
    return out


def subject_distribution_score(timetable: Timetable) -> float:
    return _spread_score(_per_day_counts(timetable, "subject_id"))


def teacher_workload_score(timetable: Timetable) -> float:
    return _spread_score(_per_day_counts(timetable, "teacher_id"))


def global_fitness(problem: GenerationProblem, timetable: Timetable) -> float:
    violations = detect_violations(problem, timetable)
    base = 100.0 - VIOLATION_PENALTY * len(violations)
    score = (
        VIOLATION_WEIGHT * base
        + DISTRIBUTION_WEIGHT * subject_distribution_score(timetable)
        + WORKLOAD_WEIGHT * teacher_workload_score(timetable)
    )
    return max(0.0, score)


# ----------------------------
# Neighbour
# ----------------------------


def swappable_cells(timetable: Timetable) -> List[Tuple[int, int, int]]:
    return [(d, p, c) for d, p, c, slot in iter_cells(timetable) if slot.is_assigned and not slot.is_fixed]


def swap_neighbor(timetable: Timetable, rng: random.Random) -> Timetable:
    """Swap the (subject, teacher, classroom) of two random non-fixed lessons."""

    result = copy_timetable(timetable)
    cells = swappable_cells(result)
    if len(cells) < 2:
        return result

    (d1, p1, c1), (d2, p2, c2) = rng.sample(cells, 2)
    a = result[d1][p1][c1]
    b = result[d2][p2][c2]
    result[d1][p1][c1] = replace(a, subject_id=b.subject_id, teacher_id=b.teacher_id, classroom_id=b.classroom_id)
    result[d2][p2][c2] = replace(b, subject_id=a.subject_id, teacher_id=a.teacher_id, classroom_id=a.classroom_id)
    return result


# ----------------------------
# Optimize
# ----------------------------


def optimize_timetable(
    problem: GenerationProblem,
    timetable: Timetable,
    options: GenerationOptions,
    state: GenerationState,
    *,
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], float]] = None,
) -> Tuple[Timetable, Dict[str, float]]:
    """Improve `timetable` and return the best grid found plus search metrics.

    `state` is updated in place: iteration counter, best score, backtracks
    (rejected candidates) and last update time.
    """

    config = SearchConfig(
        max_iterations=int(options.max_iterations),
        quality_threshold=float(options.quality_threshold),
        time_budget_ms=int(options.timeout_ms),
        seed=options.seed,
    )

    def fitness(t: Timetable) -> float:
        return global_fitness(problem, t)

    def on_step(
        iteration: int,
        temperature: float,
        candidate_fitness: float,
        best_fitness: float,
        improved: bool,
        accepted: bool,
    ) -> None:
        state.current_iteration = iteration
        if improved:
            state.best_quality_score = best_fitness
            logger.info("Improved: iteration %d, score %.2f", iteration, best_fitness)
        if not accepted:
            state.backtrack_count += 1
        state.last_update = time.time()

    result = local_search(
        initial_state=timetable,
        neighbor=swap_neighbor,
        fitness=fitness,
        config=config,
        rng=rng,
        clock=clock,
        callback=on_step,
    )

    state.best_quality_score = max(state.best_quality_score, result.best_fitness)
    if result.timed_out:
        logger.warning("Optimization stopped by time budget after %d iterations", result.iterations)
    logger.info("Optimization finished: score %.2f after %d iterations", result.best_fitness, result.iterations)

    metrics = {
        "fitness_score": float(result.best_fitness),
        "iterations": float(result.iterations),
        "best_iteration": float(result.best_iteration),
        "accepted_moves": float(result.accepted_moves),
        "rejected_moves": float(result.rejected_moves),
        "timed_out": float(result.timed_out),
    }
    return result.best_state, metrics
