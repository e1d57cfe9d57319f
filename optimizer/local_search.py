"""Randomised local search with simulated-annealing-style acceptance.

This module provides a reusable, problem-agnostic improvement loop. The
weekly class timetable generator plugs in a swap neighbour and a fitness
function; nothing here knows about timetables.

Acceptance rule
---------------
The loop MAXIMISES fitness. Every candidate is compared against the best
fitness seen so far (not against the working state):

1) candidate >= best: always accepted
2) otherwise accepted with probability exp((candidate - best) / T)

with a linear cooling schedule T = (max_iterations - iteration) / max_iterations,
i.e. T goes from 1 towards 0. The best state is tracked separately, so
accepting a worse working state never loses the best answer.

Termination
-----------
- `max_iterations` rounds, or
- best fitness >= `quality_threshold`, or
- wall-clock budget (`time_budget_ms`) exhausted, checked at the start of
  every iteration.

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, Protocol, TypeVar

import math
import random
import time


TState = TypeVar("TState")


class NeighborFn(Protocol[TState]):
    def __call__(self, state: TState, rng: random.Random) -> TState:  # pragma: no cover
        """Return a randomly sampled neighbor of `state`."""


class FitnessFn(Protocol[TState]):
    def __call__(self, state: TState) -> float:  # pragma: no cover
        """Return fitness to MAXIMISE."""


class CallbackFn(Protocol[TState]):
    def __call__(
        self,
        iteration: int,
        temperature: float,
        candidate_fitness: float,
        best_fitness: float,
        improved: bool,
        accepted: bool,
    ) -> None:  # pragma: no cover
        """Optional progress callback called once per iteration."""


@dataclass(frozen=True)
class SearchConfig:
    """Configuration for the local search loop.

    Attributes:
        max_iterations: Upper bound on improvement rounds (0 disables the search).
        quality_threshold: Stop once the best fitness reaches this value.
        time_budget_ms: Wall-clock budget; None disables the check.
        seed: RNG seed used when no rng is injected. None => OS entropy.
    """

    max_iterations: int = 1000
    quality_threshold: float = 75.0
    time_budget_ms: Optional[int] = 60_000
    seed: Optional[int] = None


@dataclass
class SearchResult(Generic[TState]):
    best_state: TState
    best_fitness: float
    best_iteration: int
    iterations: int
    accepted_moves: int
    rejected_moves: int
    timed_out: bool = False


def _linear_temperature(iteration: int, max_iterations: int) -> float:
    """Linear cooling from 1 (first iteration) towards 0."""

    if max_iterations <= 0:
        return 0.0
    return (max_iterations - iteration) / max_iterations


def _accept_prob(delta: float, temperature: float) -> float:
    """Probability of accepting a candidate `delta` below the best (delta < 0)."""

    if temperature <= 0:
        return 0.0
    # delta is negative here, so the exponent is <= 0
    return math.exp(delta / temperature)


def local_search(
    initial_state: TState,
    neighbor: NeighborFn[TState],
    fitness: FitnessFn[TState],
    config: SearchConfig = SearchConfig(),
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], float]] = None,
    callback: Optional[CallbackFn[TState]] = None,
) -> SearchResult[TState]:
    """Run the improvement loop.

    Contract:
    - Maximises `fitness(state)`
    - `neighbor` must return a new state and must not mutate its input
    - `clock` returns seconds (defaults to `time.monotonic`)

    Returns:
        SearchResult with the best state found and loop counters.
    """

    rng = rng if rng is not None else random.Random(config.seed)
    clock = clock if clock is not None else time.monotonic

    started = clock()
    deadline = None
    if config.time_budget_ms is not None:
        deadline = started + config.time_budget_ms / 1000.0

    current = initial_state
    best = initial_state
    best_f = fitness(initial_state)
    best_iteration = 0
    accepted_moves = 0
    rejected_moves = 0
    iterations = 0
    timed_out = False

    for iteration in range(config.max_iterations):
        if deadline is not None and clock() >= deadline:
            timed_out = True
            break

        iterations += 1
        cand = neighbor(current, rng)
        cand_f = fitness(cand)

        improved = False
        if cand_f > best_f:
            best = cand
            best_f = cand_f
            best_iteration = iteration
            improved = True

        t = _linear_temperature(iteration, config.max_iterations)
        if cand_f >= best_f:
            accepted = True
        else:
            accepted = rng.random() < _accept_prob(cand_f - best_f, t)

        if accepted:
            current = cand
            accepted_moves += 1
        else:
            rejected_moves += 1

        if callback is not None:
            callback(
                iteration=iteration,
                temperature=t,
                candidate_fitness=cand_f,
                best_fitness=best_f,
                improved=improved,
                accepted=accepted,
            )

        if best_f >= config.quality_threshold:
            break

    return SearchResult(
        best_state=best,
        best_fitness=best_f,
        best_iteration=best_iteration,
        iterations=iterations,
        accepted_moves=accepted_moves,
        rejected_moves=rejected_moves,
        timed_out=timed_out,
    )
