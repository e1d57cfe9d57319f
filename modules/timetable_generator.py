"""Weekly class timetable generation pipeline.

`TimetableGenerationEngine.generate` runs one request end to end:

1. validate constraints/options (field-level errors, no work done on failure)
2. load roster data (settings, teachers, subjects, classrooms) concurrently
3. build the empty [day][period][class_slot] grid and apply fixed slots
4. greedy seeding (`slot_assignment.greedy_assign`)
5. local search (`class_optimizer.optimize_timetable`)
6. violation detection (`violations.detect_violations`)
7. statistics, then persistence of successful runs

Every failure comes back as a `GenerationResult` value. A persistence
failure keeps `success=True` and the timetable, and is reported in
`persistence_error`.

Quality score (reporting) is `max(0, assignment_rate - 5 * violations)` and
is deliberately separate from the optimizer's search fitness.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, is_dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import json
import logging
import random
import time
import uuid

from utils.validators import FieldError, validate_constraints, validate_options, validate_saved_filters

from .class_optimizer import optimize_timetable
from .slot_assignment import greedy_assign
from .timetable_models import (
    Classroom,
    ConstraintViolation,
    GenerationConstraints,
    GenerationOptions,
    GenerationProblem,
    GenerationResult,
    GenerationState,
    GenerationStatistics,
    SchoolSettings,
    Subject,
    Teacher,
    Timetable,
    apply_fixed_slots,
    attach_violations,
    build_empty_timetable,
    constraints_from_dict,
    count_cells,
    options_from_dict,
    remaining_lessons,
    required_lessons,
    timetable_from_rows,
    timetable_to_rows,
)
from .violations import detect_violations


logger = logging.getLogger(__name__)

VIOLATION_PENALTY = 5.0


class DataAvailabilityError(Exception):
    """Roster data could not be loaded or is unusable."""


class PersistenceError(Exception):
    """Saving or reading generated timetables failed."""


class SchoolDataProvider(Protocol):
    def get_school_settings(self) -> Optional[SchoolSettings]:  # pragma: no cover
        ...

    def get_teachers(self) -> List[Teacher]:  # pragma: no cover
        ...

    def get_subjects(self) -> List[Subject]:  # pragma: no cover
        ...

    def get_classrooms(self) -> List[Classroom]:  # pragma: no cover
        ...


class PersistenceStore(Protocol):
    def save_timetable(self, record: Dict[str, Any]) -> None:  # pragma: no cover
        """Persist one generated timetable record. Raises PersistenceError."""

    def list_timetables(
        self,
        *,
        grade: Optional[int] = None,
        class_section: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:  # pragma: no cover
        """Newest first. Raises PersistenceError."""

    def get_timetable(self, timetable_id: str) -> Optional[Dict[str, Any]]:  # pragma: no cover
        """Full record or None. Raises PersistenceError."""


@dataclass(frozen=True)
class SchoolData:
    settings: SchoolSettings
    teachers: Tuple[Teacher, ...]
    subjects: Tuple[Subject, ...]
    classrooms: Tuple[Classroom, ...]


# ----------------------------
# Helpers
# ----------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_mapping(value: Any) -> Any:
    if value is None:
        return {}
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


def _errors_message(errors: Sequence[FieldError]) -> str:
    return "Invalid generation request: " + "; ".join(f"{e.field}: {e.message}" for e in errors)


def failure_result(
    message: str,
    method: str,
    *,
    errors: Sequence[FieldError] = (),
) -> GenerationResult:
    return GenerationResult(
        success=False,
        message=message,
        generated_at=_now_iso(),
        method=method,
        statistics=GenerationStatistics.empty(),
        errors=tuple(errors),
    )


def load_school_data(provider: SchoolDataProvider) -> SchoolData:
    """Issue the four roster reads concurrently and check they are usable."""

    with ThreadPoolExecutor(max_workers=4, thread_name_prefix="roster") as pool:
        f_settings = pool.submit(provider.get_school_settings)
        f_teachers = pool.submit(provider.get_teachers)
        f_subjects = pool.submit(provider.get_subjects)
        f_classrooms = pool.submit(provider.get_classrooms)
        settings = f_settings.result()
        teachers = tuple(f_teachers.result() or ())
        subjects = tuple(f_subjects.result() or ())
        classrooms = tuple(f_classrooms.result() or ())

    if settings is None:
        raise DataAvailabilityError("School settings are not configured")
    if int(settings.daily_periods) < 1:
        raise DataAvailabilityError("School settings must define at least one daily period")
    if not teachers:
        raise DataAvailabilityError("No teachers registered")
    if not subjects:
        raise DataAvailabilityError("No subjects registered")
    if not classrooms:
        logger.warning("No classrooms registered; lessons will be generated without classrooms")

    return SchoolData(settings=settings, teachers=teachers, subjects=subjects, classrooms=classrooms)


def compute_statistics(
    timetable: Timetable,
    violations: Sequence[ConstraintViolation],
    backtrack_count: int,
    generation_time_ms: int,
) -> GenerationStatistics:
    total, assigned = count_cells(timetable)
    assignment_rate = (assigned / total) * 100 if total > 0 else 0.0
    quality = max(0.0, assignment_rate - len(violations) * VIOLATION_PENALTY)
    return GenerationStatistics(
        total_slots=total,
        assigned_slots=assigned,
        unassigned_slots=total - assigned,
        constraint_violations=len(violations),
        backtrack_count=int(backtrack_count),
        generation_time_ms=int(generation_time_ms),
        assignment_rate=round(assignment_rate, 2),
        quality_score=round(quality, 2),
    )


# ----------------------------
# Engine
# ----------------------------


class TimetableGenerationEngine:
    """Runs generation requests against one data provider and (optional) store."""

    def __init__(
        self,
        provider: SchoolDataProvider,
        store: Optional[PersistenceStore] = None,
        *,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._provider = provider
        self._store = store
        self._clock = clock or time.monotonic

    def generate(
        self,
        constraints: Any,
        options: Any = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> GenerationResult:
        """Generate a timetable. Never raises; failures come back as results."""

        method = GenerationOptions().method
        try:
            constraints_raw = _as_mapping(constraints)
            options_raw = _as_mapping(options)
            errors = validate_constraints(constraints_raw) + validate_options(options_raw)
            if errors:
                logger.info("Rejected generation request with %d field errors", len(errors))
                return failure_result(_errors_message(errors), method, errors=errors)

            cons = constraints_from_dict(constraints_raw)
            opts = options_from_dict(options_raw)
            method = opts.method

            logger.info("Timetable generation started: grade %d class %s", cons.grade, cons.class_section)
            data = load_school_data(self._provider)
            state = GenerationState.start()
            result = self._execute(cons, opts, data, state, rng or random.Random(opts.seed))

            if result.success and self._store is not None:
                result = self._persist(result, cons, opts)

            logger.info(
                "Timetable generation finished: success=%s quality=%s",
                result.success,
                result.statistics.quality_score if result.statistics else None,
            )
            return result
        except DataAvailabilityError as exc:
            logger.warning("Timetable generation aborted: %s", exc)
            return failure_result(str(exc), method)
        except Exception as exc:
            logger.exception("Timetable generation failed")
            return failure_result(str(exc) or "Timetable generation failed", method)

    def _execute(
        self,
        cons: GenerationConstraints,
        opts: GenerationOptions,
        data: SchoolData,
        state: GenerationState,
        rng: random.Random,
    ) -> GenerationResult:
        started = self._clock()

        required = required_lessons(data.subjects, cons.grade)
        if not required:
            raise DataAvailabilityError(f"No subjects configured for grade {cons.grade}")

        problem = GenerationProblem(
            constraints=cons,
            settings=data.settings,
            teachers=data.teachers,
            subjects=data.subjects,
            classrooms=data.classrooms,
            required=required,
        )

        grid = build_empty_timetable(data.settings, cons)
        grid, skipped = apply_fixed_slots(grid, cons.fixed_slots)
        for fs in skipped:
            logger.warning("Fixed slot outside the timetable skipped: %s period %d (%s)", fs.day, fs.period, fs.subject_id)

        seeded = greedy_assign(problem, grid, remaining_lessons(required, grid))
        optimized, _metrics = optimize_timetable(problem, seeded, opts, state, rng=rng, clock=self._clock)

        violations = detect_violations(problem, optimized)
        state.constraint_violations = list(violations)
        final = attach_violations(optimized, violations)

        elapsed_ms = int((self._clock() - started) * 1000)
        stats = compute_statistics(final, violations, state.backtrack_count, elapsed_ms)

        success = optimized is not None and not violations
        if success:
            message = f"Timetable generated (quality score: {stats.quality_score}%)"
        else:
            message = f"Timetable generation failed: {len(violations)} constraint violations"

        return GenerationResult(
            success=success,
            message=message,
            generated_at=_now_iso(),
            method=opts.method,
            timetable=final,
            statistics=stats,
            violations=tuple(violations),
        )

    def _persist(
        self,
        result: GenerationResult,
        cons: GenerationConstraints,
        opts: GenerationOptions,
    ) -> GenerationResult:
        assert self._store is not None
        assert result.timetable is not None and result.statistics is not None

        timetable_id = str(uuid.uuid4())
        now = _now_iso()
        record = {
            "id": timetable_id,
            "grade": cons.grade,
            "class_section": cons.class_section,
            "timetable_data": json.dumps(timetable_to_rows(result.timetable)),
            "statistics": json.dumps(asdict(result.statistics)),
            "metadata": json.dumps(
                {
                    "constraints": asdict(cons),
                    "generated_at": result.generated_at,
                    "method": opts.method,
                    "seed": opts.seed,
                }
            ),
            "generation_method": opts.method,
            "assignment_rate": result.statistics.assignment_rate,
            "total_slots": result.statistics.total_slots,
            "assigned_slots": result.statistics.assigned_slots,
            "created_at": now,
            "updated_at": now,
        }

        try:
            self._store.save_timetable(record)
        except PersistenceError as exc:
            logger.error("Generated timetable could not be saved: %s", exc)
            return replace(result, persisted=False, persistence_error=str(exc) or "Saving the timetable failed")
        except Exception as exc:
            logger.exception("Generated timetable could not be saved")
            return replace(result, persisted=False, persistence_error=str(exc) or "Saving the timetable failed")

        return replace(result, persisted=True, timetable_id=timetable_id)


# ----------------------------
# Service
# ----------------------------


class TimetableGenerationService:
    """Public entry points: per-class generation and saved-timetable queries."""

    def __init__(
        self,
        provider: SchoolDataProvider,
        store: PersistenceStore,
        *,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._store = store
        self._engine = TimetableGenerationEngine(provider, store, clock=clock)

    def generate_timetable_for_class(
        self,
        grade: int,
        class_section: str,
        options: Any = None,
        *,
        constraints: Optional[Mapping[str, Any]] = None,
        rng: Optional[random.Random] = None,
    ) -> GenerationResult:
        """Generate with default constraints; `constraints` overrides individual keys."""

        request: Dict[str, Any] = {
            "grade": grade,
            "class_section": class_section,
            "max_periods_per_day": 6,
            "allow_consecutive_lessons": True,
            "preferred_slots": [],
            "fixed_slots": [],
            "teacher_availability": {},
            "classroom_priority": {},
        }
        request.update(dict(constraints or {}))
        return self._engine.generate(request, options, rng=rng)

    def get_saved_timetables(self, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Saved timetables, newest first: {"timetables": [...]}.

        Invalid filters or storage failures return an empty list plus `errors`/`error`.
        """

        errors = validate_saved_filters(filters)
        if errors:
            return {"timetables": [], "errors": [asdict(e) for e in errors]}

        f = dict(filters or {})
        try:
            rows = self._store.list_timetables(
                grade=f.get("grade"),
                class_section=f.get("class_section"),
                limit=f.get("limit"),
            )
        except PersistenceError as exc:
            logger.error("Saved timetables could not be read: %s", exc)
            return {"timetables": [], "error": str(exc)}

        return {
            "timetables": [
                {
                    "id": r["id"],
                    "grade": int(r["grade"]),
                    "class_section": r["class_section"],
                    "statistics": r["statistics"],
                    "generated_at": r["created_at"],
                }
                for r in rows
            ]
        }

    def get_saved_timetable(self, timetable_id: str) -> Optional[Dict[str, Any]]:
        """One saved record with its grid rebuilt as `TimetableSlot` objects."""

        try:
            record = self._store.get_timetable(timetable_id)
        except PersistenceError as exc:
            logger.error("Saved timetable %s could not be read: %s", timetable_id, exc)
            return None
        if record is None:
            return None
        out = dict(record)
        out["timetable"] = timetable_from_rows(record.get("timetable_data") or [])
        return out
