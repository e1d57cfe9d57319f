"""Validation helpers for generation requests.

Field helpers return `(ok, message)` tuples; the request validators collect
failures into `FieldError` records keyed by a dotted field path such as
`fixed_slots[0].period`. Validation is pure: the same input always yields
the same error list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from modules.timetable_models import DAY_NAMES, GENERATION_METHODS


_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_SECTION_RE = re.compile(r"^[A-Z]$")

CONSTRAINT_FIELDS = (
    "grade",
    "class_section",
    "max_periods_per_day",
    "allow_consecutive_lessons",
    "preferred_slots",
    "fixed_slots",
    "teacher_availability",
    "classroom_priority",
)

OPTION_FIELDS = (
    "method",
    "max_iterations",
    "timeout_ms",
    "quality_threshold",
    "enable_parallel_processing",
    "constraint_weights",
    "seed",
)

WEIGHT_FIELDS = (
    "teacher_conflict",
    "classroom_conflict",
    "subject_distribution",
    "teacher_workload",
    "classroom_utilization",
)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


# -----------------
# Field helpers
# -----------------


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def require_non_empty(value: Any, field: str) -> Tuple[bool, str]:
    if not isinstance(value, str) or not value.strip():
        return False, f"{field} cannot be empty"
    return True, ""


def validate_id(value: Any, field: str) -> Tuple[bool, str]:
    ok, msg = require_non_empty(value, field)
    if not ok:
        return ok, msg
    if not _ID_RE.match(value.strip()):
        return False, f"{field} must be 1-64 chars (letters/numbers/_/-)"
    return True, ""


def validate_int_range(value: Any, field: str, min_value: int = 1, max_value: Optional[int] = None) -> Tuple[bool, str]:
    if value is None:
        return False, f"{field} is required"
    if not _is_int(value):
        return False, f"{field} must be an integer"
    if value < min_value:
        return False, f"{field} must be >= {min_value}"
    if max_value is not None and value > max_value:
        return False, f"{field} must be <= {max_value}"
    return True, ""


def validate_number_range(value: Any, field: str, min_value: float, max_value: float) -> Tuple[bool, str]:
    if value is None:
        return False, f"{field} is required"
    if not _is_number(value):
        return False, f"{field} must be a number"
    if value < min_value or value > max_value:
        return False, f"{field} must be between {min_value:g} and {max_value:g}"
    return True, ""


def validate_bool(value: Any, field: str) -> Tuple[bool, str]:
    if not isinstance(value, bool):
        return False, f"{field} must be true or false"
    return True, ""


def validate_choice(value: Any, field: str, allowed: Iterable[str]) -> Tuple[bool, str]:
    ok, msg = require_non_empty(value, field)
    if not ok:
        return ok, msg
    allowed_set = {str(x) for x in allowed}
    if str(value) not in allowed_set:
        return False, f"{field} must be one of: {', '.join(sorted(allowed_set))}"
    return True, ""


def validate_unique(values: Iterable[Any], field: str) -> Tuple[bool, str]:
    vals = list(values)
    if len(vals) != len(set(vals)):
        return False, f"{field} contains duplicates"
    return True, ""


# -----------------
# Request validators
# -----------------


class _Collector:
    def __init__(self) -> None:
        self.errors: List[FieldError] = []

    def check(self, result: Tuple[bool, str], field: str) -> bool:
        ok, msg = result
        if not ok:
            self.errors.append(FieldError(field=field, message=msg))
        return ok

    def fail(self, field: str, message: str) -> None:
        self.errors.append(FieldError(field=field, message=message))


def _check_unknown_keys(c: _Collector, raw: Mapping[str, Any], allowed: Tuple[str, ...], prefix: str = "") -> None:
    for key in raw.keys():
        if key not in allowed:
            c.fail(f"{prefix}{key}", "unknown field")


def _check_slot_ref(c: _Collector, raw: Any, path: str, *, allow_resources: bool) -> None:
    if not isinstance(raw, Mapping):
        c.fail(path, "must be an object")
        return
    allowed = ("subject_id", "day", "period") + (("teacher_id", "classroom_id") if allow_resources else ())
    _check_unknown_keys(c, raw, allowed, prefix=f"{path}.")
    c.check(validate_id(raw.get("subject_id"), "subject_id"), f"{path}.subject_id")
    c.check(validate_choice(raw.get("day"), "day", DAY_NAMES), f"{path}.day")
    c.check(validate_int_range(raw.get("period"), "period", 1, 10), f"{path}.period")
    if allow_resources:
        for key in ("teacher_id", "classroom_id"):
            if raw.get(key) is not None:
                c.check(validate_id(raw.get(key), key), f"{path}.{key}")


def validate_constraints(raw: Any) -> List[FieldError]:
    """Validate a constraints mapping (see `GenerationConstraints`)."""

    c = _Collector()
    if not isinstance(raw, Mapping):
        c.fail("constraints", "must be an object")
        return c.errors

    _check_unknown_keys(c, raw, CONSTRAINT_FIELDS)

    c.check(validate_int_range(raw.get("grade"), "grade", 1, 6), "grade")
    section = raw.get("class_section")
    if c.check(require_non_empty(section, "class_section"), "class_section"):
        if not _SECTION_RE.match(section):
            c.fail("class_section", "class_section must be a single letter A-Z")

    if "max_periods_per_day" in raw:
        c.check(validate_int_range(raw["max_periods_per_day"], "max_periods_per_day", 1, 10), "max_periods_per_day")
    if "allow_consecutive_lessons" in raw:
        c.check(validate_bool(raw["allow_consecutive_lessons"], "allow_consecutive_lessons"), "allow_consecutive_lessons")

    preferred = raw.get("preferred_slots") or []
    if not isinstance(preferred, (list, tuple)):
        c.fail("preferred_slots", "must be a list")
    else:
        for i, item in enumerate(preferred):
            _check_slot_ref(c, item, f"preferred_slots[{i}]", allow_resources=False)

    fixed = raw.get("fixed_slots") or []
    if not isinstance(fixed, (list, tuple)):
        c.fail("fixed_slots", "must be a list")
    else:
        for i, item in enumerate(fixed):
            _check_slot_ref(c, item, f"fixed_slots[{i}]", allow_resources=True)
        positions = [
            (f.get("day"), f.get("period"))
            for f in fixed
            if isinstance(f, Mapping) and isinstance(f.get("day"), str) and _is_int(f.get("period"))
        ]
        c.check(validate_unique(positions, "fixed_slots"), "fixed_slots")

    availability = raw.get("teacher_availability") or {}
    if not isinstance(availability, Mapping):
        c.fail("teacher_availability", "must be an object")
    else:
        for tid, windows in availability.items():
            path = f"teacher_availability.{tid}"
            c.check(validate_id(tid, "teacher id"), path)
            if not isinstance(windows, (list, tuple)):
                c.fail(path, "must be a list")
                continue
            for i, w in enumerate(windows):
                wpath = f"{path}[{i}]"
                if not isinstance(w, Mapping):
                    c.fail(wpath, "must be an object")
                    continue
                _check_unknown_keys(c, w, ("day", "periods"), prefix=f"{wpath}.")
                c.check(validate_choice(w.get("day"), "day", DAY_NAMES), f"{wpath}.day")
                periods = w.get("periods")
                if not isinstance(periods, (list, tuple)):
                    c.fail(f"{wpath}.periods", "must be a list")
                    continue
                for j, p in enumerate(periods):
                    c.check(validate_int_range(p, "period", 1, 10), f"{wpath}.periods[{j}]")

    priority = raw.get("classroom_priority") or {}
    if not isinstance(priority, Mapping):
        c.fail("classroom_priority", "must be an object")
    else:
        for rid, value in priority.items():
            path = f"classroom_priority.{rid}"
            c.check(validate_id(rid, "classroom id"), path)
            c.check(validate_int_range(value, "priority", 1, 10), path)

    return c.errors


def validate_options(raw: Any) -> List[FieldError]:
    """Validate an options mapping (see `GenerationOptions`). Missing keys take defaults."""

    c = _Collector()
    if raw is None:
        return c.errors
    if not isinstance(raw, Mapping):
        c.fail("options", "must be an object")
        return c.errors

    _check_unknown_keys(c, raw, OPTION_FIELDS, prefix="options.")

    if "method" in raw:
        c.check(validate_choice(raw["method"], "method", GENERATION_METHODS), "options.method")
    if "max_iterations" in raw:
        c.check(validate_int_range(raw["max_iterations"], "max_iterations", 0, 10_000), "options.max_iterations")
    if "timeout_ms" in raw:
        c.check(validate_int_range(raw["timeout_ms"], "timeout_ms", 1, 300_000), "options.timeout_ms")
    if "quality_threshold" in raw:
        c.check(validate_number_range(raw["quality_threshold"], "quality_threshold", 0, 100), "options.quality_threshold")
    if "enable_parallel_processing" in raw:
        c.check(
            validate_bool(raw["enable_parallel_processing"], "enable_parallel_processing"),
            "options.enable_parallel_processing",
        )
    if raw.get("seed") is not None:
        c.check(validate_int_range(raw["seed"], "seed", 0), "options.seed")

    weights = raw.get("constraint_weights")
    if weights is not None:
        if not isinstance(weights, Mapping):
            c.fail("options.constraint_weights", "must be an object")
        else:
            _check_unknown_keys(c, weights, WEIGHT_FIELDS, prefix="options.constraint_weights.")
            for key in WEIGHT_FIELDS:
                if key in weights:
                    c.check(validate_number_range(weights[key], key, 1, 100), f"options.constraint_weights.{key}")

    return c.errors


def validate_saved_filters(raw: Any) -> List[FieldError]:
    c = _Collector()
    if raw is None:
        return c.errors
    if not isinstance(raw, Mapping):
        c.fail("filters", "must be an object")
        return c.errors

    _check_unknown_keys(c, raw, ("grade", "class_section", "limit"), prefix="filters.")
    if raw.get("grade") is not None:
        c.check(validate_int_range(raw["grade"], "grade", 1, 6), "filters.grade")
    if raw.get("class_section") is not None:
        c.check(require_non_empty(raw["class_section"], "class_section"), "filters.class_section")
    if raw.get("limit") is not None:
        c.check(validate_int_range(raw["limit"], "limit", 1), "filters.limit")
    return c.errors
