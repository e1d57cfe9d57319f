"""Weekly class timetable generation (models, greedy seeding, optimization, checks).

The generation pipeline itself lives in `modules.timetable_generator`; import it
from there (it depends on `utils.validators`, which imports this package).
"""

from .timetable_models import (
	Classroom,
	ConstraintViolation,
	ConstraintWeights,
	FixedSlot,
	GenerationConstraints,
	GenerationOptions,
	GenerationProblem,
	GenerationResult,
	GenerationState,
	GenerationStatistics,
	PreferredSlot,
	SchoolSettings,
	SlotRef,
	Subject,
	Teacher,
	TimetableSlot,
	build_empty_timetable,
	format_class_timetable,
	format_teacher_timetable,
)

from .slot_assignment import find_best_slot, greedy_assign, score_slot
from .violations import detect_violations
from .class_optimizer import global_fitness, optimize_timetable

__all__ = [
	"Classroom",
	"ConstraintViolation",
	"ConstraintWeights",
	"FixedSlot",
	"GenerationConstraints",
	"GenerationOptions",
	"GenerationProblem",
	"GenerationResult",
	"GenerationState",
	"GenerationStatistics",
	"PreferredSlot",
	"SchoolSettings",
	"SlotRef",
	"Subject",
	"Teacher",
	"TimetableSlot",
	"build_empty_timetable",
	"format_class_timetable",
	"format_teacher_timetable",
	"find_best_slot",
	"greedy_assign",
	"score_slot",
	"detect_violations",
	"global_fitness",
	"optimize_timetable",
]
