"""Exam resource allocation engine (seating + invigilation duties)."""

from .records import (
	AllocationInputs,
	Exam,
	Room,
	Student,
	Teacher,
	load_allocation_inputs_from_json,
)

from .seating import (
	AllocationError,
	AllocationErrorKind,
	SeatAssignment,
	SeatingOutcome,
	SeatingResult,
	SeatingSettings,
	allocate_seating,
)

from .duties import (
	DutyAssignment,
	DutyExam,
	DutyPolicy,
	DutySchedule,
	DutySchedulingSettings,
	DutySlot,
	DutyType,
	default_duty_policy,
	generate_duty_slots,
	schedule_duties,
)

from .pipeline import (
	AllocationRun,
	InvigilationRecord,
	RoomUsage,
	compute_room_usage,
	run_exam_allocation,
	to_duty_exam,
)

__all__ = [
	"AllocationInputs",
	"Exam",
	"Room",
	"Student",
	"Teacher",
	"load_allocation_inputs_from_json",
	"AllocationError",
	"AllocationErrorKind",
	"SeatAssignment",
	"SeatingOutcome",
	"SeatingResult",
	"SeatingSettings",
	"allocate_seating",
	"DutyAssignment",
	"DutyExam",
	"DutyPolicy",
	"DutySchedule",
	"DutySchedulingSettings",
	"DutySlot",
	"DutyType",
	"default_duty_policy",
	"generate_duty_slots",
	"schedule_duties",
	"AllocationRun",
	"InvigilationRecord",
	"RoomUsage",
	"compute_room_usage",
	"run_exam_allocation",
	"to_duty_exam",
]
