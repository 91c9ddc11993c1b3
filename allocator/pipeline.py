"""Two-phase allocation pipeline used by the admin workflow.

Phase 1 seats every exam to learn which rooms are actually used.
Phase 2 turns those room lists into duty slots and schedules invigilators.

The room lists are carried in a `RoomUsage` artifact so the scheduler never has
to guess which exams were seated successfully.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import logging
import os
import uuid

from .duties import (
    DutyExam,
    DutyPolicy,
    DutySchedule,
    DutySchedulingSettings,
    DutyType,
    schedule_duties,
)
from .records import AllocationInputs, Exam, Room, Student, exam_department, exam_duration_hours, exam_shift
from .seating import AllocationError, SeatingResult, SeatingSettings, allocate_seating


logger = logging.getLogger(__name__)

SEED_ENV_VAR = "EXAM_ALLOCATION_SEED"

INVIGILATION_ROLE = {
    DutyType.MAIN: "Supervisor",
    DutyType.RELIEVER: "Assistant",
}


def default_seed() -> Optional[int]:
    """Seed override from `EXAM_ALLOCATION_SEED`; None keeps seating random."""

    raw = os.getenv(SEED_ENV_VAR)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{SEED_ENV_VAR} must be an integer, got {raw!r}") from None


# ----------------------------
# Phase 1: room usage
# ----------------------------


@dataclass(frozen=True)
class RoomUsage:
    rooms_by_exam: Dict[str, Tuple[Room, ...]]
    failures: Dict[str, AllocationError]

    def rooms_for(self, exam_id: str) -> Tuple[Room, ...]:
        return self.rooms_by_exam.get(exam_id, ())


def room_usage_from_results(
    results: Mapping[str, SeatingResult],
    rooms: Sequence[Room],
    failures: Optional[Mapping[str, AllocationError]] = None,
) -> RoomUsage:
    """Rooms that received at least one seat, kept in roster order."""

    rooms_by_exam: Dict[str, Tuple[Room, ...]] = {}
    for exam_id, result in results.items():
        used = set(result.room_ids_used())
        rooms_by_exam[exam_id] = tuple(r for r in rooms if r.room_id in used)
    return RoomUsage(rooms_by_exam=rooms_by_exam, failures=dict(failures or {}))


def compute_room_usage(
    exams: Iterable[Exam],
    students: Sequence[Student],
    rooms: Sequence[Room],
    *,
    settings: SeatingSettings = SeatingSettings(),
    seed: Optional[int] = None,
) -> Tuple[RoomUsage, Dict[str, SeatingResult]]:
    results: Dict[str, SeatingResult] = {}
    failures: Dict[str, AllocationError] = {}

    for exam in exams:
        outcome = allocate_seating(exam, students, rooms, settings=settings, seed=seed)
        if outcome.success and outcome.result is not None:
            results[exam.exam_id] = outcome.result
        elif outcome.error is not None:
            logger.warning("Seating failed for exam %s: %s", exam.exam_id, outcome.error.message)
            failures[exam.exam_id] = outcome.error

    return room_usage_from_results(results, rooms, failures), results


# ----------------------------
# Phase 2: duty scheduling
# ----------------------------


def to_duty_exam(exam: Exam, morning_cutoff_hour: int = 12) -> DutyExam:
    return DutyExam(
        exam_id=exam.exam_id,
        subject=exam.subject_name,
        department=exam_department(exam),
        duration_hours=exam_duration_hours(exam),
        date=exam.exam_date,
        shift=exam_shift(exam, morning_cutoff_hour),
    )


@dataclass(frozen=True)
class InvigilationRecord:
    invigilation_id: str
    exam_id: str
    room_id: str
    teacher_id: str
    duty_type: str  # Supervisor / Assistant
    assigned_at: str


def to_invigilation_records(schedule: DutySchedule, now: Optional[datetime] = None) -> List[InvigilationRecord]:
    stamp = (now or datetime.now()).isoformat()
    return [
        InvigilationRecord(
            invigilation_id=f"INV-{uuid.uuid4().hex[:12]}",
            exam_id=a.slot.exam.exam_id,
            room_id=a.slot.room.room_id,
            teacher_id=a.teacher.teacher_id,
            duty_type=INVIGILATION_ROLE[a.slot.duty_type],
            assigned_at=stamp,
        )
        for a in schedule.assignments
    ]


def describe_schedule_outcome(schedule: DutySchedule) -> str:
    made = len(schedule.assignments)
    missing = len(schedule.unassigned_slots)
    if missing:
        return f"Auto-allocation complete. {made} assignments made, but {missing} slots could not be filled."
    return f"Auto-allocation completed successfully! {made} assignments made."


# -------------------------------------------------
# End to end
# -------------------------------------------------


@dataclass(frozen=True)
class AllocationRun:
    seating_results: Dict[str, SeatingResult]
    room_usage: RoomUsage
    duty_exams: Tuple[DutyExam, ...]
    schedule: DutySchedule
    invigilations: Tuple[InvigilationRecord, ...]


def run_exam_allocation(
    inputs: AllocationInputs,
    *,
    seating_settings: SeatingSettings = SeatingSettings(),
    duty_settings: DutySchedulingSettings = DutySchedulingSettings(),
    policy: Optional[DutyPolicy] = None,
    seed: Optional[int] = None,
    morning_cutoff_hour: int = 12,
) -> AllocationRun:
    """Seat every exam, then schedule invigilators across the whole exam set."""

    if seed is None:
        seed = default_seed()

    room_usage, seating_results = compute_room_usage(
        inputs.exams,
        inputs.students,
        inputs.rooms,
        settings=seating_settings,
        seed=seed,
    )

    # Exams whose seating failed have no rooms and so no duty slots.
    duty_exams = tuple(to_duty_exam(e, morning_cutoff_hour) for e in inputs.exams if e.exam_id in seating_results)
    schedule = schedule_duties(
        inputs.teachers,
        inputs.rooms,
        duty_exams,
        room_usage.rooms_by_exam,
        settings=duty_settings,
        policy=policy,
    )

    logger.info(describe_schedule_outcome(schedule))

    return AllocationRun(
        seating_results=seating_results,
        room_usage=room_usage,
        duty_exams=duty_exams,
        schedule=schedule,
        invigilations=tuple(to_invigilation_records(schedule)),
    )
