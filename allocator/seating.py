"""Seating allocation for a single exam.

Given one exam, the full student roster and the room roster, produce a
seat-by-seat plan:

1. keep students whose branch is targeted by the exam and whose semester matches
2. keep active rooms, largest first
3. interleave branches round-robin so same-branch students do not run together
4. shuffle the interleaved sequence
5. fill rooms seat 1..capacity in order

Infeasibility (nobody eligible, not enough seats) is reported through
`SeatingOutcome.error`; nothing is raised for those cases. Output is not
reproducible unless a `seed` is supplied.

"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import logging
import math
import random

from .records import Exam, Room, Student, semester_matches


logger = logging.getLogger(__name__)


# ----------------------------
# Settings / results
# ----------------------------


@dataclass(frozen=True)
class SeatingSettings:
    """Seat-map layout settings.

    `grid_columns` only affects the display row/col of each seat; it has no
    influence on which student sits where.
    """

    grid_columns: int = 4


@dataclass(frozen=True)
class SeatAssignment:
    exam_id: str
    student_id: str  # enroll_no
    student_name: str
    branch: str
    room_id: str
    room_number: str
    seat_number: int
    row: int
    col: int
    absent: bool = False


@dataclass(frozen=True)
class SeatingResult:
    exam_id: str
    assignments: Tuple[SeatAssignment, ...]
    generated_at: str  # ISO timestamp
    grid_columns: int = 4

    def room_ids_used(self) -> List[str]:
        """Room ids that received at least one student, in first-use order."""

        seen: Dict[str, None] = {}
        for a in self.assignments:
            seen.setdefault(a.room_id, None)
        return list(seen.keys())

    def assignments_by_room(self) -> Dict[str, List[SeatAssignment]]:
        out: Dict[str, List[SeatAssignment]] = {}
        for a in self.assignments:
            out.setdefault(a.room_id, []).append(a)
        return out

    def occupancy(self) -> Dict[str, int]:
        return {rid: len(items) for rid, items in self.assignments_by_room().items()}


class AllocationErrorKind(Enum):
    NO_ELIGIBLE_STUDENTS = "NoEligibleStudents"
    INSUFFICIENT_CAPACITY = "InsufficientCapacity"


@dataclass(frozen=True)
class AllocationError:
    kind: AllocationErrorKind
    message: str
    required: int = 0
    available: int = 0


@dataclass(frozen=True)
class SeatingOutcome:
    success: bool
    result: Optional[SeatingResult] = None
    error: Optional[AllocationError] = None


# ----------------------------
# Steps
# ----------------------------


def eligible_students(exam: Exam, students: Iterable[Student]) -> List[Student]:
    targeted = set(exam.branches)
    return [s for s in students if s.branch in targeted and semester_matches(s.semester, exam.semester)]


def select_active_rooms(rooms: Iterable[Room]) -> List[Room]:
    """Active rooms sorted by capacity, largest first (stable on ties)."""

    return sorted((r for r in rooms if r.is_active), key=lambda r: r.capacity, reverse=True)


def mix_branches_round_robin(students: Sequence[Student], branch_order: Sequence[str]) -> List[Student]:
    """Interleave students branch by branch: b1[0], b2[0], ..., b1[1], b2[1], ...

    Students whose branch is not in `branch_order` are dropped.
    """

    order: List[str] = []
    for b in branch_order:
        if b not in order:
            order.append(b)

    by_branch: Dict[str, List[Student]] = {b: [] for b in order}
    for s in students:
        if s.branch in by_branch:
            by_branch[s.branch].append(s)

    longest = max((len(v) for v in by_branch.values()), default=0)
    mixed: List[Student] = []
    for i in range(longest):
        for b in order:
            if i < len(by_branch[b]):
                mixed.append(by_branch[b][i])
    return mixed


def grid_position(seat_number: int, columns: int = 4) -> Tuple[int, int]:
    """(row, col) of a 1-based seat number on a fixed-width grid."""

    if seat_number < 1:
        raise ValueError("seat_number must be >= 1")
    if columns < 1:
        raise ValueError("columns must be >= 1")
    row = math.ceil(seat_number / columns)
    col = ((seat_number - 1) % columns) + 1
    return row, col


def pack_into_rooms(
    exam_id: str,
    students: Sequence[Student],
    rooms: Sequence[Room],
    *,
    columns: int = 4,
) -> List[SeatAssignment]:
    """Fill `rooms` in order, seat 1..capacity, until students run out."""

    assignments: List[SeatAssignment] = []
    idx = 0
    for room in rooms:
        if idx >= len(students):
            break
        for seat in range(1, room.capacity + 1):
            if idx >= len(students):
                break
            student = students[idx]
            row, col = grid_position(seat, columns)
            assignments.append(
                SeatAssignment(
                    exam_id=exam_id,
                    student_id=student.enroll_no,
                    student_name=student.name,
                    branch=student.branch,
                    room_id=room.room_id,
                    room_number=room.room_number,
                    seat_number=seat,
                    row=row,
                    col=col,
                )
            )
            idx += 1
    return assignments


# -------------------------------------------------
# Solve
# -------------------------------------------------


def allocate_seating(
    exam: Exam,
    students: Iterable[Student],
    rooms: Iterable[Room],
    *,
    settings: SeatingSettings = SeatingSettings(),
    seed: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SeatingOutcome:
    """Allocate seats for one exam.

    Args:
        seed: Fixes the shuffle. None draws a fresh random order every call.
        now: Timestamp recorded as `generated_at` (defaults to the current time).
    """

    if settings.grid_columns < 1:
        raise ValueError("grid_columns must be >= 1")

    eligible = eligible_students(exam, students)
    if not eligible:
        logger.info("Exam %s: no eligible students", exam.exam_id)
        return SeatingOutcome(
            success=False,
            error=AllocationError(
                kind=AllocationErrorKind.NO_ELIGIBLE_STUDENTS,
                message="No students found matching Branch/Semester criteria. Check Student Database.",
            ),
        )

    active = select_active_rooms(rooms)
    total_capacity = sum(r.capacity for r in active)
    if total_capacity < len(eligible):
        logger.info("Exam %s: need %d seats, have %d", exam.exam_id, len(eligible), total_capacity)
        return SeatingOutcome(
            success=False,
            error=AllocationError(
                kind=AllocationErrorKind.INSUFFICIENT_CAPACITY,
                message=(
                    f"Insufficient capacity! Need {len(eligible)} seats, "
                    f"but only have {total_capacity} active seats."
                ),
                required=len(eligible),
                available=total_capacity,
            ),
        )

    mixed = mix_branches_round_robin(eligible, exam.branches)
    rng = random.Random(seed)
    rng.shuffle(mixed)

    assignments = pack_into_rooms(exam.exam_id, mixed, active, columns=settings.grid_columns)
    stamp = (now or datetime.now()).isoformat()
    result = SeatingResult(
        exam_id=exam.exam_id,
        assignments=tuple(assignments),
        generated_at=stamp,
        grid_columns=settings.grid_columns,
    )

    logger.debug(
        "Exam %s: seated %d students across %d rooms",
        exam.exam_id,
        len(assignments),
        len(result.room_ids_used()),
    )
    return SeatingOutcome(success=True, result=result)


# -------------------------------------------------
# Post-processing
# -------------------------------------------------


def mark_absent(result: SeatingResult, student_ids: Iterable[str]) -> SeatingResult:
    """Return a copy of `result` with the given students flagged absent."""

    absent = set(student_ids)
    assignments = tuple(
        replace(a, absent=True) if a.student_id in absent else a for a in result.assignments
    )
    return replace(result, assignments=assignments)


def upsert_seating_result(
    results_by_exam: Mapping[str, SeatingResult],
    result: SeatingResult,
) -> Dict[str, SeatingResult]:
    """Replace (never merge) the stored plan for `result.exam_id`."""

    out = dict(results_by_exam)
    out[result.exam_id] = result
    return out
