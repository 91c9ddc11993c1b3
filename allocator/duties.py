"""Invigilation duty scheduling.

Duty slots are derived from which rooms each exam actually uses: one "Main"
slot per (exam, room), plus a "Reliever" slot for long exams. Slots are then
filled by a single greedy pass in chronological order.

Key design choices:
- Hard constraints are predicates over a shared (teacher, slot, history)
  context; any violated predicate makes the teacher invalid for the slot.
- Soft constraints are scorers over the same context; the lowest total wins,
  ties keep the teacher listed first.
- No backtracking. A slot nobody can take goes to `unassigned_slots` and the
  run continues.

Both sets live in a `DutyPolicy`, so institutions can swap rules without
touching the scheduling loop.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import logging

from .records import Room, Teacher


logger = logging.getLogger(__name__)


# ----------------------------
# Data models
# ----------------------------


class DutyType(str, Enum):
    MAIN = "Main"
    RELIEVER = "Reliever"


@dataclass(frozen=True)
class DutyExam:
    """An exam as seen by the scheduler: only timing and department matter."""

    exam_id: str
    subject: str
    department: str
    duration_hours: float
    date: str  # YYYY-MM-DD, compared as text
    shift: int  # 1 = morning, 2 = afternoon


@dataclass(frozen=True)
class DutySlot:
    exam: DutyExam
    room: Room
    duty_type: DutyType


@dataclass(frozen=True)
class DutyAssignment:
    teacher: Teacher
    slot: DutySlot


@dataclass(frozen=True)
class DutySchedule:
    assignments: Tuple[DutyAssignment, ...]
    unassigned_slots: Tuple[DutySlot, ...]

    def duty_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for a in self.assignments:
            counts[a.teacher.teacher_id] = counts.get(a.teacher.teacher_id, 0) + 1
        return counts

    def assignments_for(self, teacher_id: str) -> List[DutyAssignment]:
        return [a for a in self.assignments if a.teacher.teacher_id == teacher_id]


@dataclass(frozen=True)
class DutySchedulingSettings:
    """Institution policy knobs.

    Notes:
    - A reliever is added when the exam is strictly longer than
      `reliever_threshold_hours`.
    - The long-exam gender rule is a local policy; disable it with
      `restrict_long_exams_by_gender=False`.
    """

    max_duties_per_cycle: int = 5
    reliever_threshold_hours: float = 2.0

    long_exam_hours: float = 4.0
    restrict_long_exams_by_gender: bool = True
    restricted_gender: str = "female"

    # Fitness weights (lower total is better)
    load_weight: float = 10.0
    adjacent_shift_penalty: float = 50.0
    repeated_room_penalty: float = 10.0


# ----------------------------
# Per-run history
# ----------------------------


@dataclass
class DutyHistory:
    """Commitments made so far in one scheduling run."""

    assignments: List[DutyAssignment] = field(default_factory=list)
    duty_count: Dict[str, int] = field(default_factory=dict)
    sessions: Dict[str, Set[Tuple[str, int]]] = field(default_factory=dict)
    rooms: Dict[str, Set[str]] = field(default_factory=dict)

    def count(self, teacher_id: str) -> int:
        return self.duty_count.get(teacher_id, 0)

    def holds_session(self, teacher_id: str, date: str, shift: int) -> bool:
        return (date, shift) in self.sessions.get(teacher_id, set())

    def has_adjacent_shift(self, teacher_id: str, date: str, shift: int) -> bool:
        held = self.sessions.get(teacher_id, set())
        return (date, shift - 1) in held or (date, shift + 1) in held

    def has_served_room(self, teacher_id: str, room_id: str) -> bool:
        return room_id in self.rooms.get(teacher_id, set())

    def record(self, assignment: DutyAssignment) -> None:
        tid = assignment.teacher.teacher_id
        exam = assignment.slot.exam
        self.assignments.append(assignment)
        self.duty_count[tid] = self.count(tid) + 1
        self.sessions.setdefault(tid, set()).add((exam.date, exam.shift))
        self.rooms.setdefault(tid, set()).add(assignment.slot.room.room_id)


@dataclass(frozen=True)
class DutyContext:
    teacher: Teacher
    slot: DutySlot
    history: DutyHistory
    settings: DutySchedulingSettings


HardConstraint = Callable[[DutyContext], bool]
SoftScorer = Callable[[DutyContext], float]


# -------------------------------------------------
# Hard constraints (True => teacher is invalid)
# -------------------------------------------------


def same_department_conflict(ctx: DutyContext) -> bool:
    return ctx.teacher.department == ctx.slot.exam.department


def long_exam_gender_restriction(ctx: DutyContext) -> bool:
    s = ctx.settings
    return (
        str(ctx.teacher.gender).strip().lower() == s.restricted_gender.lower()
        and ctx.slot.exam.duration_hours >= s.long_exam_hours
    )


def duty_cap_reached(ctx: DutyContext) -> bool:
    return ctx.history.count(ctx.teacher.teacher_id) >= ctx.settings.max_duties_per_cycle


def session_double_booking(ctx: DutyContext) -> bool:
    exam = ctx.slot.exam
    return ctx.history.holds_session(ctx.teacher.teacher_id, exam.date, exam.shift)


# -------------------------------------------------
# Soft scorers (lower is better)
# -------------------------------------------------


def load_balance_score(ctx: DutyContext) -> float:
    return ctx.settings.load_weight * ctx.history.count(ctx.teacher.teacher_id)


def adjacent_shift_score(ctx: DutyContext) -> float:
    exam = ctx.slot.exam
    if ctx.history.has_adjacent_shift(ctx.teacher.teacher_id, exam.date, exam.shift):
        return ctx.settings.adjacent_shift_penalty
    return 0.0


def repeated_room_score(ctx: DutyContext) -> float:
    if ctx.history.has_served_room(ctx.teacher.teacher_id, ctx.slot.room.room_id):
        return ctx.settings.repeated_room_penalty
    return 0.0


@dataclass(frozen=True)
class DutyPolicy:
    hard_constraints: Tuple[HardConstraint, ...]
    scorers: Tuple[SoftScorer, ...]

    def is_valid(self, ctx: DutyContext) -> bool:
        return not any(rule(ctx) for rule in self.hard_constraints)

    def score(self, ctx: DutyContext) -> float:
        return sum(scorer(ctx) for scorer in self.scorers)


def default_duty_policy(settings: DutySchedulingSettings = DutySchedulingSettings()) -> DutyPolicy:
    hard: List[HardConstraint] = [same_department_conflict]
    if settings.restrict_long_exams_by_gender:
        hard.append(long_exam_gender_restriction)
    hard.extend([duty_cap_reached, session_double_booking])

    return DutyPolicy(
        hard_constraints=tuple(hard),
        scorers=(load_balance_score, adjacent_shift_score, repeated_room_score),
    )


# -------------------------------------------------
# Slot generation
# -------------------------------------------------


RoomRef = Union[Room, str]


def _resolve_rooms(exam_id: str, refs: Iterable[RoomRef], rooms_by_id: Mapping[str, Room]) -> List[Room]:
    out: List[Room] = []
    for ref in refs:
        if isinstance(ref, Room):
            out.append(ref)
        elif ref in rooms_by_id:
            out.append(rooms_by_id[ref])
        else:
            logger.warning("Exam %s: unknown room %r skipped", exam_id, ref)
    return out


def generate_duty_slots(
    exams: Iterable[DutyExam],
    room_usage: Mapping[str, Sequence[Room]],
    settings: DutySchedulingSettings = DutySchedulingSettings(),
) -> List[DutySlot]:
    """One Main slot per (exam, room) plus a Reliever for long exams.

    Slots come back sorted by (date, shift); the sort is stable so slots of the
    same session keep exam/room order.
    """

    slots: List[DutySlot] = []
    for exam in exams:
        used = room_usage.get(exam.exam_id, ())
        if not used:
            logger.info("Exam %s: no rooms in use, no duty slots", exam.exam_id)
        for room in used:
            slots.append(DutySlot(exam=exam, room=room, duty_type=DutyType.MAIN))
            if exam.duration_hours > settings.reliever_threshold_hours:
                slots.append(DutySlot(exam=exam, room=room, duty_type=DutyType.RELIEVER))

    slots.sort(key=lambda s: (s.exam.date, s.exam.shift))
    return slots


# -------------------------------------------------
# Solve
# -------------------------------------------------


def find_best_teacher(
    slot: DutySlot,
    teachers: Sequence[Teacher],
    history: DutyHistory,
    policy: DutyPolicy,
    settings: DutySchedulingSettings,
) -> Optional[Teacher]:
    best: Optional[Teacher] = None
    best_score = float("inf")
    for teacher in teachers:
        ctx = DutyContext(teacher=teacher, slot=slot, history=history, settings=settings)
        if not policy.is_valid(ctx):
            continue
        score = policy.score(ctx)
        if score < best_score:
            best = teacher
            best_score = score
    return best


def schedule_duties(
    teachers: Sequence[Teacher],
    all_rooms: Iterable[Room],
    exams: Iterable[DutyExam],
    rooms_used_per_exam: Mapping[str, Iterable[RoomRef]],
    *,
    settings: DutySchedulingSettings = DutySchedulingSettings(),
    policy: Optional[DutyPolicy] = None,
) -> DutySchedule:
    """Assign invigilators to every duty slot the exams need.

    Args:
        all_rooms: Room roster used to resolve room ids in `rooms_used_per_exam`.
        rooms_used_per_exam: exam_id -> rooms (records or ids) that received seats.
        policy: Constraint/scoring set; defaults to `default_duty_policy(settings)`.

    Returns:
        DutySchedule whose assignments and unassigned slots partition the slot set.
    """

    if settings.max_duties_per_cycle < 0:
        raise ValueError("max_duties_per_cycle must be >= 0")

    policy = policy or default_duty_policy(settings)
    rooms_by_id = {r.room_id: r for r in all_rooms}
    room_usage = {
        exam_id: _resolve_rooms(exam_id, refs, rooms_by_id) for exam_id, refs in rooms_used_per_exam.items()
    }

    slots = generate_duty_slots(exams, room_usage, settings)
    history = DutyHistory()
    unassigned: List[DutySlot] = []

    for slot in slots:
        teacher = find_best_teacher(slot, teachers, history, policy, settings)
        if teacher is None:
            logger.warning(
                "No valid invigilator for %s duty: exam %s, room %s (%s shift %d)",
                slot.duty_type.value,
                slot.exam.exam_id,
                slot.room.room_id,
                slot.exam.date,
                slot.exam.shift,
            )
            unassigned.append(slot)
            continue
        history.record(DutyAssignment(teacher=teacher, slot=slot))
        logger.debug("Assigned %s to exam %s room %s", teacher.teacher_id, slot.exam.exam_id, slot.room.room_id)

    logger.info(
        "Duty scheduling: %d slots, %d assigned, %d unassigned",
        len(slots),
        len(history.assignments),
        len(unassigned),
    )
    return DutySchedule(assignments=tuple(history.assignments), unassigned_slots=tuple(unassigned))
