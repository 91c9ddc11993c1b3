"""Input records shared by the seating allocator and the duty scheduler.

The registries (students, rooms, exams, faculty) live outside this package.
Everything here is a plain, immutable value record as consumed by the engine,
plus a couple of small helpers that interpret exam timing.

"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Tuple, Union

import json


GENERAL_DEPARTMENT = "GENERAL"


# ----------------------------
# Data models / input schema
# ----------------------------


@dataclass(frozen=True)
class Student:
    enroll_no: str
    name: str
    branch: str
    semester: str
    batch: str = ""


@dataclass(frozen=True)
class Room:
    room_id: str
    room_number: str
    capacity: int
    is_active: bool = True


@dataclass(frozen=True)
class Exam:
    exam_id: str
    subject_code: str
    subject_name: str
    exam_date: str  # YYYY-MM-DD
    start_time: str  # HH:MM (or full ISO datetime)
    end_time: str
    branches: Tuple[str, ...]
    semester: str


@dataclass(frozen=True)
class Teacher:
    teacher_id: str
    name: str
    department: str
    gender: str = "Male"


@dataclass(frozen=True)
class AllocationInputs:
    """Already-loaded registries handed to the engine by the admin layer."""

    students: Tuple[Student, ...]
    rooms: Tuple[Room, ...]
    exams: Tuple[Exam, ...]
    teachers: Tuple[Teacher, ...] = ()


# ----------------------------
# Helpers
# ----------------------------


def semester_matches(a: Union[str, int], b: Union[str, int]) -> bool:
    """Compare semesters coming from mixed sources ("6", 6, "06")."""

    sa = str(a).strip()
    sb = str(b).strip()
    if sa == sb:
        return True
    try:
        return int(sa) == int(sb)
    except ValueError:
        return False


def _parse_clock(value: str) -> datetime:
    raw = str(value).strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"Unrecognised time value: {value!r}") from None


def exam_duration_hours(exam: Exam) -> float:
    start = _parse_clock(exam.start_time)
    end = _parse_clock(exam.end_time)
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise ValueError(f"Exam {exam.exam_id}: start_time and end_time must both carry a UTC offset or neither")
    if start.year == 1900 or end.year == 1900:
        # At least one side is a bare clock time: compare times of day only.
        start = datetime.combine(end.date(), start.time())
        end = datetime.combine(end.date(), end.time())
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        raise ValueError(f"Exam {exam.exam_id}: end_time must be after start_time")
    return seconds / 3600.0


def exam_shift(exam: Exam, morning_cutoff_hour: int = 12) -> int:
    """Coarse session index: 1 = morning, 2 = afternoon."""

    return 1 if _parse_clock(exam.start_time).hour < morning_cutoff_hour else 2


def exam_department(exam: Exam) -> str:
    return exam.branches[0] if exam.branches else GENERAL_DEPARTMENT


# -------------------------------------------------
# Loading
# -------------------------------------------------


def load_allocation_inputs_from_json(path: str) -> AllocationInputs:
    """Load an `AllocationInputs` bundle from a JSON file."""

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    students = tuple(
        Student(
            enroll_no=str(s["enroll_no"]),
            name=s["name"],
            branch=s["branch"],
            semester=str(s["semester"]),
            batch=str(s.get("batch", "")),
        )
        for s in raw.get("students", [])
    )

    rooms = tuple(
        Room(
            room_id=r["room_id"],
            room_number=str(r.get("room_number", r["room_id"])),
            capacity=int(r["capacity"]),
            is_active=bool(r.get("is_active", True)),
        )
        for r in raw.get("rooms", [])
    )

    exams = tuple(
        Exam(
            exam_id=e["exam_id"],
            subject_code=e["subject_code"],
            subject_name=e["subject_name"],
            exam_date=e["exam_date"],
            start_time=e["start_time"],
            end_time=e["end_time"],
            branches=tuple(e.get("branches", [])),
            semester=str(e["semester"]),
        )
        for e in raw.get("exams", [])
    )

    teachers = tuple(
        Teacher(
            teacher_id=t["teacher_id"],
            name=t["name"],
            department=t["department"],
            gender=t.get("gender") or "Male",
        )
        for t in raw.get("teachers", [])
    )

    return AllocationInputs(students=students, rooms=rooms, exams=exams, teachers=teachers)
