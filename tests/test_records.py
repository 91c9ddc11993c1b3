import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from allocator.records import (
    GENERAL_DEPARTMENT,
    Exam,
    exam_department,
    exam_duration_hours,
    exam_shift,
    load_allocation_inputs_from_json,
    semester_matches,
)


def _exam(start="10:00", end="13:00", branches=("CO", "IT")) -> Exam:
    return Exam(
        exam_id="E1",
        subject_code="S1",
        subject_name="Subject",
        exam_date="2026-11-02",
        start_time=start,
        end_time=end,
        branches=tuple(branches),
        semester="6",
    )


def test_semester_matches_is_string_and_number_tolerant():
    assert semester_matches("6", "6")
    assert semester_matches(6, "6")
    assert semester_matches(" 6", 6)
    assert semester_matches("06", "6")
    assert not semester_matches("6", "4")
    assert not semester_matches("VI", "6")


def test_duration_from_clock_and_iso_times():
    assert exam_duration_hours(_exam("10:00", "13:00")) == 3.0
    assert exam_duration_hours(_exam("09:15", "10:45")) == 1.5
    assert exam_duration_hours(_exam("2026-11-02T09:00", "2026-11-02T13:30")) == 4.5


def test_duration_rejects_inverted_or_bad_times():
    with pytest.raises(ValueError):
        exam_duration_hours(_exam("13:00", "10:00"))
    with pytest.raises(ValueError):
        exam_duration_hours(_exam("morning", "13:00"))


def test_shift_uses_morning_cutoff():
    assert exam_shift(_exam("09:00", "12:00")) == 1
    assert exam_shift(_exam("11:59", "13:00")) == 1
    assert exam_shift(_exam("12:00", "14:00")) == 2
    assert exam_shift(_exam("14:00", "17:00")) == 2
    assert exam_shift(_exam("12:30", "14:00"), morning_cutoff_hour=13) == 1


def test_department_is_first_branch_or_general():
    assert exam_department(_exam(branches=("IT", "CO"))) == "IT"
    assert exam_department(_exam(branches=())) == GENERAL_DEPARTMENT


def test_load_sample_inputs():
    inputs = load_allocation_inputs_from_json(str(ROOT / "data" / "sample_allocation_inputs.json"))

    assert len(inputs.students) == 18
    assert len(inputs.rooms) == 3
    assert len(inputs.exams) == 3
    assert len(inputs.teachers) == 6

    td = next(e for e in inputs.exams if e.exam_id == "EX-TD")
    assert td.semester == "4"
    assert td.branches == ("ME",)

    inactive = [r.room_id for r in inputs.rooms if not r.is_active]
    assert inactive == ["R201"]

    # gender falls back to the registry default when missing
    t6 = next(t for t in inputs.teachers if t.teacher_id == "T006")
    assert t6.gender == "Male"


def test_duration_rejects_mixed_offset_and_naive_times():
    with pytest.raises(ValueError):
        exam_duration_hours(_exam("2026-11-02T09:00:00+05:30", "2026-11-02T12:00:00"))
    assert exam_duration_hours(_exam("2026-11-02T09:00:00+05:30", "2026-11-02T12:00:00+05:30")) == 3.0
