import sys
from pathlib import Path

# Ensure project root is on PYTHONPATH
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from allocator.duties import (
    DutyAssignment,
    DutyContext,
    DutyExam,
    DutyHistory,
    DutyPolicy,
    DutySchedulingSettings,
    DutySlot,
    DutyType,
    default_duty_policy,
    generate_duty_slots,
    load_balance_score,
    same_department_conflict,
    schedule_duties,
)
from allocator.records import Room, Teacher


R1 = Room(room_id="R1", room_number="101", capacity=30)
R2 = Room(room_id="R2", room_number="102", capacity=30)
R3 = Room(room_id="R3", room_number="103", capacity=30)


def _exam(exam_id="E1", department="CO", duration=1.0, date="2026-11-02", shift=1) -> DutyExam:
    return DutyExam(
        exam_id=exam_id,
        subject=f"Subject {exam_id}",
        department=department,
        duration_hours=duration,
        date=date,
        shift=shift,
    )


def _teacher(tid, department="EE", gender="Male") -> Teacher:
    return Teacher(teacher_id=tid, name=f"Teacher {tid}", department=department, gender=gender)


def _check_partition(schedule, slot_count):
    assert len(schedule.assignments) + len(schedule.unassigned_slots) == slot_count
    taken = [a.slot for a in schedule.assignments]
    assert len(taken) == len(set(taken))
    assert not set(taken) & set(schedule.unassigned_slots)


def test_short_exam_gets_only_main_slot():
    slots = generate_duty_slots([_exam(duration=1.0)], {"E1": [R1]})
    assert [s.duty_type for s in slots] == [DutyType.MAIN]


def test_long_exam_gets_main_and_reliever():
    slots = generate_duty_slots([_exam(duration=3.0)], {"E1": [R1]})
    assert [s.duty_type for s in slots] == [DutyType.MAIN, DutyType.RELIEVER]
    assert all(s.room == R1 for s in slots)


def test_reliever_threshold_is_strict():
    slots = generate_duty_slots([_exam(duration=2.0)], {"E1": [R1]})
    assert len(slots) == 1


def test_exam_without_rooms_generates_no_slots():
    slots = generate_duty_slots([_exam("E1"), _exam("E2")], {"E1": [R1, R2]})
    assert {s.exam.exam_id for s in slots} == {"E1"}
    assert len(slots) == 2


def test_slots_sorted_by_date_then_shift():
    exams = [
        _exam("LATE", date="2026-11-03", shift=1),
        _exam("PM", date="2026-11-02", shift=2),
        _exam("AM", date="2026-11-02", shift=1),
    ]
    usage = {"LATE": [R1], "PM": [R1], "AM": [R1]}
    slots = generate_duty_slots(exams, usage)
    assert [s.exam.exam_id for s in slots] == ["AM", "PM", "LATE"]


def test_same_department_teacher_is_never_assigned():
    teachers = [_teacher("T1", department="CO")]
    schedule = schedule_duties(teachers, [R1], [_exam(department="CO")], {"E1": [R1]})

    assert schedule.assignments == ()
    assert len(schedule.unassigned_slots) == 1
    assert schedule.unassigned_slots[0].exam.department == "CO"


def test_long_exam_gender_rule_and_policy_switch():
    teachers = [_teacher("T1", gender="Female")]
    exams = [_exam(duration=4.0)]
    usage = {"E1": [R1]}

    restricted = schedule_duties(teachers, [R1], exams, usage)
    assert restricted.assignments == ()
    assert len(restricted.unassigned_slots) == 2  # main + reliever

    relaxed = schedule_duties(
        [_teacher("T1", gender="female"), _teacher("T2", gender="Female")],
        [R1],
        exams,
        usage,
        settings=DutySchedulingSettings(restrict_long_exams_by_gender=False),
    )
    assert len(relaxed.assignments) == 2
    assert relaxed.unassigned_slots == ()


def test_gender_rule_does_not_apply_below_long_exam_threshold():
    schedule = schedule_duties([_teacher("T1", gender="Female")], [R1], [_exam(duration=3.5)], {"E1": [R1]})
    # Main goes to T1; the reliever would double-book the same session.
    assert len(schedule.assignments) == 1
    assert len(schedule.unassigned_slots) == 1


def test_teacher_never_double_booked_in_a_session():
    teachers = [_teacher("T1"), _teacher("T2")]
    usage = {"E1": [R1, R2, R3]}
    schedule = schedule_duties(teachers, [R1, R2, R3], [_exam()], usage)

    sessions = [(a.teacher.teacher_id, a.slot.exam.date, a.slot.exam.shift) for a in schedule.assignments]
    assert len(sessions) == len(set(sessions))
    assert len(schedule.assignments) == 2
    assert len(schedule.unassigned_slots) == 1
    _check_partition(schedule, 3)


def test_duty_cap_is_respected():
    exams = [_exam(f"E{i}", date=f"2026-11-{i + 1:02d}") for i in range(8)]
    usage = {e.exam_id: [R1] for e in exams}
    schedule = schedule_duties([_teacher("T1")], [R1], exams, usage)

    assert len(schedule.assignments) == 5
    assert len(schedule.unassigned_slots) == 3
    # later slots are the ones left over
    assert [s.exam.exam_id for s in schedule.unassigned_slots] == ["E5", "E6", "E7"]

    capped = schedule_duties(
        [_teacher("T1")], [R1], exams, usage, settings=DutySchedulingSettings(max_duties_per_cycle=2)
    )
    assert len(capped.assignments) == 2


def test_load_balancing_spreads_duties():
    teachers = [_teacher("T1"), _teacher("T2"), _teacher("T3")]
    exams = [_exam(f"E{i}", date=f"2026-11-{i + 1:02d}") for i in range(6)]
    usage = {e.exam_id: [R1, R2] if i % 2 else [R3] for i, e in enumerate(exams)}
    schedule = schedule_duties(teachers, [R1, R2, R3], exams, usage)

    counts = schedule.duty_counts()
    assert sum(counts.values()) == 9
    assert max(counts.values()) - min(counts.values()) <= 1


def test_ties_go_to_first_listed_teacher():
    teachers = [_teacher("T2"), _teacher("T1")]
    schedule = schedule_duties(teachers, [R1], [_exam()], {"E1": [R1]})
    assert schedule.assignments[0].teacher.teacher_id == "T2"


def test_adjacent_shift_is_avoided_when_possible():
    # T1 takes the morning; T1 would pay the back-to-back penalty in the afternoon.
    teachers = [_teacher("T1"), _teacher("T2")]
    exams = [
        _exam("AM", date="2026-11-02", shift=1),
        _exam("PM", date="2026-11-02", shift=2),
    ]
    usage = {"AM": [R1], "PM": [R2]}
    schedule = schedule_duties(teachers, [R1, R2], exams, usage)

    by_exam = {a.slot.exam.exam_id: a.teacher.teacher_id for a in schedule.assignments}
    assert by_exam == {"AM": "T1", "PM": "T2"}


def test_adjacent_shift_penalty_outweighs_load():
    # T1: morning duty (count 1). T2: two duties on another day (count 2).
    # Afternoon slot: T1 scores 10 + 50, T2 scores 20 -> T2 wins.
    teachers = [_teacher("T1"), _teacher("T2")]
    exams = [
        _exam("D1", date="2026-11-01", shift=1),
        _exam("D1b", date="2026-11-01", shift=2),
        _exam("AM", date="2026-11-02", shift=1),
        _exam("PM", date="2026-11-02", shift=2),
    ]
    usage = {"D1": [R3], "D1b": [R3], "AM": [R1], "PM": [R2]}
    # Scores are checked directly on a hand-built history.
    settings = DutySchedulingSettings()
    policy = default_duty_policy(settings)
    history = DutyHistory()
    slots = generate_duty_slots(exams, usage, settings)
    history.record(DutyAssignment(teacher=teachers[1], slot=slots[0]))
    history.record(DutyAssignment(teacher=teachers[1], slot=slots[1]))
    history.record(DutyAssignment(teacher=teachers[0], slot=slots[2]))

    pm = slots[3]
    t1_score = policy.score(DutyContext(teacher=teachers[0], slot=pm, history=history, settings=settings))
    t2_score = policy.score(DutyContext(teacher=teachers[1], slot=pm, history=history, settings=settings))
    assert t1_score == 60.0
    # T2 also served R3 only, so no room penalty
    assert t2_score == 20.0


def test_repeated_room_penalty():
    settings = DutySchedulingSettings()
    policy = default_duty_policy(settings)
    history = DutyHistory()
    t = _teacher("T1")
    first = DutySlot(exam=_exam("E1", date="2026-11-01"), room=R1, duty_type=DutyType.MAIN)
    history.record(DutyAssignment(teacher=t, slot=first))

    same_room = DutySlot(exam=_exam("E2", date="2026-11-05"), room=R1, duty_type=DutyType.MAIN)
    other_room = DutySlot(exam=_exam("E3", date="2026-11-05"), room=R2, duty_type=DutyType.MAIN)

    assert policy.score(DutyContext(teacher=t, slot=same_room, history=history, settings=settings)) == 20.0
    assert policy.score(DutyContext(teacher=t, slot=other_room, history=history, settings=settings)) == 10.0


def test_room_ids_are_resolved_against_roster():
    schedule = schedule_duties([_teacher("T1")], [R1, R2], [_exam()], {"E1": ["R2", "MISSING"]})
    assert len(schedule.assignments) == 1
    assert schedule.assignments[0].slot.room == R2
    assert schedule.unassigned_slots == ()


def test_custom_policy_replaces_rules():
    # Allow same-department duty, prefer the most loaded teacher.
    policy = DutyPolicy(
        hard_constraints=(),
        scorers=(lambda ctx: -load_balance_score(ctx),),
    )
    exams = [_exam(f"E{i}", date=f"2026-11-{i + 1:02d}") for i in range(3)]
    usage = {e.exam_id: [R1] for e in exams}
    teachers = [_teacher("T1", department="CO"), _teacher("T2", department="CO")]

    schedule = schedule_duties(teachers, [R1], exams, usage, policy=policy)
    assert [a.teacher.teacher_id for a in schedule.assignments] == ["T1", "T1", "T1"]


def test_same_department_rule_in_isolation():
    slot_exam = _exam(department="IT")
    slot = DutySlot(exam=slot_exam, room=R1, duty_type=DutyType.MAIN)
    ctx_it = DutyContext(teacher=_teacher("A", "IT"), slot=slot, history=DutyHistory(), settings=DutySchedulingSettings())
    ctx_ee = DutyContext(teacher=_teacher("B", "EE"), slot=slot, history=DutyHistory(), settings=DutySchedulingSettings())
    assert same_department_conflict(ctx_it)
    assert not same_department_conflict(ctx_ee)


def test_global_properties_on_mixed_roster():
    teachers = [
        _teacher("T1", "CO"),
        _teacher("T2", "IT", "Female"),
        _teacher("T3", "ME"),
        _teacher("T4", "EE", "Female"),
        _teacher("T5", "CE"),
    ]
    exams = [
        _exam("A", "CO", 3.0, "2026-11-02", 1),
        _exam("B", "IT", 4.0, "2026-11-02", 2),
        _exam("C", "ME", 1.0, "2026-11-03", 1),
        _exam("D", "CO", 2.5, "2026-11-03", 2),
        _exam("E", "EE", 4.5, "2026-11-04", 1),
    ]
    usage = {"A": [R1, R2], "B": [R1], "C": [R1, R2, R3], "D": [R2], "E": [R3, R1]}
    slots = generate_duty_slots(exams, usage)
    schedule = schedule_duties(teachers, [R1, R2, R3], exams, usage)

    _check_partition(schedule, len(slots))

    seen = set()
    for a in schedule.assignments:
        key = (a.teacher.teacher_id, a.slot.exam.date, a.slot.exam.shift)
        assert key not in seen
        seen.add(key)
        assert a.teacher.department != a.slot.exam.department
        if a.teacher.gender.lower() == "female":
            assert a.slot.exam.duration_hours < 4.0

    assert all(n <= 5 for n in schedule.duty_counts().values())


def test_scheduler_is_stateless_between_calls():
    teachers = [_teacher("T1")]
    exams = [_exam()]
    first = schedule_duties(teachers, [R1], exams, {"E1": [R1]})
    second = schedule_duties(teachers, [R1], exams, {"E1": [R1]})
    assert first == second
