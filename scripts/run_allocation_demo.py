"""Demo runner: seat every exam and build the invigilation roster from sample JSON.

This is meant for quick validation and for demos.

Usage:
    python scripts/run_allocation_demo.py
    python scripts/run_allocation_demo.py path/to/inputs.json --seed 7 --out outputs

Set EXAM_ALLOCATION_SEED to fix the seating shuffle without passing --seed.

"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
import sys

# Ensure project root is on PYTHONPATH when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from allocator import DutySchedulingSettings, load_allocation_inputs_from_json, run_exam_allocation
from allocator.pipeline import describe_schedule_outcome
from reporting.allocation_export import (
    allocation_zip_bytes,
    df_to_markdown,
    duty_roster_df,
    room_seating_grid_df,
    teacher_duty_load_df,
    unassigned_slots_df,
)


def main() -> None:
    p = argparse.ArgumentParser(description="Exam seating + invigilation allocation demo")
    p.add_argument("inputs", nargs="?", default=str(ROOT / "data" / "sample_allocation_inputs.json"))
    p.add_argument("--seed", type=int, default=None, help="Fix the seating shuffle")
    p.add_argument("--max-duties", type=int, default=5, help="Per-teacher duty cap")
    p.add_argument(
        "--no-gender-rule",
        action="store_true",
        help="Disable the long-exam gender eligibility rule",
    )
    p.add_argument("--out", type=str, default=None, help="Write a report bundle (.zip) under this folder")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    inputs = load_allocation_inputs_from_json(args.inputs)
    settings = DutySchedulingSettings(
        max_duties_per_cycle=args.max_duties,
        restrict_long_exams_by_gender=not args.no_gender_rule,
    )

    run = run_exam_allocation(inputs, duty_settings=settings, seed=args.seed)

    print("\n=== Seating ===")
    for exam in inputs.exams:
        result = run.seating_results.get(exam.exam_id)
        if result is None:
            err = run.room_usage.failures.get(exam.exam_id)
            print(f"\n{exam.exam_id}: FAILED - {err.message if err else 'unknown error'}")
            continue
        print(f"\n{exam.exam_id} ({exam.subject_name}): {len(result.assignments)} students")
        for room_id in result.room_ids_used():
            print(f"\nRoom {room_id}")
            print(df_to_markdown(room_seating_grid_df(result, room_id)))

    print("\n=== Invigilation roster ===")
    print(df_to_markdown(duty_roster_df(run.schedule)))

    unfilled = unassigned_slots_df(run.schedule)
    if not unfilled.empty:
        print("\n=== Unfilled duty slots ===")
        print(df_to_markdown(unfilled))

    print("\n=== Teacher load ===")
    print(df_to_markdown(teacher_duty_load_df(teachers=inputs.teachers, schedule=run.schedule, settings=settings)))

    print(f"\n{describe_schedule_outcome(run.schedule)}")

    if args.out:
        base = Path(args.out) / datetime.now().strftime("%Y%m%d_%H%M%S")
        base.mkdir(parents=True, exist_ok=True)
        bundle = allocation_zip_bytes(run=run, teachers=inputs.teachers, settings=settings)
        (base / "allocation_bundle.zip").write_bytes(bundle)
        print(f"Wrote outputs to: {base.resolve()}")


if __name__ == "__main__":
    main()
