from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from typing import Iterable, Optional

import pandas as pd

from allocator.duties import DutySchedule, DutySchedulingSettings, DutyType
from allocator.seating import SeatingResult


def seating_plan_df(result: SeatingResult) -> pd.DataFrame:
    """One row per seat, ordered by room then seat number."""

    rows = [
        {
            "exam_id": a.exam_id,
            "room_id": a.room_id,
            "room_number": a.room_number,
            "seat_number": a.seat_number,
            "row": a.row,
            "col": a.col,
            "student_id": a.student_id,
            "student_name": a.student_name,
            "branch": a.branch,
            "absent": a.absent,
        }
        for a in result.assignments
    ]
    out = pd.DataFrame(rows)
    if out.empty:
        return out
    room_order = {rid: i for i, rid in enumerate(result.room_ids_used())}
    out["_room_order"] = out["room_id"].map(room_order)
    out = out.sort_values(["_room_order", "seat_number"]).drop(columns="_room_order")
    return out.reset_index(drop=True)


ABSENT_MARK = " [ABSENT]"


def room_seating_grid_df(result: SeatingResult, room_id: str, *, columns: Optional[int] = None) -> pd.DataFrame:
    """Seat map of one room as a (rows x columns) table of "student (branch)" labels.

    The width defaults to the grid the plan was seated on. Empty cells are
    blank strings; absent students keep their seat and are marked.
    """

    width = result.grid_columns if columns is None else columns
    if width < 1:
        raise ValueError("columns must be >= 1")

    seats = result.assignments_by_room().get(room_id, [])
    n_rows = max((a.row for a in seats), default=0)
    table = [["" for _ in range(width)] for _ in range(n_rows)]
    for a in seats:
        if not 1 <= a.col <= width:
            raise ValueError(
                f"Seat {a.seat_number} in room {room_id} is in column {a.col}, outside a {width}-column grid"
            )
        label = f"{a.student_id} ({a.branch})"
        table[a.row - 1][a.col - 1] = label + ABSENT_MARK if a.absent else label

    df = pd.DataFrame(table, columns=[f"C{c}" for c in range(1, width + 1)])
    df.insert(0, "ROW", list(range(1, n_rows + 1)))
    return df


def duty_roster_df(schedule: DutySchedule) -> pd.DataFrame:
    rows = [
        {
            "date": a.slot.exam.date,
            "shift": a.slot.exam.shift,
            "exam_id": a.slot.exam.exam_id,
            "subject": a.slot.exam.subject,
            "exam_department": a.slot.exam.department,
            "room_id": a.slot.room.room_id,
            "room_number": a.slot.room.room_number,
            "duty_type": a.slot.duty_type.value,
            "teacher_id": a.teacher.teacher_id,
            "teacher_name": a.teacher.name,
            "teacher_department": a.teacher.department,
        }
        for a in schedule.assignments
    ]
    return pd.DataFrame(rows)


def unassigned_slots_df(schedule: DutySchedule) -> pd.DataFrame:
    rows = [
        {
            "date": s.exam.date,
            "shift": s.exam.shift,
            "exam_id": s.exam.exam_id,
            "subject": s.exam.subject,
            "exam_department": s.exam.department,
            "room_id": s.room.room_id,
            "room_number": s.room.room_number,
            "duty_type": s.duty_type.value,
        }
        for s in schedule.unassigned_slots
    ]
    return pd.DataFrame(rows)


def teacher_duty_load_df(
    *,
    teachers,
    schedule: DutySchedule,
    settings: DutySchedulingSettings = DutySchedulingSettings(),
) -> pd.DataFrame:
    """Per-teacher duty counts (Main / Reliever / Total) and remaining capacity.

    Teachers with no duties are included so idle staff are visible.
    """

    rows = {}
    for t in teachers:
        rows[t.teacher_id] = {
            "teacher_id": t.teacher_id,
            "name": t.name,
            "department": t.department,
            "gender": t.gender,
            DutyType.MAIN.value: 0,
            DutyType.RELIEVER.value: 0,
        }

    for a in schedule.assignments:
        tid = a.teacher.teacher_id
        if tid not in rows:
            rows[tid] = {
                "teacher_id": tid,
                "name": a.teacher.name,
                "department": a.teacher.department,
                "gender": a.teacher.gender,
                DutyType.MAIN.value: 0,
                DutyType.RELIEVER.value: 0,
            }
        rows[tid][a.slot.duty_type.value] += 1

    out = pd.DataFrame(list(rows.values()))
    if out.empty:
        return out

    out["Total"] = out[DutyType.MAIN.value] + out[DutyType.RELIEVER.value]
    out["Remaining"] = (int(settings.max_duties_per_cycle) - out["Total"]).clip(lower=0)
    return out.sort_values(["department", "Total", "teacher_id"], ascending=[True, False, True]).reset_index(drop=True)


def department_duty_summary_df(teacher_load_df: pd.DataFrame) -> pd.DataFrame:
    """Aggregate a teacher duty load table into department totals."""

    if teacher_load_df is None or teacher_load_df.empty:
        return pd.DataFrame()

    cols = [c for c in [DutyType.MAIN.value, DutyType.RELIEVER.value, "Total"] if c in teacher_load_df.columns]
    named = {"Teachers": ("teacher_id", "count")}
    named.update({c: (c, "sum") for c in cols})
    g = (
        teacher_load_df.groupby("department", dropna=False)
        .agg(**named)
        .reset_index()
        .sort_values("department")
        .reset_index(drop=True)
    )
    return g


_SHEET_NAME_MAX = 31
_SHEET_NAME_BAD = str.maketrans({c: "-" for c in ':\\/?*[]'})


def _sheet_name(name: str, taken: set) -> str:
    """Excel-safe sheet name, unique within `taken` (which is updated).

    Excel caps names at 31 chars and rejects `: \\ / ? * [ ]`; long exam ids
    that collide after truncation get a `~N` suffix.
    """

    base = (str(name or "").translate(_SHEET_NAME_BAD).strip() or "Sheet")[:_SHEET_NAME_MAX]
    candidate = base
    n = 2
    while candidate.lower() in taken:
        suffix = f"~{n}"
        candidate = base[: _SHEET_NAME_MAX - len(suffix)] + suffix
        n += 1
    taken.add(candidate.lower())
    return candidate


def allocation_workbook_bytes(*, run, teachers, settings: DutySchedulingSettings = DutySchedulingSettings()) -> bytes:
    """Build a multi-sheet Excel workbook for an allocation run.

    Includes:
    - Duty roster and unfilled slots
    - Teacher duty load and department summary
    - One sheet per exam (seating plan)
    """

    out = io.BytesIO()

    load_df = teacher_duty_load_df(teachers=teachers, schedule=run.schedule, settings=settings)
    dept_df = department_duty_summary_df(load_df)

    taken: set = set()
    with pd.ExcelWriter(out, engine="openpyxl") as writer:
        duty_roster_df(run.schedule).to_excel(writer, sheet_name=_sheet_name("Duty Roster", taken), index=False)
        unassigned_slots_df(run.schedule).to_excel(writer, sheet_name=_sheet_name("Unfilled Slots", taken), index=False)
        load_df.to_excel(writer, sheet_name=_sheet_name("Teacher Load", taken), index=False)
        dept_df.to_excel(writer, sheet_name=_sheet_name("Department Load", taken), index=False)

        for exam_id in sorted(run.seating_results.keys()):
            result = run.seating_results[exam_id]
            header_rows = [
                ["EXAM ID", exam_id],
                ["STUDENTS", len(result.assignments)],
                ["ROOMS", ", ".join(result.room_ids_used())],
                ["GRID COLUMNS", result.grid_columns],
                ["GENERATED AT", result.generated_at],
            ]
            header_df = pd.DataFrame(header_rows, columns=["Field", "Value"])
            sheet = _sheet_name(f"Seating-{exam_id}", taken)
            header_df.to_excel(writer, sheet_name=sheet, index=False, startrow=0)
            seating_plan_df(result).to_excel(writer, sheet_name=sheet, index=False, startrow=len(header_df) + 2)

        failures = getattr(run.room_usage, "failures", {}) or {}
        if failures:
            fail_df = pd.DataFrame(
                [
                    {
                        "exam_id": exam_id,
                        "error": err.kind.value,
                        "message": err.message,
                        "required": err.required,
                        "available": err.available,
                    }
                    for exam_id, err in sorted(failures.items())
                ]
            )
            fail_df.to_excel(writer, sheet_name=_sheet_name("Seating Failures", taken), index=False)

    return out.getvalue()


def allocation_zip_bytes(
    *,
    run,
    teachers,
    settings: DutySchedulingSettings = DutySchedulingSettings(),
    columns: Optional[int] = None,
) -> bytes:
    """Create a ZIP containing the workbook, CSV tables and per-room seat maps."""

    wb = allocation_workbook_bytes(run=run, teachers=teachers, settings=settings)
    load_df = teacher_duty_load_df(teachers=teachers, schedule=run.schedule, settings=settings)

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as z:
        z.writestr("allocation_reports.xlsx", wb)
        z.writestr("tables/duty_roster.csv", duty_roster_df(run.schedule).to_csv(index=False).encode("utf-8"))
        z.writestr(
            "tables/unfilled_slots.csv",
            unassigned_slots_df(run.schedule).to_csv(index=False).encode("utf-8"),
        )
        z.writestr("tables/teacher_duty_load.csv", load_df.to_csv(index=False).encode("utf-8"))
        z.writestr(
            "tables/department_duty_summary.csv",
            department_duty_summary_df(load_df).to_csv(index=False).encode("utf-8"),
        )

        for exam_id in sorted(run.seating_results.keys()):
            result = run.seating_results[exam_id]
            z.writestr(f"seating/{exam_id}/plan.csv", seating_plan_df(result).to_csv(index=False).encode("utf-8"))
            for room_id in result.room_ids_used():
                grid = room_seating_grid_df(result, room_id, columns=columns)
                z.writestr(f"seating/{exam_id}/rooms/{room_id}.csv", grid.to_csv(index=False).encode("utf-8"))

    return buf.getvalue()


@dataclass(frozen=True)
class SeatMapImageOptions:
    title: Optional[str] = None
    font_size: int = 9
    cell_height: float = 0.4
    cell_width: float = 1.5
    header_color: str = "#dde3ea"
    empty_seat_color: str = "#f4f4f4"
    absent_seat_color: str = "#f8d7da"


def df_to_markdown(df: pd.DataFrame) -> str:
    """Render a DataFrame as a Markdown table with padded columns.

    Padding keeps seat maps readable as plain text in a terminal.
    """

    def esc(value) -> str:
        return str(value).replace("\n", " ").replace("|", "\\|")

    header = [esc(c) for c in df.columns]
    body = [[esc(v) for v in row] for row in df.astype(str).values.tolist()]
    widths = [max([3, len(h)] + [len(r[i]) for r in body]) for i, h in enumerate(header)]

    def line(cells) -> str:
        return "| " + " | ".join(c.ljust(w) for c, w in zip(cells, widths)) + " |"

    lines = [line(header), line(["-" * w for w in widths])]
    lines.extend(line(r) for r in body)
    return "\n".join(lines) + "\n"


def df_to_png_bytes(df: pd.DataFrame, *, options: SeatMapImageOptions = SeatMapImageOptions()) -> bytes:
    """Render a table (usually a room seat grid) as a PNG via matplotlib's table artist.

    Blank cells are shaded as empty seats and cells carrying the absent
    marker are highlighted.
    """

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    nrows, ncols = df.shape
    fig, ax = plt.subplots(
        figsize=(max(4.0, options.cell_width * ncols), max(1.5, options.cell_height * (nrows + 2)))
    )
    ax.axis("off")
    if options.title:
        ax.set_title(options.title, fontsize=options.font_size + 2, pad=10)

    text = df.astype(str).values
    tbl = ax.table(cellText=text, colLabels=list(df.columns), cellLoc="center", loc="center")
    tbl.auto_set_font_size(False)
    tbl.set_fontsize(options.font_size)
    tbl.scale(1.0, 1.5)

    for (r, c), cell in tbl.get_celld().items():
        cell.set_linewidth(0.5)
        if r == 0 or (c == 0 and df.columns[0] == "ROW"):
            cell.set_facecolor(options.header_color)
            cell.set_text_props(weight="bold")
            continue
        value = text[r - 1][c]
        if value == "":
            cell.set_facecolor(options.empty_seat_color)
        elif value.endswith(ABSENT_MARK):
            cell.set_facecolor(options.absent_seat_color)

    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    return buf.getvalue()


def room_seat_map_pngs(result: SeatingResult, *, columns: Optional[int] = None) -> Iterable[tuple[str, bytes]]:
    """Yield (room_id, png_bytes) for every room used by `result`."""

    by_room = result.assignments_by_room()
    for room_id in result.room_ids_used():
        seats = by_room[room_id]
        absent = sum(1 for a in seats if a.absent)
        title = f"{result.exam_id} | Room {seats[0].room_number} | {len(seats) - absent} present, {absent} absent"
        grid = room_seating_grid_df(result, room_id, columns=columns)
        yield room_id, df_to_png_bytes(grid, options=SeatMapImageOptions(title=title))
