from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from breaker_panel.core.settings import settings
from breaker_panel.planner.models import Move, Plan

HEADER_FONT = Font(bold=True)
CRITICAL_FILL = PatternFill("solid", fgColor="FFF2CC")
REVIEW_FILL = PatternFill("solid", fgColor="F8CBAD")

MOVE_COLUMNS = (
    "Batch", "Step", "Type", "Breaker", "Label", "Amps", "Critical",
    "From panel", "From", "To panel", "To", "Side change", "Temp disconnect", "Circuits", "Description",
)


def _sanitize_filename(s: str) -> str:
    return "".join(ch if ch not in '\\/:*?"<>|' else "_" for ch in s).replace(" ", "_")


def _sanitize_sheet_title(s: str) -> str:
    invalid = set('[]:*?/\\')
    s = "".join("_" if ch in invalid else ch for ch in s).strip() or "PLAN"
    return s[:31]


def _header(ws, titles):
    ws.append(list(titles))
    for cell in ws[1]:
        cell.font = HEADER_FONT
    ws.freeze_panes = "A2"


def _autosize(ws, max_width: int = 60):
    for i, column in enumerate(ws.columns, start=1):
        width = max((len(str(c.value)) for c in column if c.value is not None), default=8)
        ws.column_dimensions[get_column_letter(i)].width = min(max_width, width + 2)


def _move_row(batch_number: int, step: int, move: Move):
    b = move.breaker
    return [
        batch_number, step, move.kind, b.id, b.label, b.amperage, "yes" if b.critical else "no",
        move.from_slot.panel_name or move.from_slot.panel_id, move.from_slot.label,
        move.to_slot.panel_name or move.to_slot.panel_id, move.to_slot.label,
        "yes" if move.side_change else "", "yes" if move.temporary_disconnect else "",
        b.circuit_count, move.description,
    ]


def default_plan_filename(plan: Plan) -> str:
    stamp = datetime.now().strftime("%Y%m%d_%H%M")
    return _sanitize_filename(f"critical_move_{plan.source.name}_to_{plan.target.name}_{stamp}.xlsx")


def write_plan_xlsx(plan: Plan, out_path: Optional[str] = None, outputs_dir: Optional[Path] = None) -> Path:
    """
    Write the plan as a workbook with three sheets: summary, moves (one row
    per move, grouped by batch) and batches. Returns the saved path.
    """
    if out_path:
        path = Path(out_path)
    else:
        path = Path(outputs_dir or settings.OUT) / default_plan_filename(plan)
    path.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = _sanitize_sheet_title(f"{plan.target.name} summary")
    ws.append(["Source panel", plan.source.name])
    ws.append(["Target panel", plan.target.name])
    for key, value in plan.summary().items():
        ws.append([key.replace("_", " ").capitalize(), value])
    for row in ws.iter_rows(min_col=1, max_col=1):
        row[0].font = HEADER_FONT
    if plan.warnings:
        ws.append([])
        ws.append(["Warnings"])
        ws.cell(row=ws.max_row, column=1).font = HEADER_FONT
        for w in plan.warnings:
            ws.append([w])
    _autosize(ws, max_width=100)

    moves_ws = wb.create_sheet("Moves")
    _header(moves_ws, MOVE_COLUMNS)
    for batch in plan.batches:
        for step, move in enumerate(batch.moves, start=1):
            moves_ws.append(_move_row(batch.batch_number, step, move))
            fill = REVIEW_FILL if move.degraded else CRITICAL_FILL if move.breaker.critical else None
            if fill is not None:
                for cell in moves_ws[moves_ws.max_row]:
                    cell.fill = fill
    _autosize(moves_ws)

    batches_ws = wb.create_sheet("Batches")
    _header(batches_ws, ("Batch", "Type", "Moves", "Description", "Temp disconnect", "Completion", "Fingerprint"))
    for batch in plan.batches:
        batches_ws.append([
            batch.batch_number, batch.type, len(batch.moves), batch.description,
            "yes" if batch.allows_temporary_disconnect else "no", batch.functional_completion, batch.fingerprint,
        ])
    _autosize(batches_ws)

    wb.save(path)
    return path
