from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse, PlainTextResponse
from sqlalchemy.orm import Session

from breaker_panel import executor
from breaker_panel.core.exceptions import PlannerError
from breaker_panel.db import get_db
from breaker_panel.io.plan_excel import write_plan_xlsx
from breaker_panel.planner.critical_move import plan_critical_move
from breaker_panel.planner.report import render_plan
from breaker_panel.schemas.plans import ApplyBatchRequest, ApplyBatchResult, PlanRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plans", tags=["plans"])


@router.post("/critical-move")
def critical_move_plan(payload: PlanRequest, db: Session = Depends(get_db)):
    """
    Plan the relocation of every critical breaker of the source panel into the
    target panel. Read-only: nothing is written until a batch is applied.
    """
    plan = plan_critical_move(db, payload.target_panel_id, payload.source_panel_id)
    return plan.to_dict()


@router.get("/critical-move/report", response_class=PlainTextResponse)
def critical_move_report(
    target_panel_id: int = Query(..., gt=0),
    source_panel_id: Optional[int] = Query(None, gt=0),
    db: Session = Depends(get_db),
):
    plan = plan_critical_move(db, target_panel_id, source_panel_id)
    return PlainTextResponse(render_plan(plan))


@router.get("/critical-move/xlsx")
def critical_move_xlsx(
    target_panel_id: int = Query(..., gt=0),
    source_panel_id: Optional[int] = Query(None, gt=0),
    db: Session = Depends(get_db),
):
    plan = plan_critical_move(db, target_panel_id, source_panel_id)
    path = write_plan_xlsx(plan)
    logger.info("Plan workbook written to %s", path)
    return FileResponse(
        path,
        filename=path.name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


@router.post("/critical-move/apply-batch", response_model=ApplyBatchResult)
def apply_batch(payload: ApplyBatchRequest, db: Session = Depends(get_db)):
    """
    Replan from the current database state and apply batch `batch_number` of
    that fresh plan, provided it still matches the reviewed batch `fingerprint`.
    The response carries the plan of whatever work remains.
    """
    plan = plan_critical_move(db, payload.target_panel_id, payload.source_panel_id)
    batch = plan.batch(payload.batch_number)
    result = executor.apply_batch(db, batch, expected_fingerprint=payload.fingerprint)

    source_id = payload.source_panel_id or plan.source.id
    try:
        remaining = plan_critical_move(db, payload.target_panel_id, source_id)
    except PlannerError as e:
        logger.info("Nothing left to plan after batch %d: %s", batch.batch_number, e)
        remaining = None

    return {
        **result,
        "remaining_batches": len(remaining.batches) if remaining else 0,
        "plan": remaining.to_dict() if remaining else None,
    }
