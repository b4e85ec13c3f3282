from __future__ import annotations
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from breaker_panel import repository
from breaker_panel.db import get_db
from breaker_panel.schemas.models import BreakerOut, Message, PanelIn, PanelOut

router = APIRouter(prefix="/panels", tags=["panels"])


@router.get("", response_model=List[PanelOut])
def list_panels(db: Session = Depends(get_db)):
    return repository.list_panels(db)


@router.get("/{panel_id}", response_model=PanelOut)
def get_panel(panel_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.get_panel(db, panel_id)


@router.post("", response_model=PanelOut, status_code=201)
def create_panel(payload: PanelIn, db: Session = Depends(get_db)):
    return repository.create_panel(db, payload.name, payload.size)


@router.put("/{panel_id}", response_model=PanelOut)
def update_panel(payload: PanelIn, panel_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.update_panel(db, panel_id, payload.name, payload.size)


@router.delete("/{panel_id}", response_model=Message)
def delete_panel(panel_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    repository.delete_panel(db, panel_id)
    return {"message": "Panel deleted successfully"}


@router.get("/{panel_id}/breakers", response_model=List[BreakerOut])
def list_panel_breakers(panel_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.list_breakers(db, panel_id)


@router.get("/{panel_id}/breakers/position/{position}",
            response_model=Union[List[BreakerOut], Optional[BreakerOut]])
def breakers_at_position(
    panel_id: int = Path(..., gt=0),
    position: int = Path(..., gt=0),
    slot_position: Literal["single", "A", "B", "both"] = Query("single"),
    db: Session = Depends(get_db),
):
    """
    One slot of a panel position. `slot_position=both` returns every breaker at
    the position (both halves of a tandem); otherwise the breaker in that slot or null.
    """
    if slot_position == "both":
        return repository.breakers_at_position(db, panel_id, position)
    return repository.find_breaker_at(db, panel_id, position, slot_position)
