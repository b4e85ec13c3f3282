from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from breaker_panel import executor, repository
from breaker_panel.db import get_db
from breaker_panel.schemas.models import (
    BreakerCreate,
    BreakerMoveIn,
    BreakerOut,
    BreakerUpdate,
    CircuitOut,
    Message,
)

router = APIRouter(prefix="/breakers", tags=["breakers"])


@router.post("", response_model=BreakerOut, status_code=201)
def create_breaker(payload: BreakerCreate, db: Session = Depends(get_db)):
    return repository.create_breaker(db, **payload.model_dump())


@router.post("/move", response_model=BreakerOut)
def move_breaker(payload: BreakerMoveIn, db: Session = Depends(get_db)):
    """Move one breaker (and its circuits) to an empty slot, in the same or another panel."""
    return executor.move_breaker(
        db,
        breaker_id=payload.breaker_id,
        panel_id=payload.panel_id,
        position=payload.position,
        slot_position=payload.slot_position,
    )


@router.get("/{breaker_id}", response_model=BreakerOut)
def get_breaker(breaker_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.get_breaker(db, breaker_id)


@router.put("/{breaker_id}", response_model=BreakerOut)
def update_breaker(payload: BreakerUpdate, breaker_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.update_breaker(db, breaker_id, **payload.model_dump())


@router.delete("/{breaker_id}", response_model=Message)
def delete_breaker(breaker_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    repository.delete_breaker(db, breaker_id)
    return {"message": "Breaker deleted successfully"}


@router.get("/{breaker_id}/circuits", response_model=List[CircuitOut])
def list_breaker_circuits(breaker_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.list_circuits(db, breaker_id=breaker_id)
