from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from breaker_panel import repository
from breaker_panel.db import get_db
from breaker_panel.schemas.models import CircuitCreate, CircuitOut, CircuitUpdate, Message

router = APIRouter(prefix="/circuits", tags=["circuits"])


@router.get("", response_model=List[CircuitOut])
def list_circuits(db: Session = Depends(get_db)):
    return repository.list_circuits(db)


@router.post("", response_model=CircuitOut, status_code=201)
def create_circuit(payload: CircuitCreate, db: Session = Depends(get_db)):
    return repository.create_circuit(db, **payload.model_dump())


@router.put("/{circuit_id}", response_model=CircuitOut)
def update_circuit(payload: CircuitUpdate, circuit_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.update_circuit(db, circuit_id, **payload.model_dump())


@router.delete("/{circuit_id}", response_model=Message)
def delete_circuit(circuit_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    repository.delete_circuit(db, circuit_id)
    return {"message": "Circuit deleted successfully"}
