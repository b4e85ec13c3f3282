from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from breaker_panel import repository
from breaker_panel.db import get_db
from breaker_panel.schemas.models import Message, RoomIn, RoomOut

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("", response_model=List[RoomOut])
def list_rooms(db: Session = Depends(get_db)):
    """Rooms by level (upper, main, basement, outside), then by name."""
    return repository.list_rooms(db)


@router.post("", response_model=RoomOut, status_code=201)
def create_room(payload: RoomIn, db: Session = Depends(get_db)):
    return repository.create_room(db, payload.name, payload.level)


@router.put("/{room_id}", response_model=RoomOut)
def update_room(payload: RoomIn, room_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return repository.update_room(db, room_id, payload.name, payload.level)


@router.delete("/{room_id}", response_model=Message)
def delete_room(room_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    repository.delete_room(db, room_id)
    return {"message": "Room deleted successfully"}
