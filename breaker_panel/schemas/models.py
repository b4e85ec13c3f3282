from __future__ import annotations
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SlotPosition = Literal["single", "A", "B"]
BreakerType = Literal["single", "double_pole", "tandem"]
CircuitType = Literal["outlet", "lighting", "heating", "appliance", "subpanel"]
RoomLevel = Literal["basement", "main", "upper", "outside"]


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------
class PanelIn(BaseModel):
    model_config = {"str_strip_whitespace": True}

    name: str = Field(..., min_length=1, max_length=100)
    size: int = Field(..., ge=12, le=42, description="Number of breaker positions")


class PanelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    size: int
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Breakers
# ---------------------------------------------------------------------------
class BreakerFields(BaseModel):
    label: Optional[str] = Field(default=None, max_length=200)
    amperage: Optional[int] = Field(default=None, ge=1, le=200)
    critical: bool = False
    monitor: bool = False
    confirmed: bool = False
    breaker_type: BreakerType = "single"
    slot_position: SlotPosition = "single"

    @field_validator("label", mode="before")
    @classmethod
    def _clean_label(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def _tandem_slot(self):
        # a tandem always sits in half A or B
        if self.breaker_type == "tandem" and self.slot_position == "single":
            self.slot_position = "A"
        return self


class BreakerCreate(BreakerFields):
    panel_id: int = Field(..., gt=0)
    position: int = Field(..., gt=0)


class BreakerUpdate(BreakerFields):
    pass


class BreakerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    panel_id: int
    position: int
    slot_position: SlotPosition
    breaker_type: BreakerType
    label: Optional[str] = None
    amperage: Optional[int] = None
    critical: bool
    monitor: bool
    confirmed: bool
    created_at: Optional[datetime] = None


class BreakerMoveIn(BaseModel):
    """
    Body of POST /breakers/move. Accepts the camelCase keys the browser client
    sends ({sourceBreakerId, destinationPanelId, destinationPosition,
    destinationSlotPosition}) as well as the snake_case field names.
    """
    breaker_id: int = Field(..., gt=0, alias="sourceBreakerId")
    panel_id: int = Field(..., gt=0, alias="destinationPanelId")
    position: int = Field(..., gt=0, alias="destinationPosition")
    slot_position: SlotPosition = Field(default="single", alias="destinationSlotPosition")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------
class RoomIn(BaseModel):
    model_config = {"str_strip_whitespace": True}

    name: str = Field(..., min_length=1, max_length=100)
    level: RoomLevel


class RoomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    level: RoomLevel
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Circuits
# ---------------------------------------------------------------------------
class CircuitFields(BaseModel):
    room_id: Optional[int] = Field(default=None, gt=0)
    type: Optional[CircuitType] = None
    notes: Optional[str] = None
    subpanel_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("notes", mode="before")
    @classmethod
    def _clean_notes(cls, v):
        return _blank_to_none(v)


class CircuitCreate(CircuitFields):
    breaker_id: int = Field(..., gt=0)


class CircuitUpdate(CircuitFields):
    pass


class CircuitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    breaker_id: int
    room_id: Optional[int] = None
    type: Optional[CircuitType] = None
    notes: Optional[str] = None
    subpanel_id: Optional[int] = None
    room_name: Optional[str] = None
    room_level: Optional[RoomLevel] = None
    created_at: Optional[datetime] = None


class Message(BaseModel):
    message: str
