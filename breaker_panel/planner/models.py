"""
Immutable value types passed between the repository, the planner and the executor.
"""
from __future__ import annotations
import hashlib
import json
from dataclasses import dataclass, field, replace, asdict
from typing import Any, Dict, List, NamedTuple, Optional, Set, Tuple

from breaker_panel.core.exceptions import EntityNotFoundError
from breaker_panel.planner.geometry import free_positions, occupied_positions, side_of

SLOT_ORDER = {"single": 0, "A": 1, "B": 2}

SINGLE_UNIT = "single_unit"
DOUBLE_POLE_UNIT = "double_pole_unit"
TANDEM_UNIT = "tandem_unit"
MIXED_TANDEM_UNIT = "mixed_tandem_unit"

SWAP_MOVE = "swap_move"
CRITICAL_MOVE = "critical_move"

POSITION_SWAPS = "position_swaps"
CRITICAL_MOVES = "critical_moves"


class TandemKey(NamedTuple):
    panel_id: int
    position: int


@dataclass(frozen=True)
class BreakerSnapshot:
    id: int
    panel_id: int
    position: int
    slot_position: str = "single"
    breaker_type: str = "single"
    amperage: Optional[int] = None
    critical: bool = False
    monitor: bool = False
    confirmed: bool = False
    label: Optional[str] = None
    panel_name: Optional[str] = None
    circuit_count: int = 0
    circuit_descriptions: str = ""

    @property
    def tandem_key(self) -> TandemKey:
        return TandemKey(self.panel_id, self.position)

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return self.panel_id, self.position, SLOT_ORDER.get(self.slot_position, 0)

    def relocated(self, position: int, slot_position: str, breaker_type: Optional[str] = None) -> "BreakerSnapshot":
        """Copy of this breaker as it will look after a swap inside the same panel."""
        return replace(
            self,
            position=position,
            slot_position=slot_position,
            breaker_type=breaker_type or self.breaker_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PanelSnapshot:
    id: int
    name: str
    size: int
    breakers: Tuple[BreakerSnapshot, ...] = ()

    @property
    def occupied_positions(self) -> Set[int]:
        return occupied_positions(self.breakers)

    @property
    def available_positions(self) -> int:
        return len(free_positions(self.size, self.breakers))

    def slots_at(self, position: int) -> List[BreakerSnapshot]:
        return sorted(
            (b for b in self.breakers if b.position == position),
            key=lambda b: SLOT_ORDER.get(b.slot_position, 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "breaker_count": len(self.breakers),
            "available_positions": self.available_positions,
        }


@dataclass(frozen=True)
class Slot:
    panel_id: int
    position: int
    slot_position: str = "single"
    panel_name: Optional[str] = None
    # breaker the plan expects to find here before the move runs, None for an empty slot
    occupant_id: Optional[int] = None

    @property
    def label(self) -> str:
        if self.slot_position in ("A", "B"):
            return f"{self.position}{self.slot_position}"
        return str(self.position)

    def same_place(self, other: "Slot") -> bool:
        return (self.panel_id, self.position, self.slot_position) == (
            other.panel_id, other.position, other.slot_position
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "panel_id": self.panel_id,
            "panel_name": self.panel_name,
            "position": self.position,
            "slot_position": self.slot_position,
            "side": side_of(self.position),
            "occupant_id": self.occupant_id,
        }


@dataclass(frozen=True)
class Unit:
    kind: str
    source_position: int
    breakers: Tuple[BreakerSnapshot, ...]
    degraded: bool = False

    @property
    def breaker_ids(self) -> Tuple[int, ...]:
        return tuple(b.id for b in self.breakers)


@dataclass(frozen=True)
class Move:
    kind: str
    reason: str
    breaker: BreakerSnapshot
    from_slot: Slot
    to_slot: Slot
    unit_type: Optional[str] = None
    temporary_disconnect: bool = False
    side_change: bool = False
    description: str = ""
    degraded: bool = False

    @property
    def is_swap(self) -> bool:
        return self.kind == SWAP_MOVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "reason": self.reason,
            "breaker_id": self.breaker.id,
            "breaker": self.breaker.to_dict(),
            "from": self.from_slot.to_dict(),
            "to": self.to_slot.to_dict(),
            "unit_type": self.unit_type,
            "temporary_disconnect": self.temporary_disconnect,
            "side_change": self.side_change,
            "description": self.description,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class Batch:
    batch_number: int
    type: str
    moves: Tuple[Move, ...]
    description: str
    allows_temporary_disconnect: bool
    functional_completion: str

    @property
    def fingerprint(self) -> str:
        """Digest of which breaker goes from where to where; any change to the batch changes it."""
        payload = [
            [m.breaker.id,
             [m.from_slot.panel_id, m.from_slot.position, m.from_slot.slot_position],
             [m.to_slot.panel_id, m.to_slot.position, m.to_slot.slot_position, m.to_slot.occupant_id]]
            for m in self.moves
        ]
        return hashlib.sha256(json.dumps(payload).encode("utf-8")).hexdigest()[:16]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_number": self.batch_number,
            "fingerprint": self.fingerprint,
            "type": self.type,
            "description": self.description,
            "allows_temporary_disconnect": self.allows_temporary_disconnect,
            "functional_completion": self.functional_completion,
            "moves": [m.to_dict() for m in self.moves],
        }


@dataclass(frozen=True)
class Plan:
    source: PanelSnapshot
    target: PanelSnapshot
    phase1_swaps: Tuple[Move, ...]
    phase2_critical_moves: Tuple[Move, ...]
    batches: Tuple[Batch, ...]
    mixed_tandems: int = 0
    pure_units: int = 0
    swaps_performed: int = 0
    required_positions: int = 0
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def moves(self) -> Tuple[Move, ...]:
        return self.phase1_swaps + self.phase2_critical_moves

    def batch(self, batch_number: int) -> Batch:
        for b in self.batches:
            if b.batch_number == batch_number:
                return b
        raise EntityNotFoundError("Batch", batch_number)

    def summary(self) -> Dict[str, Any]:
        return {
            "total_moves": len(self.moves),
            "reorganization_moves": len(self.phase1_swaps),
            "critical_moves": len(self.phase2_critical_moves),
            "mixed_tandems": self.mixed_tandems,
            "pure_units": self.pure_units,
            "swaps_performed": self.swaps_performed,
            "total_batches": len(self.batches),
            "required_positions": self.required_positions,
            "target_available_positions": self.target.available_positions,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_panel": self.source.to_dict(),
            "target_panel": self.target.to_dict(),
            "summary": self.summary(),
            "phases": {
                "phase1_swaps": [m.to_dict() for m in self.phase1_swaps],
                "phase2_critical_moves": [m.to_dict() for m in self.phase2_critical_moves],
            },
            "progressive_batches": [b.to_dict() for b in self.batches],
            "warnings": list(self.warnings),
        }
