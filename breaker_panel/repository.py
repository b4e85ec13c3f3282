# breaker_panel/repository.py
# Query and mutation helpers over the SQLAlchemy models.
# Routers, the executor, the importer and the planner all go through here.
from __future__ import annotations
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from breaker_panel.core.exceptions import (
    ConflictError,
    EntityNotFoundError,
    GeometryError,
    InvalidReferenceError,
)
from breaker_panel.db import Breaker, Circuit, Panel, Room
from breaker_panel.planner.geometry import check_position, occupied_positions, overlapping
from breaker_panel.planner.models import SLOT_ORDER, BreakerSnapshot, PanelSnapshot

logger = logging.getLogger(__name__)

LEVEL_ORDER = ("upper", "main", "basement", "outside")

BREAKER_FIELDS = ("label", "amperage", "critical", "monitor", "confirmed", "breaker_type", "slot_position")
CIRCUIT_FIELDS = ("room_id", "type", "notes", "subpanel_id")


def _commit(session: Session, conflict_message: str) -> None:
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.info("Integrity error: %s", e.orig)
        raise ConflictError(conflict_message) from e


def _get(session: Session, model, entity_id: int, entity: str):
    obj = session.get(model, entity_id)
    if obj is None:
        raise EntityNotFoundError(entity, entity_id)
    return obj


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_slot(breaker_type: Optional[str], slot_position: Optional[str]) -> Tuple[str, str]:
    """Defaults to single/single; a tandem given slot `single` becomes slot `A`."""
    breaker_type = breaker_type or "single"
    slot_position = slot_position or "single"
    if breaker_type == "tandem" and slot_position == "single":
        slot_position = "A"
    return breaker_type, slot_position


def check_geometry(position: int, panel: Panel, breaker_type: str) -> None:
    try:
        check_position(position, panel.size, breaker_type)
    except ValueError as e:
        raise GeometryError(f"Panel '{panel.name}': {e}") from e


def check_overlap(session: Session, panel: Panel, position: int, slot_position: str, breaker_type: str,
                  ignore_id: Optional[int] = None) -> None:
    """Refuse a breaker that would sit on a position another breaker already takes."""
    others = session.query(Breaker).filter(Breaker.panel_id == panel.id).all()
    ignore = () if ignore_id is None else (ignore_id,)
    clashes = overlapping(others, position, slot_position, breaker_type, ignore)
    if clashes:
        other = clashes[0]
        where = f"{other.position}{'' if other.slot_position == 'single' else other.slot_position}"
        raise ConflictError(
            f"Panel '{panel.name}': position {position} is taken by breaker {other.id} ({other.breaker_type} at {where})",
            panel_id=panel.id,
            position=position,
            slot_position=slot_position,
        )


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------
def list_panels(session: Session) -> List[Panel]:
    return session.query(Panel).order_by(Panel.created_at.desc(), Panel.id.desc()).all()


def get_panel(session: Session, panel_id: int) -> Panel:
    return _get(session, Panel, panel_id, "Panel")


def create_panel(session: Session, name: str, size: int, commit: bool = True) -> Panel:
    panel = Panel(name=name.strip(), size=size)
    session.add(panel)
    if not commit:
        session.flush()
        return panel
    _commit(session, "Panel could not be created")
    session.refresh(panel)
    logger.info("Created panel %s '%s' (%d positions)", panel.id, panel.name, panel.size)
    return panel


def update_panel(session: Session, panel_id: int, name: str, size: int) -> Panel:
    panel = get_panel(session, panel_id)
    if size < panel.size:
        taken = occupied_positions(panel.breakers)
        beyond = sorted(p for p in taken if p > size)
        if beyond:
            raise GeometryError(
                f"Cannot shrink panel '{panel.name}' to {size}: positions {beyond} are occupied"
            )
    panel.name = name.strip()
    panel.size = size
    _commit(session, "Panel could not be updated")
    session.refresh(panel)
    return panel


def delete_panel(session: Session, panel_id: int) -> None:
    panel = get_panel(session, panel_id)
    session.delete(panel)
    session.commit()
    logger.info("Deleted panel %s", panel_id)


# ---------------------------------------------------------------------------
# Breakers
# ---------------------------------------------------------------------------
def list_breakers(session: Session, panel_id: int) -> List[Breaker]:
    get_panel(session, panel_id)
    breakers = session.query(Breaker).filter(Breaker.panel_id == panel_id).all()
    return sorted(breakers, key=lambda b: (b.position, SLOT_ORDER.get(b.slot_position, 0)))


def find_breaker_at(session: Session, panel_id: int, position: int, slot_position: str) -> Optional[Breaker]:
    return (
        session.query(Breaker)
        .filter(
            Breaker.panel_id == panel_id,
            Breaker.position == position,
            Breaker.slot_position == slot_position,
        )
        .one_or_none()
    )


def breakers_at_position(session: Session, panel_id: int, position: int) -> List[Breaker]:
    breakers = (
        session.query(Breaker)
        .filter(Breaker.panel_id == panel_id, Breaker.position == position)
        .all()
    )
    return sorted(breakers, key=lambda b: SLOT_ORDER.get(b.slot_position, 0))


def get_breaker(session: Session, breaker_id: int) -> Breaker:
    return _get(session, Breaker, breaker_id, "Breaker")


def create_breaker(
    session: Session,
    panel_id: int,
    position: int,
    slot_position: Optional[str] = None,
    breaker_type: Optional[str] = None,
    label: Optional[str] = None,
    amperage: Optional[int] = None,
    critical: bool = False,
    monitor: bool = False,
    confirmed: bool = False,
    commit: bool = True,
) -> Breaker:
    panel = session.get(Panel, panel_id)
    if panel is None:
        raise InvalidReferenceError(f"Invalid panel_id - panel {panel_id} does not exist")

    breaker_type, slot_position = normalize_slot(breaker_type, slot_position)
    check_geometry(position, panel, breaker_type)
    check_overlap(session, panel, position, slot_position, breaker_type)

    breaker = Breaker(
        panel_id=panel_id,
        position=position,
        slot_position=slot_position,
        breaker_type=breaker_type,
        label=_clean_text(label),
        amperage=amperage or None,
        critical=bool(critical),
        monitor=bool(monitor),
        confirmed=bool(confirmed),
    )
    session.add(breaker)
    if not commit:
        session.flush()
        return breaker
    _commit(session, "A breaker already exists at this position and slot")
    session.refresh(breaker)
    return breaker


def update_breaker(session: Session, breaker_id: int, **fields) -> Breaker:
    """Edit the descriptive fields of a breaker; relocation goes through the executor."""
    breaker = get_breaker(session, breaker_id)
    data = {k: v for k, v in fields.items() if k in BREAKER_FIELDS}

    breaker_type, slot_position = normalize_slot(
        data.pop("breaker_type", None) or breaker.breaker_type,
        data.pop("slot_position", None) or breaker.slot_position,
    )
    if breaker_type != breaker.breaker_type:
        check_geometry(breaker.position, breaker.panel, breaker_type)
    if (breaker_type, slot_position) != (breaker.breaker_type, breaker.slot_position):
        check_overlap(session, breaker.panel, breaker.position, slot_position, breaker_type, ignore_id=breaker.id)

    for key in ("critical", "monitor", "confirmed"):
        if key in data:
            data[key] = bool(data[key])
    if "label" in data:
        data["label"] = _clean_text(data["label"])
    if "amperage" in data:
        data["amperage"] = data["amperage"] or None

    for key, value in data.items():
        setattr(breaker, key, value)
    breaker.breaker_type = breaker_type
    breaker.slot_position = slot_position

    _commit(session, "A breaker already exists at this position and slot")
    session.refresh(breaker)
    return breaker


def delete_breaker(session: Session, breaker_id: int) -> None:
    breaker = get_breaker(session, breaker_id)
    session.delete(breaker)
    session.commit()


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------
def list_rooms(session: Session) -> List[Room]:
    level_rank = case({level: i for i, level in enumerate(LEVEL_ORDER)}, value=Room.level, else_=len(LEVEL_ORDER))
    return session.query(Room).order_by(level_rank, Room.name).all()


def get_room(session: Session, room_id: int) -> Room:
    return _get(session, Room, room_id, "Room")


def find_room_by_name(session: Session, name: str) -> Optional[Room]:
    return session.query(Room).filter(Room.name == name.strip()).one_or_none()


def create_room(session: Session, name: str, level: str, commit: bool = True) -> Room:
    room = Room(name=name.strip(), level=level)
    session.add(room)
    if not commit:
        session.flush()
        return room
    _commit(session, "A room with this name already exists")
    session.refresh(room)
    return room


def update_room(session: Session, room_id: int, name: str, level: str) -> Room:
    room = get_room(session, room_id)
    room.name = name.strip()
    room.level = level
    _commit(session, "A room with this name already exists")
    session.refresh(room)
    return room


def delete_room(session: Session, room_id: int) -> None:
    room = get_room(session, room_id)
    session.delete(room)
    session.commit()


# ---------------------------------------------------------------------------
# Circuits
# ---------------------------------------------------------------------------
def list_circuits(session: Session, breaker_id: Optional[int] = None) -> List[Circuit]:
    query = session.query(Circuit)
    if breaker_id is not None:
        get_breaker(session, breaker_id)
        query = query.filter(Circuit.breaker_id == breaker_id)
    return query.order_by(Circuit.created_at, Circuit.id).all()


def get_circuit(session: Session, circuit_id: int) -> Circuit:
    return _get(session, Circuit, circuit_id, "Circuit")


def _check_circuit_refs(session: Session, room_id: Optional[int], subpanel_id: Optional[int]) -> None:
    if room_id is not None and session.get(Room, room_id) is None:
        raise InvalidReferenceError(f"Invalid room_id - room {room_id} does not exist")
    if subpanel_id is not None and session.get(Panel, subpanel_id) is None:
        raise InvalidReferenceError(f"Invalid subpanel_id - subpanel {subpanel_id} does not exist")


def create_circuit(
    session: Session,
    breaker_id: int,
    room_id: Optional[int] = None,
    type: Optional[str] = None,
    notes: Optional[str] = None,
    subpanel_id: Optional[int] = None,
    commit: bool = True,
) -> Circuit:
    if session.get(Breaker, breaker_id) is None:
        raise InvalidReferenceError(f"Invalid breaker_id - breaker {breaker_id} does not exist")
    _check_circuit_refs(session, room_id, subpanel_id)

    circuit = Circuit(
        breaker_id=breaker_id,
        room_id=room_id,
        type=type,
        notes=_clean_text(notes),
        subpanel_id=subpanel_id,
    )
    session.add(circuit)
    if not commit:
        session.flush()
        return circuit
    _commit(session, "Circuit could not be created")
    session.refresh(circuit)
    return circuit


def update_circuit(session: Session, circuit_id: int, **fields) -> Circuit:
    circuit = get_circuit(session, circuit_id)
    data = {k: fields.get(k) for k in CIRCUIT_FIELDS}
    _check_circuit_refs(session, data["room_id"], data["subpanel_id"])
    data["notes"] = _clean_text(data["notes"])
    for key, value in data.items():
        setattr(circuit, key, value)
    _commit(session, "Circuit could not be updated")
    session.refresh(circuit)
    return circuit


def delete_circuit(session: Session, circuit_id: int) -> None:
    circuit = get_circuit(session, circuit_id)
    session.delete(circuit)
    session.commit()


# ---------------------------------------------------------------------------
# Planner reads
# ---------------------------------------------------------------------------
def _circuit_stats(session: Session, breaker_ids: Iterable[int]) -> Dict[int, Tuple[int, str]]:
    """breaker id -> (circuit count, circuit notes joined by '; ')"""
    ids = list(breaker_ids)
    if not ids:
        return {}
    counts: Dict[int, int] = defaultdict(int)
    notes: Dict[int, List[str]] = defaultdict(list)
    rows = (
        session.query(Circuit.breaker_id, Circuit.notes)
        .filter(Circuit.breaker_id.in_(ids))
        .order_by(Circuit.id)
    )
    for breaker_id, note in rows:
        counts[breaker_id] += 1
        if note:
            notes[breaker_id].append(note)
    return {bid: (counts[bid], "; ".join(notes[bid])) for bid in counts}


def to_snapshot(breaker: Breaker, panel_name: Optional[str] = None,
                stats: Optional[Tuple[int, str]] = None) -> BreakerSnapshot:
    count, descriptions = stats or (0, "")
    return BreakerSnapshot(
        id=breaker.id,
        panel_id=breaker.panel_id,
        position=breaker.position,
        slot_position=breaker.slot_position,
        breaker_type=breaker.breaker_type,
        amperage=breaker.amperage,
        critical=bool(breaker.critical),
        monitor=bool(breaker.monitor),
        confirmed=bool(breaker.confirmed),
        label=breaker.label,
        panel_name=panel_name,
        circuit_count=count,
        circuit_descriptions=descriptions,
    )


def _snapshots(session: Session, breakers: List[Breaker], panel_name: Optional[str]) -> List[BreakerSnapshot]:
    stats = _circuit_stats(session, (b.id for b in breakers))
    snaps = [to_snapshot(b, panel_name, stats.get(b.id)) for b in breakers]
    return sorted(snaps, key=lambda s: s.sort_key)


def get_panel_snapshot(session: Session, panel_id: int) -> Optional[PanelSnapshot]:
    panel = session.get(Panel, panel_id)
    if panel is None:
        return None
    breakers = session.query(Breaker).filter(Breaker.panel_id == panel_id).all()
    return PanelSnapshot(
        id=panel.id,
        name=panel.name,
        size=panel.size,
        breakers=tuple(_snapshots(session, breakers, panel.name)),
    )


def get_critical_breakers(session: Session, source_panel_id: int) -> List[BreakerSnapshot]:
    panel = session.get(Panel, source_panel_id)
    if panel is None:
        return []
    breakers = (
        session.query(Breaker)
        .filter(Breaker.panel_id == source_panel_id, Breaker.critical.is_(True))
        .all()
    )
    return _snapshots(session, breakers, panel.name)


def get_all_slots_at_position(session: Session, panel_id: int, position: int) -> List[BreakerSnapshot]:
    panel = session.get(Panel, panel_id)
    panel_name = panel.name if panel is not None else None
    return _snapshots(session, breakers_at_position(session, panel_id, position), panel_name)


def get_occupied_positions(session: Session, panel_id: int) -> Set[int]:
    breakers = session.query(Breaker).filter(Breaker.panel_id == panel_id).all()
    return occupied_positions(breakers)


def find_critical_source_panel(session: Session, exclude_panel_id: Optional[int] = None) -> Optional[int]:
    """Panel of the first critical breaker (by panel, then position), skipping `exclude_panel_id`."""
    query = session.query(Breaker.panel_id).filter(Breaker.critical.is_(True))
    if exclude_panel_id is not None:
        query = query.filter(Breaker.panel_id != exclude_panel_id)
    row = query.order_by(Breaker.panel_id, Breaker.position).first()
    return row[0] if row else None
