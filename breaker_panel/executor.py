"""
Applies planned moves to the database.

Every public call is one transaction: either every breaker of the call ends up
where the plan says, or nothing is written. Before touching a row the executor
checks that the database still looks like the snapshot the plan was built
from; any difference raises ConflictError and the caller has to replan.
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Collection, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from breaker_panel import repository
from breaker_panel.core.exceptions import ConflictError, InvalidReferenceError
from breaker_panel.db import Breaker, Circuit, Panel
from breaker_panel.planner.geometry import check_position, overlapping
from breaker_panel.planner.models import Batch, Move, Slot

logger = logging.getLogger(__name__)

# swapped breakers wait here while their partner moves; never visible outside the transaction
PARKING_OFFSET = 1000


@contextmanager
def _transaction(session: Session):
    try:
        yield
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ConflictError(f"Slot already taken: {e.orig}") from e
    except Exception:
        session.rollback()
        raise


def breaker_type_for_slot(slot_position: str, current_type: str) -> str:
    if slot_position in ("A", "B"):
        return "tandem"
    return "double_pole" if current_type == "double_pole" else "single"


def _conflict(message: str, slot: Slot) -> ConflictError:
    logger.warning("Conflict at panel %s position %s%s: %s",
                   slot.panel_id, slot.position, slot.slot_position, message)
    return ConflictError(message, panel_id=slot.panel_id, position=slot.position,
                         slot_position=slot.slot_position)


def _load_source(session: Session, move: Move) -> Breaker:
    src = move.from_slot
    breaker = session.get(Breaker, move.breaker.id)
    if breaker is None:
        raise _conflict(f"Breaker {move.breaker.id} no longer exists", src)
    if (breaker.panel_id, breaker.position, breaker.slot_position) != (src.panel_id, src.position, src.slot_position):
        raise _conflict(
            f"Breaker {breaker.id} is at panel {breaker.panel_id} position {breaker.position} "
            f"{breaker.slot_position}, plan expected {src.label} of panel {src.panel_id}",
            src,
        )
    return breaker


def _check_destination(session: Session, breaker: Breaker, dest: Slot,
                       expected_occupant: Optional[int], moving_ids: Collection[int]) -> None:
    panel = session.get(Panel, dest.panel_id)
    if panel is None:
        raise _conflict(f"Panel {dest.panel_id} no longer exists", dest)

    new_type = breaker_type_for_slot(dest.slot_position, breaker.breaker_type)
    try:
        check_position(dest.position, panel.size, new_type)
    except ValueError as e:
        raise _conflict(str(e), dest) from e

    occupant = repository.find_breaker_at(session, dest.panel_id, dest.position, dest.slot_position)
    occupant_id = occupant.id if occupant is not None else None
    if occupant_id != expected_occupant:
        raise _conflict(
            f"Slot {dest.label} of panel {dest.panel_id} holds breaker {occupant_id}, "
            f"plan expected {expected_occupant}",
            dest,
        )

    others = session.query(Breaker).filter(Breaker.panel_id == dest.panel_id).all()
    clashes = overlapping(others, dest.position, dest.slot_position, new_type,
                          set(moving_ids) | {expected_occupant})
    if clashes:
        other = clashes[0]
        raise _conflict(
            f"Position {dest.position} of panel {dest.panel_id} overlaps breaker {other.id} "
            f"at {other.position}{'' if other.slot_position == 'single' else other.slot_position}",
            dest,
        )


def _place(session: Session, breaker: Breaker, dest: Slot) -> None:
    breaker.breaker_type = breaker_type_for_slot(dest.slot_position, breaker.breaker_type)
    breaker.panel_id = dest.panel_id
    breaker.position = dest.position
    breaker.slot_position = dest.slot_position
    session.flush()


def _move(session: Session, move: Move) -> None:
    breaker = _load_source(session, move)
    _check_destination(session, breaker, move.to_slot, move.to_slot.occupant_id, {breaker.id})
    _place(session, breaker, move.to_slot)
    logger.info("Moved breaker %s: %s", breaker.id, move.description)


def _is_swap_pair(move_a: Move, move_b: Move) -> bool:
    return move_a.to_slot.same_place(move_b.from_slot) and move_b.to_slot.same_place(move_a.from_slot)


def _swap(session: Session, move_a: Move, move_b: Move) -> None:
    if not _is_swap_pair(move_a, move_b):
        raise ValueError("Moves do not exchange the same two slots")

    a = _load_source(session, move_a)
    b = _load_source(session, move_b)
    moving = {a.id, b.id}
    _check_destination(session, a, move_a.to_slot, b.id, moving)
    _check_destination(session, b, move_b.to_slot, a.id, moving)

    # park `a` so `b` can take its slot without hitting the unique constraint
    a.position = PARKING_OFFSET + a.id
    session.flush()
    _place(session, b, move_b.to_slot)
    _place(session, a, move_a.to_slot)
    logger.info("Swapped breakers %s and %s (%s <-> %s)",
                a.id, b.id, move_a.from_slot.label, move_b.from_slot.label)


def apply_move(session: Session, move: Move) -> Dict[str, bool]:
    with _transaction(session):
        _move(session, move)
    return {"success": True}


def apply_swap(session: Session, move_a: Move, move_b: Move) -> Dict[str, bool]:
    with _transaction(session):
        _swap(session, move_a, move_b)
    return {"success": True}


def apply_batch(session: Session, batch: Batch, expected_fingerprint: Optional[str] = None) -> Dict:
    """
    Apply one batch in order; swap moves are matched pairwise inside the batch.

    With `expected_fingerprint` (the `fingerprint` of the batch a person
    reviewed), a batch that no longer matches it is refused before anything
    is written: the panels changed since the review and the plan must be redone.
    """
    if expected_fingerprint is not None and expected_fingerprint != batch.fingerprint:
        logger.warning("Batch %d changed since review (%s, now %s)",
                       batch.batch_number, expected_fingerprint, batch.fingerprint)
        raise ConflictError(f"Batch {batch.batch_number} no longer matches the reviewed plan; replan and review again")

    moves: List[Move] = list(batch.moves)
    done = set()
    applied = 0
    with _transaction(session):
        for i, move in enumerate(moves):
            if i in done:
                continue
            partner = None
            if move.is_swap:
                partner = next(
                    (j for j in range(i + 1, len(moves)) if j not in done and _is_swap_pair(move, moves[j])),
                    None,
                )
            if partner is None:
                _move(session, move)
                applied += 1
            else:
                _swap(session, move, moves[partner])
                done.add(partner)
                applied += 2
            done.add(i)
    logger.info("Batch %d applied (%d moves): %s", batch.batch_number, applied, batch.functional_completion)
    return {
        "success": True,
        "batch_number": batch.batch_number,
        "moves_applied": applied,
        "functional_completion": batch.functional_completion,
    }


def merge_into_existing(session: Session, source_id: int, target_id: int) -> Dict:
    """Re-parent every circuit of `source_id` onto `target_id` and drop the emptied source breaker."""
    if source_id == target_id:
        raise ValueError("Cannot merge a breaker into itself")
    with _transaction(session):
        source = repository.get_breaker(session, source_id)
        repository.get_breaker(session, target_id)
        circuits = session.query(Circuit).filter(Circuit.breaker_id == source_id).all()
        for circuit in circuits:
            circuit.breaker_id = target_id
        session.flush()
        session.expire(source, ["circuits"])
        session.delete(source)
    logger.info("Merged breaker %s into %s (%d circuits)", source_id, target_id, len(circuits))
    return {"success": True, "circuits_moved": len(circuits)}


def move_breaker(session: Session, breaker_id: int, panel_id: int, position: int,
                 slot_position: str = "single") -> Breaker:
    """Ad-hoc move of one breaker to an empty slot."""
    breaker = repository.get_breaker(session, breaker_id)
    panel = session.get(Panel, panel_id)
    if panel is None:
        raise InvalidReferenceError(f"Invalid panel_id - panel {panel_id} does not exist")
    repository.check_geometry(position, panel, breaker_type_for_slot(slot_position, breaker.breaker_type))

    dest = Slot(panel_id, position, slot_position, panel.name)
    with _transaction(session):
        _check_destination(session, breaker, dest, None, {breaker.id})
        _place(session, breaker, dest)
    session.refresh(breaker)
    logger.info("Breaker %s moved to panel %s position %s%s", breaker_id, panel_id, position,
                "" if slot_position == "single" else slot_position)
    return breaker
