"""
Critical breaker consolidation planner.

Builds the ordered list of swaps and moves that gathers every critical breaker
of a source panel into a target panel:

    1. classify               - group critical breakers into units, find mixed tandems
    2. resolve_mixed_tandems  - pair mixed tandems with spare singles or with each other
    3. allocate               - check target capacity, pick positions, emit moves
    4. batch                  - cut the moves into batches an electrician can run one at a time

Each step takes a `PlanningState` and returns a new one. Nothing here touches
the database; `plan_critical_move` is the only entry point that reads it.
"""
from __future__ import annotations
import logging
import warnings
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from breaker_panel import repository
from breaker_panel.core.exceptions import (
    CapacityError,
    ConfigurationError,
    NoCriticalBreakersError,
    UnresolvedMixedTandemWarning,
)
from breaker_panel.planner.geometry import (
    capacity_cost,
    double_pole_positions,
    free_positions,
    is_side_change,
    lowest_double_pole_start,
)
from breaker_panel.planner.models import (
    CRITICAL_MOVE,
    CRITICAL_MOVES,
    DOUBLE_POLE_UNIT,
    MIXED_TANDEM_UNIT,
    POSITION_SWAPS,
    SINGLE_UNIT,
    SLOT_ORDER,
    SWAP_MOVE,
    TANDEM_UNIT,
    Batch,
    BreakerSnapshot,
    Move,
    PanelSnapshot,
    Plan,
    Slot,
    TandemKey,
    Unit,
)

logger = logging.getLogger(__name__)

SINGLE_FOR_TANDEM = "single_for_tandem_swap"
TANDEM_FOR_TANDEM = "tandem_for_tandem_swap"
CONSOLIDATION = "critical_consolidation"

CONSOLIDATED_TEXT = "All critical breakers consolidated into tandem units"
RELOCATED_TEXT = "All critical breakers relocated to critical panel"


@dataclass(frozen=True)
class MixedTandem:
    key: TandemKey
    critical: BreakerSnapshot
    non_critical: BreakerSnapshot


@dataclass(frozen=True)
class SwapPair:
    """`incoming` (critical) takes the slot of `outgoing` (non-critical) and vice versa."""
    reason: str
    incoming: BreakerSnapshot
    outgoing: BreakerSnapshot


@dataclass(frozen=True)
class PlanningState:
    source: PanelSnapshot
    critical_breakers: Tuple[BreakerSnapshot, ...]
    units: Tuple[Unit, ...] = ()
    mixed_tandems: Tuple[MixedTandem, ...] = ()
    swap_pairs: Tuple[SwapPair, ...] = ()
    notes: Tuple[str, ...] = ()
    target: Optional[PanelSnapshot] = None
    required_positions: int = 0
    phase1_swaps: Tuple[Move, ...] = ()
    phase2_critical_moves: Tuple[Move, ...] = ()
    unit_moves: Tuple[Tuple[Unit, Tuple[Move, ...]], ...] = ()
    batches: Tuple[Batch, ...] = ()

    @property
    def swaps_performed(self) -> int:
        return len(self.swap_pairs)


def _by_slot(*breakers: BreakerSnapshot) -> Tuple[BreakerSnapshot, ...]:
    return tuple(sorted(breakers, key=lambda b: SLOT_ORDER.get(b.slot_position, 0)))


def _describe(breaker: BreakerSnapshot) -> str:
    label = breaker.label or "unlabeled"
    if breaker.amperage:
        return f"#{breaker.id} {label} ({breaker.amperage}A)"
    return f"#{breaker.id} {label}"


# ---------------------------------------------------------------------------
# Step 1
# ---------------------------------------------------------------------------
def classify(source: PanelSnapshot, critical_breakers: Iterable[BreakerSnapshot]) -> PlanningState:
    """Group the critical breakers of `source` into units; set mixed tandems aside."""
    criticals = tuple(sorted(critical_breakers, key=lambda b: b.sort_key))
    if not criticals:
        raise NoCriticalBreakersError(f"No critical breakers in panel '{source.name}' (id {source.id})")

    units: List[Unit] = []
    mixed: List[MixedTandem] = []
    seen = set()

    for breaker in criticals:
        if breaker.breaker_type == "tandem":
            key = breaker.tandem_key
            if key in seen:
                continue
            seen.add(key)
            occupants = [b for b in source.slots_at(key.position) if b.breaker_type == "tandem"] or [breaker]
            critical = [b for b in occupants if b.critical]
            non_critical = [b for b in occupants if not b.critical]
            if critical and non_critical:
                mixed.append(MixedTandem(key, critical[0], non_critical[0]))
            else:
                # a tandem slot holding only one breaker moves like a single
                units.append(Unit(TANDEM_UNIT, key.position, _by_slot(*critical)))
        elif breaker.breaker_type == "double_pole":
            units.append(Unit(DOUBLE_POLE_UNIT, breaker.position, (breaker,)))
        else:
            units.append(Unit(SINGLE_UNIT, breaker.position, (breaker,)))

    logger.debug(
        "Classified %d critical breakers of panel %s: %d units, %d mixed tandems",
        len(criticals), source.id, len(units), len(mixed),
    )
    return PlanningState(
        source=source,
        critical_breakers=criticals,
        units=tuple(units),
        mixed_tandems=tuple(mixed),
    )


# ---------------------------------------------------------------------------
# Step 2
# ---------------------------------------------------------------------------
def resolve_mixed_tandems(state: PlanningState) -> PlanningState:
    """
    Decide how every mixed tandem gets rid of its non-critical half:

      - swap with the lowest unused critical single of the panel,
      - otherwise pair with the next mixed tandem (second's critical half
        trades places with first's non-critical half),
      - otherwise move the critical half alone and flag it for review.
    """
    units = list(state.units)
    spares = [u for u in units if u.kind == SINGLE_UNIT and u.breakers[0].breaker_type == "single"]
    pairs: List[SwapPair] = []
    unresolved: List[MixedTandem] = []

    for mt in state.mixed_tandems:
        if not spares:
            unresolved.append(mt)
            continue
        donor_unit = spares.pop(0)
        donor = donor_unit.breakers[0]
        units.remove(donor_unit)
        pairs.append(SwapPair(SINGLE_FOR_TANDEM, incoming=donor, outgoing=mt.non_critical))
        moved_in = donor.relocated(mt.key.position, mt.non_critical.slot_position, "tandem")
        units.append(Unit(TANDEM_UNIT, mt.key.position, _by_slot(mt.critical, moved_in)))

    while len(unresolved) >= 2:
        first = unresolved.pop(0)
        second = unresolved.pop(0)
        pairs.append(SwapPair(TANDEM_FOR_TANDEM, incoming=second.critical, outgoing=first.non_critical))
        moved_in = second.critical.relocated(first.key.position, first.non_critical.slot_position)
        units.append(Unit(TANDEM_UNIT, first.key.position, _by_slot(first.critical, moved_in)))

    notes = list(state.notes)
    for mt in unresolved:
        message = (
            f"Mixed tandem at position {mt.key.position}: critical breaker {_describe(mt.critical)} "
            f"moves alone, non-critical breaker {_describe(mt.non_critical)} stays in place. Review manually."
        )
        logger.warning(message)
        warnings.warn(message, UnresolvedMixedTandemWarning, stacklevel=2)
        notes.append(message)
        units.append(Unit(MIXED_TANDEM_UNIT, mt.key.position, (mt.critical,), degraded=True))

    units.sort(key=lambda u: u.source_position)
    return replace(state, units=tuple(units), swap_pairs=tuple(pairs), notes=tuple(notes))


# ---------------------------------------------------------------------------
# Step 3
# ---------------------------------------------------------------------------
def _assign_positions(units: Sequence[Unit], target: PanelSnapshot) -> Dict[int, int]:
    free = [fp.position for fp in free_positions(target.size, target.breakers)]
    required = sum(capacity_cost(u) for u in units)
    if required > len(free):
        raise CapacityError(
            f"Panel '{target.name}' has {len(free)} free positions, {required} required",
            required=required,
            available=len(free),
        )

    remaining = set(free)
    assignment: Dict[int, int] = {}
    # double-pole units first: they need two positions on the same side
    order = sorted(range(len(units)), key=lambda i: (capacity_cost(units[i]) != 2, i))
    for i in order:
        unit = units[i]
        if capacity_cost(unit) == 2:
            start = lowest_double_pole_start(remaining)
            if start is None:
                raise CapacityError(
                    f"Panel '{target.name}' has no free position pair (p, p+2) "
                    f"for the double-pole breaker at {unit.source_position}",
                    required=required,
                    available=len(free),
                )
            remaining.difference_update(double_pole_positions(start))
        else:
            start = min(remaining)
            remaining.discard(start)
        assignment[i] = start
    return assignment


def _swap_moves(source: PanelSnapshot, pair: SwapPair) -> Tuple[Move, Move]:
    inc, out = pair.incoming, pair.outgoing
    inc_slot = Slot(source.id, inc.position, inc.slot_position, source.name, occupant_id=inc.id)
    out_slot = Slot(source.id, out.position, out.slot_position, source.name, occupant_id=out.id)
    side_change = is_side_change(inc.position, out.position)
    return (
        Move(
            kind=SWAP_MOVE,
            reason=pair.reason,
            breaker=inc,
            from_slot=inc_slot,
            to_slot=out_slot,
            temporary_disconnect=True,
            side_change=side_change,
            description=f"Critical {_describe(inc)}: {inc_slot.label} -> {out_slot.label} (tandem half)",
        ),
        Move(
            kind=SWAP_MOVE,
            reason=pair.reason,
            breaker=out,
            from_slot=out_slot,
            to_slot=inc_slot,
            temporary_disconnect=True,
            side_change=side_change,
            description=f"Non-critical {_describe(out)}: {out_slot.label} -> {inc_slot.label}",
        ),
    )


def allocate(state: PlanningState, target: Optional[PanelSnapshot]) -> PlanningState:
    """Check capacity, choose target positions and build every move of the plan."""
    if target is None:
        raise ConfigurationError("Target panel not found")

    units = state.units
    assignment = _assign_positions(units, target)
    required = sum(capacity_cost(u) for u in units)

    source = state.source
    phase1: List[Move] = []
    for pair in state.swap_pairs:
        phase1.extend(_swap_moves(source, pair))

    unit_moves = []
    for i, unit in enumerate(units):
        position = assignment[i]
        slots = ("single",) if len(unit.breakers) == 1 else ("A", "B")
        moves = []
        for breaker, slot_position in zip(unit.breakers, slots):
            dest = Slot(target.id, position, slot_position, target.name)
            moves.append(Move(
                kind=CRITICAL_MOVE,
                reason=CONSOLIDATION,
                breaker=breaker,
                from_slot=Slot(source.id, breaker.position, breaker.slot_position, source.name,
                               occupant_id=breaker.id),
                to_slot=dest,
                unit_type=unit.kind,
                side_change=is_side_change(breaker.position, position),
                description=f"{_describe(breaker)}: {source.name} {breaker.position}"
                            f"{'' if breaker.slot_position == 'single' else breaker.slot_position}"
                            f" -> {target.name} {dest.label}",
                degraded=unit.degraded,
            ))
        unit_moves.append((unit, tuple(moves)))

    phase2 = tuple(m for _, moves in unit_moves for m in moves)
    logger.info(
        "Allocated %d units (%d positions) in panel %s, %d free",
        len(units), required, target.id, target.available_positions,
    )
    return replace(
        state,
        target=target,
        required_positions=required,
        phase1_swaps=tuple(phase1),
        phase2_critical_moves=phase2,
        unit_moves=tuple(unit_moves),
    )


# ---------------------------------------------------------------------------
# Step 4
# ---------------------------------------------------------------------------
def batch(state: PlanningState) -> PlanningState:
    batches: List[Batch] = []

    reorganization = []
    single_swaps = tuple(m for m in state.phase1_swaps if m.reason == SINGLE_FOR_TANDEM)
    tandem_swaps = tuple(m for m in state.phase1_swaps if m.reason == TANDEM_FOR_TANDEM)
    if single_swaps:
        reorganization.append((single_swaps, "Swap critical singles into mixed tandems",
                               "Critical singles paired with mixed tandems"))
    if tandem_swaps:
        reorganization.append((tandem_swaps, "Exchange halves between mixed tandems",
                               "Mixed tandems split into critical and non-critical tandems"))

    for i, (moves, description, partial) in enumerate(reorganization):
        last = i == len(reorganization) - 1
        batches.append(Batch(
            batch_number=len(batches) + 1,
            type=POSITION_SWAPS,
            moves=moves,
            description=f"{description} ({len(moves)} moves)",
            allows_temporary_disconnect=True,
            functional_completion=CONSOLIDATED_TEXT if last else partial,
        ))

    for i, (unit, moves) in enumerate(state.unit_moves):
        last = i == len(state.unit_moves) - 1
        dest = moves[0].to_slot.position
        what = "Tandem pair" if len(moves) > 1 else "Breaker"
        batches.append(Batch(
            batch_number=len(batches) + 1,
            type=CRITICAL_MOVES,
            moves=moves,
            description=f"{what} from position {unit.source_position} to {state.target.name} position {dest}",
            allows_temporary_disconnect=False,
            functional_completion=RELOCATED_TEXT if last else f"Breaker from position {unit.source_position} relocated",
        ))

    return replace(state, batches=tuple(batches))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def build_plan(
    source: Optional[PanelSnapshot],
    target: Optional[PanelSnapshot],
    critical_breakers: Optional[Iterable[BreakerSnapshot]] = None,
) -> Plan:
    """Pure planner: same snapshots in, same plan out."""
    if source is None:
        raise ConfigurationError("Source panel not found")
    if target is None:
        raise ConfigurationError("Target panel not found")
    if source.id == target.id:
        raise ConfigurationError(f"Target panel {target.id} is the source panel")

    if critical_breakers is None:
        critical_breakers = [b for b in source.breakers if b.critical]

    state = classify(source, critical_breakers)
    state = resolve_mixed_tandems(state)
    state = allocate(state, target)
    state = batch(state)

    return Plan(
        source=source,
        target=target,
        phase1_swaps=state.phase1_swaps,
        phase2_critical_moves=state.phase2_critical_moves,
        batches=state.batches,
        mixed_tandems=len(state.mixed_tandems),
        pure_units=len(state.units),
        swaps_performed=state.swaps_performed,
        required_positions=state.required_positions,
        warnings=state.notes,
    )


def plan_critical_move(session, target_panel_id: int, source_panel_id: Optional[int] = None) -> Plan:
    """Read both panels and plan the consolidation of the source's critical breakers."""
    if source_panel_id is None:
        source_panel_id = repository.find_critical_source_panel(session, exclude_panel_id=target_panel_id)
        if source_panel_id is None:
            raise NoCriticalBreakersError("No critical breakers outside the target panel")

    source = repository.get_panel_snapshot(session, source_panel_id)
    target = repository.get_panel_snapshot(session, target_panel_id)
    if source is None:
        raise ConfigurationError(f"Source panel {source_panel_id} not found")
    if target is None:
        raise ConfigurationError(f"Target panel {target_panel_id} not found")

    criticals = repository.get_critical_breakers(session, source.id)
    plan = build_plan(source, target, criticals)
    logger.info(
        "Plan %s -> %s: %d moves in %d batches, %d warnings",
        source.id, target.id, len(plan.moves), len(plan.batches), len(plan.warnings),
    )
    return plan
