"""
Panel geometry helpers.

Left bus serves odd positions, right bus serves even positions. A double-pole
breaker stays on one side and spans `position` and `position + 2`; the second
row is never stored, it is derived here.
"""
from __future__ import annotations
from typing import Collection, Iterable, List, NamedTuple, Set, Tuple

LEFT = "left"
RIGHT = "right"

DOUBLE_POLE_SPAN = 2


class FreePosition(NamedTuple):
    position: int
    side: str


def side_of(position: int) -> str:
    return LEFT if position % 2 == 1 else RIGHT


def is_side_change(from_position: int, to_position: int) -> bool:
    return side_of(from_position) != side_of(to_position)


def double_pole_positions(position: int) -> Tuple[int, int]:
    return position, position + DOUBLE_POLE_SPAN


def positions_of(position: int, breaker_type: str) -> Tuple[int, ...]:
    """Physical positions taken by a breaker of `breaker_type` stored at `position`."""
    if breaker_type == "double_pole":
        return double_pole_positions(position)
    return (position,)


def check_position(position: int, panel_size: int, breaker_type: str = "single") -> None:
    """
    Precondition check. A position outside 1..size (or a double-pole whose
    lower row falls off the panel) is a caller bug, not a recoverable state.
    """
    if position < 1:
        raise ValueError(f"Position must be positive, got {position}")
    last = positions_of(position, breaker_type)[-1]
    if last > panel_size:
        if breaker_type == "double_pole":
            raise ValueError(
                f"Double-pole breaker at {position} needs position {last}, panel only has {panel_size}"
            )
        raise ValueError(f"Position {position} exceeds panel size {panel_size}")


def occupied_positions(breakers: Iterable) -> Set[int]:
    """Every position a breaker sits on, including the implicit double-pole second row."""
    occupied: Set[int] = set()
    for breaker in breakers:
        occupied.update(positions_of(breaker.position, breaker.breaker_type))
    return occupied


def is_tandem_partner(position: int, slot_position: str, other) -> bool:
    return (
        other.position == position
        and other.slot_position in ("A", "B")
        and slot_position in ("A", "B")
        and other.slot_position != slot_position
    )


def overlapping(breakers: Iterable, position: int, slot_position: str, breaker_type: str,
                ignore_ids: Collection[int] = ()) -> List:
    """
    Breakers that would physically collide with one of `breaker_type` placed at
    `position`/`slot_position`. The other half of the same tandem is no collision.
    """
    needed = set(positions_of(position, breaker_type))
    clashes = []
    for other in breakers:
        if other.id in ignore_ids:
            continue
        if not needed & set(positions_of(other.position, other.breaker_type)):
            continue
        if not is_tandem_partner(position, slot_position, other):
            clashes.append(other)
    return clashes


def free_positions(panel_size: int, breakers: Iterable) -> List[FreePosition]:
    occupied = occupied_positions(breakers)
    return [
        FreePosition(pos, side_of(pos))
        for pos in range(1, panel_size + 1)
        if pos not in occupied
    ]


def capacity_cost(unit) -> int:
    """Physical positions a unit needs: tandem pairs share one, double-pole takes two."""
    if any(b.breaker_type == "double_pole" for b in unit.breakers):
        return DOUBLE_POLE_SPAN
    return 1


def lowest_double_pole_start(free: Iterable[int]) -> int | None:
    """Lowest `p` such that `p` and `p + 2` are both free."""
    free_set = set(free)
    for pos in sorted(free_set):
        if pos + DOUBLE_POLE_SPAN in free_set:
            return pos
    return None
