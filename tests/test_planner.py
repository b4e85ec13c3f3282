"""
Critical consolidation planner on in-memory panel snapshots (no database).
"""

import pytest

from breaker_panel.core.exceptions import (
    CapacityError,
    ConfigurationError,
    NoCriticalBreakersError,
    PlannerError,
    UnresolvedMixedTandemWarning,
)
from breaker_panel.planner.critical_move import (
    CONSOLIDATED_TEXT,
    RELOCATED_TEXT,
    SINGLE_FOR_TANDEM,
    TANDEM_FOR_TANDEM,
    build_plan,
    classify,
    resolve_mixed_tandems,
)
from breaker_panel.planner.models import (
    CRITICAL_MOVES,
    DOUBLE_POLE_UNIT,
    MIXED_TANDEM_UNIT,
    POSITION_SWAPS,
    SINGLE_UNIT,
    TANDEM_UNIT,
    BreakerSnapshot,
    PanelSnapshot,
)

SOURCE_ID = 1
TARGET_ID = 2


def make_breaker(id, where, critical=False, amperage=15, panel_id=SOURCE_ID):
    """`where` is '5' (single), '5A'/'5B' (tandem half) or '5-7' (double pole)."""
    if "-" in where:
        position, slot, kind = int(where.split("-")[0]), "single", "double_pole"
    elif where[-1] in "AB":
        position, slot, kind = int(where[:-1]), where[-1], "tandem"
    else:
        position, slot, kind = int(where), "single", "single"
    return BreakerSnapshot(
        id=id, panel_id=panel_id, position=position, slot_position=slot, breaker_type=kind,
        amperage=amperage, critical=critical, label=f"breaker {id}",
    )


def make_source(*breakers, size=42):
    return PanelSnapshot(id=SOURCE_ID, name="Main", size=size, breakers=tuple(breakers))


def make_target(*breakers, size=12):
    return PanelSnapshot(id=TARGET_ID, name="Critical", size=size, breakers=tuple(breakers))


def landing(move):
    return move.to_slot.panel_id, move.to_slot.label


class TestMixedTandemWithSingle:
    """Mixed tandem at 5 (5A critical, 5B not) plus a critical single at 10."""

    @pytest.fixture()
    def plan(self):
        source = make_source(
            make_breaker(1, "5A", critical=True),
            make_breaker(2, "5B"),
            make_breaker(3, "10", critical=True),
        )
        return build_plan(source, make_target())

    def test_single_swaps_into_the_tandem(self, plan):
        assert plan.swaps_performed == 1
        assert len(plan.phase1_swaps) == 2
        incoming, outgoing = plan.phase1_swaps
        assert incoming.reason == SINGLE_FOR_TANDEM
        assert (incoming.breaker.id, incoming.from_slot.label, incoming.to_slot.label) == (3, "10", "5B")
        assert (outgoing.breaker.id, outgoing.from_slot.label, outgoing.to_slot.label) == (2, "5B", "10")
        assert incoming.to_slot.occupant_id == 2
        assert incoming.side_change and outgoing.side_change
        assert incoming.temporary_disconnect

    def test_pure_tandem_lands_as_one_unit(self, plan):
        assert [m.breaker.id for m in plan.phase2_critical_moves] == [1, 3]
        assert [landing(m) for m in plan.phase2_critical_moves] == [(TARGET_ID, "1A"), (TARGET_ID, "1B")]
        # breaker 3 leaves from where the swap put it
        assert plan.phase2_critical_moves[1].from_slot.label == "5B"
        assert all(m.unit_type == TANDEM_UNIT for m in plan.phase2_critical_moves)
        assert plan.required_positions == 1

    def test_summary(self, plan):
        assert plan.summary() == {
            "total_moves": 4,
            "reorganization_moves": 2,
            "critical_moves": 2,
            "mixed_tandems": 1,
            "pure_units": 1,
            "swaps_performed": 1,
            "total_batches": 2,
            "required_positions": 1,
            "target_available_positions": 12,
        }
        assert plan.warnings == ()

    def test_batches(self, plan):
        first, second = plan.batches
        assert (first.batch_number, first.type) == (1, POSITION_SWAPS)
        assert first.allows_temporary_disconnect
        assert first.functional_completion == CONSOLIDATED_TEXT
        assert (second.batch_number, second.type) == (2, CRITICAL_MOVES)
        assert not second.allows_temporary_disconnect
        assert second.functional_completion == RELOCATED_TEXT
        assert len(second.moves) == 2


def test_two_mixed_tandems_exchange_halves():
    """Second tandem's critical half trades places with the first tandem's non-critical half."""
    source = make_source(
        make_breaker(1, "3A", critical=True),
        make_breaker(2, "3B"),
        make_breaker(3, "7A", critical=True),
        make_breaker(4, "7B"),
    )
    plan = build_plan(source, make_target())

    # one exchange, two moves: each breaker is relocated once. Crossing both
    # halves of both tandems (four moves) would leave 3 and 7 mixed again.
    assert plan.swaps_performed == 1
    assert plan.mixed_tandems == 2
    assert plan.to_dict()["summary"]["reorganization_moves"] == 2
    incoming, outgoing = plan.phase1_swaps
    assert incoming.reason == TANDEM_FOR_TANDEM
    assert (incoming.breaker.id, incoming.from_slot.label, incoming.to_slot.label) == (3, "7A", "3B")
    assert (outgoing.breaker.id, outgoing.from_slot.label, outgoing.to_slot.label) == (2, "3B", "7A")
    assert not incoming.side_change

    assert [(m.breaker.id, m.from_slot.label) for m in plan.phase2_critical_moves] == [(1, "3A"), (3, "3B")]
    assert [landing(m) for m in plan.phase2_critical_moves] == [(TARGET_ID, "1A"), (TARGET_ID, "1B")]
    assert len(plan.batches) == 2
    assert plan.batches[0].functional_completion == CONSOLIDATED_TEXT


def test_single_swaps_come_before_tandem_exchanges():
    source = make_source(
        make_breaker(1, "3A", critical=True),
        make_breaker(2, "3B"),
        make_breaker(3, "7A", critical=True),
        make_breaker(4, "7B"),
        make_breaker(5, "9A", critical=True),
        make_breaker(6, "9B"),
        make_breaker(7, "20", critical=True),
    )
    plan = build_plan(source, make_target())

    assert plan.swaps_performed == 2
    assert [b.type for b in plan.batches[:2]] == [POSITION_SWAPS, POSITION_SWAPS]
    assert {m.reason for m in plan.batches[0].moves} == {SINGLE_FOR_TANDEM}
    assert {m.reason for m in plan.batches[1].moves} == {TANDEM_FOR_TANDEM}
    assert plan.batches[0].functional_completion != CONSOLIDATED_TEXT
    assert plan.batches[1].functional_completion == CONSOLIDATED_TEXT
    # single 20 fills 3B, 9A critical fills 7B
    assert (plan.phase1_swaps[0].breaker.id, plan.phase1_swaps[0].to_slot.label) == (7, "3B")
    assert (plan.phase1_swaps[2].breaker.id, plan.phase1_swaps[2].to_slot.label) == (5, "7B")


def test_unpaired_mixed_tandem_moves_alone_and_warns():
    source = make_source(
        make_breaker(1, "4A", critical=True),
        make_breaker(2, "4B"),
    )
    with pytest.warns(UnresolvedMixedTandemWarning):
        plan = build_plan(source, make_target())

    assert plan.phase1_swaps == ()
    (move,) = plan.phase2_critical_moves
    assert move.breaker.id == 1
    assert move.unit_type == MIXED_TANDEM_UNIT
    assert move.degraded
    assert landing(move) == (TARGET_ID, "1")
    assert move.to_slot.slot_position == "single"
    assert len(plan.warnings) == 1
    assert "position 4" in plan.warnings[0]
    assert plan.summary()["reorganization_moves"] == 0


def test_pure_critical_tandem_moves_as_a_pair():
    source = make_source(
        make_breaker(1, "6A", critical=True),
        make_breaker(2, "6B", critical=True),
    )
    plan = build_plan(source, make_target())
    assert plan.mixed_tandems == 0
    assert [landing(m) for m in plan.phase2_critical_moves] == [(TARGET_ID, "1A"), (TARGET_ID, "1B")]
    assert len(plan.batches) == 1
    assert plan.batches[0].description.startswith("Tandem pair from position 6")


def test_double_pole_gets_two_same_side_positions_first():
    source = make_source(
        make_breaker(1, "2", critical=True),
        make_breaker(2, "5-7", critical=True, amperage=30),
    )
    target = make_target(make_breaker(10, "1", panel_id=TARGET_ID))
    plan = build_plan(source, target)

    by_id = {m.breaker.id: m for m in plan.phase2_critical_moves}
    assert by_id[2].unit_type == DOUBLE_POLE_UNIT
    assert by_id[2].to_slot.position == 2
    assert by_id[1].unit_type == SINGLE_UNIT
    assert by_id[1].to_slot.position == 3
    assert plan.required_positions == 3
    # moves follow source position order
    assert [m.breaker.id for m in plan.phase2_critical_moves] == [1, 2]


def test_each_unit_is_its_own_batch():
    source = make_source(
        make_breaker(1, "1", critical=True),
        make_breaker(2, "3", critical=True),
        make_breaker(3, "8", critical=True),
    )
    plan = build_plan(source, make_target())

    assert [b.batch_number for b in plan.batches] == [1, 2, 3]
    assert [b.functional_completion for b in plan.batches] == [
        "Breaker from position 1 relocated",
        "Breaker from position 3 relocated",
        RELOCATED_TEXT,
    ]
    assert [landing(m) for m in plan.phase2_critical_moves] == [
        (TARGET_ID, "1"), (TARGET_ID, "2"), (TARGET_ID, "3"),
    ]
    # batches cover every move exactly once, in order
    assert tuple(m for b in plan.batches for m in b.moves) == plan.moves
    assert plan.moves[1].side_change


def test_target_occupied_positions_are_skipped():
    source = make_source(make_breaker(1, "1", critical=True))
    target = make_target(
        make_breaker(10, "1", panel_id=TARGET_ID),
        make_breaker(11, "2A", panel_id=TARGET_ID),
    )
    plan = build_plan(source, target)
    assert landing(plan.phase2_critical_moves[0]) == (TARGET_ID, "3")


class TestPlannerRefusals:
    """Refusals happen before any move is built."""

    def test_capacity(self):
        source = make_source(*(make_breaker(i, str(i), critical=True) for i in range(1, 5)))
        target = make_target(*(make_breaker(100 + i, str(i), panel_id=TARGET_ID) for i in range(1, 10)))
        with pytest.raises(CapacityError) as exc:
            build_plan(source, target)
        assert exc.value.required == 4
        assert exc.value.available == 3

    def test_double_pole_needs_a_same_side_pair(self):
        source = make_source(make_breaker(1, "5-7", critical=True))
        # free: 11 and 12 only, no (p, p+2) pair
        target = make_target(*(make_breaker(100 + i, str(i), panel_id=TARGET_ID) for i in range(1, 11)))
        with pytest.raises(CapacityError):
            build_plan(source, target)

    def test_no_critical_breakers(self):
        source = make_source(make_breaker(1, "1"), make_breaker(2, "2"))
        with pytest.raises(NoCriticalBreakersError):
            build_plan(source, make_target())

    def test_same_panel(self):
        source = make_source(make_breaker(1, "1", critical=True))
        with pytest.raises(ConfigurationError):
            build_plan(source, source)

    def test_missing_target(self):
        source = make_source(make_breaker(1, "1", critical=True))
        with pytest.raises(PlannerError):
            build_plan(source, None)


def test_planning_is_deterministic():
    def snapshot():
        return make_source(
            make_breaker(1, "5A", critical=True),
            make_breaker(2, "5B"),
            make_breaker(3, "10", critical=True),
            make_breaker(4, "13-15", critical=True),
        )

    first = build_plan(snapshot(), make_target())
    second = build_plan(snapshot(), make_target())
    assert first.to_dict() == second.to_dict()


def test_resolution_steps_are_pure():
    source = make_source(
        make_breaker(1, "5A", critical=True),
        make_breaker(2, "5B"),
        make_breaker(3, "10", critical=True),
    )
    state = classify(source, [b for b in source.breakers if b.critical])
    assert len(state.mixed_tandems) == 1
    assert [u.kind for u in state.units] == [SINGLE_UNIT]

    resolved = resolve_mixed_tandems(state)
    assert state.swap_pairs == ()
    assert resolved.swaps_performed == 1
    (unit,) = resolved.units
    assert unit.kind == TANDEM_UNIT
    assert unit.breaker_ids == (1, 3)
    assert unit.breakers[1].breaker_type == "tandem"


def test_plan_dict_shape():
    source = make_source(make_breaker(1, "2", critical=True))
    data = build_plan(source, make_target()).to_dict()
    assert set(data) == {"source_panel", "target_panel", "summary", "phases", "progressive_batches", "warnings"}
    move = data["progressive_batches"][0]["moves"][0]
    assert move["breaker_id"] == 1
    assert move["from"]["side"] == "right"
    assert move["to"] == {
        "panel_id": TARGET_ID, "panel_name": "Critical", "position": 1,
        "slot_position": "single", "side": "left", "occupant_id": None,
    }
    assert move["side_change"] is True


def test_batch_fingerprint_follows_moves():
    def plan_with(*extra):
        return build_plan(make_source(make_breaker(1, "3", critical=True), *extra), make_target())

    reviewed = plan_with().batches[0]
    assert plan_with().batches[0].fingerprint == reviewed.fingerprint
    assert reviewed.to_dict()["fingerprint"] == reviewed.fingerprint

    # same batch number, different contents
    assert plan_with(make_breaker(2, "9A", critical=True), make_breaker(3, "9B")).batches[0].fingerprint != reviewed.fingerprint
    moved = build_plan(make_source(make_breaker(1, "4", critical=True)), make_target()).batches[0]
    assert moved.fingerprint != reviewed.fingerprint
