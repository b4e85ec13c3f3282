"""
Applying planned batches to the database: swaps, relocations, stale-plan conflicts.
"""

import pytest

from breaker_panel import executor, repository
from breaker_panel.core.exceptions import (
    ConflictError,
    EntityNotFoundError,
    GeometryError,
    InvalidReferenceError,
    NoCriticalBreakersError,
)
from breaker_panel.planner.critical_move import plan_critical_move


def where(db, breaker_id):
    b = repository.get_breaker(db, breaker_id)
    return b.panel_id, b.position, b.slot_position, b.breaker_type


def test_full_plan_applies_batch_by_batch(db, main_and_critical, add_breaker):
    main, critical = main_and_critical
    b1 = add_breaker(main, "5A", critical=True)
    b2 = add_breaker(main, "5B")
    b3 = add_breaker(main, "10", critical=True)
    repository.create_circuit(db, breaker_id=b3.id, notes="Freezer")

    plan = plan_critical_move(db, critical.id, main.id)
    assert len(plan.batches) == 2

    result = executor.apply_batch(db, plan.batch(1))
    assert result["success"] is True
    assert result["moves_applied"] == 2
    db.expire_all()
    assert where(db, b3.id) == (main.id, 5, "B", "tandem")
    assert where(db, b2.id) == (main.id, 10, "single", "single")

    result = executor.apply_batch(db, plan.batch(2))
    assert result["functional_completion"] == plan.batch(2).functional_completion
    db.expire_all()
    assert where(db, b1.id) == (critical.id, 1, "A", "tandem")
    assert where(db, b3.id) == (critical.id, 1, "B", "tandem")
    assert where(db, b2.id) == (main.id, 10, "single", "single")
    # circuits follow their breaker
    assert [c.notes for c in repository.list_circuits(db, breaker_id=b3.id)] == ["Freezer"]

    with pytest.raises(NoCriticalBreakersError):
        plan_critical_move(db, critical.id, main.id)


def test_tandem_exchange_applies(db, main_and_critical, add_breaker):
    main, critical = main_and_critical
    b1 = add_breaker(main, "3A", critical=True)
    b2 = add_breaker(main, "3B")
    b3 = add_breaker(main, "7A", critical=True)
    b4 = add_breaker(main, "7B")

    plan = plan_critical_move(db, critical.id, main.id)
    for batch in plan.batches:
        executor.apply_batch(db, batch)
    db.expire_all()

    assert where(db, b2.id) == (main.id, 7, "A", "tandem")
    assert where(db, b4.id) == (main.id, 7, "B", "tandem")
    assert where(db, b1.id)[:3] == (critical.id, 1, "A")
    assert where(db, b3.id)[:3] == (critical.id, 1, "B")


def test_occupied_destination_is_a_conflict_and_nothing_changes(db, main_and_critical, add_breaker):
    main, critical = main_and_critical
    b1 = add_breaker(main, "3", critical=True)
    plan = plan_critical_move(db, critical.id, main.id)

    # someone installs a breaker where the plan wanted to land
    add_breaker(critical, "1")

    with pytest.raises(ConflictError) as exc:
        executor.apply_batch(db, plan.batch(1))
    assert exc.value.panel_id == critical.id
    assert exc.value.position == 1
    db.expire_all()
    assert where(db, b1.id) == (main.id, 3, "single", "single")


def test_moved_source_is_a_conflict(db, main_and_critical, add_breaker):
    main, critical = main_and_critical
    b1 = add_breaker(main, "5A", critical=True)
    add_breaker(main, "5B")
    b3 = add_breaker(main, "10", critical=True)
    plan = plan_critical_move(db, critical.id, main.id)

    executor.move_breaker(db, b3.id, main.id, 12)

    with pytest.raises(ConflictError):
        executor.apply_batch(db, plan.batch(1))
    db.expire_all()
    assert where(db, b3.id) == (main.id, 12, "single", "single")
    assert where(db, b1.id) == (main.id, 5, "A", "tandem")


def test_batch_must_match_reviewed_fingerprint(db, main_and_critical, add_breaker):
    main, critical = main_and_critical
    b1 = add_breaker(main, "3", critical=True)
    reviewed = plan_critical_move(db, critical.id, main.id).batch(1)

    b2 = add_breaker(main, "9", critical=True)
    fresh = plan_critical_move(db, critical.id, main.id).batch(1)
    assert fresh.fingerprint != reviewed.fingerprint

    with pytest.raises(ConflictError):
        executor.apply_batch(db, fresh, expected_fingerprint=reviewed.fingerprint)
    db.expire_all()
    assert where(db, b1.id) == (main.id, 3, "single", "single")
    assert where(db, b2.id) == (main.id, 9, "single", "single")

    result = executor.apply_batch(db, fresh, expected_fingerprint=fresh.fingerprint)
    assert result["moves_applied"] == 2


def test_apply_single_move_and_swap(db, main_and_critical, add_breaker):
    main, critical = main_and_critical
    add_breaker(main, "5A", critical=True)
    b2 = add_breaker(main, "5B")
    b3 = add_breaker(main, "10", critical=True)
    plan = plan_critical_move(db, critical.id, main.id)

    incoming, outgoing = plan.phase1_swaps
    assert executor.apply_swap(db, incoming, outgoing) == {"success": True}
    first, second = plan.phase2_critical_moves
    assert executor.apply_move(db, first) == {"success": True}
    db.expire_all()
    assert where(db, b2.id)[:2] == (main.id, 10)
    assert where(db, b3.id)[:3] == (main.id, 5, "B")

    with pytest.raises(ValueError):
        executor.apply_swap(db, first, second)


class TestMoveBreaker:
    """Ad-hoc moves to empty slots."""

    def test_move_to_other_panel(self, db, main_and_critical, add_breaker):
        main, critical = main_and_critical
        b = add_breaker(main, "7")
        moved = executor.move_breaker(db, b.id, critical.id, 4)
        assert (moved.panel_id, moved.position, moved.slot_position) == (critical.id, 4, "single")

    def test_move_into_tandem_half(self, db, main_and_critical, add_breaker):
        main, critical = main_and_critical
        add_breaker(critical, "2A")
        b = add_breaker(main, "7")
        moved = executor.move_breaker(db, b.id, critical.id, 2, "B")
        assert (moved.breaker_type, moved.slot_position) == ("tandem", "B")

    def test_occupied_slot(self, db, main_and_critical, add_breaker):
        main, critical = main_and_critical
        add_breaker(critical, "4")
        b = add_breaker(main, "7")
        with pytest.raises(ConflictError):
            executor.move_breaker(db, b.id, critical.id, 4)
        db.expire_all()
        assert where(db, b.id)[:2] == (main.id, 7)

    def test_double_pole_second_row_taken(self, db, main_and_critical, add_breaker):
        main, critical = main_and_critical
        add_breaker(critical, "3")
        b = add_breaker(main, "5-7")
        with pytest.raises(ConflictError):
            executor.move_breaker(db, b.id, critical.id, 1)

    def test_outside_panel(self, db, main_and_critical, add_breaker):
        main, critical = main_and_critical
        b = add_breaker(main, "7")
        with pytest.raises(GeometryError):
            executor.move_breaker(db, b.id, critical.id, 13)

    def test_missing_panel_and_breaker(self, db, main_and_critical, add_breaker):
        main, _ = main_and_critical
        b = add_breaker(main, "7")
        with pytest.raises(InvalidReferenceError):
            executor.move_breaker(db, b.id, 999, 1)
        with pytest.raises(EntityNotFoundError):
            executor.move_breaker(db, 999, main.id, 1)


def test_merge_into_existing(db, main_and_critical, add_breaker):
    main, _ = main_and_critical
    source = add_breaker(main, "1")
    target = add_breaker(main, "2")
    repository.create_circuit(db, breaker_id=source.id, notes="Kitchen")
    repository.create_circuit(db, breaker_id=source.id, notes="Dining")
    repository.create_circuit(db, breaker_id=target.id, notes="Garage")

    result = executor.merge_into_existing(db, source.id, target.id)
    assert result == {"success": True, "circuits_moved": 2}
    assert sorted(c.notes for c in repository.list_circuits(db, breaker_id=target.id)) == [
        "Dining", "Garage", "Kitchen",
    ]
    with pytest.raises(EntityNotFoundError):
        repository.get_breaker(db, source.id)

    with pytest.raises(ValueError):
        executor.merge_into_existing(db, target.id, target.id)
