# breaker_panel/planner/report.py
# Plain-text rendering of a consolidation plan (CLI output and the /report endpoint).
from __future__ import annotations
from typing import List

from breaker_panel.planner.models import CRITICAL_MOVES, Move, Plan

RULE = "-" * 40
DOUBLE_RULE = "=" * 40
DESC_WIDTH = 50


def _where(move_slot) -> str:
    panel = move_slot.panel_name or f"Panel {move_slot.panel_id}"
    return f"{panel} {move_slot.label}"


def _flags(move: Move) -> str:
    flags = ""
    if move.side_change:
        flags += " [SIDE CHANGE]"
    if move.temporary_disconnect:
        flags += " [temp disconnect OK]"
    if move.degraded:
        flags += " [REVIEW]"
    return flags


def _amps(move: Move) -> str:
    return f"{move.breaker.amperage}A" if move.breaker.amperage else "?A"


def render_plan(plan: Plan) -> str:
    lines: List[str] = []
    add = lines.append
    summary = plan.summary()

    add("CRITICAL BREAKER MOVE PLAN")
    add(DOUBLE_RULE)
    add(f"Source: {plan.source.name} (id {plan.source.id}, {plan.source.size} positions)")
    add(f"Target: {plan.target.name} (id {plan.target.id}, {plan.target.available_positions} free)")
    add("")
    add("Summary:")
    add(f"   Total moves required: {summary['total_moves']}")
    add(f"   Swap moves: {summary['reorganization_moves']}")
    add(f"   Critical moves: {summary['critical_moves']}")
    add(f"   Mixed tandems found: {summary['mixed_tandems']}")
    add(f"   Critical units: {summary['pure_units']}")
    add(f"   Position swaps performed: {summary['swaps_performed']}")
    add(f"   Functional batches: {summary['total_batches']}")

    if plan.warnings:
        add("")
        add("WARNINGS")
        for w in plan.warnings:
            add(f"   ! {w}")

    if plan.phase1_swaps:
        add("")
        add(f"PHASE 1 - POSITION SWAPS ({len(plan.phase1_swaps)} moves)")
        add(RULE)
        for i, move in enumerate(plan.phase1_swaps, start=1):
            add(f"{i}. {move.description}")
            add(f"   From: {_where(move.from_slot)}")
            add(f"   To:   {_where(move.to_slot)}")
            add(f"   Reason: {move.reason}{_flags(move)}")

    add("")
    add(f"PHASE 2 - CRITICAL MOVES ({len(plan.phase2_critical_moves)} moves)")
    add(RULE)
    for i, move in enumerate(plan.phase2_critical_moves, start=1):
        add(f"{i}. {_amps(move)} {move.breaker.breaker_type} ({move.unit_type}){_flags(move)}")
        add(f"   From: {_where(move.from_slot)}")
        add(f"   To:   {_where(move.to_slot)}")
        add(f"   Circuits: {move.breaker.circuit_count}")
        if move.breaker.circuit_descriptions:
            add(f"   Description: {move.breaker.circuit_descriptions[:DESC_WIDTH]}")

    add("")
    add("PROGRESSIVE DELIVERY PLAN")
    add(DOUBLE_RULE)
    add(f"Execute in {len(plan.batches)} batches:")
    for batch in plan.batches:
        add("")
        add(f"BATCH {batch.batch_number}: {batch.description}")
        add(f"   Type: {batch.type.replace('_', ' ').upper()}")
        add(f"   Fingerprint: {batch.fingerprint}")
        for i, move in enumerate(batch.moves, start=1):
            marker = "* " if batch.type == CRITICAL_MOVES and move.breaker.critical else ""
            add(f"   {i}. {marker}{_where(move.from_slot)} -> {_where(move.to_slot)}{_flags(move)}")
        add(f"   Completion: {batch.functional_completion}")

    add("")
    add("Apply batches in order; replan if a batch reports a conflict.")
    return "\n".join(lines) + "\n"
