"""
Legacy spreadsheet import.

Reads the exported "Panneau electrique - Liste" sheet: one row per circuit,
columns `breaker, critical, monitor, amperage, confirmed, room, type, description`.
Rows that share a breaker cell become one breaker with several circuits.
Flags are emoji: a battery marks critical, a chart marks monitored, a check
mark marks confirmed.
"""
from __future__ import annotations
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

from sqlalchemy.orm import Session

from breaker_panel import repository
from breaker_panel.core.exceptions import ConflictError
from breaker_panel.core.settings import settings
from breaker_panel.planner.geometry import check_position

logger = logging.getLogger(__name__)

COLUMNS = ("breaker", "critical", "monitor", "amperage", "confirmed", "room", "type", "description")

CRITICAL_FLAG = "\U0001F50B"   # battery
MONITOR_FLAG = "\U0001F4C8"    # chart increasing
CONFIRMED_FLAG = "\u2705"        # check mark

CIRCUIT_TYPES_FR = {
    "prise": "outlet",
    "éclairage": "lighting",
    "appareil": "appliance",
    "chauffage": "heating",
    "sous-panneau": "subpanel",
}

TANDEM_RE = re.compile(r"^(\d+)([AB])$")
DOUBLE_POLE_RE = re.compile(r"^(\d+)-(\d+)$")
SINGLE_RE = re.compile(r"^(\d+)$")


class BreakerCell(NamedTuple):
    position: int
    slot_position: str
    breaker_type: str

    @property
    def label(self) -> str:
        return f"{self.position}{'' if self.slot_position == 'single' else self.slot_position}"


@dataclass
class ImportStats:
    panel_id: Optional[int] = None
    panels: int = 0
    rooms: int = 0
    breakers: int = 0
    circuits: int = 0
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


@dataclass
class _BreakerGroup:
    cell: BreakerCell
    rows: List[Dict[str, str]] = field(default_factory=list)
    amperage: Optional[int] = None
    critical: bool = False
    monitor: bool = False
    confirmed: bool = False


def parse_breaker_cell(value: Optional[str]) -> Optional[BreakerCell]:
    """`4A` -> tandem A at 4, `5-7` -> double-pole at 5, `3` -> single at 3; anything else -> None."""
    value = (value or "").strip()
    if not value or value == "?":
        return None
    m = TANDEM_RE.match(value)
    if m:
        return BreakerCell(int(m.group(1)), m.group(2), "tandem")
    m = DOUBLE_POLE_RE.match(value)
    if m:
        return BreakerCell(int(m.group(1)), "single", "double_pole")
    m = SINGLE_RE.match(value)
    if m:
        return BreakerCell(int(m.group(1)), "single", "single")
    return None


def map_room_level(room_name: str) -> str:
    name = room_name.lower()
    if "sous-sol" in name or "sous-" in name:
        return "basement"
    if "étage" in name:
        return "upper"
    if "extérieur" in name:
        return "outside"
    return "main"


def map_circuit_type(french_type: Optional[str]) -> str:
    return CIRCUIT_TYPES_FR.get((french_type or "").strip().lower(), "outlet")


def has_flag(cell: Optional[str], flag: str) -> bool:
    return bool(cell) and flag in cell


def read_rows(text: str) -> List[Dict[str, str]]:
    """Data rows with at least the eight expected columns; blank lines and the header are skipped."""
    reader = csv.reader(io.StringIO(text))
    next(reader, None)
    rows = []
    for raw in reader:
        if not any(cell.strip() for cell in raw):
            continue
        if len(raw) < len(COLUMNS):
            continue
        rows.append({name: raw[i].strip() for i, name in enumerate(COLUMNS)})
    return rows


def _load_text(path_or_text: Union[str, Path]) -> str:
    """A `Path`, or a one-line string, is a file to read; multi-line text is the sheet itself."""
    if isinstance(path_or_text, str) and "\n" in path_or_text:
        return path_or_text
    path = Path(path_or_text)
    if not path.is_file():
        raise FileNotFoundError(f"CSV file not found: {path}")
    return path.read_text(encoding="utf-8-sig")


def _parse_amperage(value: str, cell: BreakerCell, stats: ImportStats) -> Optional[int]:
    if not value:
        return None
    m = re.match(r"\s*(\d+)", value)
    if not m:
        stats.warn(f"Breaker {cell.label}: amperage '{value}' is not a number")
        return None
    amps = int(m.group(1))
    if not 0 < amps <= 200:
        stats.warn(f"Breaker {cell.label}: amperage {amps} outside 1..200, ignored")
        return None
    return amps


def import_csv(
    session: Session,
    path_or_text: Union[str, Path],
    panel_name: Optional[str] = None,
    panel_size: Optional[int] = None,
) -> ImportStats:
    """Create one panel from the sheet, plus its rooms, breakers and circuits."""
    panel_name = panel_name or settings.IMPORT_PANEL_NAME
    panel_size = panel_size or settings.IMPORT_PANEL_SIZE
    stats = ImportStats()

    rows = read_rows(_load_text(path_or_text))
    rows = [r for r in rows if r["breaker"] and r["breaker"] != "?"]
    if not rows:
        raise ValueError("No valid data found in CSV")
    logger.info("Parsed %d circuit rows", len(rows))

    try:
        _import_rows(session, rows, panel_name, panel_size, stats)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(
        "Imported panel %s: %d rooms, %d breakers, %d circuits, %d warnings",
        stats.panel_id, stats.rooms, stats.breakers, stats.circuits, len(stats.warnings),
    )
    return stats


def _import_rows(session: Session, rows: List[Dict[str, str]], panel_name: str, panel_size: int,
                 stats: ImportStats) -> None:
    """Everything is flushed, nothing committed."""
    panel = repository.create_panel(session, panel_name, panel_size, commit=False)
    stats.panel_id = panel.id
    stats.panels += 1

    room_ids: Dict[str, int] = {}
    for row in rows:
        name = row["room"]
        if not name or name in room_ids:
            continue
        room = repository.find_room_by_name(session, name)
        if room is None:
            room = repository.create_room(session, name, map_room_level(name), commit=False)
            stats.rooms += 1
        room_ids[name] = room.id

    groups: Dict[Tuple[int, str], _BreakerGroup] = {}
    for row in rows:
        cell = parse_breaker_cell(row["breaker"])
        if cell is None:
            stats.warn(f"Invalid breaker position: {row['breaker']}")
            continue
        group = groups.setdefault((cell.position, cell.slot_position), _BreakerGroup(cell))
        group.rows.append(row)
        if group.amperage is None:
            group.amperage = _parse_amperage(row["amperage"], cell, stats)
        group.critical = group.critical or has_flag(row["critical"], CRITICAL_FLAG)
        group.monitor = group.monitor or has_flag(row["monitor"], MONITOR_FLAG)
        group.confirmed = group.confirmed or has_flag(row["confirmed"], CONFIRMED_FLAG)

    for group in groups.values():
        cell = group.cell
        try:
            check_position(cell.position, panel_size, cell.breaker_type)
        except ValueError as e:
            stats.warn(f"Failed to create breaker {cell.label}: {e}")
            continue

        try:
            breaker = repository.create_breaker(
                session,
                panel_id=panel.id,
                position=cell.position,
                slot_position=cell.slot_position,
                breaker_type=cell.breaker_type,
                amperage=group.amperage,
                critical=group.critical,
                monitor=group.monitor,
                confirmed=group.confirmed,
                commit=False,
            )
        except ConflictError as e:
            stats.warn(f"Failed to create breaker {cell.label}: {e}")
            continue
        stats.breakers += 1
        for row in group.rows:
            repository.create_circuit(
                session,
                breaker_id=breaker.id,
                room_id=room_ids.get(row["room"]),
                type=map_circuit_type(row["type"]),
                notes=row["description"] or None,
                commit=False,
            )
            stats.circuits += 1
        logger.debug("Breaker %s (%sA): %d circuits", cell.label, group.amperage, len(group.rows))

