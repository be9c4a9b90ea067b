"""Detail presenter: pure projections of merged records for display.

Nothing here caches or mutates; relative times are recomputed from the
``now`` passed in on every render.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from fleetview._constants import (
    COORDINATE_DECIMALS,
    NO_NAME_FOUND,
    NO_PARTICULAR,
)
from fleetview.ingestion.normalize import ensure_aware
from fleetview.models import ActivityNote, MergedTrackingRecord, PersonnelRecord
from fleetview.status import (
    StatusInfo,
    StatusTier,
    classify_marker_status,
    is_active_for_counts,
    is_idle_for_counts,
)

__all__ = [
    "StatusCounts",
    "StatusInfo",
    "StatusTier",
    "UnitDetail",
    "UnitListRow",
    "aggregate_counts",
    "classify_marker_status",
    "driver_full_name",
    "format_coordinate",
    "is_active_for_counts",
    "is_idle_for_counts",
    "latest_particular",
    "list_row",
    "map_header",
    "time_ago",
    "unit_count_label",
    "unit_detail",
]


def time_ago(instant: datetime, now: datetime) -> str:
    """Relative label: ``Just now``, ``{n}m ago``, ``{n}h ago``, ``{n}d ago``."""
    elapsed = ensure_aware(now) - ensure_aware(instant)
    minutes = int(elapsed.total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 24 * 60:
        return f"{minutes // 60}h ago"
    return f"{minutes // (24 * 60)}d ago"


def driver_full_name(person: PersonnelRecord) -> str:
    parts = [part.strip() for part in person.name_parts if part and part.strip()]
    return " ".join(parts) or NO_NAME_FOUND


def latest_particular(notes: Iterable[ActivityNote]) -> str:
    """Text of the most recent note, or ``No Particular``."""
    latest: ActivityNote | None = None
    for note in notes:
        if latest is None or note.timestamp > latest.timestamp:  # type: ignore[operator]
            latest = note
    if latest is None or not latest.particular:
        return NO_PARTICULAR
    return latest.particular


def format_coordinate(value: float) -> str:
    return f"{value:.{COORDINATE_DECIMALS}f}"


class StatusCounts(BaseModel):
    """Aggregate counters for the quick-info bar."""

    model_config = ConfigDict(frozen=True)

    active: int
    idle: int
    total: int

    @staticmethod
    def _percent(count: int, total: int) -> float:
        return count / total * 100.0 if total else 0.0

    @property
    def active_percent(self) -> float:
        return self._percent(self.active, self.total)

    @property
    def idle_percent(self) -> float:
        return self._percent(self.idle, self.total)

    @property
    def total_percent(self) -> float:
        return 100.0 if self.total else 0.0


def aggregate_counts(records: Sequence[MergedTrackingRecord]) -> StatusCounts:
    return StatusCounts(
        active=sum(1 for r in records if is_active_for_counts(r.status)),
        idle=sum(1 for r in records if is_idle_for_counts(r.status)),
        total=len(records),
    )


class UnitDetail(BaseModel):
    """Read-only projection rendered by the detail modal."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    vehicle_id: str
    route: str
    driver_name: str
    particular: str
    status: StatusInfo
    latitude: str
    longitude: str
    updated_at: datetime
    updated_ago: str


def unit_detail(record: MergedTrackingRecord, now: datetime) -> UnitDetail:
    return UnitDetail(
        unit_id=record.unit_id,
        vehicle_id=record.vehicle_id,
        route=record.route,
        driver_name=record.driver_name,
        particular=record.particular,
        status=record.status_info,
        latitude=format_coordinate(record.latitude),
        longitude=format_coordinate(record.longitude),
        updated_at=record.updated_at,
        updated_ago=time_ago(record.updated_at, now),
    )


class UnitListRow(BaseModel):
    """One row of the sidebar list."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    vehicle_id: str
    route: str
    driver_name: str
    status: StatusInfo
    updated_ago: str
    selected: bool = False


def list_row(record: MergedTrackingRecord, now: datetime, *, selected: bool = False) -> UnitListRow:
    return UnitListRow(
        unit_id=record.unit_id,
        vehicle_id=record.vehicle_id,
        route=record.route,
        driver_name=record.driver_name,
        status=record.status_info,
        updated_ago=time_ago(record.updated_at, now),
        selected=selected,
    )


def unit_count_label(count: int) -> str:
    return f"{count} Unit" if count == 1 else f"{count} Units"


def map_header(records: Sequence[MergedTrackingRecord], selected: MergedTrackingRecord | None) -> str:
    if selected is not None:
        return f"{selected.vehicle_id} - {selected.route}"
    noun = "unit" if len(records) == 1 else "units"
    return f"Showing all {len(records)} {noun} updated today"
