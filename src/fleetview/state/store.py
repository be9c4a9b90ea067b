"""Deterministic in-memory snapshot store.

This is the only component allowed to replace source snapshots. Every
source holds a full replacement snapshot (never a merge of deltas); an
unpopulated or failed source reads as empty.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from fleetview.models import ActivityNote, PersonnelRecord, PositionReport, UnitRecord
from fleetview.state.events import SnapshotEvent, SourceName, SourceRecord


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SourceStatus(BaseModel):
    """Bookkeeping for one source."""

    model_config = ConfigDict(extra="forbid")

    version: int = 0
    delivered: bool = False
    failed: bool = False
    observed_at: datetime | None = None
    last_error: str | None = None


class SnapshotStore:
    """Latest typed snapshot per source.

    Snapshots are tuples of frozen models, so consumers can hold on to them
    without being affected by later deliveries.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._snapshots: dict[SourceName, tuple[SourceRecord, ...]] = {source: () for source in SourceName}
        self._status: dict[SourceName, SourceStatus] = {source: SourceStatus() for source in SourceName}

    def apply(self, event: SnapshotEvent) -> None:
        """Replace a source's snapshot wholesale."""
        self._snapshots[event.source] = event.records
        status = self._status[event.source]
        status.version += 1
        status.delivered = True
        status.failed = False
        status.last_error = None
        status.observed_at = event.observed_at

    def mark_failed(self, source: SourceName, error: BaseException) -> bool:
        """Degrade a source to empty.

        Returns ``True`` when this starts a new failure streak (the source
        was healthy before), so callers can report each streak once.
        """
        status = self._status[source]
        first = not status.failed
        status.failed = True
        status.last_error = f"{type(error).__name__}: {error}"
        status.observed_at = self._clock()
        if self._snapshots[source]:
            self._snapshots[source] = ()
            status.version += 1
        elif first:
            status.version += 1
        return first

    def status(self, source: SourceName) -> SourceStatus:
        return self._status[source].model_copy()

    def version(self, source: SourceName) -> int:
        return self._status[source].version

    def versions(self) -> tuple[int, ...]:
        return tuple(self._status[source].version for source in SourceName)

    @property
    def has_positions(self) -> bool:
        """Whether the position source has delivered (or failed) at least once."""
        status = self._status[SourceName.POSITIONS]
        return status.delivered or status.failed

    @property
    def positions(self) -> tuple[PositionReport, ...]:
        return tuple(r for r in self._snapshots[SourceName.POSITIONS] if isinstance(r, PositionReport))

    @property
    def units(self) -> tuple[UnitRecord, ...]:
        return tuple(r for r in self._snapshots[SourceName.UNITS] if isinstance(r, UnitRecord))

    @property
    def personnel(self) -> tuple[PersonnelRecord, ...]:
        return tuple(r for r in self._snapshots[SourceName.PERSONNEL] if isinstance(r, PersonnelRecord))

    @property
    def activity(self) -> tuple[ActivityNote, ...]:
        return tuple(r for r in self._snapshots[SourceName.ACTIVITY] if isinstance(r, ActivityNote))
