"""Join engine.

Combines today's position reports with the unit and personnel registries
and the activity notes into one :class:`MergedTrackingRecord` per unit.
The computation is total and side-effect-free: every report produces
exactly one record, and unresolved references degrade to placeholder
strings instead of dropping the record.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date, datetime, tzinfo

from pydantic import BaseModel, ConfigDict

from fleetview._constants import ALL_ROUTES, NO_DRIVER_FOUND, NO_PARTICULAR, UNKNOWN_DRIVER, UNKNOWN_VEHICLE
from fleetview.models import ActivityNote, MergedTrackingRecord, PersonnelRecord, PositionReport, UnitRecord
from fleetview.presenter import driver_full_name, latest_particular
from fleetview.state.recency import filter_today, local_date
from fleetview.state.store import SnapshotStore

_logger = logging.getLogger(__name__)


class JoinResult(BaseModel):
    """Output of one recompute."""

    model_config = ConfigDict(frozen=True)

    day: date
    records: tuple[MergedTrackingRecord, ...] = ()
    route_options: tuple[str, ...] = (ALL_ROUTES,)

    @property
    def unit_ids(self) -> frozenset[str]:
        return frozenset(r.unit_id for r in self.records)

    def get(self, unit_id: str | None) -> MergedTrackingRecord | None:
        if unit_id is None:
            return None
        return next((r for r in self.records if r.unit_id == unit_id), None)


def route_options(reports: Iterable[PositionReport]) -> tuple[str, ...]:
    """``All Routes`` followed by distinct routes in encounter order."""
    return (ALL_ROUTES, *dict.fromkeys(r.route for r in reports))


def merge_record(
    report: PositionReport,
    units: dict[str, UnitRecord],
    personnel: dict[str, PersonnelRecord],
    notes: dict[str, list[ActivityNote]],
) -> MergedTrackingRecord:
    unit = units.get(report.unit_id)
    holder_id = unit.holder_id if unit is not None else None
    vehicle_id = (unit.vehicle_id if unit is not None else None) or UNKNOWN_VEHICLE

    if holder_id is None:
        driver_name = UNKNOWN_DRIVER
        particular = NO_PARTICULAR
    else:
        person = personnel.get(holder_id)
        driver_name = driver_full_name(person) if person is not None else NO_DRIVER_FOUND
        particular = latest_particular(notes.get(holder_id, ()))

    return MergedTrackingRecord(
        unit_id=report.unit_id,
        vehicle_id=vehicle_id,
        holder_id=holder_id,
        driver_name=driver_name,
        particular=particular,
        route=report.route,
        status=report.status,
        latitude=report.latitude,
        longitude=report.longitude,
        updated_at=report.updated_at,
        created_at=report.created_at,
    )


def join_records(
    reports: Sequence[PositionReport],
    units: Iterable[UnitRecord],
    personnel: Iterable[PersonnelRecord],
    activity: Iterable[ActivityNote],
) -> tuple[MergedTrackingRecord, ...]:
    """Join already-filtered reports; ``len(result) == len(reports)``."""
    unit_index = {u.unit_id: u for u in units}
    person_index = {p.personnel_id: p for p in personnel}
    notes_by_person: dict[str, list[ActivityNote]] = defaultdict(list)
    for note in activity:
        if note.personnel_id is not None:
            notes_by_person[note.personnel_id].append(note)
    return tuple(merge_record(r, unit_index, person_index, notes_by_person) for r in reports)


def compute_join(
    positions: Sequence[PositionReport],
    units: Iterable[UnitRecord],
    personnel: Iterable[PersonnelRecord],
    activity: Iterable[ActivityNote],
    *,
    now: datetime,
    tz: tzinfo | None = None,
) -> JoinResult:
    """Recency filter + join + route options for one set of inputs."""
    today = filter_today(positions, now, tz)
    return JoinResult(
        day=local_date(now, tz),
        records=join_records(today, units, personnel, activity),
        route_options=route_options(today),
    )


class JoinEngine:
    """Memoizing wrapper around :func:`compute_join`.

    Recomputes only when a source snapshot version or the local date
    changes. Selection and operator filters are not inputs, so they never
    trigger a recompute.
    """

    def __init__(self, store: SnapshotStore, *, tz: tzinfo | None = None) -> None:
        self._store = store
        self._tz = tz
        self._key: tuple[tuple[int, ...], date] | None = None
        self._result: JoinResult | None = None
        self.recompute_count = 0

    @property
    def result(self) -> JoinResult | None:
        return self._result

    def is_stale(self, now: datetime) -> bool:
        return self._key != (self._store.versions(), local_date(now, self._tz))

    def compute(self, now: datetime) -> JoinResult:
        key = (self._store.versions(), local_date(now, self._tz))
        if self._result is not None and key == self._key:
            return self._result

        result = compute_join(
            self._store.positions,
            self._store.units,
            self._store.personnel,
            self._store.activity,
            now=now,
            tz=self._tz,
        )
        self._key = key
        self._result = result
        self.recompute_count += 1
        _logger.debug(
            "Join recomputed day=%s records=%d routes=%d",
            result.day,
            len(result.records),
            len(result.route_options) - 1,
        )
        return result
