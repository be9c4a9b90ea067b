"""Snapshot parsing.

Turns the raw documents of one feed delivery into a
:class:`fleetview.state.events.SnapshotEvent`:

- every document is validated into the source's typed model
- documents that cannot be coerced at all are skipped (and counted)
- position reports are reduced to one report per unit identifier
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from fleetview.models import ActivityNote, PersonnelRecord, PositionReport, UnitRecord
from fleetview.state.events import SnapshotEvent, SourceName, SourceRecord

_logger = logging.getLogger(__name__)

_MODELS: dict[SourceName, type[SourceRecord]] = {
    SourceName.POSITIONS: PositionReport,
    SourceName.UNITS: UnitRecord,
    SourceName.PERSONNEL: PersonnelRecord,
    SourceName.ACTIVITY: ActivityNote,
}


def latest_per_unit(reports: Iterable[PositionReport]) -> tuple[PositionReport, ...]:
    """Keep one report per unit id: the latest ``updated_at`` (ties: last seen).

    Snapshot order of first appearance is preserved.
    """
    chosen: dict[str, PositionReport] = {}
    for report in reports:
        current = chosen.get(report.unit_id)
        if current is None or report.updated_at >= current.updated_at:  # type: ignore[operator]
            chosen[report.unit_id] = report
    return tuple(chosen.values())


def parse_snapshot(
    source: SourceName,
    documents: Iterable[Any],
    *,
    observed_at: datetime,
) -> SnapshotEvent:
    """Validate raw documents into a typed snapshot event."""
    model = _MODELS[source]
    context = {"observed_at": observed_at}
    records: list[SourceRecord] = []
    skipped = 0
    for document in documents:
        if not isinstance(document, Mapping):
            skipped += 1
            continue
        try:
            records.append(model.model_validate(dict(document), context=context))
        except ValidationError:
            skipped += 1
            _logger.debug("Skipping malformed %s document: %r", source.value, document, exc_info=True)

    if skipped:
        _logger.debug("Snapshot %s: %d parsed, %d skipped", source.value, len(records), skipped)

    parsed: tuple[SourceRecord, ...]
    if source == SourceName.POSITIONS:
        parsed = latest_per_unit(r for r in records if isinstance(r, PositionReport))
    else:
        parsed = tuple(records)

    return SnapshotEvent(source=source, observed_at=observed_at, records=parsed, skipped=skipped)
