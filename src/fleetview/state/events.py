"""Normalized snapshot events.

Every feed delivery is converted into a :class:`SnapshotEvent`. Only the
snapshot store is allowed to apply them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleetview.models import ActivityNote, PersonnelRecord, PositionReport, UnitRecord


class SourceName(StrEnum):
    """The four live sources, named after their backend collections."""

    POSITIONS = "unitTracking"
    UNITS = "unit"
    PERSONNEL = "users"
    ACTIVITY = "driverLogs"


SourceRecord = PositionReport | UnitRecord | PersonnelRecord | ActivityNote


class SnapshotEvent(BaseModel):
    """A full replacement snapshot for one source."""

    model_config = ConfigDict(frozen=True)

    source: SourceName
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    records: tuple[SourceRecord, ...] = ()
    skipped: int = Field(default=0, description="Raw documents that could not be parsed")

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
