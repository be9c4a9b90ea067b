"""Merged tracking record (derived, never persisted)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fleetview.status import StatusInfo, classify_marker_status


class MergedTrackingRecord(BaseModel):
    """Per-unit join of position, unit, and personnel data.

    Each recompute produces fresh instances; equal inputs give value-equal
    records.
    """

    model_config = ConfigDict(frozen=True)

    unit_id: str
    vehicle_id: str
    holder_id: str | None = None
    driver_name: str
    particular: str
    route: str
    status: str
    latitude: float = Field(default=0.0)
    longitude: float = Field(default=0.0)
    updated_at: datetime
    created_at: datetime

    @property
    def status_info(self) -> StatusInfo:
        return classify_marker_status(self.status)

    @property
    def position(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)
