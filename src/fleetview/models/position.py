"""Position report model (one live document per tracked unit)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, Field, ValidationInfo, field_validator, model_validator

from fleetview._constants import NO_ROUTE, UNKNOWN_STATUS, UNKNOWN_UNIT
from fleetview.ingestion.normalize import coordinate_or_zero, safe_str
from fleetview.models._base import FleetBaseModel, Instant


class PositionReport(FleetBaseModel):
    """Last known position and status of a tracked unit.

    Missing identifiers and labels degrade to placeholders, and missing or
    malformed coordinates to ``0.0``, so a report is never dropped for bad
    fields. ``updated_at`` falls back to the ``observed_at`` instant passed
    in the validation context (or the current time), and ``created_at`` to
    ``updated_at``; both are always set after validation.
    """

    document_id: str | None = Field(default=None, validation_alias=AliasChoices("id", "document_id"))
    unit_id: str = Field(default=UNKNOWN_UNIT, validation_alias=AliasChoices("unitID", "unitId", "unit_id"))
    route: str = Field(default=NO_ROUTE, validation_alias=AliasChoices("route", "Route"))
    status: str = Field(default=UNKNOWN_STATUS, validation_alias=AliasChoices("status", "vehicleStatus"))
    latitude: float = Field(default=0.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(default=0.0, validation_alias=AliasChoices("longitude", "lng", "lon"))
    updated_at: Instant = Field(default=None, validation_alias=AliasChoices("updatedAt", "updated_at"))
    created_at: Instant = Field(default=None, validation_alias=AliasChoices("createdAt", "created_at"))

    @field_validator("document_id", mode="before")
    @classmethod
    def _coerce_optional_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("unit_id", "route", "status", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> str:
        return str(value).strip()

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float:
        return coordinate_or_zero(value)

    @model_validator(mode="after")
    def _fill_instants(self, info: ValidationInfo) -> PositionReport:
        updated = self.updated_at
        if updated is None:
            context = info.context if isinstance(info.context, dict) else {}
            observed = context.get("observed_at")
            updated = observed if isinstance(observed, datetime) else datetime.now(UTC)
            object.__setattr__(self, "updated_at", updated)
        if self.created_at is None:
            object.__setattr__(self, "created_at", updated)
        return self
