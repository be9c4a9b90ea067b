"""Unit registry model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from fleetview.ingestion.normalize import safe_str
from fleetview.models._base import FleetBaseModel


class UnitRecord(FleetBaseModel):
    """A trackable unit and the personnel currently holding it.

    ``unit_id`` is the registry document id and matches
    :attr:`PositionReport.unit_id`.
    """

    unit_id: str = Field(..., validation_alias=AliasChoices("id", "unitID", "unit_id"))
    """Primary key."""
    holder_id: str | None = Field(default=None, validation_alias=AliasChoices("unitHolder", "holder_id"))
    """Personnel id of the assigned holder, if any."""
    vehicle_id: str | None = Field(default=None, validation_alias=AliasChoices("vehicleID", "vehicleId", "vehicle_id"))
    """Vehicle identifier (plate/body number)."""
    status: str | None = Field(default=None, validation_alias=AliasChoices("status"))
    """Operational status maintained by dispatch/maintenance."""

    @field_validator("unit_id", "holder_id", "vehicle_id", "status", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)
