"""Personnel registry and activity note models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, Field, ValidationInfo, field_validator, model_validator

from fleetview.ingestion.normalize import safe_str
from fleetview.models._base import FleetBaseModel, Instant


class PersonnelRecord(FleetBaseModel):
    """A person who can hold a unit."""

    personnel_id: str = Field(..., validation_alias=AliasChoices("id", "personnelID", "personnel_id"))
    first_name: str = Field(default="", validation_alias=AliasChoices("firstName", "first_name"))
    middle_name: str = Field(default="", validation_alias=AliasChoices("middleName", "middle_name"))
    last_name: str = Field(default="", validation_alias=AliasChoices("lastName", "last_name"))

    @field_validator("personnel_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("first_name", "middle_name", "last_name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str:
        return safe_str(value) or ""

    @property
    def name_parts(self) -> tuple[str, str, str]:
        return (self.first_name, self.middle_name, self.last_name)


class ActivityNote(FleetBaseModel):
    """A free-text activity note logged against a person.

    Many notes may exist per person; only the most recent one matters for
    display. ``timestamp`` falls back to the ``observed_at`` context value.
    """

    personnel_id: str | None = Field(default=None, validation_alias=AliasChoices("personnelID", "personnel_id"))
    particular: str | None = Field(default=None, validation_alias=AliasChoices("Particular", "particular"))
    route: str | None = Field(default=None, validation_alias=AliasChoices("Route", "route"))
    timestamp: Instant = Field(default=None, validation_alias=AliasChoices("Timestamp", "timestamp"))

    @field_validator("personnel_id", "particular", "route", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @model_validator(mode="after")
    def _fill_timestamp(self, info: ValidationInfo) -> ActivityNote:
        if self.timestamp is None:
            context = info.context if isinstance(info.context, dict) else {}
            observed = context.get("observed_at")
            object.__setattr__(
                self,
                "timestamp",
                observed if isinstance(observed, datetime) else datetime.now(UTC),
            )
        return self
