"""Base model for raw source records.

Every source record model inherits from :class:`FleetBaseModel` which
provides:

* frozen, ``extra="ignore"`` configuration so snapshots are read-only
  values and unknown document fields are tolerated.
* A ``model_validator(mode="before")`` that strips sentinel values
  (``""``, ``"--"``, NaN, whitespace-only strings) so the field default
  is used.
* A ``raw`` dict that captures the original document.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from fleetview.ingestion.normalize import parse_instant

_SENTINELS = frozenset({"", "--", "NaN", "nan", "null", "undefined"})


Instant = Annotated[datetime | None, BeforeValidator(parse_instant)]
"""Annotated type that coerces epoch numbers, ISO strings, and timestamp
mappings to timezone-aware datetimes (``None`` when unusable)."""


class FleetBaseModel(BaseModel):
    """Base for raw source record models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)
    """Original document as delivered by the source."""

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip sentinel values and stash the raw document."""
        if not isinstance(values, dict):
            return values
        cleaned = FleetBaseModel._clean_dict(values)
        # Keep a caller-provided raw (kwargs construction); otherwise stash the document.
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
