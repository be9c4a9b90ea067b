"""Normalization helpers.

Centralizes defensive parsing and placeholder handling for raw source
records.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1e11


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    """Return a stripped string, or ``None`` for missing/blank values."""
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def coordinate_or_zero(value: Any) -> float:
    """Coordinates fall back to ``0.0`` instead of excluding the record."""
    parsed = safe_float(value)
    return 0.0 if parsed is None else parsed


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _from_epoch(seconds: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def parse_instant(value: Any) -> datetime | None:
    """Convert a raw instant into a timezone-aware datetime.

    Accepts ``datetime`` (naive values are taken as UTC), epoch seconds or
    milliseconds (numbers or numeric strings), ISO-8601 strings, and
    ``{"seconds": ..., "nanoseconds": ...}`` mappings as produced by
    document stores. Returns ``None`` when nothing usable is present,
    including epochs outside the platform's representable range.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)

    if isinstance(value, Mapping):
        seconds = safe_float(value.get("seconds", value.get("_seconds")))
        if seconds is None:
            return None
        nanos = safe_float(value.get("nanoseconds", value.get("_nanoseconds"))) or 0.0
        return _from_epoch(seconds + nanos / 1e9)

    numeric = safe_float(value)
    if numeric is not None:
        if numeric <= 0:
            return None
        if numeric > _MS_THRESHOLD:
            numeric /= 1000.0
        return _from_epoch(numeric)

    text = safe_str(value)
    if text is None:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError:
        return None
