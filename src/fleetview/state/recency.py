"""Recency filter: keep only reports from the current local calendar day."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, tzinfo

from fleetview.ingestion.normalize import ensure_aware
from fleetview.models import PositionReport


def local_date(instant: datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of *instant* in *tz* (``None`` = host local zone)."""
    return ensure_aware(instant).astimezone(tz).date()


def is_same_local_day(instant: datetime, now: datetime, tz: tzinfo | None = None) -> bool:
    """Compare by local (year, month, day), not a rolling 24 hour window."""
    return local_date(instant, tz) == local_date(now, tz)


def filter_today(
    reports: Iterable[PositionReport],
    now: datetime,
    tz: tzinfo | None = None,
) -> tuple[PositionReport, ...]:
    today = local_date(now, tz)
    return tuple(r for r in reports if r.updated_at is not None and local_date(r.updated_at, tz) == today)
