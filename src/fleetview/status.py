"""Status classification.

Two classifiers exist for two display purposes and are deliberately kept
apart:

* :func:`classify_marker_status` drives marker colour and the status label.
  ``"inactive"`` is *not* idle here; it falls through to unknown.
* :func:`is_idle_for_counts` drives the aggregate idle counter, where
  ``"inactive"`` counts as idle.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class StatusTier(StrEnum):
    ACTIVE = "active"
    IDLE = "idle"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class StatusInfo(BaseModel):
    """Coarse status tier plus its display label."""

    model_config = ConfigDict(frozen=True)

    tier: StatusTier
    label: str


_MARKER_STATUS: dict[str, StatusInfo] = {
    "active": StatusInfo(tier=StatusTier.ACTIVE, label="Active"),
    "moving": StatusInfo(tier=StatusTier.ACTIVE, label="Active"),
    "idle": StatusInfo(tier=StatusTier.IDLE, label="Idle"),
    "stop": StatusInfo(tier=StatusTier.STOPPED, label="Stop"),
}
_UNKNOWN_STATUS = StatusInfo(tier=StatusTier.UNKNOWN, label="Unknown")

_COUNT_IDLE_STATUSES = frozenset({"idle", "inactive"})


def _normalize(status: str | None) -> str:
    return (status or "").strip().lower()


def classify_marker_status(status: str | None) -> StatusInfo:
    """Map a raw status string (case-insensitive) to a tier and label."""
    return _MARKER_STATUS.get(_normalize(status), _UNKNOWN_STATUS)


def is_active_for_counts(status: str | None) -> bool:
    return classify_marker_status(status).tier == StatusTier.ACTIVE


def is_idle_for_counts(status: str | None) -> bool:
    """Idle for the aggregate counter: ``"idle"`` or ``"inactive"``."""
    return _normalize(status) in _COUNT_IDLE_STATUSES
