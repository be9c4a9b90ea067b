"""Data models for source records and derived tracking records."""

from fleetview.models._base import FleetBaseModel, Instant
from fleetview.models.personnel import ActivityNote, PersonnelRecord
from fleetview.models.position import PositionReport
from fleetview.models.tracking import MergedTrackingRecord
from fleetview.models.unit import UnitRecord

__all__ = [
    "ActivityNote",
    "FleetBaseModel",
    "Instant",
    "MergedTrackingRecord",
    "PersonnelRecord",
    "PositionReport",
    "UnitRecord",
]
