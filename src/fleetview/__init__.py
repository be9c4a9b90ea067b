"""fleetview - Live map of a transit fleet's units updated today."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyfleetview")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetview.config import MapDefaults, SelectionPolicy, TrackingConfig
from fleetview.exceptions import (
    FeedDecodeError,
    FeedError,
    FeedTransportError,
    FleetViewConfigError,
    FleetViewError,
    SurfaceUnavailableError,
    UnknownUnitError,
)
from fleetview.feeds import InMemoryFeed, SourceHub, Subscription, SubscriptionProvider
from fleetview.models import (
    ActivityNote,
    MergedTrackingRecord,
    PersonnelRecord,
    PositionReport,
    UnitRecord,
)
from fleetview.presenter import StatusCounts, UnitDetail, UnitListRow
from fleetview.render.surface import BoundingBox, LatLng, MarkerPopup, MarkerStyle, RenderingSurface
from fleetview.state.events import SourceName
from fleetview.status import StatusInfo, StatusTier
from fleetview.view import TrackingView

__all__ = [
    "__version__",
    "ActivityNote",
    "BoundingBox",
    "FeedDecodeError",
    "FeedError",
    "FeedTransportError",
    "FleetViewConfigError",
    "FleetViewError",
    "InMemoryFeed",
    "LatLng",
    "MapDefaults",
    "MarkerPopup",
    "MarkerStyle",
    "MergedTrackingRecord",
    "PersonnelRecord",
    "PositionReport",
    "RenderingSurface",
    "SelectionPolicy",
    "SourceHub",
    "SourceName",
    "StatusCounts",
    "StatusInfo",
    "StatusTier",
    "Subscription",
    "SubscriptionProvider",
    "SurfaceUnavailableError",
    "TrackingConfig",
    "TrackingView",
    "UnitDetail",
    "UnitListRow",
    "UnitRecord",
    "UnknownUnitError",
]
