"""Rendering surface interface and the value types passed across it.

The surface is an external, stateful map (e.g. a Leaflet map driven over a
bridge). :class:`fleetview.render.reconciler.MapReconciler` is its only
caller.
"""

from __future__ import annotations

import html
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from fleetview._constants import COLOR_ACTIVE, COLOR_IDLE, COLOR_STOPPED, MARKER_ICON_SIZE
from fleetview.status import StatusTier

MarkerHandle = Any
"""Opaque handle returned by :meth:`RenderingSurface.add_marker`."""


@dataclass(frozen=True)
class LatLng:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def around(cls, points: Iterable[LatLng]) -> BoundingBox:
        """Smallest box containing *points* (which must be non-empty)."""
        pts = list(points)
        if not pts:
            raise ValueError("cannot bound an empty set of points")
        lats = [p.latitude for p in pts]
        lngs = [p.longitude for p in pts]
        return cls(south=min(lats), west=min(lngs), north=max(lats), east=max(lngs))


_TIER_COLORS: dict[StatusTier, str] = {
    StatusTier.ACTIVE: COLOR_ACTIVE,
    StatusTier.IDLE: COLOR_IDLE,
    StatusTier.STOPPED: COLOR_STOPPED,
    StatusTier.UNKNOWN: COLOR_IDLE,
}


@dataclass(frozen=True)
class MarkerStyle:
    """Visual encoding of a marker.

    ``animated`` marks moving units, ``warning`` adds the pulsing ring
    shown for stopped units.
    """

    tier: StatusTier
    color: str
    animated: bool = False
    warning: bool = False
    selected: bool = False
    icon_size: int = MARKER_ICON_SIZE

    @classmethod
    def for_tier(cls, tier: StatusTier, *, selected: bool = False) -> MarkerStyle:
        return cls(
            tier=tier,
            color=_TIER_COLORS[tier],
            animated=tier == StatusTier.ACTIVE,
            warning=tier == StatusTier.STOPPED,
            selected=selected,
        )


@dataclass(frozen=True)
class MarkerPopup:
    """Popup summary bound to a marker."""

    vehicle_id: str
    route: str
    driver_name: str
    status_label: str
    status_color: str
    updated_ago: str

    def to_html(self) -> str:
        e = html.escape
        return (
            '<div class="fleetview-popup">'
            f'<div class="fleetview-popup__title">{e(self.vehicle_id)}</div>'
            f"<div><strong>Route:</strong> {e(self.route)}</div>"
            f"<div><strong>Driver:</strong> {e(self.driver_name)}</div>"
            f'<div><strong>Status:</strong> <span style="color: {e(self.status_color)}">'
            f"{e(self.status_label)}</span></div>"
            f'<div class="fleetview-popup__updated">Updated: {e(self.updated_ago)}</div>'
            "</div>"
        )


class RenderingSurface(Protocol):
    """Structural interface of the map surface.

    Having a protocol here makes it easy to pass test doubles or bridge
    implementations while the reconciler stays concrete.
    """

    @property
    def is_ready(self) -> bool: ...

    def add_marker(
        self,
        position: LatLng,
        style: MarkerStyle,
        popup: MarkerPopup,
        on_click: Callable[[], None],
    ) -> MarkerHandle: ...

    def remove_marker(self, handle: MarkerHandle) -> None: ...

    def set_viewport_bounds(self, bounds: BoundingBox, padding: float) -> None: ...

    def set_viewport_center(self, position: LatLng, zoom: int) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class SupportsPopupUpdate(Protocol):
    """Optional capability: rewrite a marker's popup in place."""

    def update_popup(self, handle: MarkerHandle, popup: MarkerPopup) -> None: ...
