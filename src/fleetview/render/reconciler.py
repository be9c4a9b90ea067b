"""Map reconciler.

Keeps the rendering surface consistent with the current record set and
selection using the minimum number of surface calls:

- markers are diffed by unit id against what was placed last cycle
- a marker is refreshed only when its spec changed: popup-only changes go
  through ``update_popup`` when the surface supports it, anything else is a
  remove + add
- the viewport command is re-derived from the current records every
  cycle and only issued when it differs from the last one applied

While no surface is attached, or the surface is not ready, every cycle is
a no-op that remembers its inputs; the next cycle after readiness (or
:meth:`MapReconciler.attach`) performs a full reconciliation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fleetview.exceptions import SurfaceUnavailableError, UnknownUnitError
from fleetview.models import MergedTrackingRecord
from fleetview.presenter import time_ago
from fleetview.render.surface import (
    BoundingBox,
    LatLng,
    MarkerHandle,
    MarkerPopup,
    MarkerStyle,
    RenderingSurface,
    SupportsPopupUpdate,
)

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkerSpec:
    """Everything the surface needs to draw one marker."""

    position: LatLng
    style: MarkerStyle
    popup: MarkerPopup


@dataclass(frozen=True)
class FitBounds:
    bounds: BoundingBox
    padding: float


@dataclass(frozen=True)
class FocusCenter:
    position: LatLng
    zoom: int


Viewport = FitBounds | FocusCenter


@dataclass
class _PlacedMarker:
    handle: MarkerHandle
    spec: MarkerSpec


@dataclass(frozen=True)
class _Inputs:
    records: tuple[MergedTrackingRecord, ...]
    selected: str | None
    now: datetime


def _only_popup_changed(old: MarkerSpec, new: MarkerSpec) -> bool:
    return old.position == new.position and old.style == new.style


def marker_spec(record: MergedTrackingRecord, *, selected: bool, now: datetime) -> MarkerSpec:
    info = record.status_info
    style = MarkerStyle.for_tier(info.tier, selected=selected)
    return MarkerSpec(
        position=LatLng(record.latitude, record.longitude),
        style=style,
        popup=MarkerPopup(
            vehicle_id=record.vehicle_id,
            route=record.route,
            driver_name=record.driver_name,
            status_label=info.label,
            status_color=style.color,
            updated_ago=time_ago(record.updated_at, now),
        ),
    )


def derive_viewport(
    records: Sequence[MergedTrackingRecord],
    selected: str | None,
    *,
    padding: float,
    zoom: int,
) -> Viewport | None:
    """Focus the selected record if present, else fit all; ``None`` when empty."""
    if selected is not None:
        focused = next((r for r in records if r.unit_id == selected), None)
        if focused is not None:
            return FocusCenter(LatLng(focused.latitude, focused.longitude), zoom)
    if not records:
        return None
    return FitBounds(BoundingBox.around(LatLng(r.latitude, r.longitude) for r in records), padding)


class MapReconciler:
    """Exclusive owner of the rendering surface."""

    def __init__(
        self,
        *,
        on_select: Callable[[str], Any],
        fit_padding: float = 10.0,
        focus_zoom: int = 13,
        surface: RenderingSurface | None = None,
    ) -> None:
        self._on_select = on_select
        self._fit_padding = fit_padding
        self._focus_zoom = focus_zoom
        self._surface = surface
        self._markers: dict[str, _PlacedMarker] = {}
        self._viewport: Viewport | None = None
        self._pending: _Inputs | None = None

    @property
    def is_attached(self) -> bool:
        return self._surface is not None

    @property
    def marker_ids(self) -> frozenset[str]:
        return frozenset(self._markers)

    @property
    def viewport(self) -> Viewport | None:
        return self._viewport

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def attach(self, surface: RenderingSurface) -> None:
        """Take ownership of *surface* and replay the latest inputs onto it."""
        if surface is not self._surface:
            pending = self._pending
            if self._surface is not None:
                self.close()
            self._surface = surface
            self._pending = pending
        self.flush()

    def flush(self) -> None:
        """Reconcile the remembered inputs if the surface has become ready."""
        pending = self._pending
        if pending is not None:
            self.reconcile(pending.records, pending.selected, now=pending.now)

    def reconcile(
        self,
        records: Sequence[MergedTrackingRecord],
        selected: str | None,
        *,
        now: datetime,
    ) -> None:
        inputs = _Inputs(tuple(records), selected, now)
        surface = self._surface
        if surface is None or not surface.is_ready:
            self._pending = inputs
            return

        try:
            self._apply(surface, inputs)
        except SurfaceUnavailableError:
            _logger.debug("Rendering surface became unavailable mid-cycle", exc_info=True)
            self._pending = inputs
            return
        self._pending = None

    def _apply(self, surface: RenderingSurface, inputs: _Inputs) -> None:
        wanted = {
            r.unit_id: marker_spec(r, selected=r.unit_id == inputs.selected, now=inputs.now) for r in inputs.records
        }

        removed = [unit_id for unit_id in self._markers if unit_id not in wanted]
        for unit_id in removed:
            # Forget the marker only once the surface has dropped it, so a retry removes it again.
            surface.remove_marker(self._markers[unit_id].handle)
            del self._markers[unit_id]

        added = refreshed = 0
        for unit_id, spec in wanted.items():
            placed = self._markers.get(unit_id)
            if placed is not None and placed.spec == spec:
                continue
            if (
                placed is not None
                and _only_popup_changed(placed.spec, spec)
                and isinstance(surface, SupportsPopupUpdate)
            ):
                surface.update_popup(placed.handle, spec.popup)
                placed.spec = spec
                continue
            if placed is not None:
                surface.remove_marker(placed.handle)
                del self._markers[unit_id]
                refreshed += 1
            else:
                added += 1
            handle = surface.add_marker(spec.position, spec.style, spec.popup, self._click_handler(unit_id))
            self._markers[unit_id] = _PlacedMarker(handle=handle, spec=spec)

        if removed or added or refreshed:
            _logger.debug(
                "Markers reconciled added=%d refreshed=%d removed=%d total=%d",
                added,
                refreshed,
                len(removed),
                len(self._markers),
            )

        viewport = derive_viewport(
            inputs.records,
            inputs.selected,
            padding=self._fit_padding,
            zoom=self._focus_zoom,
        )
        if viewport is None or viewport == self._viewport:
            return
        if isinstance(viewport, FocusCenter):
            surface.set_viewport_center(viewport.position, viewport.zoom)
        else:
            surface.set_viewport_bounds(viewport.bounds, viewport.padding)
        self._viewport = viewport

    def _click_handler(self, unit_id: str) -> Callable[[], None]:
        def _on_click() -> None:
            try:
                self._on_select(unit_id)
            except UnknownUnitError:
                _logger.debug("Ignoring click on stale marker for unit %s", unit_id)

        return _on_click

    def close(self) -> None:
        """Remove every marker and release the surface."""
        surface = self._surface
        self._surface = None
        self._pending = None
        self._viewport = None
        markers = list(self._markers.values())
        self._markers.clear()
        if surface is None:
            return
        try:
            if surface.is_ready:
                for placed in markers:
                    surface.remove_marker(placed.handle)
        finally:
            surface.close()
            _logger.debug("Rendering surface closed (%d markers released)", len(markers))
