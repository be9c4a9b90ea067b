"""Tracking view: wires sources, join, selection and the map together."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from fleetview._constants import ALL_ROUTES
from fleetview.config import MapDefaults, TrackingConfig
from fleetview.feeds.base import SubscriptionProvider
from fleetview.feeds.hub import SourceHub
from fleetview.models import MergedTrackingRecord
from fleetview.presenter import (
    StatusCounts,
    UnitDetail,
    UnitListRow,
    aggregate_counts,
    list_row,
    map_header,
    unit_count_label,
    unit_detail,
)
from fleetview.render.reconciler import MapReconciler
from fleetview.render.surface import RenderingSurface
from fleetview.state.events import SourceName
from fleetview.state.join import JoinEngine, JoinResult
from fleetview.state.selection import SelectionController
from fleetview.state.store import SnapshotStore, SourceStatus

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TrackingView:
    """Live map of today's units.

    Usage::

        async with TrackingView(provider, surface=surface) as view:
            view.set_route_filter("Route 1")
            ...

    Parameters
    ----------
    provider : SubscriptionProvider
        Source of the four live snapshots.
    config : TrackingConfig or None
        View configuration. Defaults to ``TrackingConfig()``.
    surface : RenderingSurface or None
        Map surface; may also be attached later via :meth:`attach_surface`.
    clock : callable or None
        Returns the current instant. Defaults to ``datetime.now(UTC)``.
    """

    def __init__(
        self,
        provider: SubscriptionProvider,
        *,
        config: TrackingConfig | None = None,
        surface: RenderingSurface | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or TrackingConfig()
        self._clock = clock or _utcnow
        self._store = SnapshotStore(clock=self._clock)
        self._engine = JoinEngine(self._store, tz=self._config.tzinfo())
        self._selection = SelectionController(
            policy=self._config.selection_policy,
            is_known=lambda unit_id: unit_id in self._result.unit_ids,
        )
        self._reconciler = MapReconciler(
            on_select=self.toggle,
            fit_padding=self._config.fit_padding,
            focus_zoom=self._config.focus_zoom,
            surface=surface,
        )
        self._hub = SourceHub(
            provider,
            self._store,
            on_change=self._on_source_change,
            clock=self._clock,
            subscribe_timeout=self._config.subscribe_timeout,
        )
        self._result: JoinResult = self._engine.compute(self._clock())
        self._route_filter = ALL_ROUTES
        self._search = ""
        self._listeners: list[Callable[[], None]] = []
        self._remove_selection_listener = self._selection.add_listener(self._on_selection_change)
        self._tick_task: asyncio.Task[None] | None = None
        self._started = False
        self._closed = False

    async def __aenter__(self) -> TrackingView:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe all sources and start the clock tick."""
        if self._started:
            return
        self._started = True
        self._render(self._clock())
        await self._hub.start()
        if self._config.tick_interval > 0 and not self._closed:
            self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop(), name="fleetview-tick")

    async def aclose(self) -> None:
        """Cancel subscriptions, stop the tick, clear selection, release the map."""
        if self._closed:
            return
        self._closed = True
        task = self._tick_task
        self._tick_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._hub.aclose()
        self._remove_selection_listener()
        self._selection.clear()
        self._reconciler.close()
        self._listeners.clear()
        _logger.debug("Tracking view closed")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.tick_interval)
            try:
                self.tick()
            except Exception:
                _logger.exception("Tracking view tick failed")

    def tick(self) -> None:
        """Re-read the clock: roll the day over if needed and refresh relative times."""
        if self._closed:
            return
        self._refresh()

    # ------------------------------------------------------------------
    # Change propagation
    # ------------------------------------------------------------------

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call *listener* after every render; returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _on_source_change(self, source: SourceName) -> None:
        _logger.debug("Source %s changed", source.value)
        self._refresh()

    def _on_selection_change(self, selected: str | None) -> None:
        _logger.debug("Selection changed to %s", selected)
        self._render(self._clock())

    def _refresh(self) -> None:
        now = self._clock()
        result = self._engine.compute(now)
        if result is not self._result:
            self._result = result
            if self._route_filter not in result.route_options:
                _logger.debug("Route %r no longer offered; keeping filter", self._route_filter)
            self._selection.reconcile_membership(result.unit_ids)
        self._render(now)

    def _render(self, now: datetime) -> None:
        if self._closed:
            return
        self._reconciler.reconcile(self.records, self._selection.selected, now=now)
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    # Operator input
    # ------------------------------------------------------------------

    def toggle(self, unit_id: str) -> str | None:
        """Select *unit_id*, or deselect it if already selected."""
        return self._selection.toggle(unit_id)

    def dismiss_detail(self) -> None:
        self._selection.clear()

    def set_route_filter(self, route: str | None) -> None:
        """Restrict the visible set to one route (``All Routes`` clears)."""
        route = (route or "").strip() or ALL_ROUTES
        if route == self._route_filter:
            return
        self._route_filter = route
        self._render(self._clock())

    def set_search(self, term: str | None) -> None:
        """Case-insensitive substring match on unit id or route."""
        term = (term or "").strip()
        if term == self._search:
            return
        self._search = term
        self._render(self._clock())

    def attach_surface(self, surface: RenderingSurface) -> None:
        self._reconciler.attach(surface)
        self._render(self._clock())

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    @property
    def config(self) -> TrackingConfig:
        return self._config

    @property
    def map_defaults(self) -> MapDefaults:
        return self._config.map_defaults

    @property
    def is_loading(self) -> bool:
        """True until the first position snapshot (or its failure) arrives."""
        return not self._store.has_positions

    @property
    def selected(self) -> str | None:
        return self._selection.selected

    @property
    def route_filter(self) -> str:
        return self._route_filter

    @property
    def search(self) -> str:
        return self._search

    @property
    def route_options(self) -> tuple[str, ...]:
        return self._result.route_options

    @property
    def all_records(self) -> tuple[MergedTrackingRecord, ...]:
        """Today's merged records before operator filters."""
        return self._result.records

    @property
    def records(self) -> tuple[MergedTrackingRecord, ...]:
        """Today's merged records after the route and search filters."""
        route = self._route_filter
        term = self._search.lower()
        return tuple(
            r
            for r in self._result.records
            if (route == ALL_ROUTES or r.route == route)
            and (not term or term in r.unit_id.lower() or term in r.route.lower())
        )

    @property
    def reconciler(self) -> MapReconciler:
        return self._reconciler

    def source_status(self, source: SourceName) -> SourceStatus:
        return self._store.status(source)

    def selected_detail(self) -> UnitDetail | None:
        """Detail of the selected unit, or ``None`` if none or no longer tracked."""
        record = self._result.get(self._selection.selected)
        if record is None:
            return None
        return unit_detail(record, self._clock())

    def counts(self) -> StatusCounts:
        return aggregate_counts(self.records)

    def list_rows(self) -> list[UnitListRow]:
        now = self._clock()
        selected = self._selection.selected
        return [list_row(r, now, selected=r.unit_id == selected) for r in self.records]

    def count_label(self) -> str:
        return unit_count_label(len(self.records))

    def header(self) -> str:
        return map_header(self.records, self._result.get(self._selection.selected))
