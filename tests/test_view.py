from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from fleetview.config import SelectionPolicy, TrackingConfig
from fleetview.exceptions import UnknownUnitError
from fleetview.feeds.memory import InMemoryFeed
from fleetview.render.surface import BoundingBox, LatLng, MarkerPopup, MarkerStyle
from fleetview.state.events import SourceName
from fleetview.view import TrackingView

TODAY_0900 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class _DummySurface:
    def __init__(self) -> None:
        self.markers: dict[int, tuple[LatLng, MarkerStyle, MarkerPopup, Callable[[], None]]] = {}
        self.viewports: list[tuple[str, Any]] = []
        self.popup_updates = 0
        self.closed = False
        self._next = 0

    @property
    def is_ready(self) -> bool:
        return True

    def add_marker(
        self,
        position: LatLng,
        style: MarkerStyle,
        popup: MarkerPopup,
        on_click: Callable[[], None],
    ) -> int:
        self._next += 1
        self.markers[self._next] = (position, style, popup, on_click)
        return self._next

    def remove_marker(self, handle: int) -> None:
        del self.markers[handle]

    def update_popup(self, handle: int, popup: MarkerPopup) -> None:
        position, style, _, on_click = self.markers[handle]
        self.markers[handle] = (position, style, popup, on_click)
        self.popup_updates += 1

    def set_viewport_bounds(self, bounds: BoundingBox, padding: float) -> None:
        self.viewports.append(("fit", bounds))

    def set_viewport_center(self, position: LatLng, zoom: int) -> None:
        self.viewports.append(("center", position))

    def close(self) -> None:
        self.closed = True

    def vehicle_ids(self) -> set[str]:
        return {popup.vehicle_id for _, _, popup, _ in self.markers.values()}

    def click(self, vehicle_id: str) -> None:
        for _, _, popup, on_click in self.markers.values():
            if popup.vehicle_id == vehicle_id:
                on_click()
                return
        raise AssertionError(f"no marker for {vehicle_id}")


def _config(**overrides: Any) -> TrackingConfig:
    values: dict[str, Any] = {"time_zone": "UTC", "tick_interval": 0}
    values.update(overrides)
    return TrackingConfig(**values)


def _fleet_feed() -> InMemoryFeed:
    return InMemoryFeed(
        {
            SourceName.POSITIONS: [
                {
                    "unitID": "U1",
                    "status": "Moving",
                    "route": "North",
                    "latitude": 14.1,
                    "longitude": 121.0,
                    "updatedAt": TODAY_0900,
                },
                {
                    "unitID": "U2",
                    "status": "Inactive",
                    "route": "South",
                    "latitude": 13.1,
                    "longitude": 121.5,
                    "updatedAt": TODAY_0900,
                },
                {
                    "unitID": "OLD",
                    "status": "Idle",
                    "route": "Stale",
                    "updatedAt": TODAY_0900 - timedelta(days=1),
                },
            ],
            SourceName.UNITS: [
                {"id": "U1", "unitHolder": "P1", "vehicleID": "V1"},
                {"id": "U2", "unitHolder": "P9", "vehicleID": "V2"},
            ],
            SourceName.PERSONNEL: [{"id": "P1", "firstName": "Juan", "lastName": "Cruz"}],
            SourceName.ACTIVITY: [{"personnelID": "P1", "Particular": "Fuel stop", "Timestamp": TODAY_0900}],
        }
    )


@pytest.mark.asyncio
async def test_loading_until_first_position_snapshot() -> None:
    feed = InMemoryFeed()
    clock = _Clock(TODAY_0900 + timedelta(hours=1))

    async with TrackingView(feed, config=_config(), clock=clock) as view:
        assert view.is_loading
        assert view.records == ()
        assert view.route_options == ("All Routes",)

        feed.publish(SourceName.POSITIONS, [])

        assert not view.is_loading
        assert view.header() == "Showing all 0 units updated today"


@pytest.mark.asyncio
async def test_merged_view_of_today() -> None:
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(minutes=45))

    async with TrackingView(_fleet_feed(), config=_config(), surface=surface, clock=clock) as view:
        assert [r.unit_id for r in view.records] == ["U1", "U2"]
        assert view.route_options == ("All Routes", "North", "South")
        assert view.count_label() == "2 Units"

        u1, u2 = view.records
        assert (u1.vehicle_id, u1.driver_name, u1.particular) == ("V1", "Juan Cruz", "Fuel stop")
        assert u2.driver_name == "No Driver Found"

        counts = view.counts()
        assert (counts.active, counts.idle, counts.total) == (1, 1, 2)

        rows = view.list_rows()
        assert [row.updated_ago for row in rows] == ["45m ago", "45m ago"]
        assert surface.vehicle_ids() == {"V1", "V2"}
        assert surface.viewports[-1][0] == "fit"


@pytest.mark.asyncio
async def test_toggle_drives_detail_and_map_focus() -> None:
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(hours=1))

    async with TrackingView(_fleet_feed(), config=_config(), surface=surface, clock=clock) as view:
        view.toggle("U1")

        detail = view.selected_detail()
        assert detail is not None
        assert detail.vehicle_id == "V1"
        assert detail.latitude == "14.1000000"
        assert view.header() == "V1 - North"
        assert surface.viewports[-1] == ("center", LatLng(14.1, 121.0))
        assert [row.selected for row in view.list_rows()] == [True, False]

        view.toggle("U1")

        assert view.selected is None
        assert view.selected_detail() is None
        assert surface.viewports[-1][0] == "fit"


@pytest.mark.asyncio
async def test_marker_click_selects_and_unknown_unit_is_rejected() -> None:
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(hours=1))

    async with TrackingView(_fleet_feed(), config=_config(), surface=surface, clock=clock) as view:
        surface.click("V2")
        assert view.selected == "U2"

        with pytest.raises(UnknownUnitError):
            view.toggle("OLD")

        view.dismiss_detail()
        assert view.selected is None


@pytest.mark.asyncio
async def test_operator_filters_do_not_rejoin() -> None:
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(hours=1))

    async with TrackingView(_fleet_feed(), config=_config(), surface=surface, clock=clock) as view:
        recomputes = view._engine.recompute_count  # type: ignore[attr-defined]

        view.set_route_filter("South")
        assert [r.unit_id for r in view.records] == ["U2"]
        assert surface.vehicle_ids() == {"V2"}

        view.set_route_filter("All Routes")
        view.set_search("u1")
        assert [r.unit_id for r in view.records] == ["U1"]

        view.set_search("sOuTh")
        assert [r.unit_id for r in view.records] == ["U2"]

        view.set_search("nothing-matches")
        assert view.records == ()
        assert surface.markers == {}

        assert view._engine.recompute_count == recomputes  # type: ignore[attr-defined]
        assert view.route_options == ("All Routes", "North", "South")


@pytest.mark.asyncio
async def test_unit_leaving_today_with_retained_selection() -> None:
    feed = _fleet_feed()
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(hours=1))

    async with TrackingView(feed, config=_config(), surface=surface, clock=clock) as view:
        view.toggle("U1")
        feed.publish(
            SourceName.POSITIONS,
            [{"unitID": "U2", "status": "idle", "latitude": 13.1, "longitude": 121.5, "updatedAt": TODAY_0900}],
        )

        assert view.selected == "U1"
        assert view.selected_detail() is None
        assert view.header() == "Showing all 1 unit updated today"
        assert surface.vehicle_ids() == {"V2"}
        assert surface.viewports[-1][0] == "fit"


@pytest.mark.asyncio
async def test_unit_leaving_today_with_auto_clear() -> None:
    feed = _fleet_feed()
    clock = _Clock(TODAY_0900 + timedelta(hours=1))
    config = _config(selection_policy=SelectionPolicy.AUTO_CLEAR)

    async with TrackingView(feed, config=config, clock=clock) as view:
        view.toggle("U1")
        feed.publish(SourceName.POSITIONS, [{"unitID": "U2", "updatedAt": TODAY_0900}])

        assert view.selected is None


@pytest.mark.asyncio
async def test_tick_rolls_over_at_local_midnight() -> None:
    surface = _DummySurface()
    clock = _Clock(datetime(2026, 3, 2, 23, 58, tzinfo=UTC))

    async with TrackingView(_fleet_feed(), config=_config(), surface=surface, clock=clock) as view:
        assert len(view.records) == 2

        clock.now = datetime(2026, 3, 3, 0, 5, tzinfo=UTC)
        view.tick()

        assert view.records == ()
        assert surface.markers == {}


@pytest.mark.asyncio
async def test_tick_refreshes_relative_times() -> None:
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(minutes=10))

    async with TrackingView(_fleet_feed(), config=_config(), surface=surface, clock=clock) as view:
        before = surface.popup_updates
        clock.now += timedelta(minutes=50)
        view.tick()

        popups = {popup.vehicle_id: popup.updated_ago for _, _, popup, _ in surface.markers.values()}
        assert popups == {"V1": "1h ago", "V2": "1h ago"}
        assert surface.popup_updates == before + 2


@pytest.mark.asyncio
async def test_background_tick_task_runs() -> None:
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(minutes=10))

    async with TrackingView(_fleet_feed(), config=_config(tick_interval=0.01), surface=surface, clock=clock):
        before = surface.popup_updates
        clock.now += timedelta(minutes=20)
        for _ in range(100):
            if surface.popup_updates > before:
                break
            await asyncio.sleep(0.01)

    assert surface.popup_updates >= before + 2


@pytest.mark.asyncio
async def test_failed_source_degrades_without_blocking_others() -> None:
    feed = _fleet_feed()
    feed.fail_subscribe(SourceName.PERSONNEL, PermissionError("denied"))
    clock = _Clock(TODAY_0900 + timedelta(hours=1))

    async with TrackingView(feed, config=_config(), clock=clock) as view:
        u1 = view.records[0]
        assert u1.vehicle_id == "V1"
        assert u1.driver_name == "No Driver Found"
        assert view.source_status(SourceName.PERSONNEL).failed


@pytest.mark.asyncio
async def test_surface_attached_later_gets_full_state() -> None:
    clock = _Clock(TODAY_0900 + timedelta(hours=1))

    async with TrackingView(_fleet_feed(), config=_config(), clock=clock) as view:
        surface = _DummySurface()
        view.attach_surface(surface)

        assert surface.vehicle_ids() == {"V1", "V2"}
        assert view.reconciler.is_attached


@pytest.mark.asyncio
async def test_teardown_releases_everything() -> None:
    feed = _fleet_feed()
    surface = _DummySurface()
    clock = _Clock(TODAY_0900 + timedelta(hours=1))
    changes: list[None] = []

    view = TrackingView(feed, config=_config(tick_interval=5), surface=surface, clock=clock)
    await view.start()
    view.add_listener(lambda: changes.append(None))
    view.toggle("U1")
    assert changes

    await view.aclose()
    await view.aclose()

    assert all(feed.subscriber_count(source) == 0 for source in SourceName)
    assert view.selected is None
    assert surface.closed
    assert surface.markers == {}

    changes.clear()
    feed.publish(SourceName.POSITIONS, [{"unitID": "U9", "updatedAt": TODAY_0900}])
    assert changes == []
