#!/usr/bin/env python3
"""Headless fleet watcher.

Connects a tracking view to a live MQTT or HTTP snapshot feed and prints
the visible unit list every time it changes. Marker and viewport commands
are logged instead of drawn, which makes this useful to check a feed's
data before pointing a real map at it.

Configuration comes from ``FLEETVIEW_*`` environment variables (see
``TrackingConfig.from_env``, ``MqttFeedConfig.from_env`` and
``HttpFeedConfig.from_env``).
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import itertools
import logging
import signal
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetview import TrackingConfig, TrackingView  # noqa: E402
from fleetview.feeds.base import SubscriptionProvider  # noqa: E402
from fleetview.feeds.http import HttpFeedConfig, HttpPollingFeed  # noqa: E402
from fleetview.feeds.mqtt import MqttFeedConfig, MqttSnapshotFeed  # noqa: E402
from fleetview.render.surface import BoundingBox, LatLng, MarkerPopup, MarkerStyle  # noqa: E402

_LOG = logging.getLogger("watch_fleet")


class LoggingSurface:
    """Rendering surface that only logs what a map would draw."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._markers: dict[int, str] = {}

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
        handle = next(self._ids)
        self._markers[handle] = popup.vehicle_id
        _LOG.debug(
            "marker+ #%d %s at %.5f,%.5f tier=%s",
            handle,
            popup.vehicle_id,
            position.latitude,
            position.longitude,
            style.tier,
        )
        return handle

    def remove_marker(self, handle: Any) -> None:
        _LOG.debug("marker- #%s %s", handle, self._markers.pop(handle, "?"))

    def update_popup(self, handle: Any, popup: MarkerPopup) -> None:
        _LOG.debug("popup #%s updated %s", handle, popup.updated_ago)

    def set_viewport_bounds(self, bounds: BoundingBox, padding: float) -> None:
        _LOG.info(
            "viewport fit S%.4f W%.4f N%.4f E%.4f padding=%s",
            bounds.south,
            bounds.west,
            bounds.north,
            bounds.east,
            padding,
        )

    def set_viewport_center(self, position: LatLng, zoom: int) -> None:
        _LOG.info("viewport focus %.5f,%.5f zoom=%d", position.latitude, position.longitude, zoom)

    def close(self) -> None:
        self._markers.clear()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch today's fleet units from a live feed.")
    parser.add_argument(
        "--feed",
        choices=("mqtt", "http"),
        default="mqtt",
        help="Snapshot feed to subscribe to.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument("--route", default=None, help="Only show units on this route.")
    parser.add_argument("--search", default=None, help="Unit id / route substring filter.")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_view(view: TrackingView) -> None:
    if view.is_loading:
        print("[watch] Loading tracking data...")
        return
    counts = view.counts()
    print(f"[watch] {view.header()} | {view.count_label()} available today")
    print(f"[watch]   active={counts.active} idle={counts.idle} total={counts.total}")
    for row in view.list_rows():
        marker = "*" if row.selected else " "
        print(
            f"[watch] {marker} {row.unit_id:<12} {row.vehicle_id:<16} {row.route:<16} "
            f"{row.status.label:<8} {row.driver_name:<24} {row.updated_ago}"
        )


async def _run(args: argparse.Namespace, provider: SubscriptionProvider) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)

    async with TrackingView(provider, config=TrackingConfig.from_env(), surface=LoggingSurface()) as view:
        view.set_route_filter(args.route)
        view.set_search(args.search)
        view.add_listener(lambda: _print_view(view))
        _print_view(view)
        if args.duration > 0:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), args.duration)
        else:
            await stop.wait()


async def _main_async(args: argparse.Namespace) -> None:
    if args.feed == "http":
        async with HttpPollingFeed(HttpFeedConfig.from_env()) as feed:
            await _run(args, feed)
        return

    mqtt_feed = MqttSnapshotFeed(MqttFeedConfig.from_env())
    try:
        await _run(args, mqtt_feed)
    finally:
        mqtt_feed.stop()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_main_async(args))
    except KeyboardInterrupt:
        pass
    except Exception as exc:  # pragma: no cover - network/system interaction
        print(f"[watch] Failed: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
