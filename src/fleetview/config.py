"""View configuration for fleetview."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from enum import StrEnum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fleetview.exceptions import FleetViewConfigError


class SelectionPolicy(StrEnum):
    """What happens to a selection whose unit drops out of the tracking set."""

    RETAIN = "retain"
    AUTO_CLEAR = "auto_clear"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    value = env.get(key)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise FleetViewConfigError(f"{key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class MapDefaults:
    """Initial map view and base layer used before any data arrives."""

    center_latitude: float = 13.2905
    center_longitude: float = 121.1267
    zoom: int = 10
    max_zoom: int = 15
    tile_url: str = "https://{s}.basemaps.cartocdn.com/rastertiles/voyager/{z}/{x}/{y}{r}.png"
    tile_subdomains: str = "abcd"
    attribution: str = (
        '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors '
        '&copy; <a href="https://carto.com/attributions">CARTO</a>'
    )


@dataclasses.dataclass(frozen=True)
class TrackingConfig:
    """Tracking view configuration.

    Parameters
    ----------
    time_zone : str or None
        IANA time zone used to decide which reports are from "today".
        ``None`` uses the host's local zone.
    selection_policy : SelectionPolicy
        Whether a selection survives its unit leaving the tracking set.
    fit_padding : float
        Padding factor applied when fitting the viewport to all markers.
    focus_zoom : int
        Zoom level used when centering on a selected unit.
    tick_interval : float
        Seconds between clock ticks that refresh relative times and detect
        a date rollover. ``0`` disables the background tick.
    subscribe_timeout : float
        Seconds to wait for a source subscription to be established before
        degrading that source to empty. Must be positive.
    map_defaults : MapDefaults
        Initial map view.
    """

    time_zone: str | None = None
    selection_policy: SelectionPolicy = SelectionPolicy.RETAIN
    fit_padding: float = 10.0
    focus_zoom: int = 13
    tick_interval: float = 30.0
    subscribe_timeout: float = 15.0
    map_defaults: MapDefaults = dataclasses.field(default_factory=MapDefaults)

    def __post_init__(self) -> None:
        if self.fit_padding < 0:
            raise FleetViewConfigError("fit_padding must be >= 0")
        if self.tick_interval < 0:
            raise FleetViewConfigError("tick_interval must be >= 0")
        if self.subscribe_timeout <= 0:
            raise FleetViewConfigError("subscribe_timeout must be > 0")
        # Unknown zones fail at construction.
        self.tzinfo()

    def tzinfo(self) -> ZoneInfo | None:
        """Resolved time zone, or ``None`` for the host local zone."""
        if not self.time_zone:
            return None
        try:
            return ZoneInfo(self.time_zone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise FleetViewConfigError(f"Unknown time zone {self.time_zone!r}") from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackingConfig:
        """Create configuration from ``FLEETVIEW_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        tz = env.get("FLEETVIEW_TIME_ZONE")
        if tz:
            config_kwargs["time_zone"] = tz

        policy = env.get("FLEETVIEW_SELECTION_POLICY")
        if policy is not None:
            try:
                config_kwargs["selection_policy"] = SelectionPolicy(policy.strip().lower())
            except ValueError as exc:
                raise FleetViewConfigError(f"Unknown selection policy {policy!r}") from exc

        _ENV_FLOAT_MAP = {
            "FLEETVIEW_FIT_PADDING": "fit_padding",
            "FLEETVIEW_TICK_INTERVAL": "tick_interval",
            "FLEETVIEW_SUBSCRIBE_TIMEOUT": "subscribe_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = _env_float(env, env_key)
            if val is not None:
                config_kwargs[field_name] = val

        zoom = _env_float(env, "FLEETVIEW_FOCUS_ZOOM")
        if zoom is not None:
            config_kwargs["focus_zoom"] = int(zoom)

        map_overrides = overrides.pop("map_defaults", None)
        if isinstance(map_overrides, dict):
            config_kwargs["map_defaults"] = MapDefaults(**map_overrides)
        elif isinstance(map_overrides, MapDefaults):
            config_kwargs["map_defaults"] = map_overrides

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
