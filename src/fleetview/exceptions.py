"""Custom exception hierarchy for fleetview."""

from __future__ import annotations


class FleetViewError(Exception):
    """Base exception for all fleetview errors."""


class FleetViewConfigError(FleetViewError):
    """Invalid or missing configuration."""


class FeedError(FleetViewError):
    """A source feed failed to subscribe or deliver a snapshot."""

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        super().__init__(message)


class FeedTransportError(FeedError):
    """HTTP/MQTT-level failure (network, non-200, broker refused)."""

    def __init__(
        self,
        message: str,
        *,
        source: str = "",
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, source=source)


class FeedDecodeError(FeedError):
    """Snapshot payload could not be decoded into a list of records."""


class SurfaceUnavailableError(FleetViewError):
    """The rendering surface is not attached or not ready yet."""


class UnknownUnitError(FleetViewError):
    """Selection targeted a unit that is not in the current record set."""

    def __init__(self, unit_id: str) -> None:
        self.unit_id = unit_id
        super().__init__(f"Unit {unit_id!r} is not in the current tracking set")
