"""Source hub: owns the four live subscriptions.

Each subscription sits behind its own error boundary. A source that fails
to subscribe, times out, or reports an error is degraded to an empty
snapshot and reported once; the other sources keep updating. A later good
snapshot recovers the source.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from fleetview.exceptions import FeedDecodeError, FeedError, FleetViewConfigError
from fleetview.feeds.base import Subscription, SubscriptionProvider
from fleetview.ingestion.snapshots import parse_snapshot
from fleetview.state.events import SourceName
from fleetview.state.store import SnapshotStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SourceHub:
    """Subscribe all sources and feed their snapshots into a store."""

    def __init__(
        self,
        provider: SubscriptionProvider,
        store: SnapshotStore,
        *,
        on_change: Callable[[SourceName], None] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        subscribe_timeout: float = 15.0,
    ) -> None:
        self._provider = provider
        self._store = store
        self._on_change = on_change
        self._clock = clock
        if subscribe_timeout <= 0:
            raise FleetViewConfigError("subscribe_timeout must be > 0")
        self._subscribe_timeout = subscribe_timeout
        self._subscriptions: dict[SourceName, Subscription] = {}
        self._started = False
        self._closed = False

    @property
    def active_sources(self) -> frozenset[SourceName]:
        return frozenset(self._subscriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Establish all subscriptions concurrently."""
        if self._started:
            return
        self._started = True
        await asyncio.gather(*(self._subscribe(source) for source in SourceName))
        _logger.debug("Source hub started active=%s", sorted(s.value for s in self._subscriptions))

    async def _subscribe(self, source: SourceName) -> None:
        pending = self._provider.subscribe(
            source,
            lambda documents: self._handle_snapshot(source, documents),
            lambda error: self._handle_error(source, error),
        )
        try:
            subscription = await asyncio.wait_for(pending, self._subscribe_timeout)
        except TimeoutError:
            self._handle_error(
                source,
                FeedError(f"Subscribing to {source.value} timed out after {self._subscribe_timeout}s", source=source),
            )
            return
        except Exception as exc:  # noqa: BLE001 - contained at the source boundary
            self._handle_error(source, exc)
            return

        if self._closed:
            # Torn down while the subscription was being established.
            self._cancel(source, subscription)
            return
        self._subscriptions[source] = subscription

    def _handle_snapshot(self, source: SourceName, documents: Any) -> None:
        if self._closed:
            return
        if not isinstance(documents, (list, tuple)):
            self._handle_error(
                source,
                FeedDecodeError(f"Snapshot for {source.value} is not a list", source=source),
            )
            return
        try:
            event = parse_snapshot(source, documents, observed_at=self._clock())
        except Exception as exc:  # noqa: BLE001 - contained at the source boundary
            _logger.debug("Snapshot parse for %s failed", source.value, exc_info=True)
            self._handle_error(source, exc)
            return
        self._store.apply(event)
        self._notify(source)

    def _handle_error(self, source: SourceName, error: BaseException) -> None:
        if self._closed:
            return
        if self._store.mark_failed(source, error):
            _logger.warning("Source %s failed; treating it as empty: %s", source.value, error)
        else:
            _logger.debug("Source %s still failing: %s", source.value, error)
        self._notify(source)

    def _notify(self, source: SourceName) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(source)
        except Exception:
            _logger.exception("Tracking update after %s delivery failed", source.value)

    def _cancel(self, source: SourceName, subscription: Subscription) -> None:
        try:
            subscription.cancel()
        except Exception:
            _logger.debug("Cancelling %s subscription failed", source.value, exc_info=True)

    async def aclose(self) -> None:
        """Cancel every subscription together."""
        self._closed = True
        subscriptions = list(self._subscriptions.items())
        self._subscriptions.clear()
        for source, subscription in subscriptions:
            self._cancel(source, subscription)
        _logger.debug("Source hub closed (%d subscriptions cancelled)", len(subscriptions))
