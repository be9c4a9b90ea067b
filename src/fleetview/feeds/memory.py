"""In-process snapshot feed.

Useful for embedding (push snapshots from any producer) and as the feed
double in tests. New subscribers immediately receive the last published
snapshot, mirroring how document-store listeners deliver initial state.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from fleetview.feeds.base import CallbackSubscription, ErrorCallback, SnapshotCallback, Subscription
from fleetview.state.events import SourceName

_logger = logging.getLogger(__name__)


@dataclass
class _Subscriber:
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


class InMemoryFeed:
    """Subscription provider backed by plain Python lists."""

    def __init__(self, initial: Mapping[SourceName, Iterable[Mapping[str, Any]]] | None = None) -> None:
        self._snapshots: dict[SourceName, list[dict[str, Any]]] = {}
        self._subscribers: dict[SourceName, list[_Subscriber]] = {source: [] for source in SourceName}
        self._subscribe_errors: dict[SourceName, BaseException] = {}
        self._held: set[SourceName] = set()
        for source, records in (initial or {}).items():
            self._snapshots[SourceName(source)] = [dict(r) for r in records]

    def subscriber_count(self, source: SourceName) -> int:
        return len(self._subscribers[source])

    def fail_subscribe(self, source: SourceName, error: BaseException) -> None:
        """Make the next subscriptions to *source* raise *error*."""
        self._subscribe_errors[source] = error

    def hold(self, source: SourceName) -> None:
        """Make subscriptions to *source* never complete."""
        self._held.add(source)

    async def subscribe(
        self,
        source: SourceName,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        if source in self._held:
            await asyncio.get_running_loop().create_future()
        error = self._subscribe_errors.get(source)
        if error is not None:
            raise error

        subscriber = _Subscriber(on_snapshot, on_error)
        self._subscribers[source].append(subscriber)
        _logger.debug("In-memory subscriber added source=%s", source.value)
        if source in self._snapshots:
            on_snapshot(copy.deepcopy(self._snapshots[source]))

        def _cancel() -> None:
            if subscriber in self._subscribers[source]:
                self._subscribers[source].remove(subscriber)

        return CallbackSubscription(_cancel)

    def publish(self, source: SourceName, records: Iterable[Mapping[str, Any]]) -> None:
        """Replace *source*'s snapshot and deliver it to every subscriber."""
        snapshot = [dict(r) for r in records]
        self._snapshots[source] = snapshot
        for subscriber in list(self._subscribers[source]):
            subscriber.on_snapshot(copy.deepcopy(snapshot))

    def fail(self, source: SourceName, error: BaseException) -> None:
        """Report a listener error to every subscriber of *source*."""
        for subscriber in list(self._subscribers[source]):
            subscriber.on_error(error)
