"""Subscription provider interface shared by every feed."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

from fleetview.exceptions import FeedDecodeError
from fleetview.state.events import SourceName

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
"""Receives the complete replacement set of a source's documents."""

ErrorCallback = Callable[[BaseException], None]


class Subscription(Protocol):
    def cancel(self) -> None:
        """Stop delivery. Must be idempotent."""
        ...


class SubscriptionProvider(Protocol):
    """Structural interface of a live snapshot source.

    ``subscribe`` is the only suspension point; once it returns, snapshots
    and errors are pushed through the callbacks on the event loop thread.
    """

    async def subscribe(
        self,
        source: SourceName,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription: ...


class CallbackSubscription:
    """Subscription that runs a cancel function exactly once."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel: Callable[[], None] | None = cancel

    @property
    def cancelled(self) -> bool:
        return self._cancel is None

    def cancel(self) -> None:
        cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel()


def decode_snapshot(payload: Any, *, source: str = "") -> list[dict[str, Any]]:
    """Normalize a decoded JSON snapshot into a list of documents.

    Accepts a JSON array of objects, ``{"records": [...]}``, or a mapping of
    document id to document (the id is injected as ``"id"``).
    """
    if isinstance(payload, Mapping):
        if "records" in payload:
            payload = payload["records"]
        else:
            return [
                {"id": doc_id, **doc} if isinstance(doc, Mapping) else doc  # type: ignore[dict-item]
                for doc_id, doc in payload.items()
            ]
    if not isinstance(payload, list):
        raise FeedDecodeError(
            f"Snapshot for {source or 'source'} is {type(payload).__name__}, expected a list",
            source=source,
        )
    return payload
