"""HTTP polling snapshot feed.

Polls ``{base_url}/{source}`` on an interval and delivers the document list
whenever it differs from the previous poll.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
from typing import Any

import aiohttp

from fleetview.config import _env_float
from fleetview.exceptions import FeedError, FeedTransportError, FleetViewConfigError
from fleetview.feeds.base import (
    CallbackSubscription,
    ErrorCallback,
    SnapshotCallback,
    Subscription,
    decode_snapshot,
)
from fleetview.state.events import SourceName

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class HttpFeedConfig:
    """Polling settings.

    Parameters
    ----------
    base_url : str
        Snapshot endpoint root; source ``S`` is fetched from ``{base_url}/S``.
    poll_interval : float
        Seconds between polls of one source.
    request_timeout : float
        Total timeout of one request in seconds.
    token : str or None
        Optional bearer token sent as ``Authorization``.
    """

    base_url: str
    poll_interval: float = 5.0
    request_timeout: float = 10.0
    token: str | None = None

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise FleetViewConfigError("poll_interval must be > 0")

    def url_for(self, source: SourceName) -> str:
        return f"{self.base_url.rstrip('/')}/{source.value}"

    @classmethod
    def from_env(cls, **overrides: Any) -> HttpFeedConfig:
        """Create configuration from ``FLEETVIEW_HTTP_*`` environment variables."""
        env = os.environ
        config_kwargs: dict[str, Any] = {}
        base_url = env.get("FLEETVIEW_HTTP_BASE_URL")
        if base_url:
            config_kwargs["base_url"] = base_url
        token = env.get("FLEETVIEW_HTTP_TOKEN")
        if token:
            config_kwargs["token"] = token
        for env_key, field_name in (
            ("FLEETVIEW_HTTP_POLL_INTERVAL", "poll_interval"),
            ("FLEETVIEW_HTTP_REQUEST_TIMEOUT", "request_timeout"),
        ):
            val = _env_float(env, env_key)
            if val is not None:
                config_kwargs[field_name] = val

        config_kwargs.update(overrides)
        if not config_kwargs.get("base_url"):
            raise FleetViewConfigError("FLEETVIEW_HTTP_BASE_URL is required for the HTTP feed")
        return cls(**config_kwargs)


class HttpPollingFeed:
    """aiohttp-based polling subscription provider.

    Parameters
    ----------
    config : HttpFeedConfig
        Polling settings.
    session : aiohttp.ClientSession or None
        Optional shared session. If ``None``, one is created lazily and
        closed by :meth:`aclose`.
    """

    def __init__(self, config: HttpFeedConfig, *, session: aiohttp.ClientSession | None = None) -> None:
        self._config = config
        self._http = session
        self._owns_http = session is None
        self._tasks: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> HttpPollingFeed:
        self._ensure_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._config.request_timeout))
            self._owns_http = True
        return self._http

    async def fetch_snapshot(self, source: SourceName) -> list[dict[str, Any]]:
        """Fetch one snapshot of *source*."""
        http = self._ensure_session()
        url = self._config.url_for(source)
        headers = {"accept": "application/json"}
        if self._config.token:
            headers["authorization"] = f"Bearer {self._config.token}"

        _logger.debug("GET %s", url)
        try:
            async with http.get(url, headers=headers) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise FeedTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        source=source,
                        status_code=resp.status,
                    )
        except FeedTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise FeedTransportError(f"Request to {url} failed: {exc}", source=source) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FeedTransportError(f"Invalid JSON from {url}: {text[:200]}", source=source) from exc
        return decode_snapshot(body, source=source.value)

    async def _poll(self, source: SourceName, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> None:
        last: list[dict[str, Any]] | None = None
        while True:
            try:
                records = await self.fetch_snapshot(source)
            except FeedError as exc:
                last = None
                on_error(exc)
            else:
                if records != last:
                    last = records
                    on_snapshot(records)
            await asyncio.sleep(self._config.poll_interval)

    async def subscribe(
        self,
        source: SourceName,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        self._ensure_session()
        task = asyncio.get_running_loop().create_task(
            self._poll(source, on_snapshot, on_error),
            name=f"fleetview-poll-{source.value}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return CallbackSubscription(task.cancel)

    async def aclose(self) -> None:
        """Stop all polling and close the owned HTTP session."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None
