"""MQTT snapshot feed.

A publisher pushes each source's full snapshot as a retained JSON message on
``{topic_prefix}/{source}``. The paho-mqtt network loop runs on its own
thread; decoded snapshots cross onto the asyncio loop via
``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import threading
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from fleetview.config import _env_bool
from fleetview.exceptions import FeedDecodeError, FeedTransportError, FleetViewConfigError
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
class MqttFeedConfig:
    """Broker connection settings.

    Parameters
    ----------
    host : str
        Broker host name.
    port : int
        Broker port. Defaults to 1883, or 8883 when ``tls`` is set.
    username, password : str or None
        Optional broker credentials.
    tls : bool
        Connect over TLS with the system trust store.
    topic_prefix : str
        Snapshots for source ``S`` are read from ``{topic_prefix}/S``.
    client_id : str
        MQTT client id; empty lets the broker assign one.
    keepalive : int
        MQTT keepalive in seconds.
    """

    host: str
    port: int | None = None
    username: str | None = None
    password: str | None = None
    tls: bool = False
    topic_prefix: str = "fleetview"
    client_id: str = ""
    keepalive: int = 60

    @property
    def effective_port(self) -> int:
        if self.port is not None:
            return self.port
        return 8883 if self.tls else 1883

    def topic_for(self, source: SourceName) -> str:
        return f"{self.topic_prefix.rstrip('/')}/{source.value}"

    @classmethod
    def from_env(cls, **overrides: Any) -> MqttFeedConfig:
        """Create configuration from ``FLEETVIEW_MQTT_*`` environment variables."""
        env = os.environ
        _ENV_CONFIG_MAP = {
            "FLEETVIEW_MQTT_HOST": "host",
            "FLEETVIEW_MQTT_USERNAME": "username",
            "FLEETVIEW_MQTT_PASSWORD": "password",
            "FLEETVIEW_MQTT_TOPIC_PREFIX": "topic_prefix",
            "FLEETVIEW_MQTT_CLIENT_ID": "client_id",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, field_name in (("FLEETVIEW_MQTT_PORT", "port"), ("FLEETVIEW_MQTT_KEEPALIVE", "keepalive")):
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise FleetViewConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        if "tls" not in overrides:
            config_kwargs["tls"] = _env_bool(env.get("FLEETVIEW_MQTT_TLS"), False)

        config_kwargs.update(overrides)
        if not config_kwargs.get("host"):
            raise FleetViewConfigError("FLEETVIEW_MQTT_HOST is required for the MQTT feed")
        return cls(**config_kwargs)


def decode_snapshot_payload(payload: bytes, *, source: str = "") -> list[dict[str, Any]]:
    """Decode an MQTT message body into a snapshot document list."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FeedDecodeError(f"Invalid JSON snapshot for {source or 'source'}: {exc}", source=source) from exc
    return decode_snapshot(parsed, source=source)


def _log_start_failure(future: asyncio.Future[None]) -> None:
    if not future.cancelled() and future.exception() is not None:
        _logger.debug("MQTT start failed", exc_info=future.exception())


@dataclasses.dataclass
class _TopicHandler:
    source: SourceName
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


class MqttSnapshotFeed:
    """Threaded paho-mqtt subscription provider.

    One client connection is shared by all subscriptions and is opened by the
    first ``subscribe`` call. Cancelling the last subscription disconnects.
    """

    def __init__(
        self,
        config: MqttFeedConfig,
        *,
        client_factory: Callable[[], mqtt.Client] | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handlers: dict[str, list[_TopicHandler]] = {}
        self._lock = threading.Lock()
        self._connect_lock = asyncio.Lock()
        self._starting: asyncio.Future[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _build_client(self) -> mqtt.Client:
        if self._client_factory is not None:
            return self._client_factory()
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._config.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(_logger)
        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password)
        if self._config.tls:
            client.tls_set()
        return client

    def _start(self) -> None:
        """Connect and start the network loop (runs in an executor)."""
        cfg = self._config
        _logger.debug(
            "MQTT feed start requested host=%s port=%s prefix=%s",
            cfg.host,
            cfg.effective_port,
            cfg.topic_prefix,
        )
        client = self._build_client()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if getattr(reason_code, "value", reason_code) != 0:
                _logger.warning("MQTT connect failed: %s", reason_code)
                self._broadcast_error(FeedTransportError(f"MQTT broker refused connection: {reason_code}"))
                return
            with self._lock:
                topics = list(self._handlers)
            _logger.debug("MQTT connected reason=%s resubscribing=%s", reason_code, topics)
            for topic in topics:
                c.subscribe(topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            with self._lock:
                handlers = list(self._handlers.get(msg.topic, ()))
            if not handlers:
                return
            source = handlers[0].source
            try:
                records = decode_snapshot_payload(msg.payload, source=source.value)
            except FeedDecodeError as exc:
                _logger.debug("MQTT payload decode failure topic=%s", msg.topic, exc_info=True)
                for handler in handlers:
                    self._dispatch(handler.on_error, exc)
                return
            _logger.debug("MQTT snapshot topic=%s records=%d", msg.topic, len(records))
            for handler in handlers:
                self._dispatch(handler.on_snapshot, records)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                _logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(cfg.host, cfg.effective_port, keepalive=cfg.keepalive)
        client.loop_start()

        with self._lock:
            self._client = client
            self._running = True
            idle = not self._handlers
        _logger.debug("MQTT network loop started")
        if idle:
            # Every subscriber went away while connecting.
            _logger.debug("MQTT connect finished with no subscribers; stopping")
            self.stop()

    def _dispatch(self, callback: Callable[[Any], None], arg: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, arg)

    def _broadcast_error(self, error: BaseException) -> None:
        with self._lock:
            handlers = [h for hs in self._handlers.values() for h in hs]
        for handler in handlers:
            self._dispatch(handler.on_error, error)

    async def _ensure_started(self) -> None:
        async with self._connect_lock:
            if self._running:
                return
            self._loop = asyncio.get_running_loop()
            if self._starting is None or self._starting.done():
                self._starting = self._loop.run_in_executor(None, self._start)
                self._starting.add_done_callback(_log_start_failure)
            starting = self._starting
        try:
            # A cancelled subscriber must not cancel the connect shared by the others.
            await asyncio.shield(starting)
        except OSError as exc:
            raise FeedTransportError(
                f"MQTT connect to {self._config.host}:{self._config.effective_port} failed: {exc}"
            ) from exc

    async def subscribe(
        self,
        source: SourceName,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        topic = self._config.topic_for(source)
        handler = _TopicHandler(source, on_snapshot, on_error)
        with self._lock:
            first_for_topic = topic not in self._handlers
            self._handlers.setdefault(topic, []).append(handler)
        try:
            await self._ensure_started()
        except FeedTransportError as exc:
            self._remove_handler(topic, handler)
            exc.source = source
            raise
        except BaseException:
            self._remove_handler(topic, handler)
            raise
        client = self._client
        if first_for_topic and client is not None:
            _logger.debug("MQTT subscribing topic=%s", topic)
            client.subscribe(topic, qos=1)
        return CallbackSubscription(lambda: self._remove_handler(topic, handler))

    def _remove_handler(self, topic: str, handler: _TopicHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)
            topic_empty = not handlers
            if topic_empty:
                self._handlers.pop(topic, None)
            idle = not self._handlers
        client = self._client
        if topic_empty and client is not None and self._running:
            client.unsubscribe(topic)
        if idle:
            self.stop()

    def stop(self) -> None:
        """Stop and disconnect the MQTT client if running."""
        with self._lock:
            client = self._client
            self._client = None
            was_running = self._running
            self._running = False

        if client is None:
            return
        try:
            if was_running:
                _logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("MQTT network loop stopped")
