from __future__ import annotations

import asyncio
import json
import threading
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import pytest

from fleetview.exceptions import FeedDecodeError, FeedTransportError, FleetViewConfigError
from fleetview.feeds.hub import SourceHub
from fleetview.feeds.mqtt import MqttFeedConfig, MqttSnapshotFeed, decode_snapshot_payload
from fleetview.state.events import SourceName
from fleetview.state.store import SnapshotStore

# ------------------------------------------------------------------
# Payload decoding
# ------------------------------------------------------------------


def test_decode_json_array() -> None:
    payload = json.dumps([{"unitID": "U1"}, {"unitID": "U2"}]).encode()

    assert decode_snapshot_payload(payload) == [{"unitID": "U1"}, {"unitID": "U2"}]


def test_decode_records_envelope() -> None:
    payload = json.dumps({"records": [{"id": "U1"}], "generatedAt": 1}).encode()

    assert decode_snapshot_payload(payload) == [{"id": "U1"}]


def test_decode_document_mapping_injects_ids() -> None:
    payload = json.dumps({"U1": {"vehicleID": "V1"}, "U2": {"vehicleID": "V2"}}).encode()

    assert decode_snapshot_payload(payload) == [
        {"id": "U1", "vehicleID": "V1"},
        {"id": "U2", "vehicleID": "V2"},
    ]


@pytest.mark.parametrize("payload", [b"{not json", b"42", b"\xff\xfe", b'"text"'])
def test_decode_rejects_non_snapshots(payload: bytes) -> None:
    with pytest.raises(FeedDecodeError) as excinfo:
        decode_snapshot_payload(payload, source="unitTracking")

    assert excinfo.value.source == "unitTracking"


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLEETVIEW_MQTT_HOST", "broker.example.com")
    monkeypatch.setenv("FLEETVIEW_MQTT_TLS", "yes")
    monkeypatch.setenv("FLEETVIEW_MQTT_TOPIC_PREFIX", "fleet/ph/")
    monkeypatch.setenv("FLEETVIEW_MQTT_KEEPALIVE", "30")

    config = MqttFeedConfig.from_env()

    assert config.host == "broker.example.com"
    assert config.tls is True
    assert config.effective_port == 8883
    assert config.keepalive == 30
    assert config.topic_for(SourceName.POSITIONS) == "fleet/ph/unitTracking"


def test_config_requires_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FLEETVIEW_MQTT_HOST", raising=False)

    with pytest.raises(FleetViewConfigError):
        MqttFeedConfig.from_env()


def test_config_rejects_bad_port(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLEETVIEW_MQTT_PORT", "eighteen")

    with pytest.raises(FleetViewConfigError):
        MqttFeedConfig.from_env(host="broker")


# ------------------------------------------------------------------
# Runtime
# ------------------------------------------------------------------


class _DummyClient:
    def __init__(self, *, refuse: bool = False, gate: threading.Event | None = None) -> None:
        self.refuse = refuse
        self.gate = gate
        self.connect_calls = 0
        self.loop_stopped = threading.Event()
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.connected = False
        self.loop_running = False
        self.on_connect: Any = None
        self.on_message: Any = None
        self.on_disconnect: Any = None

    def connect(self, host: str, port: int, keepalive: int = 60) -> None:
        self.connect_calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.refuse:
            raise ConnectionRefusedError("connection refused")
        self.connected = True

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False
        self.loop_stopped.set()

    def disconnect(self) -> None:
        self.connected = False

    def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscribed.append(topic)

    def unsubscribe(self, topic: str) -> None:
        self.unsubscribed.append(topic)

    def deliver(self, topic: str, payload: bytes) -> None:
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))


def _feed(client: _DummyClient) -> MqttSnapshotFeed:
    return MqttSnapshotFeed(MqttFeedConfig(host="broker", topic_prefix="fleet"), client_factory=lambda: client)


@pytest.mark.asyncio
async def test_snapshot_messages_reach_the_loop() -> None:
    client = _DummyClient()
    feed = _feed(client)
    snapshots: list[list[dict[str, Any]]] = []
    errors: list[BaseException] = []

    subscription = await feed.subscribe(SourceName.POSITIONS, snapshots.append, errors.append)
    assert feed.is_running
    assert client.subscribed == ["fleet/unitTracking"]

    client.deliver("fleet/unitTracking", b'[{"unitID": "U1"}]')
    client.deliver("fleet/unit", b"[]")
    client.deliver("fleet/unitTracking", b"garbage")
    await asyncio.sleep(0)

    assert snapshots == [[{"unitID": "U1"}]]
    assert len(errors) == 1
    assert isinstance(errors[0], FeedDecodeError)

    subscription.cancel()
    subscription.cancel()

    assert client.unsubscribed == ["fleet/unitTracking"]
    assert not feed.is_running
    assert not client.loop_running


@pytest.mark.asyncio
async def test_connection_shared_across_sources() -> None:
    client = _DummyClient()
    feed = _feed(client)

    first = await feed.subscribe(SourceName.POSITIONS, lambda _r: None, lambda _e: None)
    second = await feed.subscribe(SourceName.UNITS, lambda _r: None, lambda _e: None)
    first.cancel()

    assert feed.is_running
    assert client.subscribed == ["fleet/unitTracking", "fleet/unit"]

    second.cancel()

    assert not feed.is_running


@pytest.mark.asyncio
async def test_refused_connection_raises_transport_error() -> None:
    feed = _feed(_DummyClient(refuse=True))

    with pytest.raises(FeedTransportError) as excinfo:
        await feed.subscribe(SourceName.PERSONNEL, lambda _r: None, lambda _e: None)

    assert excinfo.value.source == SourceName.PERSONNEL
    assert not feed.is_running


@pytest.mark.asyncio
async def test_cancelled_subscribe_releases_the_connection() -> None:
    gate = threading.Event()
    client = _DummyClient(gate=gate)
    feed = _feed(client)
    store = SnapshotStore(clock=lambda: datetime(2026, 3, 2, tzinfo=UTC))
    hub = SourceHub(feed, store, subscribe_timeout=0.05)

    await hub.start()
    await hub.aclose()
    assert hub.active_sources == frozenset()
    assert all(store.status(source).failed for source in SourceName)

    gate.set()
    assert await asyncio.to_thread(client.loop_stopped.wait, 2)

    assert client.connect_calls == 1
    assert client.subscribed == []
    assert not client.loop_running
    assert not feed.is_running


@pytest.mark.asyncio
async def test_cancelled_subscriber_does_not_abort_shared_connect() -> None:
    gate = threading.Event()
    client = _DummyClient(gate=gate)
    feed = _feed(client)

    slow = asyncio.ensure_future(feed.subscribe(SourceName.POSITIONS, lambda _r: None, lambda _e: None))
    kept = asyncio.ensure_future(feed.subscribe(SourceName.UNITS, lambda _r: None, lambda _e: None))
    await asyncio.sleep(0.01)
    slow.cancel()
    gate.set()
    subscription = await kept

    assert slow.cancelled()
    assert feed.is_running
    assert client.connect_calls == 1
    assert client.subscribed == ["fleet/unit"]

    subscription.cancel()
    assert not feed.is_running
