"""
Shared fixtures: an in-memory OPC UA transport and recording sinks
"""

import asyncio
import json
from datetime import UTC, datetime

import pytest
from fastapi import WebSocketDisconnect

from opcua_bridge.core.config import reset_settings
from opcua_bridge.opcua.exceptions import MonitorError, ReadError
from opcua_bridge.opcua.fanout import DataFanout
from opcua_bridge.opcua.manager import ConnectionManager
from opcua_bridge.opcua.models import (
    MonitorParameters,
    NodeReference,
    SubscriptionEvent,
    SubscriptionParameters,
    VariableValue,
)

ROOT_FOLDERS = [
    NodeReference(node_id="i=85", browse_name="0:Objects", display_name="Objects", node_class="Object"),
    NodeReference(node_id="i=86", browse_name="0:Types", display_name="Types", node_class="Object"),
    NodeReference(node_id="i=87", browse_name="0:Views", display_name="Views", node_class="Object"),
]

SAMPLE_TIME = datetime(2026, 1, 5, 8, 30, tzinfo=UTC)


class FakeSubscription:
    """UaSubscription recording monitor calls"""

    def __init__(self, calls: list, subscription_id: int = 42):
        self._calls = calls
        self._id = subscription_id
        self.monitored: dict[str, MonitorParameters] = {}
        self.canonical: dict[str, str] = {}
        self.fail_nodes: set[str] = set()
        self.monitor_gate: asyncio.Event | None = None
        self.delete_error: Exception | None = None
        self.deleted = False
        self.events: asyncio.Queue | None = None
        self.initial_values: dict[str, list] = {}

    @property
    def subscription_id(self) -> int:
        return self._id

    async def monitor(self, node_id: str, params: MonitorParameters) -> str:
        self._calls.append(("monitor", node_id))
        if self.monitor_gate is not None:
            await self.monitor_gate.wait()
        if node_id in self.fail_nodes:
            raise MonitorError("BadNodeIdUnknown", context={"node_id": node_id})
        canonical = self.canonical.get(node_id, node_id)
        self.monitored[canonical] = params
        # New items report their current value(s) once created
        for value in self.initial_values.get(canonical, []):
            self.events.put_nowait(SubscriptionEvent.data_change(canonical, value, SAMPLE_TIME, SAMPLE_TIME))
        return canonical

    async def unmonitor(self, node_id: str) -> None:
        self._calls.append(("unmonitor", node_id))
        self.monitored.pop(node_id, None)

    async def delete(self) -> None:
        self._calls.append("delete_subscription")
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted = True


class FakeTransport:
    """
    UaTransport backed by in-memory data

    calls records every primitive in order. fail maps a step name to the
    exception it raises; gates maps a step name to an Event the step waits on.
    """

    def __init__(self):
        self.calls: list = []
        self.fail: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.session_id = "ns=1;g=5a1e0000-0000-0000-0000-000000000001"
        self.children: dict[str, list[NodeReference]] = {"RootFolder": list(ROOT_FOLDERS)}
        self.values: dict[str, VariableValue] = {}
        self.start_events: list[SubscriptionEvent] = [SubscriptionEvent.started()]
        self.subscription = FakeSubscription(self.calls)
        self.subscription_params: SubscriptionParameters | None = None
        self.events: asyncio.Queue | None = None
        self.url: str | None = None
        self.connected = False

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.fail:
            raise self.fail[name]

    async def connect(self, endpoint_url: str) -> None:
        await self._step("connect")
        self.url = endpoint_url
        self.connected = True

    async def create_session(self) -> str:
        await self._step("create_session")
        return self.session_id

    async def browse(self, node_id: str) -> list[NodeReference]:
        await self._step("browse")
        return list(self.children.get(node_id, []))

    async def read_value(self, node_id: str) -> VariableValue:
        await self._step("read")
        if node_id not in self.values:
            raise ReadError("BadNodeIdUnknown", context={"node_id": node_id})
        return self.values[node_id]

    async def create_subscription(self, params: SubscriptionParameters, events: asyncio.Queue) -> FakeSubscription:
        await self._step("create_subscription")
        self.subscription_params = params
        self.events = events
        self.subscription.events = events
        for event in self.start_events:
            events.put_nowait(event)
        return self.subscription

    async def close_session(self) -> None:
        await self._step("close_session")

    async def disconnect(self) -> None:
        await self._step("disconnect")
        self.connected = False

    def push(self, event: SubscriptionEvent) -> None:
        self.events.put_nowait(event)

    def push_value(self, node_id: str, value) -> None:
        self.push(SubscriptionEvent.data_change(node_id, value, SAMPLE_TIME, SAMPLE_TIME))


class RecordingSink:
    """PersistenceSink keeping every write"""

    def __init__(self):
        self.writes: list[tuple[str, float]] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def write(self, variable_name: str, value: float) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.writes.append((variable_name, value))


class RecordingChannel:
    """BroadcastChannel keeping every publish"""

    def __init__(self):
        self.published: list[tuple[str, dict]] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def publish(self, topic: str, payload: dict) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.published.append((topic, payload))


class FakeWebSocket:
    """Stand-in for fastapi.WebSocket that serializes like Starlette does"""

    def __init__(self, fail: bool = False):
        self.accepted = False
        self.closed = False
        self.sent: list[dict] = []
        self.fail = fail
        self.client = "test-client"
        self.inbound: asyncio.Queue = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        text = json.dumps(message)
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(json.loads(text))

    async def receive_text(self):
        frame = await self.inbound.get()
        if frame is None:
            raise WebSocketDisconnect(code=1000)
        return frame

    async def close(self):
        self.closed = True


async def settle(manager: ConnectionManager) -> None:
    """Let the event pump consume every queued event, then drain the fanout"""
    context = manager.context
    for _ in range(100):
        if context is None or context.events.empty():
            break
        await asyncio.sleep(0)
    await asyncio.sleep(0)
    await manager.fanout.join()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate settings from the developer environment"""
    for name in ("OPCUA_BRIDGE_LOG_LEVEL", "OPCUA_BRIDGE_DATABASE_PATH", "OPCUA_BRIDGE_REQUEST_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def persistence():
    return RecordingSink()


@pytest.fixture
def broadcast():
    return RecordingChannel()


@pytest.fixture
def fanout(persistence, broadcast):
    return DataFanout(persistence=persistence, broadcast=broadcast, sink_timeout=0.5)


@pytest.fixture
def manager(transport, fanout):
    return ConnectionManager(
        fanout=fanout,
        transport_factory=lambda: transport,
        subscription_start_timeout=0.5,
    )
