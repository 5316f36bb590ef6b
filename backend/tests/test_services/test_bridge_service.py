"""
Tests for the bridge service request boundary

Includes the end-to-end scenario: connect, monitor a node mapped to temp1,
and relay three value changes to storage and broadcast in order.
"""

from datetime import UTC, datetime

import pytest

from conftest import FakeWebSocket, settle
from opcua_bridge.core.config import Settings
from opcua_bridge.opcua.models import ConnectionState, SubscriptionEvent
from opcua_bridge.opcua.exceptions import TransportError
from opcua_bridge.services import BridgeService, BridgeServiceError, ErrorCode


@pytest.fixture
def service(transport, persistence, broadcast):
    return BridgeService.from_settings(
        Settings(subscription_start_timeout=0.5),
        persistence=persistence,
        broadcast=broadcast,
        transport_factory=lambda: transport,
    )


class TestScenario:
    """Test the full relay path"""

    @pytest.mark.asyncio
    async def test_values_are_persisted_and_broadcast_in_order(self, service, transport, persistence, broadcast):
        """Test connect, monitor ns=2;i=5 as temp1 and relay 21.0, 21.3, 21.1"""
        connected = await service.connect("10.0.0.5", "4840")
        monitored = await service.monitor_variable("ns=2;i=5", "0")

        for value in [21.0, 21.3, 21.1]:
            transport.push_value("ns=2;i=5", value)
        await settle(service.manager)

        assert transport.url == "opc.tcp://10.0.0.5:4840"
        assert connected["sessionId"] == transport.session_id
        assert monitored == {"id": "ns=2;i=5", "stdVar": 0}
        assert persistence.writes == [("temp1", 21.0), ("temp1", 21.3), ("temp1", 21.1)]
        assert [topic for topic, _ in broadcast.published] == ["variableValues"] * 3
        assert [payload["id"] for _, payload in broadcast.published] == ["ns=2;i=5"] * 3
        assert [payload["data"]["value"] for _, payload in broadcast.published] == [21.0, 21.3, 21.1]
        await service.close()


class TestConnect:
    """Test the connect payload"""

    @pytest.mark.asyncio
    async def test_connect_payload(self, service, transport):
        """Test connect returns token, session, folders, items and the std var table"""
        payload = await service.connect("10.0.0.5", 4840)

        assert set(payload) == {"token", "sessionId", "data", "subscription", "stdVars"}
        assert [folder["browseName"] for folder in payload["data"]] == ["0:Objects", "0:Types", "0:Views"]
        assert payload["subscription"] == []
        assert payload["stdVars"][0] == {"id": 0, "name": "temp1"}
        await service.close()

    @pytest.mark.asyncio
    async def test_invalid_port_is_rejected_before_connecting(self, service, transport):
        """Test a non-numeric port fails validation with no traffic"""
        with pytest.raises(BridgeServiceError) as exc_info:
            await service.connect("10.0.0.5", "opc")

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_transport_failure_payload(self, service, transport):
        """Test a refused connection is rendered with its original message"""
        transport.fail["connect"] = TransportError("ECONNREFUSED 10.0.0.5:4840")

        with pytest.raises(BridgeServiceError) as exc_info:
            await service.connect("10.0.0.5", "4840")

        response = exc_info.value.response
        assert response.error == ErrorCode.TRANSPORT_ERROR
        assert response.message == "ECONNREFUSED 10.0.0.5:4840"
        assert response.recovery_hint

    @pytest.mark.asyncio
    async def test_second_connect_is_busy(self, service):
        """Test connect while connected reports busy"""
        await service.connect("10.0.0.5", "4840")

        with pytest.raises(BridgeServiceError) as exc_info:
            await service.connect("10.0.0.5", "4840")

        assert exc_info.value.code == ErrorCode.BUSY
        await service.close()


class TestOperations:
    """Test browse, read, monitor and disconnect payloads"""

    @pytest.mark.asyncio
    async def test_browse_payload(self, service):
        await service.connect("10.0.0.5", "4840")

        payload = await service.browse("RootFolder")

        assert [row["nodeId"] for row in payload] == ["i=85", "i=86", "i=87"]
        await service.close()

    @pytest.mark.asyncio
    async def test_read_failure_payload(self, service):
        """Test a failed read is reported as read_error"""
        await service.connect("10.0.0.5", "4840")

        with pytest.raises(BridgeServiceError) as exc_info:
            await service.read_variable("ns=2;i=404")

        assert exc_info.value.code == ErrorCode.READ_ERROR
        await service.close()

    @pytest.mark.asyncio
    async def test_monitor_without_slot(self, service):
        """Test an empty stdVar monitors for broadcast only"""
        await service.connect("10.0.0.5", "4840")

        assert await service.monitor_variable("ns=2;i=6", "") == {"id": "ns=2;i=6", "stdVar": None}
        await service.close()

    @pytest.mark.asyncio
    async def test_monitor_invalid_slot(self, service, transport):
        """Test a bad stdVar is rejected before the server is asked"""
        await service.connect("10.0.0.5", "4840")

        with pytest.raises(BridgeServiceError) as exc_info:
            await service.monitor_variable("ns=2;i=5", "9")

        assert exc_info.value.code == ErrorCode.INVALID_SLOT
        assert ("monitor", "ns=2;i=5") not in transport.calls
        await service.close()

    @pytest.mark.asyncio
    async def test_monitor_before_connect(self, service):
        with pytest.raises(BridgeServiceError) as exc_info:
            await service.monitor_variable("ns=2;i=5", "0")

        assert exc_info.value.code == ErrorCode.NOT_CONNECTED

    @pytest.mark.asyncio
    async def test_monitor_after_termination_is_stale(self, service, transport):
        """Test monitoring on a terminated subscription reports staleness"""
        await service.connect("10.0.0.5", "4840")
        transport.push(SubscriptionEvent.terminated("BadTimeout"))
        await settle(service.manager)

        with pytest.raises(BridgeServiceError) as exc_info:
            await service.monitor_variable("ns=2;i=5", "0")

        assert exc_info.value.code == ErrorCode.STALE_SUBSCRIPTION
        await service.close()

    @pytest.mark.asyncio
    async def test_disconnect_payload(self, service):
        """Test disconnect reports success, connected or not"""
        assert await service.disconnect() == {"status": "Disconnected from server"}

        await service.connect("10.0.0.5", "4840")
        assert await service.disconnect() == {"status": "Disconnected from server"}
        assert service.manager.state == ConnectionState.DISCONNECTED


class TestStatus:
    """Test the status snapshot"""

    @pytest.mark.asyncio
    async def test_status_while_connected(self, service):
        await service.connect("10.0.0.5", "4840")
        await service.monitor_variable("ns=2;i=5", 1)

        status = service.status()

        assert status["state"] == "subscription_active"
        assert status["endpoint"] == "opc.tcp://10.0.0.5:4840"
        assert status["monitoredItems"] == [{"id": "ns=2;i=5", "stdVar": 1}]
        await service.close()

    def test_status_when_disconnected(self, service):
        status = service.status()

        assert status["state"] == "disconnected"
        assert status["monitoredItems"] == []


class TestWebSocketBroadcast:
    """Test a service wired to WebSocket clients"""

    @pytest.mark.asyncio
    async def test_non_numeric_values_reach_clients(self, transport, persistence):
        """Test a DateTime node is broadcast and numeric values keep flowing afterwards"""
        service = BridgeService.with_websockets(
            Settings(subscription_start_timeout=0.5),
            persistence=persistence,
            transport_factory=lambda: transport,
        )
        client = FakeWebSocket()
        await service.websockets.connect(client)
        await service.connect("10.0.0.5", "4840")
        await service.monitor_variable("ns=2;i=9", None)
        await service.monitor_variable("ns=2;i=5", "0")

        transport.push_value("ns=2;i=9", datetime(2026, 1, 1, tzinfo=UTC))
        await settle(service.manager)
        transport.push_value("ns=2;i=5", 21.0)
        await settle(service.manager)

        values = [message["data"]["data"]["value"] for message in client.sent]
        assert values == ["2026-01-01T00:00:00+00:00", 21.0]
        assert service.status()["websocketClients"] == 1
        assert service.manager.fanout.stats.broadcast_failures == 0

        await service.close()
        assert client.closed
        assert service.websockets.get_connection_count() == 0
