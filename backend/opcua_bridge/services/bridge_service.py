"""
Bridge service - inbound boundary of the OPC UA bridge

Maps connect / browse / readVariable / monitorVariable / disconnect requests
1:1 onto the connection manager and renders results as plain payloads.
Failures are raised as BridgeServiceError carrying an ErrorResponse, so any
router (HTTP, WebSocket, CLI) can choose its own status mapping.
"""

import logging
from collections.abc import Callable
from typing import Any

from opcua_bridge.core.config import Settings, get_settings
from opcua_bridge.core.interfaces import BroadcastChannel, PersistenceSink
from opcua_bridge.opcua.fanout import DataFanout
from opcua_bridge.opcua.manager import ConnectionManager
from opcua_bridge.opcua.models import Endpoint
from opcua_bridge.opcua.std_vars import parse_slot, standard_variables_payload
from opcua_bridge.opcua.transport import UaTransport
from opcua_bridge.services.errors import bridge_exception_handler
from opcua_bridge.services.models import ConnectResponse, DisconnectResponse, MonitorResponse
from opcua_bridge.services.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


class BridgeService:
    """
    Request-level facade over the connection manager

    Example:
        service = BridgeService.from_settings(get_settings(), persistence=db_sink, broadcast=ws_manager)
        payload = await service.connect("10.0.0.5", "4840")
        await service.monitor_variable("ns=2;i=5", "0")
    """

    def __init__(self, manager: ConnectionManager, websockets: WebSocketManager | None = None):
        self.manager = manager
        self.websockets = websockets

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        persistence: PersistenceSink | None = None,
        broadcast: BroadcastChannel | None = None,
        transport_factory: Callable[[], UaTransport] | None = None,
    ) -> "BridgeService":
        """Wire a fanout and connection manager from settings"""
        settings = settings or get_settings()
        fanout = DataFanout(
            persistence=persistence,
            broadcast=broadcast,
            topic=settings.broadcast_topic,
            sink_timeout=settings.sink_timeout,
            lane_queue_size=settings.lane_queue_size,
        )
        manager = ConnectionManager.from_settings(
            settings, fanout=fanout, transport_factory=transport_factory
        )
        return cls(manager)

    @classmethod
    def with_websockets(
        cls,
        settings: Settings | None = None,
        persistence: PersistenceSink | None = None,
        transport_factory: Callable[[], UaTransport] | None = None,
    ) -> "BridgeService":
        """Wire a service that broadcasts to WebSocket clients (see WebSocketManager.serve)"""
        settings = settings or get_settings()
        websockets = WebSocketManager(keepalive_interval=settings.websocket_keepalive_interval)
        service = cls.from_settings(
            settings,
            persistence=persistence,
            broadcast=websockets,
            transport_factory=transport_factory,
        )
        service.websockets = websockets
        return service

    @bridge_exception_handler("connect")
    async def connect(self, url: str, port: str | int) -> dict[str, Any]:
        """
        Connect to opc.tcp://{url}:{port} and start the subscription

        Returns:
            {token, sessionId, data, subscription, stdVars}
        """
        endpoint = Endpoint.from_strings(url, port)
        result = await self.manager.connect(endpoint)
        response = ConnectResponse(
            token=result.token,
            sessionId=result.session_id,
            data=[folder.to_dict() for folder in result.folders],
            subscription=result.monitored_items,
            stdVars=standard_variables_payload(),
        )
        return response.model_dump()

    @bridge_exception_handler("browse")
    async def browse(self, name: str) -> list[dict[str, Any]]:
        references = await self.manager.browse(name)
        return [reference.to_dict() for reference in references]

    @bridge_exception_handler("readVariable")
    async def read_variable(self, node_id: str) -> dict[str, Any]:
        value = await self.manager.read(node_id)
        return value.to_dict()

    @bridge_exception_handler("monitorVariable")
    async def monitor_variable(self, node_id: str, std_var: str | int | None = None) -> dict[str, Any]:
        """
        Monitor a node, optionally persisting it under a standard variable

        Args:
            node_id: Node to monitor
            std_var: Standard variable slot ("0".."3"); empty or None broadcasts only
        """
        slot = parse_slot(std_var)
        handle = await self.manager.monitor(node_id, slot)
        return MonitorResponse(id=handle.node_id, stdVar=handle.slot).model_dump()

    @bridge_exception_handler("disconnect")
    async def disconnect(self) -> dict[str, Any]:
        await self.manager.disconnect()
        return DisconnectResponse().model_dump()

    def status(self) -> dict[str, Any]:
        """Current connection state, monitored items and fanout counters"""
        context = self.manager.context
        items = []
        if context is not None and context.registry is not None and not context.registry.invalidated:
            items = [item.to_dict() for item in context.registry.items]
        return {
            "state": self.manager.state.value,
            "endpoint": context.endpoint.url if context else None,
            "token": context.token if context else None,
            "sessionId": context.session_id if context else None,
            "lastKeepalive": context.last_keepalive.isoformat() if context and context.last_keepalive else None,
            "monitoredItems": items,
            "fanout": self.manager.fanout.stats.to_dict(),
            "websocketClients": self.websockets.get_connection_count() if self.websockets else None,
        }

    async def close(self) -> None:
        try:
            await self.manager.close()
        finally:
            if self.websockets is not None:
                await self.websockets.close_all()
