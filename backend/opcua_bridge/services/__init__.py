"""
Bridge services: request boundary, error payloads and WebSocket broadcast
"""

from opcua_bridge.services.bridge_service import BridgeService
from opcua_bridge.services.errors import BridgeServiceError, ErrorCode, ErrorResponse, error_response
from opcua_bridge.services.websocket_manager import WebSocketManager

__all__ = [
    "BridgeService",
    "BridgeServiceError",
    "ErrorCode",
    "ErrorResponse",
    "error_response",
    "WebSocketManager",
]
