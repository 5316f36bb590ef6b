"""
WebSocket Manager - broadcast channel for monitored values

Implements the BroadcastChannel protocol used by the data fanout. Values are
encoded to JSON-safe form once per publish, before any client is touched, so
a value that cannot be encoded fails that publish alone and never costs a
client its connection.
"""

import asyncio
import base64
import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from opcua_bridge.opcua.exceptions import SinkError

logger = logging.getLogger(__name__)

# ByteString values travel as base64 text
BINARY_ENCODERS = {
    bytes: lambda value: base64.b64encode(value).decode("ascii"),
    bytearray: lambda value: base64.b64encode(bytes(value)).decode("ascii"),
}


def encode_message(topic: str, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Build the {"type": topic, "data": payload} message in JSON-safe form

    Datetimes become ISO strings, dataclass values (OPC UA structures such as
    LocalizedText) become objects, and bytes become base64.

    Raises:
        SinkError: If some part of the payload has no JSON representation
    """
    try:
        return jsonable_encoder({"type": topic, "data": payload}, custom_encoder=BINARY_ENCODERS)
    except (TypeError, ValueError) as e:
        raise SinkError(
            f"Payload for {topic} is not JSON serializable: {e}",
            context={"topic": topic},
        ) from e


class WebSocketManager:
    """
    Tracks WebSocket clients and publishes value changes to all of them

    Example:
        manager = WebSocketManager(keepalive_interval=15)

        @app.websocket("/ws")
        async def values(websocket: WebSocket):
            await manager.serve(websocket)
    """

    def __init__(self, keepalive_interval: int = 15):
        """
        Args:
            keepalive_interval: Seconds between server keepalive pings
        """
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()
        self._keepalive_tasks: dict[WebSocket, asyncio.Task] = {}
        self._keepalive_interval = keepalive_interval

    async def serve(self, websocket: WebSocket) -> None:
        """
        Handle one client for its whole lifetime

        Registers the client, then reads (and ignores) inbound frames until
        the client goes away.
        """
        await self.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug(f"WebSocket client {websocket.client} closed the connection")
        finally:
            await self.disconnect(websocket)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
            self._keepalive_tasks[websocket] = asyncio.create_task(self._keepalive_loop(websocket))
            logger.info(f"WebSocket connected. Total connections: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
                self._cancel_keepalive(websocket)
                logger.info(f"WebSocket disconnected. Total connections: {len(self._connections)}")

    def _cancel_keepalive(self, websocket: WebSocket) -> None:
        task = self._keepalive_tasks.pop(websocket, None)
        if task is not None:
            task.cancel()

    async def _keepalive_loop(self, websocket: WebSocket) -> None:
        try:
            while True:
                await asyncio.sleep(self._keepalive_interval)
                try:
                    await websocket.send_json({
                        "type": "keepalive",
                        "timestamp": datetime.now(UTC).isoformat(),
                    })
                except Exception as e:
                    logger.warning(f"Failed to send keepalive to {websocket.client}: {e}")
                    # Dead connection, removed by the next publish or disconnect()
                    break
        except asyncio.CancelledError:
            logger.debug(f"Keepalive task cancelled for {websocket.client}")

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        """
        Publish one event to every connected client

        Args:
            topic: Event name (e.g. "variableValues")
            payload: Event body

        Raises:
            SinkError: If the payload cannot be encoded; no client is affected
        """
        await self._send_all(encode_message(topic, payload))

    async def _send_all(self, message: dict[str, Any]) -> None:
        """Send an encoded message, dropping clients whose socket fails"""
        disconnected = []

        async with self._lock:
            for ws in self._connections:
                try:
                    await ws.send_json(message)
                except Exception as e:
                    logger.warning(f"Failed to send message to WebSocket {ws.client}: {e}")
                    disconnected.append(ws)

            for ws in disconnected:
                self._connections.remove(ws)
                self._cancel_keepalive(ws)

        if disconnected:
            logger.info(f"Removed {len(disconnected)} disconnected WebSocket(s)")

    async def close_all(self) -> None:
        """Close every connection (called on shutdown)"""
        async with self._lock:
            for ws in self._connections:
                self._cancel_keepalive(ws)
                try:
                    await ws.close()
                except Exception as e:
                    logger.warning(f"Error closing WebSocket: {e}")
            count = len(self._connections)
            self._connections.clear()

        logger.info(f"Closed {count} WebSocket connection(s)")

    def get_connection_count(self) -> int:
        return len(self._connections)
