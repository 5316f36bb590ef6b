"""
Connection context - everything owned by one connection

Created by ConnectionManager.connect() and torn down by disconnect(). Browse,
read and monitor operations receive the context explicitly.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from opcua_bridge.opcua.exceptions import PreconditionError, StaleSubscriptionError
from opcua_bridge.opcua.models import ConnectionState, Endpoint, NodeReference
from opcua_bridge.opcua.registry import SubscriptionRegistry
from opcua_bridge.opcua.transport import UaSubscription, UaTransport


def utcnow():
    """Return current UTC time"""
    return datetime.now(UTC)


@dataclass
class ConnectionContext:
    """
    State of a single OPC UA connection

    Attributes:
        endpoint: Server endpoint
        transport: Client transport
        token: Identifier minted for this connection
        state: Handshake state
        session_id: Server session id once the session exists
        folders: Root folder listing from the handshake
        subscription: Server subscription once created
        registry: Monitored items of the subscription
        events: Ordered subscription event stream
        created_at: When connect started
        last_keepalive: Last keepalive seen on the subscription
        closing: Set once disconnect has started tearing this context down
    """

    endpoint: Endpoint
    transport: UaTransport
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ConnectionState = ConnectionState.CONNECTING
    session_id: str | None = None
    folders: list[NodeReference] = field(default_factory=list)
    subscription: UaSubscription | None = None
    registry: SubscriptionRegistry | None = None
    events: asyncio.Queue = field(default_factory=asyncio.Queue)
    created_at: datetime = field(default_factory=utcnow)
    last_keepalive: datetime | None = None
    closing: bool = False

    @property
    def has_session(self) -> bool:
        return self.session_id is not None and self.state in (
            ConnectionState.SESSION_ESTABLISHED,
            ConnectionState.SUBSCRIPTION_ACTIVE,
        )

    def require_session(self) -> UaTransport:
        """Return the transport, or raise PreconditionError if no session is live"""
        if not self.has_session:
            raise PreconditionError(
                "No active session",
                context={"state": self.state.value},
            )
        return self.transport

    def require_registry(self) -> SubscriptionRegistry:
        """Return the registry, or raise if the subscription is missing or terminated"""
        if self.registry is not None and self.registry.invalidated:
            raise StaleSubscriptionError(
                f"Subscription {self.registry.subscription_id} has terminated",
                context={"state": self.state.value},
            )
        if self.registry is None or self.state != ConnectionState.SUBSCRIPTION_ACTIVE:
            raise PreconditionError(
                "No active subscription",
                context={"state": self.state.value},
            )
        return self.registry

    def __repr__(self) -> str:
        return f"ConnectionContext(endpoint='{self.endpoint.url}', state='{self.state.value}')"
