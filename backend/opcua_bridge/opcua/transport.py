"""
OPC UA transport adapter

Defines the client primitives the bridge sequences (connect, session, browse,
read, subscribe) and implements them on top of asyncua. Everything specific to
the SDK stays in this module; SDK failures are re-raised as bridge exceptions
with the original message unchanged.
"""

import asyncio
import logging
from typing import Protocol

from asyncua import Client, ua

from opcua_bridge.opcua.exceptions import (
    BrowseError,
    MonitorError,
    PreconditionError,
    ReadError,
    SessionError,
    SubscriptionError,
    TransportError,
)
from opcua_bridge.opcua.models import (
    MonitorParameters,
    NodeReference,
    SubscriptionEvent,
    SubscriptionParameters,
    VariableValue,
)

logger = logging.getLogger(__name__)

# Folder names accepted in place of a node id string
WELL_KNOWN_NODES = {
    "RootFolder": ua.ObjectIds.RootFolder,
    "ObjectsFolder": ua.ObjectIds.ObjectsFolder,
    "TypesFolder": ua.ObjectIds.TypesFolder,
    "ViewsFolder": ua.ObjectIds.ViewsFolder,
}

# Status changes after which the server no longer publishes for the subscription
TERMINAL_STATUS_CODES = {
    ua.StatusCodes.BadTimeout,
    ua.StatusCodes.BadSessionClosed,
    ua.StatusCodes.BadSessionIdInvalid,
    ua.StatusCodes.BadSubscriptionIdInvalid,
    ua.StatusCodes.BadShutdown,
}


class UaSubscription(Protocol):
    """Protocol for a server-side subscription"""

    @property
    def subscription_id(self) -> int:
        ...

    async def monitor(self, node_id: str, params: MonitorParameters) -> str:
        """Create a monitored item; returns the canonical node id once acknowledged"""
        ...

    async def unmonitor(self, node_id: str) -> None:
        """Delete the monitored item for node_id"""
        ...

    async def delete(self) -> None:
        """Delete the subscription on the server"""
        ...


class UaTransport(Protocol):
    """Protocol for OPC UA client implementations"""

    async def connect(self, endpoint_url: str) -> None:
        """Open the transport connection (socket, hello, secure channel)"""
        ...

    async def create_session(self) -> str:
        """Create and activate a session; returns the session id"""
        ...

    async def browse(self, node_id: str) -> list[NodeReference]:
        """List forward hierarchical references of node_id"""
        ...

    async def read_value(self, node_id: str) -> VariableValue:
        """Read the current value attribute of node_id"""
        ...

    async def create_subscription(
        self, params: SubscriptionParameters, events: asyncio.Queue
    ) -> UaSubscription:
        """Create the subscription; lifecycle and data events are put on events"""
        ...

    async def close_session(self) -> None:
        """Close the session"""
        ...

    async def disconnect(self) -> None:
        """Close the secure channel and socket"""
        ...


def resolve_node_id(node_id: str) -> ua.NodeId:
    """
    Parse a node id string, accepting well-known folder names as aliases

    Args:
        node_id: "RootFolder", "ns=2;i=5", "ns=3;s=Pump.Speed", ...
    """
    if node_id in WELL_KNOWN_NODES:
        return ua.NodeId(WELL_KNOWN_NODES[node_id], 0)
    return ua.NodeId.from_string(node_id)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _to_node_reference(ref: ua.ReferenceDescription) -> NodeReference:
    type_definition = ref.TypeDefinition
    return NodeReference(
        node_id=ref.NodeId.to_string(),
        browse_name=ref.BrowseName.to_string(),
        display_name=ref.DisplayName.Text or "",
        node_class=ref.NodeClass.name,
        reference_type=ref.ReferenceTypeId.to_string(),
        is_forward=ref.IsForward,
        type_definition=None if type_definition is None or type_definition.is_null() else type_definition.to_string(),
    )


class SubscriptionHandler:
    """
    asyncua subscription handler feeding the bridge's event stream

    asyncua calls these methods from its publish loop, in the order the
    server's publish responses arrive. Every callback only enqueues, so the
    stream preserves that order.
    """

    def __init__(self, events: asyncio.Queue):
        self._events = events

    def datachange_notification(self, node, val, data) -> None:
        data_value = data.monitored_item.Value
        self._events.put_nowait(
            SubscriptionEvent.data_change(
                node_id=node.nodeid.to_string(),
                value=val,
                source_timestamp=data_value.SourceTimestamp,
                server_timestamp=data_value.ServerTimestamp,
            )
        )

    def status_change_notification(self, status) -> None:
        code = getattr(status, "Status", status)
        name = code.name
        if code.is_good():
            self._events.put_nowait(SubscriptionEvent.keepalive(status=name))
        elif code.value in TERMINAL_STATUS_CODES:
            self._events.put_nowait(SubscriptionEvent.terminated(status=name))
        else:
            self._events.put_nowait(SubscriptionEvent.failed(f"Subscription status changed to {name}", status=name))


class AsyncuaSubscription:
    """UaSubscription backed by an asyncua Subscription"""

    def __init__(self, client: Client, subscription):
        self._client = client
        self._subscription = subscription
        self._handles: dict[str, int] = {}

    @property
    def subscription_id(self) -> int:
        return self._subscription.subscription_id

    async def monitor(self, node_id: str, params: MonitorParameters) -> str:
        # asyncua always requests DiscardOldest and TimestampsToReturn.Both
        try:
            node = self._client.get_node(resolve_node_id(node_id))
            handle = await self._subscription.subscribe_data_change(
                node,
                queuesize=params.queue_size,
                sampling_interval=params.sampling_interval_ms,
            )
        except Exception as e:
            raise MonitorError(_describe(e), context={"node_id": node_id}) from e

        canonical = node.nodeid.to_string()
        self._handles[canonical] = handle
        logger.debug(f"Monitored item created for {canonical} (handle={handle})")
        return canonical

    async def unmonitor(self, node_id: str) -> None:
        handle = self._handles.pop(node_id, None)
        if handle is None:
            return
        try:
            await self._subscription.unsubscribe(handle)
        except Exception as e:
            raise MonitorError(_describe(e), context={"node_id": node_id}) from e

    async def delete(self) -> None:
        self._handles.clear()
        try:
            await self._subscription.delete()
        except Exception as e:
            raise SubscriptionError(_describe(e)) from e


class AsyncuaTransport:
    """
    UaTransport implemented with asyncua

    Connects without security (SecurityPolicy None) and an anonymous session.
    The connection is attempted once; the request timeout bounds each step.

    Example:
        transport = AsyncuaTransport(timeout=4.0)
        await transport.connect("opc.tcp://10.0.0.5:4840")
        session_id = await transport.create_session()
        folders = await transport.browse("RootFolder")
    """

    def __init__(self, timeout: float = 4.0):
        """
        Initialize transport

        Args:
            timeout: Request timeout in seconds
        """
        self.timeout = timeout
        self._client: Client | None = None

    def _require_client(self) -> Client:
        if self._client is None:
            raise PreconditionError("Transport is not connected")
        return self._client

    async def connect(self, endpoint_url: str) -> None:
        client = Client(url=endpoint_url, timeout=self.timeout)
        try:
            await client.connect_socket()
            await client.send_hello()
            await client.open_secure_channel()
        except asyncio.CancelledError:
            client.disconnect_socket()
            raise
        except Exception as e:
            client.disconnect_socket()
            raise TransportError(_describe(e), context={"endpoint": endpoint_url}) from e

        self._client = client
        logger.info(f"Transport connected to {endpoint_url}")

    async def create_session(self) -> str:
        client = self._require_client()
        try:
            result = await client.create_session()
            await client.activate_session()
        except Exception as e:
            raise SessionError(_describe(e)) from e
        return result.SessionId.to_string()

    async def browse(self, node_id: str) -> list[NodeReference]:
        client = self._require_client()
        try:
            node = client.get_node(resolve_node_id(node_id))
            references = await node.get_references(
                refs=ua.ObjectIds.HierarchicalReferences,
                direction=ua.BrowseDirection.Forward,
            )
        except Exception as e:
            raise BrowseError(_describe(e), context={"node_id": node_id}) from e
        return [_to_node_reference(ref) for ref in references]

    async def read_value(self, node_id: str) -> VariableValue:
        client = self._require_client()
        try:
            node = client.get_node(resolve_node_id(node_id))
            data_value = await node.read_data_value()
        except Exception as e:
            raise ReadError(_describe(e), context={"node_id": node_id}) from e

        variant = data_value.Value
        return VariableValue(
            node_id=node.nodeid.to_string(),
            value=variant.Value if variant is not None else None,
            variant_type=variant.VariantType.name if variant is not None else None,
            status=data_value.StatusCode.name if data_value.StatusCode is not None else "Good",
            source_timestamp=data_value.SourceTimestamp,
            server_timestamp=data_value.ServerTimestamp,
        )

    async def create_subscription(
        self, params: SubscriptionParameters, events: asyncio.Queue
    ) -> AsyncuaSubscription:
        client = self._require_client()

        ua_params = ua.CreateSubscriptionParameters()
        ua_params.RequestedPublishingInterval = params.publishing_interval_ms
        ua_params.RequestedLifetimeCount = params.lifetime_count
        ua_params.RequestedMaxKeepAliveCount = params.max_keepalive_count
        ua_params.MaxNotificationsPerPublish = params.max_notifications_per_publish
        ua_params.PublishingEnabled = params.publishing_enabled
        ua_params.Priority = params.priority

        try:
            subscription = await client.create_subscription(ua_params, SubscriptionHandler(events))
        except Exception as e:
            raise SubscriptionError(_describe(e)) from e

        # CreateSubscription has been acknowledged by the server
        events.put_nowait(SubscriptionEvent.started())
        return AsyncuaSubscription(client, subscription)

    async def close_session(self) -> None:
        client = self._require_client()
        try:
            await client.close_session()
        except Exception as e:
            raise SessionError(_describe(e)) from e

    async def disconnect(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            await client.close_secure_channel()
        except Exception as e:
            raise TransportError(_describe(e)) from e
        finally:
            client.disconnect_socket()
        logger.info("Transport disconnected")
