"""
Connection manager - OPC UA handshake and subscription lifecycle

Owns the single connection context of the bridge. connect() runs the
handshake as one task with a suspend point per step:

    1. transport connect
    2. create session
    3. browse the root folder
    4. create the subscription and wait for its "started" event

Each step starts only after the previous one succeeded. Once the
subscription is active an event pump interprets the subscription's event
stream (keepalive, error, terminated, data change) against the current state.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from opcua_bridge.core.config import Settings
from opcua_bridge.opcua.browse import ROOT_FOLDER, browse_node
from opcua_bridge.opcua.context import ConnectionContext, utcnow
from opcua_bridge.opcua.exceptions import (
    BrowseError,
    BusyError,
    HandshakeCancelledError,
    OpcUaException,
    PreconditionError,
    SessionError,
    SubscriptionError,
    TransportError,
)
from opcua_bridge.opcua.fanout import DataFanout
from opcua_bridge.opcua.models import (
    ConnectionState,
    ConnectResult,
    Endpoint,
    MonitorParameters,
    NodeReference,
    SubscriptionEvent,
    SubscriptionEventKind,
    SubscriptionParameters,
    VariableValue,
)
from opcua_bridge.opcua.reader import read_variable
from opcua_bridge.opcua.registry import MonitoredItemHandle, SubscriptionRegistry
from opcua_bridge.opcua.transport import AsyncuaTransport, UaTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConnectionManager:
    """
    Manages the bridge's single OPC UA connection

    Responsibilities:
    - Run the four-step handshake strictly in order
    - Reject a second connect while one is in progress or established
    - Interpret subscription lifecycle events
    - Tear everything down in reverse order on disconnect

    Example:
        manager = ConnectionManager(fanout=DataFanout(persistence=db_sink, broadcast=ws_manager))
        result = await manager.connect(Endpoint("10.0.0.5", 4840))
        await manager.monitor("ns=2;i=5", slot=0)
        ...
        await manager.disconnect()
    """

    def __init__(
        self,
        fanout: DataFanout | None = None,
        transport_factory: Callable[[], UaTransport] | None = None,
        subscription_params: SubscriptionParameters | None = None,
        monitor_params: MonitorParameters | None = None,
        subscription_start_timeout: float = 10.0,
    ):
        """
        Initialize connection manager

        Args:
            fanout: Receives value notifications of monitored items
            transport_factory: Creates the client transport for each connection
            subscription_params: Parameters of the per-session subscription
            monitor_params: Parameters of each monitored item
            subscription_start_timeout: Seconds to wait for the "started" event
        """
        self.fanout = fanout or DataFanout()
        self._transport_factory = transport_factory or AsyncuaTransport
        self.subscription_params = subscription_params or SubscriptionParameters()
        self.monitor_params = monitor_params or MonitorParameters()
        self.subscription_start_timeout = subscription_start_timeout

        self._context: ConnectionContext | None = None
        self._handshake_task: asyncio.Task | None = None
        self._pump_task: asyncio.Task | None = None
        self._idle_transport: tuple[Endpoint, UaTransport] | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fanout: DataFanout | None = None,
        transport_factory: Callable[[], UaTransport] | None = None,
    ) -> "ConnectionManager":
        """Build a manager with subscription and monitoring parameters from settings"""
        return cls(
            fanout=fanout,
            transport_factory=transport_factory or (lambda: AsyncuaTransport(timeout=settings.request_timeout)),
            subscription_params=SubscriptionParameters(
                publishing_interval_ms=settings.publishing_interval_ms,
                lifetime_count=settings.lifetime_count,
                max_keepalive_count=settings.max_keepalive_count,
                max_notifications_per_publish=settings.max_notifications_per_publish,
                priority=settings.priority,
            ),
            monitor_params=MonitorParameters(
                sampling_interval_ms=settings.sampling_interval_ms,
                queue_size=settings.queue_size,
            ),
            subscription_start_timeout=settings.subscription_start_timeout,
        )

    @property
    def state(self) -> ConnectionState:
        if self._context is None:
            return ConnectionState.DISCONNECTED
        return self._context.state

    @property
    def context(self) -> ConnectionContext | None:
        return self._context

    # Handshake

    async def connect(self, endpoint: Endpoint) -> ConnectResult:
        """
        Connect to a server and start the subscription

        Args:
            endpoint: Server endpoint

        Returns:
            ConnectResult with token, session id and root folder listing

        Raises:
            BusyError: If a connection is in progress or established
            TransportError: If the transport connection fails (not retried)
            SessionError: If the session cannot be created
            BrowseError: If the root folder cannot be browsed
            SubscriptionError: If the subscription fails before it starts
            HandshakeCancelledError: If disconnect() interrupts the handshake
        """
        async with self._lock:
            if self._context is not None:
                raise BusyError(
                    f"Connection to {self._context.endpoint.url} is {self._context.state.value}",
                    context={"endpoint": self._context.endpoint.url},
                )

            transport = await self._take_idle_transport(endpoint)
            context = ConnectionContext(
                endpoint=endpoint,
                transport=transport or self._transport_factory(),
            )
            self._context = context
            task = asyncio.create_task(
                self._handshake(context, transport_connected=transport is not None),
                name="opcua-handshake",
            )
            self._handshake_task = task

        try:
            return await task
        except asyncio.CancelledError:
            if context.closing:
                raise HandshakeCancelledError(context={"endpoint": endpoint.url}) from None
            raise
        finally:
            if self._handshake_task is task:
                self._handshake_task = None

    async def _handshake(self, context: ConnectionContext, transport_connected: bool) -> ConnectResult:
        endpoint = context.endpoint
        transport = context.transport
        try:
            if transport_connected:
                logger.info(f"[1/4] Reusing connected transport to {endpoint.url}")
            else:
                logger.info(f"[1/4] Connecting transport to {endpoint.url}")
                await self._step(transport.connect(endpoint.url), TransportError)

            logger.info("[2/4] Creating session")
            context.session_id = await self._step(transport.create_session(), SessionError)
            context.state = ConnectionState.SESSION_ESTABLISHED
            logger.info(f"Session established: {context.session_id}")

            logger.info("[3/4] Browsing root folder")
            context.folders = await self._step(browse_node(context, ROOT_FOLDER), BrowseError)

            logger.info("[4/4] Creating subscription")
            context.subscription = await self._step(
                transport.create_subscription(self.subscription_params, context.events),
                SubscriptionError,
            )
            await self._wait_for_started(context)

            context.registry = SubscriptionRegistry(context.subscription, self.fanout, self.monitor_params)
            context.state = ConnectionState.SUBSCRIPTION_ACTIVE
            self._pump_task = asyncio.create_task(self._pump_events(context), name="opcua-subscription-events")

        except asyncio.CancelledError:
            if not context.closing:
                logger.info(f"Handshake with {endpoint.url} cancelled by caller")
                await self._abandon(context, keep_transport=False)
            raise
        except TransportError as e:
            # Nothing was opened
            logger.error(f"Transport connection to {endpoint.url} failed: {e}")
            self._release(context)
            raise
        except Exception as e:
            logger.error(f"Handshake with {endpoint.url} failed: {e}")
            await self._abandon(context, keep_transport=True)
            raise

        logger.info(
            f"Connected to {endpoint.url} (session={context.session_id}, "
            f"subscription={context.subscription.subscription_id}, folders={len(context.folders)})"
        )
        return ConnectResult(
            token=context.token,
            session_id=context.session_id,
            endpoint_url=endpoint.url,
            folders=list(context.folders),
            monitored_items=[item.node_id for item in context.registry.items],
        )

    @staticmethod
    async def _step(awaitable: Awaitable[T], error_cls: type[OpcUaException]) -> T:
        """Await one handshake step, classifying unexpected errors as that step's error"""
        try:
            return await awaitable
        except OpcUaException:
            raise
        except Exception as e:
            raise error_cls(str(e) or type(e).__name__) from e

    async def _wait_for_started(self, context: ConnectionContext) -> None:
        """Consume subscription events until "started", failing on error or termination"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.subscription_start_timeout

        while True:
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                event = await asyncio.wait_for(context.events.get(), timeout=remaining)
            except asyncio.TimeoutError:
                raise SubscriptionError(
                    f"Subscription did not start within {self.subscription_start_timeout}s"
                ) from None

            if event.kind == SubscriptionEventKind.STARTED:
                logger.info(f"Subscription started (id={context.subscription.subscription_id})")
                return
            elif event.kind == SubscriptionEventKind.KEEPALIVE:
                context.last_keepalive = utcnow()
                logger.debug("Keepalive received while waiting for subscription start")
            elif event.kind == SubscriptionEventKind.ERROR:
                raise SubscriptionError(event.error or "Error encountered while creating subscription")
            elif event.kind == SubscriptionEventKind.TERMINATED:
                raise SubscriptionError(f"Subscription terminated before it started ({event.status})")
            else:
                logger.debug(f"Ignoring {event.kind.value} event before subscription start")

    async def _abandon(self, context: ConnectionContext, keep_transport: bool) -> None:
        """
        Release what a failed handshake created, newest first

        The connected transport is kept for the next connect to the same
        endpoint unless keep_transport is False.
        """
        if context.subscription is not None:
            try:
                await context.subscription.delete()
            except Exception as e:
                logger.warning(f"Failed to delete subscription after handshake failure: {e}")
            context.subscription = None

        if context.session_id is not None:
            try:
                await context.transport.close_session()
            except Exception as e:
                logger.warning(f"Failed to close session after handshake failure: {e}")
            context.session_id = None

        self._release(context)

        if keep_transport:
            self._idle_transport = (context.endpoint, context.transport)
            logger.info(f"Keeping transport to {context.endpoint.url} for the next connect")
        else:
            try:
                await context.transport.disconnect()
            except Exception as e:
                logger.warning(f"Failed to close transport after handshake failure: {e}")

    def _release(self, context: ConnectionContext) -> None:
        context.state = ConnectionState.DISCONNECTED
        if self._context is context:
            self._context = None

    async def _take_idle_transport(self, endpoint: Endpoint) -> UaTransport | None:
        if self._idle_transport is None:
            return None
        idle_endpoint, transport = self._idle_transport
        self._idle_transport = None
        if idle_endpoint == endpoint:
            return transport

        try:
            await transport.disconnect()
        except Exception as e:
            logger.warning(f"Failed to close idle transport to {idle_endpoint.url}: {e}")
        return None

    # Subscription events

    async def _pump_events(self, context: ConnectionContext) -> None:
        while True:
            event = await context.events.get()
            try:
                self._handle_event(context, event)
            except Exception as e:
                logger.exception(f"Error handling subscription event {event.kind.value}: {e}")

    def _handle_event(self, context: ConnectionContext, event: SubscriptionEvent) -> None:
        """Interpret one subscription event given the current state"""
        if event.kind == SubscriptionEventKind.DATA_CHANGE:
            if context.registry is not None:
                context.registry.dispatch(event)

        elif event.kind == SubscriptionEventKind.KEEPALIVE:
            context.last_keepalive = utcnow()
            logger.debug(f"Subscription keepalive ({event.status or 'Good'})")

        elif event.kind == SubscriptionEventKind.ERROR:
            logger.warning(f"Subscription reported an error: {event.error}")

        elif event.kind == SubscriptionEventKind.TERMINATED:
            logger.warning(f"Subscription terminated ({event.status})")
            if context.registry is not None:
                context.registry.invalidate("subscription terminated")
            if context.state == ConnectionState.SUBSCRIPTION_ACTIVE:
                context.state = ConnectionState.SESSION_ESTABLISHED

        elif event.kind == SubscriptionEventKind.STARTED:
            logger.debug("Ignoring repeated subscription started event")

    # Operations on the current connection

    def _require_context(self) -> ConnectionContext:
        if self._context is None:
            raise PreconditionError("Not connected to a server")
        return self._context

    async def browse(self, node_id: str) -> list[NodeReference]:
        return await browse_node(self._context, node_id)

    async def read(self, node_id: str) -> VariableValue:
        return await read_variable(self._context, node_id)

    async def monitor(self, node_id: str, slot: int | None = None) -> MonitoredItemHandle:
        registry = self._require_context().require_registry()
        return await registry.monitor(node_id, slot)

    # Teardown

    async def disconnect(self) -> None:
        """
        Disconnect from the server

        Valid in any state and idempotent: with no connection this is a no-op.
        An in-flight connect fails with HandshakeCancelledError.

        Raises:
            TransportError: If closing the transport fails (state is still DISCONNECTED)
        """
        async with self._lock:
            context = self._context
            handshake = self._handshake_task

            if context is not None:
                context.closing = True
                if handshake is not None and not handshake.done():
                    logger.info("Cancelling in-flight handshake")
                    handshake.cancel()
                    await asyncio.gather(handshake, return_exceptions=True)

            idle = self._idle_transport
            self._idle_transport = None
            if idle is not None:
                try:
                    await idle[1].disconnect()
                except Exception as e:
                    logger.warning(f"Failed to close idle transport to {idle[0].url}: {e}")

            if context is None:
                logger.debug("Disconnect requested with no active connection")
                return

            try:
                await self._teardown(context)
            finally:
                if self._context is context:
                    self._context = None

    async def _teardown(self, context: ConnectionContext) -> None:
        """Release registry, subscription, session, then transport"""
        if self._pump_task is not None:
            self._pump_task.cancel()
            await asyncio.gather(self._pump_task, return_exceptions=True)
            self._pump_task = None

        if context.registry is not None:
            context.registry.invalidate("disconnected")
        await self.fanout.retire()

        if context.subscription is not None:
            try:
                await context.subscription.delete()
            except Exception as e:
                logger.warning(f"Failed to delete subscription: {e}")

        if context.session_id is not None:
            try:
                await context.transport.close_session()
            except Exception as e:
                logger.warning(f"Failed to close session: {e}")

        context.state = ConnectionState.DISCONNECTED
        await context.transport.disconnect()
        logger.info(f"Disconnected from {context.endpoint.url}")

    async def close(self) -> None:
        """Disconnect and stop the fanout lanes (called on shutdown)"""
        try:
            await self.disconnect()
        finally:
            await self.fanout.close()
