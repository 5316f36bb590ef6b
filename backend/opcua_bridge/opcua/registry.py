"""
Subscription registry - monitored items of the active subscription
"""

import asyncio
import logging

from opcua_bridge.opcua.exceptions import InvalidParameterError, StaleSubscriptionError
from opcua_bridge.opcua.fanout import DataFanout
from opcua_bridge.opcua.models import (
    MonitorParameters,
    SubscriptionEvent,
    SubscriptionEventKind,
    ValueNotification,
)
from opcua_bridge.opcua.std_vars import StandardVariable, get_standard_variable
from opcua_bridge.opcua.transport import UaSubscription

logger = logging.getLogger(__name__)


class MonitoredItemHandle:
    """
    Reference to one monitored item

    Becomes stale when its subscription terminates or the item is removed;
    ensure_active() raises StaleSubscriptionError from then on.
    """

    def __init__(self, registry: "SubscriptionRegistry", node_id: str, variable: StandardVariable | None):
        self._registry = registry
        self.node_id = node_id
        self._variable = variable
        self._stale_reason: str | None = None

    @property
    def slot(self) -> int | None:
        return self._variable.slot if self._variable else None

    @property
    def variable_name(self) -> str | None:
        return self._variable.name if self._variable else None

    @property
    def active(self) -> bool:
        return self._stale_reason is None

    def ensure_active(self) -> None:
        if self._stale_reason is not None:
            raise StaleSubscriptionError(
                f"Monitored item {self.node_id} is stale: {self._stale_reason}",
                context={"node_id": self.node_id},
            )

    async def unmonitor(self) -> None:
        await self._registry.unmonitor(self)

    def _remap(self, variable: StandardVariable | None) -> None:
        self._variable = variable

    def _mark_stale(self, reason: str) -> None:
        self._stale_reason = reason

    def to_dict(self) -> dict:
        return {"id": self.node_id, "stdVar": self.slot}

    def __repr__(self) -> str:
        state = "active" if self.active else "stale"
        return f"MonitoredItemHandle(node_id='{self.node_id}', slot={self.slot}, {state})"


class SubscriptionRegistry:
    """
    Tracks the monitored items created against one subscription

    Responsibilities:
    - Create monitored items and map them to standard variable slots
    - Turn data change events into value notifications for the fanout
    - Invalidate every item at once when the subscription terminates
    """

    def __init__(
        self,
        subscription: UaSubscription,
        fanout: DataFanout,
        params: MonitorParameters | None = None,
    ):
        self._subscription = subscription
        self._fanout = fanout
        self._params = params or MonitorParameters()
        self._items: dict[str, MonitoredItemHandle] = {}
        self._aliases: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._invalidated_reason: str | None = None

    @property
    def subscription_id(self) -> int:
        return self._subscription.subscription_id

    @property
    def invalidated(self) -> bool:
        return self._invalidated_reason is not None

    @property
    def items(self) -> list[MonitoredItemHandle]:
        return list(self._items.values())

    def _ensure_valid(self) -> None:
        if self._invalidated_reason is not None:
            raise StaleSubscriptionError(
                f"Subscription {self.subscription_id} is no longer active: {self._invalidated_reason}",
                context={"subscription_id": self.subscription_id},
            )

    def get(self, node_id: str) -> MonitoredItemHandle | None:
        self._ensure_valid()
        return self._items.get(self._aliases.get(node_id, node_id))

    async def monitor(self, node_id: str, slot: int | None = None) -> MonitoredItemHandle:
        """
        Monitor a node's value

        Resolves once the server acknowledges the monitored item. Monitoring a
        node twice returns the existing handle with its slot remapped.

        Args:
            node_id: Node to monitor
            slot: Standard variable slot, or None to broadcast without persisting

        Raises:
            InvalidSlotError: If slot is not in the standard variable table
            StaleSubscriptionError: If the subscription has terminated
            MonitorError: If the server rejects the item
        """
        variable = get_standard_variable(slot) if slot is not None else None
        if not node_id or not node_id.strip():
            raise InvalidParameterError("Node id is required")
        self._ensure_valid()

        async with self._lock:
            existing = self._items.get(self._aliases.get(node_id, node_id))
            if existing is not None:
                existing._remap(variable)
                logger.info(f"{existing.node_id} already monitored, slot set to {existing.slot}")
                return existing

            canonical = await self._subscription.monitor(node_id, self._params)
            self._ensure_valid()

            handle = self._items.get(canonical)
            if handle is None:
                handle = MonitoredItemHandle(self, canonical, variable)
                self._items[canonical] = handle
            else:
                handle._remap(variable)
            self._aliases[node_id] = canonical

        logger.info(
            f"Monitoring {canonical} on subscription {self.subscription_id} "
            f"(slot={handle.slot}, variable={handle.variable_name})"
        )
        return handle

    async def unmonitor(self, handle: MonitoredItemHandle) -> None:
        """Remove a monitored item from the subscription"""
        self._ensure_valid()
        handle.ensure_active()

        async with self._lock:
            await self._subscription.unmonitor(handle.node_id)
            self._items.pop(handle.node_id, None)
            self._aliases = {k: v for k, v in self._aliases.items() if v != handle.node_id}
            handle._mark_stale("monitored item was removed")

        await self._fanout.retire(handle.node_id)
        logger.info(f"Stopped monitoring {handle.node_id}")

    def dispatch(self, event: SubscriptionEvent) -> None:
        """Forward a data change event to the fanout as one value notification"""
        if event.kind != SubscriptionEventKind.DATA_CHANGE:
            return
        if self._invalidated_reason is not None:
            logger.debug(f"Ignoring data change for {event.node_id} on invalidated registry")
            return

        handle = self._items.get(event.node_id)
        if handle is None:
            logger.warning(f"Data change for unmonitored node {event.node_id} dropped")
            return

        self._fanout.submit(
            ValueNotification(
                node_id=handle.node_id,
                value=event.value,
                slot=handle.slot,
                variable_name=handle.variable_name,
                source_timestamp=event.source_timestamp,
                server_timestamp=event.server_timestamp,
            )
        )

    def invalidate(self, reason: str) -> None:
        """Mark the registry and every handle stale; no items are retained"""
        if self._invalidated_reason is not None:
            return
        self._invalidated_reason = reason
        for handle in self._items.values():
            handle._mark_stale(reason)
        count = len(self._items)
        self._items.clear()
        self._aliases.clear()
        logger.info(f"Subscription registry invalidated ({reason}), released {count} item(s)")
