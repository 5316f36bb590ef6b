"""
Data fanout - delivers value notifications to the persistence sink and the
broadcast channel

Each node id gets its own delivery lane (a bounded queue drained by one
worker task), so values of one node reach the sinks in the order the server
emitted them while different nodes are delivered in parallel. Within a
notification both sinks are called concurrently and fail independently.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass

from opcua_bridge.core.interfaces import BroadcastChannel, PersistenceSink
from opcua_bridge.opcua.exceptions import InvalidValueError, SinkError
from opcua_bridge.opcua.models import ValueNotification, is_persistable

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "variableValues"

SinkErrorCallback = Callable[[ValueNotification, Exception], None]


@dataclass
class FanoutStats:
    """
    Delivery counters

    Attributes:
        submitted: Notifications accepted into a lane
        persisted: Successful persistence writes
        broadcast: Successful broadcast publishes
        persist_failures: Failed or rejected persistence writes
        broadcast_failures: Failed broadcast publishes
        unmapped: Notifications without a slot (broadcast only)
        dropped: Notifications evicted from a full lane
    """

    submitted: int = 0
    persisted: int = 0
    broadcast: int = 0
    persist_failures: int = 0
    broadcast_failures: int = 0
    unmapped: int = 0
    dropped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class DataFanout:
    """
    Fans value notifications out to two independent sinks

    Responsibilities:
    - Keep per-node delivery order
    - Persist mapped values under their standard variable name
    - Broadcast every value on the configured topic
    - Isolate sink failures: each is counted, logged and reported to the
      sink's own error callback, never raised to the protocol layer
    """

    def __init__(
        self,
        persistence: PersistenceSink | None = None,
        broadcast: BroadcastChannel | None = None,
        topic: str = DEFAULT_TOPIC,
        sink_timeout: float = 5.0,
        lane_queue_size: int = 1000,
        on_persist_error: SinkErrorCallback | None = None,
        on_broadcast_error: SinkErrorCallback | None = None,
    ):
        """
        Initialize fanout

        Args:
            persistence: Sink receiving (variable_name, value) writes
            broadcast: Channel receiving (topic, payload) publishes
            topic: Broadcast topic
            sink_timeout: Seconds before a single sink call counts as failed
            lane_queue_size: Pending notifications kept per node before the oldest is dropped
            on_persist_error: Called with (notification, error) for each persistence failure
            on_broadcast_error: Called with (notification, error) for each broadcast failure
        """
        self._persistence = persistence
        self._broadcast = broadcast
        self.topic = topic
        self.sink_timeout = sink_timeout
        self.lane_queue_size = lane_queue_size
        self._on_persist_error = on_persist_error
        self._on_broadcast_error = on_broadcast_error

        self._lanes: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self.stats = FanoutStats()

    def submit(self, notification: ValueNotification) -> None:
        """
        Queue a notification on its node's lane

        Must be called from the running event loop. Never blocks; when the
        lane is full the oldest pending notification is dropped.
        """
        lane = self._lanes.get(notification.node_id)
        if lane is None:
            lane = self._open_lane(notification.node_id)

        if lane.full():
            evicted = lane.get_nowait()
            lane.task_done()
            self.stats.dropped += 1
            logger.warning(
                f"Fanout lane for {evicted.node_id} is full, dropped value {evicted.value!r}"
            )

        lane.put_nowait(notification)
        self.stats.submitted += 1

    def _open_lane(self, node_id: str) -> asyncio.Queue:
        lane: asyncio.Queue = asyncio.Queue(maxsize=self.lane_queue_size)
        self._lanes[node_id] = lane
        self._workers[node_id] = asyncio.create_task(
            self._run_lane(node_id, lane), name=f"fanout-{node_id}"
        )
        logger.debug(f"Opened fanout lane for {node_id}")
        return lane

    async def _run_lane(self, node_id: str, lane: asyncio.Queue) -> None:
        while True:
            notification = await lane.get()
            try:
                await self.deliver(notification)
            except Exception as e:
                logger.exception(f"Unexpected fanout error for {node_id}: {e}")
            finally:
                lane.task_done()

    async def deliver(self, notification: ValueNotification) -> None:
        """
        Deliver one notification to both sinks

        Unmapped notifications are broadcast but never persisted.
        """
        deliveries = [self._publish(notification)]
        if notification.is_mapped:
            deliveries.append(self._persist(notification))
        else:
            self.stats.unmapped += 1

        await asyncio.gather(*deliveries)

    async def _persist(self, notification: ValueNotification) -> None:
        if self._persistence is None:
            return

        try:
            if not is_persistable(notification.value):
                raise InvalidValueError(
                    f"Refusing to persist non-numeric value {notification.value!r}",
                    context={"node_id": notification.node_id, "variable": notification.variable_name},
                )
            await asyncio.wait_for(
                self._persistence.write(notification.variable_name, float(notification.value)),
                timeout=self.sink_timeout,
            )
        except asyncio.TimeoutError:
            self.stats.persist_failures += 1
            error = SinkError(f"Persistence write timed out after {self.sink_timeout}s")
            self._report("persistence", self._on_persist_error, notification, error)
        except Exception as e:
            self.stats.persist_failures += 1
            self._report("persistence", self._on_persist_error, notification, e)
        else:
            self.stats.persisted += 1

    async def _publish(self, notification: ValueNotification) -> None:
        if self._broadcast is None:
            return

        try:
            await asyncio.wait_for(
                self._broadcast.publish(self.topic, notification.broadcast_payload()),
                timeout=self.sink_timeout,
            )
        except asyncio.TimeoutError:
            self.stats.broadcast_failures += 1
            error = SinkError(f"Broadcast publish timed out after {self.sink_timeout}s")
            self._report("broadcast", self._on_broadcast_error, notification, error)
        except Exception as e:
            self.stats.broadcast_failures += 1
            self._report("broadcast", self._on_broadcast_error, notification, e)
        else:
            self.stats.broadcast += 1

    def _report(
        self,
        sink: str,
        callback: SinkErrorCallback | None,
        notification: ValueNotification,
        error: Exception,
    ) -> None:
        logger.warning(f"{sink} sink failed for {notification.node_id}: {error}")
        if callback is None:
            return
        try:
            callback(notification, error)
        except Exception as e:
            logger.exception(f"{sink} error callback raised: {e}")

    async def join(self) -> None:
        """Wait until every queued notification has been delivered"""
        for lane in list(self._lanes.values()):
            await lane.join()

    async def retire(self, node_id: str | None = None) -> None:
        """
        Deliver what is queued, then stop the lane of a node

        Args:
            node_id: Lane to retire, or every lane when None

        A notification submitted for the node afterwards opens a new lane.
        """
        node_ids = list(self._lanes) if node_id is None else [node_id]
        for nid in node_ids:
            lane = self._lanes.pop(nid, None)
            worker = self._workers.pop(nid, None)
            if lane is None:
                continue
            await lane.join()
            if worker is not None:
                worker.cancel()
                await asyncio.gather(worker, return_exceptions=True)
            logger.debug(f"Retired fanout lane for {nid}")

    async def close(self) -> None:
        """Cancel all lanes, discarding undelivered notifications"""
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

        pending = sum(lane.qsize() for lane in self._lanes.values())
        if pending:
            logger.info(f"Fanout closed with {pending} undelivered notification(s)")

        self._workers.clear()
        self._lanes.clear()

    @property
    def lane_count(self) -> int:
        return len(self._lanes)
