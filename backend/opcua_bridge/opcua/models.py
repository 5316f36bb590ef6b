"""
OPC UA bridge data models
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from opcua_bridge.opcua.exceptions import InvalidParameterError


class ConnectionState(str, Enum):
    """Handshake state of the connection manager"""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SESSION_ESTABLISHED = "session_established"
    SUBSCRIPTION_ACTIVE = "subscription_active"


class SubscriptionEventKind(str, Enum):
    """Kinds of events delivered on a subscription's event stream"""

    STARTED = "started"
    KEEPALIVE = "keepalive"
    ERROR = "error"
    TERMINATED = "terminated"
    DATA_CHANGE = "data_change"


@dataclass(frozen=True)
class Endpoint:
    """
    Network address of an OPC UA server

    Attributes:
        host: Server hostname or IP address
        port: TCP port (1-65535)
    """

    host: str
    port: int

    def __post_init__(self):
        if not self.host or not str(self.host).strip():
            raise InvalidParameterError("Endpoint host is required")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise InvalidParameterError(
                f"Endpoint port must be an integer, got {self.port!r}",
                context={"port": self.port},
            )
        if not 1 <= self.port <= 65535:
            raise InvalidParameterError(
                f"Endpoint port out of range: {self.port}",
                context={"port": self.port},
            )

    @classmethod
    def from_strings(cls, host: str, port: str | int) -> "Endpoint":
        """Build an endpoint from router input, where the port arrives as text"""
        if isinstance(port, str):
            if not port.strip().isdigit():
                raise InvalidParameterError(
                    f"Endpoint port must be numeric, got {port!r}",
                    context={"port": port},
                )
            port = int(port.strip())
        return cls(host=str(host).strip() if host else "", port=port)

    @property
    def url(self) -> str:
        return f"opc.tcp://{self.host}:{self.port}"

    def __repr__(self) -> str:
        return f"Endpoint(url='{self.url}')"


@dataclass(frozen=True)
class SubscriptionParameters:
    """
    Parameters of the per-session subscription

    Attributes:
        publishing_interval_ms: Requested publishing interval
        lifetime_count: Requested lifetime count
        max_keepalive_count: Requested max keepalive count
        max_notifications_per_publish: Notifications per publish response (0 = unlimited)
        priority: Subscription priority
        publishing_enabled: Whether publishing starts enabled
    """

    publishing_interval_ms: float = 1000.0
    lifetime_count: int = 10
    max_keepalive_count: int = 2
    max_notifications_per_publish: int = 10
    priority: int = 10
    publishing_enabled: bool = True


@dataclass(frozen=True)
class MonitorParameters:
    """
    Parameters of each monitored item

    Items always discard the oldest queued value when the server-side queue
    is full; asyncua requests DiscardOldest on every item it creates.

    Attributes:
        sampling_interval_ms: Server-side sampling interval
        queue_size: Server-side notification queue size
    """

    sampling_interval_ms: float = 100.0
    queue_size: int = 10


@dataclass
class NodeReference:
    """
    One child reference returned by a browse

    Attributes:
        node_id: Target node id (e.g. "ns=2;i=5")
        browse_name: Qualified browse name (e.g. "2:Temperature")
        display_name: Localized display text
        node_class: Node class name (Object, Variable, ...)
        reference_type: Reference type node id
        is_forward: Reference direction
        type_definition: Type definition node id, if any
    """

    node_id: str
    browse_name: str
    display_name: str
    node_class: str
    reference_type: str | None = None
    is_forward: bool = True
    type_definition: str | None = None

    def to_dict(self) -> dict:
        return {
            "nodeId": self.node_id,
            "browseName": self.browse_name,
            "displayName": self.display_name,
            "nodeClass": self.node_class,
            "referenceTypeId": self.reference_type,
            "isForward": self.is_forward,
            "typeDefinition": self.type_definition,
        }

    def __repr__(self) -> str:
        return f"NodeReference(node_id='{self.node_id}', browse_name='{self.browse_name}')"


@dataclass
class VariableValue:
    """
    Result of a single value read

    Attributes:
        node_id: Node that was read
        value: Raw value
        variant_type: OPC UA variant type name (Double, Int32, ...)
        status: Status code name
        source_timestamp: Timestamp assigned by the data source
        server_timestamp: Timestamp assigned by the server
    """

    node_id: str
    value: Any
    variant_type: str | None = None
    status: str = "Good"
    source_timestamp: datetime | None = None
    server_timestamp: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "nodeId": self.node_id,
            "value": self.value,
            "dataType": self.variant_type,
            "statusCode": self.status,
            "sourceTimestamp": _isoformat(self.source_timestamp),
            "serverTimestamp": _isoformat(self.server_timestamp),
        }


@dataclass
class SubscriptionEvent:
    """
    One event on a subscription's ordered event stream

    Lifecycle events (started, keepalive, error, terminated) carry only
    status/error; data changes carry the node id, value and timestamps.
    """

    kind: SubscriptionEventKind
    node_id: str | None = None
    value: Any = None
    source_timestamp: datetime | None = None
    server_timestamp: datetime | None = None
    status: str | None = None
    error: str | None = None

    @classmethod
    def started(cls) -> "SubscriptionEvent":
        return cls(SubscriptionEventKind.STARTED)

    @classmethod
    def keepalive(cls, status: str | None = None) -> "SubscriptionEvent":
        return cls(SubscriptionEventKind.KEEPALIVE, status=status)

    @classmethod
    def failed(cls, error: str, status: str | None = None) -> "SubscriptionEvent":
        return cls(SubscriptionEventKind.ERROR, error=error, status=status)

    @classmethod
    def terminated(cls, status: str | None = None) -> "SubscriptionEvent":
        return cls(SubscriptionEventKind.TERMINATED, status=status)

    @classmethod
    def data_change(
        cls,
        node_id: str,
        value: Any,
        source_timestamp: datetime | None = None,
        server_timestamp: datetime | None = None,
    ) -> "SubscriptionEvent":
        return cls(
            SubscriptionEventKind.DATA_CHANGE,
            node_id=node_id,
            value=value,
            source_timestamp=source_timestamp,
            server_timestamp=server_timestamp,
        )


@dataclass(frozen=True)
class ValueNotification:
    """
    A single value change, consumed once by the data fanout

    Attributes:
        node_id: Monitored node
        value: Raw value as delivered by the server
        slot: Standard variable slot, None if unmapped
        variable_name: Canonical name for the slot, None if unmapped
        source_timestamp: Timestamp assigned by the data source
        server_timestamp: Timestamp assigned by the server
    """

    node_id: str
    value: Any
    slot: int | None = None
    variable_name: str | None = None
    source_timestamp: datetime | None = None
    server_timestamp: datetime | None = None

    @property
    def is_mapped(self) -> bool:
        return self.variable_name is not None

    def broadcast_payload(self) -> dict:
        """Payload published on the broadcast channel"""
        return {
            "id": self.node_id,
            "data": {
                "value": self.value,
                "sourceTimestamp": _isoformat(self.source_timestamp),
                "serverTimestamp": _isoformat(self.server_timestamp),
            },
        }


@dataclass
class ConnectResult:
    """
    Result of a completed handshake

    Attributes:
        token: Identifier minted for this connection
        session_id: Server-assigned session id
        endpoint_url: opc.tcp URL that was connected
        folders: Children of the root folder
        monitored_items: Node ids monitored at start (empty on a fresh subscription)
    """

    token: str
    session_id: str
    endpoint_url: str
    folders: list[NodeReference] = field(default_factory=list)
    monitored_items: list[str] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"ConnectResult(endpoint='{self.endpoint_url}', session_id='{self.session_id}')"


def is_persistable(value: Any) -> bool:
    """Check a raw value is a finite number (bools count as 0/1)"""
    if isinstance(value, (bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    return False


def _isoformat(timestamp: datetime | None) -> str | None:
    return timestamp.isoformat() if timestamp else None
