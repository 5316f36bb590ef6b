"""
OPC UA client core: handshake, browse, read, subscription registry and fanout
"""

from opcua_bridge.opcua.browse import ROOT_FOLDER, browse_node
from opcua_bridge.opcua.context import ConnectionContext
from opcua_bridge.opcua.exceptions import (
    BrowseError,
    BusyError,
    HandshakeCancelledError,
    InvalidParameterError,
    InvalidSlotError,
    InvalidValueError,
    MonitorError,
    OpcUaException,
    PreconditionError,
    ReadError,
    SessionError,
    SinkError,
    StaleSubscriptionError,
    SubscriptionError,
    TransportError,
)
from opcua_bridge.opcua.fanout import DataFanout, FanoutStats
from opcua_bridge.opcua.manager import ConnectionManager
from opcua_bridge.opcua.models import (
    ConnectionState,
    ConnectResult,
    Endpoint,
    MonitorParameters,
    NodeReference,
    SubscriptionEvent,
    SubscriptionEventKind,
    SubscriptionParameters,
    ValueNotification,
    VariableValue,
)
from opcua_bridge.opcua.reader import read_variable
from opcua_bridge.opcua.registry import MonitoredItemHandle, SubscriptionRegistry
from opcua_bridge.opcua.std_vars import STANDARD_VARIABLES, StandardVariable, get_standard_variable

__all__ = [
    # Manager
    "ConnectionManager",
    "ConnectionContext",
    "ConnectResult",
    "ConnectionState",
    "Endpoint",
    # Operations
    "ROOT_FOLDER",
    "browse_node",
    "read_variable",
    "SubscriptionRegistry",
    "MonitoredItemHandle",
    "DataFanout",
    "FanoutStats",
    # Models
    "MonitorParameters",
    "NodeReference",
    "SubscriptionEvent",
    "SubscriptionEventKind",
    "SubscriptionParameters",
    "ValueNotification",
    "VariableValue",
    "STANDARD_VARIABLES",
    "StandardVariable",
    "get_standard_variable",
    # Exceptions
    "OpcUaException",
    "TransportError",
    "SessionError",
    "BrowseError",
    "ReadError",
    "SubscriptionError",
    "MonitorError",
    "StaleSubscriptionError",
    "PreconditionError",
    "BusyError",
    "HandshakeCancelledError",
    "InvalidSlotError",
    "InvalidParameterError",
    "InvalidValueError",
    "SinkError",
]
