"""
OPC UA Bridge

Connects to an OPC UA server, keeps a live-data subscription and relays value
changes to a persistence sink and a realtime broadcast channel.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from opcua_bridge.opcua.fanout import DataFanout
from opcua_bridge.opcua.manager import ConnectionManager
from opcua_bridge.opcua.models import ConnectionState, Endpoint

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "DataFanout",
    "Endpoint",
]
