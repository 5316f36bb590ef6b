"""
Core infrastructure: configuration, paths and sink protocols
"""

from opcua_bridge.core.config import Settings, get_settings, reset_settings
from opcua_bridge.core.interfaces import BroadcastChannel, PersistenceSink

__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "PersistenceSink",
    "BroadcastChannel",
]
