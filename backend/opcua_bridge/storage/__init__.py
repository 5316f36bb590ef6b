"""
Data persistence layer using SQLite
"""

from opcua_bridge.storage.database import Database
from opcua_bridge.storage.models import SensorReadingModel
from opcua_bridge.storage.sink import DatabasePersistenceSink

__all__ = [
    "Database",
    "DatabasePersistenceSink",
    "SensorReadingModel",
]
