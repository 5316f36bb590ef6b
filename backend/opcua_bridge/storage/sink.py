"""
Persistence sink writing monitored values to SQLite
"""

import asyncio
import logging
import time

from sqlalchemy import select

from opcua_bridge.opcua.exceptions import SinkError
from opcua_bridge.storage.database import Database
from opcua_bridge.storage.models import SensorReadingModel

logger = logging.getLogger(__name__)


class DatabasePersistenceSink:
    """
    PersistenceSink appending one row per value to the mappedsensors table

    SQLAlchemy sessions are synchronous, so each write runs in a worker
    thread to keep the event loop free. A caller that stops waiting cannot
    stop that thread, so with write_timeout set the insert checks its own
    deadline before committing and rolls back once it has passed. A write
    the caller reports as timed out then leaves no row behind (short of a
    commit already in progress when the deadline falls).

    Example:
        sink = DatabasePersistenceSink(Database(tmp_path / "bridge.db"), write_timeout=5.0)
        await sink.write("temp1", 21.0)
    """

    def __init__(self, database: Database, write_timeout: float | None = None):
        self.database = database
        self.write_timeout = write_timeout

    async def write(self, variable_name: str, value: float) -> None:
        deadline = None
        if self.write_timeout is not None:
            deadline = time.monotonic() + self.write_timeout
        await asyncio.to_thread(self._insert, variable_name, value, deadline)

    def _insert(self, variable_name: str, value: float, deadline: float | None) -> None:
        with self.database.session_scope() as session:
            session.add(SensorReadingModel(variable=variable_name, varvalues=value))
            session.flush()
            if deadline is not None and time.monotonic() >= deadline:
                raise SinkError(
                    f"Write of {variable_name} missed its {self.write_timeout}s deadline and was rolled back",
                    context={"variable": variable_name},
                )
        logger.debug(f"Persisted {variable_name} = {value}")

    def recent(self, variable_name: str | None = None, limit: int = 50) -> list[dict]:
        """
        Most recent readings, newest first

        Args:
            variable_name: Only readings of this variable, or all when None
            limit: Maximum number of rows
        """
        with self.database.session_scope() as session:
            query = select(SensorReadingModel).order_by(SensorReadingModel.id.desc()).limit(limit)
            if variable_name is not None:
                query = query.where(SensorReadingModel.variable == variable_name)
            return [row.to_dict() for row in session.scalars(query)]
