"""
Core interfaces and protocols

Defines the outbound sink protocols the data fanout writes to. The sinks are
owned by the embedding application; the bridge only calls these methods.
"""

from typing import Any, Protocol


class PersistenceSink(Protocol):
    """Protocol for persistence sink implementations"""

    async def write(self, variable_name: str, value: float) -> None:
        """Append one reading under its canonical variable name"""
        ...


class BroadcastChannel(Protocol):
    """Protocol for realtime broadcast implementations"""

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        """Publish one event to every subscriber of topic"""
        ...
