"""
Pydantic payload models for the bridge service
"""

from typing import Any

from pydantic import BaseModel, Field


class StdVarInfo(BaseModel):
    """Standard variable table entry"""

    id: int
    name: str


class ConnectResponse(BaseModel):
    """Result of a completed connect"""

    token: str
    sessionId: str
    data: list[dict[str, Any]] = Field(default_factory=list)  # Root folder references
    subscription: list[str] = Field(default_factory=list)  # Monitored node ids
    stdVars: list[StdVarInfo] = Field(default_factory=list)


class MonitorResponse(BaseModel):
    """Result of a monitor request"""

    id: str
    stdVar: int | None = None


class DisconnectResponse(BaseModel):
    """Result of a disconnect"""

    status: str = "Disconnected from server"
