"""
Configuration management

Centralized settings using Pydantic BaseSettings for type-safe configuration
with environment variable support. Every setting can be overridden with an
OPCUA_BRIDGE_ prefixed environment variable, e.g.:

- OPCUA_BRIDGE_REQUEST_TIMEOUT=10
- OPCUA_BRIDGE_PUBLISHING_INTERVAL_MS=500
- OPCUA_BRIDGE_DATABASE_PATH=/var/lib/bridge/readings.db
"""

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .paths import get_package_root

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Bridge settings with environment variable support
    """

    # OPC UA client
    request_timeout: float = Field(default=4.0, gt=0)
    subscription_start_timeout: float = Field(default=10.0, gt=0)

    # Subscription parameters (fixed per session)
    publishing_interval_ms: float = Field(default=1000.0, gt=0)
    lifetime_count: int = Field(default=10, ge=1)
    max_keepalive_count: int = Field(default=2, ge=1)
    max_notifications_per_publish: int = Field(default=10, ge=0)
    priority: int = Field(default=10, ge=0, le=255)

    # Monitored item parameters
    sampling_interval_ms: float = Field(default=100.0, ge=0)
    queue_size: int = Field(default=10, ge=1)

    # Fanout
    broadcast_topic: str = "variableValues"
    sink_timeout: float = Field(default=5.0, gt=0)
    lane_queue_size: int = Field(default=1000, ge=1)

    # Sinks
    database_path: Path | None = None
    websocket_keepalive_interval: int = Field(default=15, ge=1)

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="OPCUA_BRIDGE_",
        env_file=str(get_package_root() / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Singleton pattern for settings
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get bridge settings (singleton)

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        logger.debug(f"Settings loaded: {_settings.model_dump()}")
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment"""
    global _settings
    _settings = None
