"""
Dynamic path resolution for the OPC UA bridge.

All paths are calculated from the installed package location, so the bridge
behaves the same regardless of the current working directory.
Writable paths honour the OPCUA_BRIDGE_DATA environment variable.
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def get_package_root() -> Path:
    """
    Get the directory containing the opcua_bridge/ package.

    Returns:
        Path: Absolute path to package root (the backend/ directory)
    """
    # This file is at: opcua_bridge/core/paths.py
    return Path(__file__).parent.parent.parent.resolve()


def get_data_dir() -> Path:
    """
    Get the bridge data directory (database, local state)

    Priority order:
    1. OPCUA_BRIDGE_DATA environment variable
    2. Project directory: <package_root>/data (development checkout)
    3. Fallback: ~/.opcua-bridge

    Returns:
        Path to data directory (created if missing)
    """
    env_path = os.getenv("OPCUA_BRIDGE_DATA")
    if env_path:
        path = Path(env_path).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Using data directory from OPCUA_BRIDGE_DATA: {path}")
        return path

    project_data_dir = get_package_root() / "data"
    if project_data_dir.exists():
        logger.debug(f"Using project data directory: {project_data_dir}")
        return project_data_dir

    fallback = Path.home() / ".opcua-bridge"
    fallback.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Using fallback data directory: {fallback}")
    return fallback


def get_database_file() -> Path:
    """
    Get the SQLite database file used by the persistence sink

    Returns:
        Path: <data_dir>/opcua_bridge.db
    """
    return get_data_dir() / "opcua_bridge.db"
