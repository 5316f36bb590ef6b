"""
Variable reader - one-shot read of a node's current value
"""

import logging

from opcua_bridge.opcua.context import ConnectionContext
from opcua_bridge.opcua.exceptions import InvalidParameterError, PreconditionError
from opcua_bridge.opcua.models import VariableValue

logger = logging.getLogger(__name__)


async def read_variable(context: ConnectionContext | None, node_id: str) -> VariableValue:
    """
    Read a node's value from the server

    Every call is a fresh request; nothing is cached.

    Raises:
        PreconditionError: If there is no session (nothing is sent)
        ReadError: If the read fails, including on a stale session
    """
    if context is None:
        raise PreconditionError("Not connected to a server")
    if not node_id or not node_id.strip():
        raise InvalidParameterError("Node id is required for read")

    transport = context.require_session()
    result = await transport.read_value(node_id.strip())
    logger.info(f"Read {result.node_id} = {result.value!r} ({result.status})")
    return result
