"""
Browse service - one-shot listing of a node's children
"""

import logging

from opcua_bridge.opcua.context import ConnectionContext
from opcua_bridge.opcua.exceptions import InvalidParameterError, PreconditionError
from opcua_bridge.opcua.models import NodeReference

logger = logging.getLogger(__name__)

ROOT_FOLDER = "RootFolder"


async def browse_node(context: ConnectionContext | None, node_id: str) -> list[NodeReference]:
    """
    List the immediate child references of a node

    No recursion and no pagination: callers browse node by node.

    Args:
        context: Connection context with a live session
        node_id: Node id string or well-known folder name ("RootFolder")

    Returns:
        Child references in server order

    Raises:
        PreconditionError: If there is no session (nothing is sent)
        BrowseError: If the server rejects the browse
    """
    if context is None:
        raise PreconditionError("Not connected to a server")
    if not node_id or not node_id.strip():
        raise InvalidParameterError("Node id is required for browse")

    transport = context.require_session()
    references = await transport.browse(node_id.strip())

    for reference in references:
        logger.debug(f"> {reference.node_class}: {reference.browse_name} ({reference.node_id})")
    logger.info(f"Browsed {node_id}: {len(references)} reference(s)")
    return references
