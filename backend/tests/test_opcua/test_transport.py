"""
Tests for the asyncua transport adapter

Covers node id resolution and the mapping of asyncua subscription callbacks
onto the bridge's event stream. No server is contacted.
"""

import asyncio
from types import SimpleNamespace

import pytest
from asyncua import ua

from conftest import SAMPLE_TIME
from opcua_bridge.opcua.exceptions import PreconditionError
from opcua_bridge.opcua.models import SubscriptionEventKind
from opcua_bridge.opcua.transport import (
    AsyncuaTransport,
    SubscriptionHandler,
    _to_node_reference,
    resolve_node_id,
)


class TestResolveNodeId:
    """Test node id parsing"""

    def test_well_known_folder(self):
        """Test folder names resolve to namespace 0 ids"""
        assert resolve_node_id("RootFolder") == ua.NodeId(ua.ObjectIds.RootFolder, 0)
        assert resolve_node_id("ObjectsFolder") == ua.NodeId(ua.ObjectIds.ObjectsFolder, 0)

    def test_node_id_string(self):
        """Test regular node id strings are parsed"""
        node_id = resolve_node_id("ns=2;i=5")

        assert node_id.NamespaceIndex == 2
        assert node_id.Identifier == 5


class TestNodeReference:
    """Test conversion of browse results"""

    def test_reference_description_is_converted(self):
        """Test asyncua reference descriptions become NodeReference rows"""
        description = ua.ReferenceDescription()
        description.NodeId = ua.ExpandedNodeId(ua.ObjectIds.ObjectsFolder, 0)
        description.BrowseName = ua.QualifiedName("Objects", 0)
        description.DisplayName = ua.LocalizedText("Objects")
        description.NodeClass = ua.NodeClass.Object

        reference = _to_node_reference(description)

        assert reference.node_id == "i=85"
        assert reference.browse_name == "0:Objects"
        assert reference.display_name == "Objects"
        assert reference.node_class == "Object"
        assert reference.type_definition is None


class TestSubscriptionHandler:
    """Test callback to event mapping"""

    def test_data_change_is_queued(self):
        """Test a data change carries node id, value and timestamps"""
        events = asyncio.Queue()
        handler = SubscriptionHandler(events)
        node = SimpleNamespace(nodeid=ua.NodeId(5, 2))
        value = ua.DataValue(ua.Variant(21.0, ua.VariantType.Double))
        value.SourceTimestamp = SAMPLE_TIME
        data = SimpleNamespace(monitored_item=SimpleNamespace(Value=value))

        handler.datachange_notification(node, 21.0, data)

        event = events.get_nowait()
        assert event.kind == SubscriptionEventKind.DATA_CHANGE
        assert event.node_id == "ns=2;i=5"
        assert event.value == 21.0
        assert event.source_timestamp == SAMPLE_TIME

    def test_good_status_is_keepalive(self):
        """Test a good status change counts as a keepalive"""
        events = asyncio.Queue()

        SubscriptionHandler(events).status_change_notification(
            ua.StatusChangeNotification(Status=ua.StatusCode(ua.StatusCodes.Good))
        )

        assert events.get_nowait().kind == SubscriptionEventKind.KEEPALIVE

    def test_timeout_status_is_terminated(self):
        """Test a timed-out subscription is reported as terminated"""
        events = asyncio.Queue()

        SubscriptionHandler(events).status_change_notification(
            ua.StatusChangeNotification(Status=ua.StatusCode(ua.StatusCodes.BadTimeout))
        )

        event = events.get_nowait()
        assert event.kind == SubscriptionEventKind.TERMINATED
        assert event.status == "BadTimeout"

    def test_other_bad_status_is_error(self):
        """Test non-terminal bad statuses are operational errors"""
        events = asyncio.Queue()

        SubscriptionHandler(events).status_change_notification(
            ua.StatusChangeNotification(Status=ua.StatusCode(ua.StatusCodes.BadTooManyPublishRequests))
        )

        assert events.get_nowait().kind == SubscriptionEventKind.ERROR


class TestAsyncuaTransport:
    """Test transport guards that need no server"""

    @pytest.mark.asyncio
    async def test_operations_before_connect(self):
        """Test primitives refuse to run on an unconnected transport"""
        transport = AsyncuaTransport(timeout=1.0)

        with pytest.raises(PreconditionError):
            await transport.create_session()
        with pytest.raises(PreconditionError):
            await transport.browse("RootFolder")

    @pytest.mark.asyncio
    async def test_disconnect_before_connect_is_noop(self):
        """Test disconnecting an unconnected transport does nothing"""
        await AsyncuaTransport().disconnect()
