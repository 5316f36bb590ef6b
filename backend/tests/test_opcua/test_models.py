"""
Tests for bridge data models
"""

import math
from datetime import UTC, datetime

import pytest

from opcua_bridge.opcua.exceptions import InvalidParameterError
from opcua_bridge.opcua.models import (
    Endpoint,
    NodeReference,
    SubscriptionEvent,
    SubscriptionEventKind,
    ValueNotification,
    VariableValue,
    is_persistable,
)


class TestEndpoint:
    """Test endpoint validation"""

    def test_url(self):
        """Test the opc.tcp URL is built from host and port"""
        assert Endpoint("10.0.0.5", 4840).url == "opc.tcp://10.0.0.5:4840"

    def test_from_strings_converts_port(self):
        """Test a port given as text is converted"""
        endpoint = Endpoint.from_strings("10.0.0.5", "4840")

        assert endpoint.port == 4840
        assert endpoint == Endpoint("10.0.0.5", 4840)

    @pytest.mark.parametrize("host,port", [("", 4840), ("   ", 4840), ("plc", 0), ("plc", 70000), ("plc", True)])
    def test_invalid_endpoint(self, host, port):
        """Test empty hosts and out-of-range ports are rejected"""
        with pytest.raises(InvalidParameterError):
            Endpoint(host, port)

    @pytest.mark.parametrize("port", ["abc", "48a0", "", "-1"])
    def test_non_numeric_port_string(self, port):
        """Test non-numeric port text is rejected"""
        with pytest.raises(InvalidParameterError):
            Endpoint.from_strings("plc", port)


class TestPayloads:
    """Test dictionary renderings"""

    def test_node_reference_to_dict(self):
        """Test browse rows use camelCase keys"""
        reference = NodeReference(node_id="i=85", browse_name="0:Objects", display_name="Objects", node_class="Object")

        assert reference.to_dict()["nodeId"] == "i=85"
        assert reference.to_dict()["browseName"] == "0:Objects"
        assert reference.to_dict()["nodeClass"] == "Object"

    def test_variable_value_to_dict(self):
        """Test read results carry value, type, status and timestamps"""
        ts = datetime(2026, 1, 5, tzinfo=UTC)
        value = VariableValue(node_id="ns=2;i=5", value=21.5, variant_type="Double", source_timestamp=ts)

        payload = value.to_dict()

        assert payload["value"] == 21.5
        assert payload["dataType"] == "Double"
        assert payload["statusCode"] == "Good"
        assert payload["sourceTimestamp"] == ts.isoformat()
        assert payload["serverTimestamp"] is None

    def test_broadcast_payload(self):
        """Test the broadcast payload shape"""
        notification = ValueNotification(node_id="ns=2;i=5", value=21.0, slot=0, variable_name="temp1")

        assert notification.is_mapped
        assert notification.broadcast_payload() == {
            "id": "ns=2;i=5",
            "data": {"value": 21.0, "sourceTimestamp": None, "serverTimestamp": None},
        }

    def test_event_constructors(self):
        """Test event helper constructors set their kind"""
        assert SubscriptionEvent.started().kind == SubscriptionEventKind.STARTED
        assert SubscriptionEvent.failed("boom").error == "boom"
        assert SubscriptionEvent.terminated("BadTimeout").status == "BadTimeout"
        assert SubscriptionEvent.data_change("ns=2;i=5", 1.0).node_id == "ns=2;i=5"


class TestIsPersistable:
    """Test value validation before persistence"""

    @pytest.mark.parametrize("value", [0, 21, 21.3, -4.5, True, False])
    def test_numbers_are_persistable(self, value):
        assert is_persistable(value)

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, "21.3", None, b"\x01", [1.0]])
    def test_other_values_are_not(self, value):
        assert not is_persistable(value)
