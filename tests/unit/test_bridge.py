"""Unit tests for the host bridge contract and stream bridge"""

import io

import pytest
from unittest.mock import Mock

from canvascore.common.errors import BridgeUnavailable
from canvascore.protocol.bridge import StreamHostBridge, bridge_check
from canvascore.protocol.message import Message, MessageType


class _SubmitOnlyBridge:
    def snapshot_submit(self, payload):
        pass


class TestBridgeCheck:
    """Test bridge capability checks"""

    def test_none_unavailable(self):
        with pytest.raises(BridgeUnavailable, match="No host bridge"):
            bridge_check(None)

    def test_missing_methods_listed(self):
        with pytest.raises(BridgeUnavailable) as excinfo:
            bridge_check(_SubmitOnlyBridge())
        message = str(excinfo.value)
        assert "element_added" in message
        assert "element_deleted" in message
        assert "snapshot_submit" not in message

    def test_complete_bridge_returned(self, recording_bridge):
        assert bridge_check(recording_bridge) is recording_bridge

    def test_mock_bridge_accepted(self):
        bridge = Mock()
        assert bridge_check(bridge) is bridge


class TestStreamHostBridge:
    """Test JSON-lines bridge output"""

    def test_snapshot_submit_writes_line(self):
        stream = io.StringIO()
        bridge = StreamHostBridge(stream)

        bridge.snapshot_submit('{"tag":"div"}')

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        msg = Message.json_deserialize(lines[0])
        assert msg.msg_type == MessageType.SNAPSHOT_SUBMIT
        assert msg.payload["snapshot"] == '{"tag":"div"}'
        assert bridge.messages_sent == 1

    def test_element_calls(self):
        stream = io.StringIO()
        bridge = StreamHostBridge(stream)

        bridge.element_added("n1", "root", 0)
        bridge.element_moved("n1", "row", 2)
        bridge.element_deleted("n1", "row", 2)

        types = [Message.json_deserialize(line).msg_type for line in stream.getvalue().splitlines()]
        assert types == [
            MessageType.ELEMENT_ADDED,
            MessageType.ELEMENT_MOVED,
            MessageType.ELEMENT_DELETED,
        ]

    def test_ping_and_log(self):
        stream = io.StringIO()
        bridge = StreamHostBridge(stream)

        assert bridge.ping() == "pong"
        bridge.log("hello")

        assert bridge.messages_sent == 2

    def test_ping_on_closed_stream(self):
        stream = io.StringIO()
        bridge = StreamHostBridge(stream)
        stream.close()

        assert bridge.ping() == ""
        assert bridge.messages_sent == 0

    def test_stream_bridge_passes_check(self):
        bridge = StreamHostBridge(io.StringIO())
        assert bridge_check(bridge) is bridge
