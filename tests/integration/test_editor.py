"""
End-to-end tests for the canvas editor.

Every component is wired by `CanvasEditor` and driven through its host entry
points on a manual clock, with a recording bridge in place of the host.
"""

import json
import random

import pytest
from unittest.mock import Mock

from canvascore.common.config import Config
from canvascore.common.types import DragState, Point, PointerEvent, SyncState
from canvascore.drag.session import DragOutcome
from canvascore.editor import CanvasEditor
from canvascore.protocol.message import Message, MessageType
from canvascore.storage.store import MemoryStore
from canvascore.tree.serializer import ElementSnapshot, TextSnapshot, snapshot_toJson

pytestmark = pytest.mark.integration

PENDING_KEY = "canvas_unsynced_snapshot"


def _event(x, y, timestamp=0.0):
    return PointerEvent(point=Point(x, y), timestamp=timestamp)


def _element_find(payload, element_id):
    if payload.get("id") == element_id:
        return payload
    for child in payload.get("children", []):
        if "tag" in child:
            found = _element_find(child, element_id)
            if found is not None:
                return found
    return None


def _child_ids(payload):
    return [child["id"] for child in payload["children"] if "tag" in child]


@pytest.fixture
def editor_factory(canvas_root, recording_bridge, memory_store, manual_scheduler):
    """Build editors over the sample canvas; defaults use the recording bridge"""
    def build(bridge=recording_bridge, store=memory_store, config=None):
        return CanvasEditor(
            canvas_root, bridge, store, manual_scheduler, config or Config(), rng=random.Random(7)
        )
    return build


@pytest.fixture
def editor(editor_factory):
    editor = editor_factory()
    editor.start()
    return editor


class TestSyncFlow:
    """Test edits reaching the host"""

    def test_single_edit_syncs_after_debounce(self, editor, recording_bridge, manual_scheduler, memory_store):
        """Test one attribute change produces one submission after 150 ms of quiet"""
        states = []
        editor.statusListener_add(lambda state, detail: states.append(state))

        editor.tree.node_find("title").attribute_set("data-x", "1")
        manual_scheduler.advance(0.149)
        assert recording_bridge.submissions == []

        manual_scheduler.advance(0.002)
        assert len(recording_bridge.submissions) == 1
        assert editor.sync_state == SyncState.SYNCING
        payload = json.loads(recording_bridge.submissions[0])
        assert _element_find(payload, "title")["attrs"] == {"data-x": "1"}

        editor.message_handle(Message(msg_type=MessageType.ACK_SUCCESS, payload={}))

        assert editor.sync_state == SyncState.SYNCED
        assert states == [SyncState.SYNCING, SyncState.SYNCED]
        assert memory_store.value_get(PENDING_KEY) is None

    def test_burst_coalesces(self, editor, recording_bridge, manual_scheduler):
        title = editor.tree.node_find("title")
        for step in range(5):
            title.attribute_set("data-step", str(step))
            manual_scheduler.advance(0.02)

        manual_scheduler.advance(0.2)

        assert len(recording_bridge.submissions) == 1
        payload = json.loads(recording_bridge.submissions[0])
        assert _element_find(payload, "title")["attrs"] == {"data-step": "4"}

    def test_save_request_sends_immediately(self, editor, recording_bridge):
        editor.tree.node_find("intro").style_set("color", "red")

        assert editor.save_request() is True
        assert recording_bridge.submit_times == [0.0]
        assert editor.save_request() is False

    def test_ack_failure_message_retries(self, editor, recording_bridge, manual_scheduler, caplog):
        editor.tree.node_find("title").attribute_set("data-x", "1")
        manual_scheduler.advance(0.151)

        editor.message_handle(Message(msg_type=MessageType.ACK_FAILURE, payload={"reason": "disk full"}))
        assert "disk full" in caplog.text
        manual_scheduler.advance(0.11)

        assert len(recording_bridge.submissions) == 2
        editor.ack_success()
        assert editor.sync_state == SyncState.SYNCED

    def test_unexpected_message_rejected(self, editor):
        with pytest.raises(ValueError, match="Unexpected host message"):
            editor.message_handle(Message(msg_type=MessageType.PING, payload={}))

    def test_startup_recovery(self, editor_factory, recording_bridge):
        """Test unsynced work from a previous session is restored and resent"""
        draft = ElementSnapshot(
            tag="div",
            id="canvas-root",
            children=(ElementSnapshot(tag="p", id="restored", children=(TextSnapshot("draft"),)),),
        )
        store = MemoryStore({PENDING_KEY: snapshot_toJson(draft)})
        editor = editor_factory(store=store)

        editor.start()

        assert [child.node_id for child in editor.tree.root.element_children] == ["restored"]
        assert len(recording_bridge.submissions) == 1
        assert _child_ids(json.loads(recording_bridge.submissions[0])) == ["restored"]

        editor.ack_success()
        assert store.value_get(PENDING_KEY) is None
        assert editor.sync_state == SyncState.SYNCED


class TestDragFlow:
    """Test gestures through to the host snapshot"""

    def test_drag_reorders_and_syncs(self, editor, recording_bridge, manual_scheduler):
        b1 = editor.tree.node_find("b1")
        editor.pointer_down(b1, _event(100, 290))
        editor.pointer_move(_event(300, 290, 0.05))
        editor.pointer_move(_event(422, 290, 0.1))
        result = editor.pointer_up(_event(422, 290, 0.15))

        assert result.index == 1
        assert recording_bridge.moved == [("b1", "row", 1)]

        manual_scheduler.advance(0.2)

        assert len(recording_bridge.submissions) == 1
        raw = recording_bridge.submissions[0]
        assert editor.drag.dragging_marker not in raw
        assert _child_ids(_element_find(json.loads(raw), "row")) == ["b2", "b1"]

    def test_drag_marker_never_syncs(self, editor, recording_bridge, manual_scheduler):
        """Test the in-drag marker change alone does not trigger a sync"""
        editor.pointer_down(editor.tree.node_find("b1"), _event(100, 290))
        editor.pointer_move(_event(150, 290, 0.05))
        assert editor.tree.node_find("b1").class_has(editor.drag.dragging_marker)

        manual_scheduler.advance(0.5)
        assert recording_bridge.submissions == []
        assert editor.key_down("Escape") is True
        manual_scheduler.advance(0.5)
        assert recording_bridge.submissions == []

    def test_cancel_keys(self, editor):
        editor.pointer_down(editor.tree.node_find("b1"), _event(100, 290))

        assert editor.key_down("a") is False
        assert editor.drag.state == DragState.READY
        assert editor.key_down(" esc ") is True
        assert editor.drag.state == DragState.IDLE
        assert editor.pointer_cancel() is False

    def test_host_drop_request(self, editor, recording_bridge, manual_scheduler):
        editor.message_handle(Message(
            msg_type=MessageType.DROP_REQUEST, payload={"tag": "button", "x": 400, "y": 90}
        ))

        hero = editor.tree.node_find("hero")
        created = hero.element_children[1]
        assert created.text_content == "New button"
        assert recording_bridge.added == [(created.node_id, "hero", 1)]

        manual_scheduler.advance(0.2)
        assert _child_ids(_element_find(json.loads(recording_bridge.submissions[0]), "hero")) == [
            "title", created.node_id, "intro",
        ]

    def test_host_drop_bad_tag(self, editor, caplog):
        assert editor.drop_at_point_request("   ", 400, 90) is False
        assert "Host drop rejected" in caplog.text

    def test_delete_syncs(self, editor, recording_bridge, manual_scheduler):
        assert editor.element_delete("footer") is True
        manual_scheduler.advance(0.2)

        assert recording_bridge.deleted == [("footer", "canvas-root", 2)]
        assert _child_ids(json.loads(recording_bridge.submissions[0])) == ["hero", "row"]


class TestHostCommands:
    """Test edit commands sent by the host"""

    def test_duplicate_request(self, editor, recording_bridge, manual_scheduler):
        editor.message_handle(Message(
            msg_type=MessageType.DUPLICATE_REQUEST, payload={"element_id": "b2"}
        ))

        copy_id = editor.tree.node_find("row").element_children[2].node_id
        assert recording_bridge.added == [(copy_id, "row", 2)]
        assert copy_id not in ("b1", "b2")

        manual_scheduler.advance(0.2)
        row = _element_find(json.loads(recording_bridge.submissions[0]), "row")
        assert _child_ids(row) == ["b1", "b2", copy_id]
        assert row["children"][2]["children"] == [{"text": "Two"}]

    def test_move_request(self, editor, recording_bridge, manual_scheduler):
        editor.message_handle(Message(
            msg_type=MessageType.MOVE_REQUEST, payload={"element_id": "footer", "direction": "up"}
        ))

        assert recording_bridge.moved == [("footer", "canvas-root", 1)]
        manual_scheduler.advance(0.2)
        assert _child_ids(json.loads(recording_bridge.submissions[0])) == ["hero", "footer", "row"]

    def test_wrap_request(self, editor, recording_bridge, manual_scheduler):
        editor.message_handle(Message(
            msg_type=MessageType.WRAP_REQUEST, payload={"element_ids": ["title", "intro"]}
        ))

        manual_scheduler.advance(0.2)
        hero = _element_find(json.loads(recording_bridge.submissions[0]), "hero")
        assert len(hero["children"]) == 1
        wrapper = hero["children"][0]
        assert wrapper["tag"] == "div"
        assert _child_ids(wrapper) == ["title", "intro"]
        assert recording_bridge.added == [(wrapper["id"], "hero", 0)]

    def test_delete_request(self, editor, recording_bridge):
        editor.message_handle(Message(
            msg_type=MessageType.DELETE_REQUEST, payload={"element_id": "b1"}
        ))

        assert recording_bridge.deleted == [("b1", "row", 0)]

    def test_malformed_request_rejected(self, editor):
        with pytest.raises(ValueError, match="direction"):
            editor.message_handle(Message(
                msg_type=MessageType.MOVE_REQUEST, payload={"element_id": "b1", "direction": "sideways"}
            ))


class TestHostStream:
    """Test JSON lines read from the host"""

    def test_ack_line_completes_cycle(self, editor, manual_scheduler):
        editor.tree.node_find("title").attribute_set("data-x", "1")
        manual_scheduler.advance(0.151)

        assert editor.line_handle('{"msg_type": "ack_success", "payload": {}}\n') is True
        assert editor.sync_state == SyncState.SYNCED

    def test_command_line(self, editor, recording_bridge):
        line = Message(
            msg_type=MessageType.MOVE_REQUEST, payload={"element_id": "b2", "direction": "up"}
        ).json_serialize()

        assert editor.line_handle(line) is True
        assert recording_bridge.moved == [("b2", "row", 0)]

    def test_bad_lines_dropped(self, editor, caplog):
        assert editor.line_handle("   ") is False
        assert editor.line_handle("{not json") is False
        assert editor.line_handle('{"msg_type": "ping", "payload": {}}') is False
        assert "Dropped host message" in caplog.text
        assert "Unexpected host message: ping" in caplog.text


class TestFailureHandling:
    """Test degraded operation"""

    def test_terminal_failure_rolls_back_and_cancels_drag(
        self, editor, recording_bridge, manual_scheduler, memory_store
    ):
        """Test exhausted retries restore the tree and end the active gesture"""
        listener = Mock()
        editor.dragListener_add(listener)
        recording_bridge.submit_error = RuntimeError("host crashed")
        editor.tree.node_find("title").attribute_set("data-x", "1")

        manual_scheduler.advance(0.3)
        editor.pointer_down(editor.tree.node_find("b1"), _event(100, 290))
        editor.pointer_move(_event(150, 290, 0.35))
        assert editor.drag.state == DragState.DRAGGING

        manual_scheduler.advance(1.0)

        assert editor.sync_state == SyncState.FAILED
        assert editor.drag.state == DragState.IDLE
        assert listener.drag_ended.call_args[0][1] == DragOutcome.CANCELLED
        assert editor.tree.node_find("title").attribute_get("data-x") is None
        stored = json.loads(memory_store.value_get(PENDING_KEY))
        assert _element_find(stored, "title")["attrs"] == {"data-x": "1"}
        assert len(recording_bridge.submit_times) == 4

    def test_missing_bridge_disables_sync(self, editor_factory, manual_scheduler, caplog):
        editor = editor_factory(bridge=None)
        editor.start()

        assert "HOST BRIDGE UNAVAILABLE" in caplog.text
        assert editor.sync_state == SyncState.FAILED
        assert editor.heartbeat is None

        editor.tree.node_find("title").attribute_set("data-x", "1")
        manual_scheduler.advance(1.0)
        assert editor.drop_at_point_request("button", 400, 90) is True

    def test_incomplete_bridge_disables_sync(self, editor_factory, caplog):
        bridge = Mock(spec=["snapshot_submit"])
        editor = editor_factory(bridge=bridge)
        editor.start()

        assert "lacks required methods" in caplog.text
        assert editor.transport.enabled is False

        editor.tree.node_find("title").attribute_set("data-x", "1")
        editor.save_request()
        bridge.snapshot_submit.assert_not_called()


class TestLifecycle:
    """Test start and stop"""

    def test_heartbeat_runs(self, editor, recording_bridge, manual_scheduler):
        manual_scheduler.advance(2.5)
        assert recording_bridge.pings == 2

    def test_stop_cancels_every_timer(self, editor, manual_scheduler):
        editor.tree.node_find("title").attribute_set("data-x", "1")
        manual_scheduler.advance(0.151)
        editor.tree.node_find("title").attribute_set("data-x", "2")
        editor.pointer_down(editor.tree.node_find("b1"), _event(100, 290))
        assert manual_scheduler.pending_count() > 0

        editor.stop()

        assert manual_scheduler.pending_count() == 0
        assert editor.drag.state == DragState.IDLE
        assert editor.detector.observing is False

    def test_start_is_idempotent(self, editor, recording_bridge, manual_scheduler):
        editor.start()
        manual_scheduler.advance(1.5)
        assert recording_bridge.pings == 1
