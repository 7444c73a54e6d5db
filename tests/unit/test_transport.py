"""Unit tests for the sync transport acknowledgment protocol"""

import random

import pytest

from canvascore.common.config import SyncConfig
from canvascore.common.types import SyncState
from canvascore.storage.store import MemoryStore
from canvascore.sync.recovery import RollbackManager
from canvascore.sync.transport import SyncTransport
from canvascore.tree.serializer import (
    ElementSnapshot,
    IdGenerator,
    TextSnapshot,
    TreeSerializer,
    snapshot_fromJson,
    snapshot_toJson,
)

PENDING_KEY = "canvas_unsynced_snapshot"


@pytest.fixture
def serializer(canvas_config):
    markers = canvas_config.markers
    return TreeSerializer(
        IdGenerator(rng=random.Random(3)),
        node_markers=markers.node_markers,
        state_markers=markers.state_markers,
    )


@pytest.fixture
def rollback(canvas_tree):
    return RollbackManager(canvas_tree)


@pytest.fixture
def states():
    return []


@pytest.fixture
def transport_build(canvas_tree, serializer, recording_bridge, manual_scheduler, rollback, states):
    """Factory building a transport over a given store and bridge"""

    def build(store=None, bridge=recording_bridge, config=None):
        transport = SyncTransport(
            tree=canvas_tree,
            serializer=serializer,
            bridge=bridge,
            store=store if store is not None else MemoryStore(),
            scheduler=manual_scheduler,
            rollback=rollback,
            config=config or SyncConfig(),
            pending_key=PENDING_KEY,
        )
        transport.statusListener_add(lambda state, detail: states.append((state, detail)))
        return transport

    return build


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def transport(transport_build, store):
    transport = transport_build(store=store)
    transport.baseline_capture()
    return transport


def _submitted(bridge, position=-1):
    return snapshot_fromJson(bridge.submissions[position])


class TestSyncCycle:
    """Test the success path"""

    def test_mutation_submitted_then_acknowledged(self, transport, canvas_tree, recording_bridge):
        """Test one submission carrying the new value, then synced on ack"""
        canvas_tree.node_find("title").attribute_set("data-variant", "bold")

        transport.sync_request()

        assert len(recording_bridge.submissions) == 1
        title = _submitted(recording_bridge).children[0].children[0]
        assert title.attrs_map == {"data-variant": "bold"}
        assert transport.state == SyncState.SYNCING
        assert transport.awaiting_ack is True

        transport.ack_success()

        assert transport.state == SyncState.SYNCED
        assert transport.awaiting_ack is False
        assert transport.last_synced == _submitted(recording_bridge)

    def test_unchanged_tree_skips_round_trip(self, transport, recording_bridge, states):
        transport.sync_request()

        assert recording_bridge.submissions == []
        assert transport.state == SyncState.SYNCED
        assert states == []

    def test_ack_clears_stored_snapshot(self, transport, store, canvas_tree):
        store.value_set(PENDING_KEY, "stale")
        canvas_tree.node_find("title").attribute_set("data-x", "1")

        transport.sync_request()
        transport.ack_success()

        assert store.value_get(PENDING_KEY) is None

    def test_ack_timeout_cancelled_on_success(self, transport, canvas_tree, recording_bridge, manual_scheduler):
        canvas_tree.node_find("title").attribute_set("data-x", "1")
        transport.sync_request()
        transport.ack_success()

        manual_scheduler.advance(10.0)

        assert len(recording_bridge.submissions) == 1
        assert transport.state == SyncState.SYNCED

    def test_ack_with_nothing_pending_ignored(self, transport, caplog, states):
        transport.ack_success()
        transport.ack_failure("late")

        assert transport.state == SyncState.SYNCED
        assert states == []
        assert "nothing pending" in caplog.text

    def test_request_during_cycle_sets_resync(self, transport, canvas_tree, recording_bridge):
        """Test a request while syncing waits for the cycle to complete"""
        title = canvas_tree.node_find("title")
        title.attribute_set("data-x", "1")
        transport.sync_request()

        title.attribute_set("data-x", "2")
        transport.sync_request()

        assert len(recording_bridge.submissions) == 1
        assert transport.resync_pending is True

        transport.ack_success()

        assert len(recording_bridge.submissions) == 2
        assert transport.resync_pending is False
        second_title = _submitted(recording_bridge).children[0].children[0]
        assert second_title.attrs_map == {"data-x": "2"}

    def test_second_submit_while_pending_raises(self, transport, canvas_tree):
        canvas_tree.node_find("title").attribute_set("data-x", "1")
        transport.sync_request()

        with pytest.raises(RuntimeError, match="already awaiting"):
            transport._submit(transport.snapshot_take())

    def test_submit_without_bridge_raises(self, transport_build, store, states):
        transport = transport_build(store=store, bridge=None)
        transport.baseline_capture()

        with pytest.raises(RuntimeError, match="No host bridge attached"):
            transport._submit(transport.snapshot_take())
        assert transport.awaiting_ack is False
        assert states == []

    def test_status_listener_failure_is_logged(self, transport, canvas_tree, caplog):
        def broken(state, detail):
            raise RuntimeError("listener bug")

        transport.statusListener_add(broken)
        canvas_tree.node_find("title").attribute_set("data-x", "1")

        transport.sync_request()

        assert transport.state == SyncState.SYNCING
        assert "Status listener failed" in caplog.text


class TestRetryAndRollback:
    """Test failure handling"""

    def test_timeouts_retry_with_backoff_then_roll_back(
        self, transport, canvas_tree, recording_bridge, manual_scheduler, store, rollback, states
    ):
        """Test retries at 100/200/400 ms after each timeout, then rollback and persistence"""
        canvas_tree.node_find("title").attribute_set("data-variant", "bold")
        transport.sync_request()

        manual_scheduler.advance(20.0)

        assert recording_bridge.submit_times == pytest.approx([0.0, 2.1, 4.3, 6.7])
        assert transport.state == SyncState.FAILED
        assert rollback.rollback_count == 1

        persisted = snapshot_fromJson(store.value_get(PENDING_KEY))
        assert persisted.children[0].children[0].attrs_map == {"data-variant": "bold"}

        assert canvas_tree.node_find("title").attribute_get("data-variant") is None
        assert transport.snapshot_take() == transport.last_synced

        assert states[0] == (SyncState.SYNCING, None)
        assert states[-1][0] == SyncState.FAILED
        assert "retries exhausted" in states[-1][1]

    def test_no_retry_after_exhaustion(self, transport, canvas_tree, recording_bridge, manual_scheduler):
        """Test the retry bound: nothing fires once the cycle failed"""
        canvas_tree.node_find("title").attribute_set("data-x", "1")
        transport.sync_request()
        manual_scheduler.advance(20.0)
        count = len(recording_bridge.submissions)

        manual_scheduler.advance(60.0)

        assert len(recording_bridge.submissions) == count == 4
        assert manual_scheduler.pending_count() == 0

    def test_ack_failure_retries_after_base_delay(self, transport, canvas_tree, recording_bridge, manual_scheduler):
        canvas_tree.node_find("title").attribute_set("data-x", "1")
        transport.sync_request()

        transport.ack_failure("schema mismatch")

        assert transport.retry_count == 1
        assert len(recording_bridge.submissions) == 1
        manual_scheduler.advance(0.1)
        assert len(recording_bridge.submissions) == 2

        transport.ack_success()
        assert transport.retry_count == 0
        assert transport.state == SyncState.SYNCED

    def test_retry_reserializes_current_tree(self, transport, canvas_tree, recording_bridge, manual_scheduler):
        title = canvas_tree.node_find("title")
        title.attribute_set("data-x", "1")
        transport.sync_request()
        transport.ack_failure()

        title.attribute_set("data-x", "2")
        manual_scheduler.advance(0.1)

        assert _submitted(recording_bridge).children[0].children[0].attrs_map == {"data-x": "2"}

    def test_retry_dropped_when_tree_reverted(self, transport, canvas_tree, recording_bridge, manual_scheduler):
        """Test a retry finding the last synced state ends the cycle"""
        title = canvas_tree.node_find("title")
        title.attribute_set("data-x", "1")
        transport.sync_request()
        transport.ack_failure()

        title.attribute_remove("data-x")
        manual_scheduler.advance(0.1)

        assert len(recording_bridge.submissions) == 1
        assert transport.state == SyncState.SYNCED
        assert transport.retry_count == 0

    def test_bridge_exception_counts_as_failure(self, transport, canvas_tree, recording_bridge, manual_scheduler, store):
        recording_bridge.submit_error = RuntimeError("pipe closed")
        canvas_tree.node_find("title").attribute_set("data-x", "1")

        transport.sync_request()

        assert transport.retry_count == 1
        assert transport.awaiting_ack is False

        manual_scheduler.advance(1.0)

        assert len(recording_bridge.submit_times) == 4
        assert transport.state == SyncState.FAILED
        assert store.value_get(PENDING_KEY) is not None

    def test_zero_retries_fails_on_first_timeout(self, transport_build, canvas_tree, manual_scheduler):
        transport = transport_build(config=SyncConfig(max_retries=0))
        transport.baseline_capture()
        canvas_tree.node_find("title").attribute_set("data-x", "1")

        transport.sync_request()
        manual_scheduler.advance(2.0)

        assert transport.state == SyncState.FAILED

    def test_new_request_after_failure_starts_fresh_cycle(
        self, transport, canvas_tree, recording_bridge, manual_scheduler
    ):
        canvas_tree.node_find("title").attribute_set("data-x", "1")
        transport.sync_request()
        manual_scheduler.advance(20.0)
        assert transport.state == SyncState.FAILED

        canvas_tree.node_find("intro").attribute_set("data-y", "1")
        transport.sync_request()

        assert transport.state == SyncState.SYNCING
        assert transport.retry_count == 0
        transport.ack_success()
        assert transport.state == SyncState.SYNCED


class TestDisabledSync:
    """Test operation without a usable bridge"""

    def test_no_bridge_means_disabled(self, transport_build, canvas_tree):
        transport = transport_build(bridge=None)
        transport.baseline_capture()
        canvas_tree.node_find("title").attribute_set("data-x", "1")

        transport.sync_request()

        assert transport.enabled is False
        assert transport.state == SyncState.SYNCED

    def test_sync_disable_reports_failure(self, transport, canvas_tree, manual_scheduler, states, caplog):
        canvas_tree.node_find("title").attribute_set("data-x", "1")
        transport.sync_request()

        transport.sync_disable("bridge lost")

        assert transport.state == SyncState.FAILED
        assert states[-1] == (SyncState.FAILED, "bridge lost")
        assert transport.awaiting_ack is False
        assert manual_scheduler.pending_count() == 0
        assert "Sync disabled: bridge lost" in caplog.text

    def test_bridge_attach_enables(self, transport_build, recording_bridge, canvas_tree):
        transport = transport_build(bridge=None)
        transport.baseline_capture()
        transport.bridge_attach(recording_bridge)
        canvas_tree.node_find("title").attribute_set("data-x", "1")

        transport.sync_request()

        assert len(recording_bridge.submissions) == 1


class TestStartupRecovery:
    """Test restoring unsynced work"""

    def test_stored_snapshot_restored_and_synced(self, transport_build, canvas_tree, recording_bridge):
        saved = ElementSnapshot(
            tag="div",
            id="canvas-root",
            children=(
                ElementSnapshot(tag="p", id="restored", children=(TextSnapshot("Saved"),)),
            ),
        )
        store = MemoryStore({PENDING_KEY: snapshot_toJson(saved)})
        transport = transport_build(store=store)
        transport.baseline_capture()

        assert transport.startup_recover() is True

        assert [node.node_id for node in canvas_tree.root.element_children] == ["restored"]
        assert _submitted(recording_bridge) == saved
        assert store.value_get(PENDING_KEY) is not None

        transport.ack_success()
        assert store.value_get(PENDING_KEY) is None

    def test_nothing_stored(self, transport, recording_bridge):
        assert transport.startup_recover() is False
        assert recording_bridge.submissions == []

    def test_unreadable_snapshot_discarded(self, transport_build, caplog):
        store = MemoryStore({PENDING_KEY: "{broken"})
        transport = transport_build(store=store)
        transport.baseline_capture()

        assert transport.startup_recover() is False
        assert store.value_get(PENDING_KEY) is None
        assert "Discarding unreadable pending snapshot" in caplog.text
