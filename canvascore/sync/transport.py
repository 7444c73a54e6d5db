"""
Sync transport: the acknowledgment protocol with the host.

State machine::

    SYNCED --sync_request--> SYNCING --ack_success--> SYNCED
                               |  ^
          ack_failure/timeout  |  |  retry after backoff
                               v  |
                           (retry_count <= max_retries)
                               |
                               v  retries exhausted
                             FAILED  (pending snapshot persisted, rollback)

At most one acknowledgment is pending. The SYNCING state doubles as the gate:
requests arriving while it is held set `resync_pending`, which is evaluated
when the cycle completes.
"""

from __future__ import annotations

import logging
from typing import Callable

from canvascore.common.config import SyncConfig
from canvascore.common.errors import TerminalSyncFailure, TransientSyncFailure
from canvascore.common.scheduler import Scheduler, TimerHandle
from canvascore.common.types import SyncState
from canvascore.protocol.bridge import HostBridge
from canvascore.storage.store import DurableStore
from canvascore.sync.backoff import retryDelay_compute
from canvascore.sync.recovery import RollbackHandler
from canvascore.tree.node import VisualTree
from canvascore.tree.serializer import ElementSnapshot, TreeSerializer, snapshot_fromJson, snapshot_toJson

logger = logging.getLogger(__name__)

__all__ = [
    "SyncStatusListener",
    "SyncTransport",
]

SyncStatusListener = Callable[[SyncState, "str | None"], None]


class SyncTransport:
    """Owns the process-wide sync state and the single in-flight request."""

    def __init__(
        self,
        tree: VisualTree,
        serializer: TreeSerializer,
        bridge: HostBridge | None,
        store: DurableStore,
        scheduler: Scheduler,
        rollback: RollbackHandler,
        config: SyncConfig | None = None,
        pending_key: str = "canvas_unsynced_snapshot",
    ) -> None:
        """
        Initialize transport.

        Args:
            tree:
                Live tree serialized on every cycle.
            serializer:
                Snapshot builder.
            bridge:
                Host bridge; `None` leaves sync disabled.
            store:
                Durable slot for the unsynced snapshot.
            scheduler:
                Timer source for acknowledgment timeouts and retries.
            rollback:
                Applied with the last good snapshot after retries are
                exhausted, and with the stored snapshot at startup.
            config:
                Timing and retry settings.
            pending_key:
                Store slot name.
        """
        self._tree: VisualTree = tree
        self._serializer: TreeSerializer = serializer
        self._bridge: HostBridge | None = bridge
        self._store: DurableStore = store
        self._scheduler: Scheduler = scheduler
        self._rollback: RollbackHandler = rollback
        self._config: SyncConfig = config or SyncConfig()
        self._pending_key: str = pending_key

        self._state: SyncState = SyncState.SYNCED
        self._enabled: bool = bridge is not None
        self._last_synced: ElementSnapshot | None = None
        self._pending: ElementSnapshot | None = None
        self._timeout_handle: TimerHandle | None = None
        self._retry_handle: TimerHandle | None = None
        self._listeners: list[SyncStatusListener] = []

        self.retry_count: int = 0
        self.resync_pending: bool = False
        self.submissions: int = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def last_synced(self) -> ElementSnapshot | None:
        """Last snapshot the host acknowledged (or the startup baseline)"""
        return self._last_synced

    @property
    def awaiting_ack(self) -> bool:
        return self._pending is not None

    def statusListener_add(self, listener: SyncStatusListener) -> None:
        """Register a callback receiving `(state, detail)` on every state change"""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def bridge_attach(self, bridge: HostBridge) -> None:
        """Enable sync through ``bridge``"""
        self._bridge = bridge
        self._enabled = True

    def sync_disable(self, reason: str) -> None:
        """Stop all sync activity; editing continues locally"""
        self._enabled = False
        self._timers_cancel()
        self._pending = None
        logger.error("[SYNC] Sync disabled: %s", reason)
        self._state_set(SyncState.FAILED, reason)

    def baseline_capture(self) -> ElementSnapshot:
        """Record the current tree as the known-good state"""
        self._last_synced = self.snapshot_take()
        return self._last_synced

    def snapshot_take(self) -> ElementSnapshot:
        """Serialize the live tree with identifier write-back unobserved"""
        with self._tree.observation_paused():
            return self._serializer.snapshot_capture(self._tree.root)

    def stop(self) -> None:
        """Cancel outstanding timers; a pending acknowledgment is abandoned"""
        self._timers_cancel()

    # ------------------------------------------------------------------
    # Requests and acknowledgments
    # ------------------------------------------------------------------

    def sync_request(self) -> None:
        """Start a sync cycle, or mark one pending when a cycle is running."""
        if not self._enabled:
            logger.debug("[SYNC] Sync disabled, request ignored")
            return
        if self._state == SyncState.SYNCING:
            self.resync_pending = True
            logger.debug("[SYNC] Cycle in progress, resync queued")
            return
        self.retry_count = 0
        self._cycle_run()

    def ack_success(self) -> None:
        """Host confirmed the pending snapshot."""
        if self._pending is None:
            logger.warning("[SYNC] ack_success with nothing pending, ignored")
            return
        self._timeoutTimer_cancel()
        self._last_synced = self._pending
        self._pending = None
        self.retry_count = 0
        self._store.value_remove(self._pending_key)
        logger.info("[SYNC] Snapshot acknowledged")
        self._state_set(SyncState.SYNCED)

        if self.resync_pending:
            self.resync_pending = False
            self.sync_request()

    def ack_failure(self, reason: str = "host rejected snapshot") -> None:
        """Host rejected the pending snapshot."""
        if self._pending is None:
            logger.warning("[SYNC] ack_failure with nothing pending, ignored")
            return
        self._timeoutTimer_cancel()
        self._failure_handle(TransientSyncFailure(reason))

    # ------------------------------------------------------------------
    # Cycle internals
    # ------------------------------------------------------------------

    def _cycle_run(self) -> None:
        """Serialize, skip when unchanged, otherwise submit."""
        snapshot: ElementSnapshot = self.snapshot_take()
        if snapshot == self._last_synced:
            logger.debug("[SYNC] Tree unchanged since last sync, round trip skipped")
            if self._state != SyncState.FAILED:
                self._store.value_remove(self._pending_key)
            self._state_set(SyncState.SYNCED)
            return
        self._submit(snapshot)

    def _submit(self, snapshot: ElementSnapshot) -> None:
        if self._pending is not None:
            raise RuntimeError("A snapshot is already awaiting acknowledgment")
        if self._bridge is None:
            raise RuntimeError("No host bridge attached")

        self._state_set(SyncState.SYNCING)
        self._pending = snapshot
        self.submissions += 1
        payload: str = snapshot_toJson(snapshot)
        self._timeout_handle = self._scheduler.call_later(
            self._config.ack_timeout_ms / 1000.0, self._ackTimeout_fire
        )
        logger.debug("[SYNC] Submitting snapshot #%d (%d bytes)", self.submissions, len(payload))
        try:
            self._bridge.snapshot_submit(payload)
        except Exception as exc:
            logger.warning("[SYNC] Bridge raised during submit: %s", exc)
            self._timeoutTimer_cancel()
            self._failure_handle(TransientSyncFailure(f"bridge error: {exc}"))

    def _ackTimeout_fire(self) -> None:
        self._timeout_handle = None
        if self._pending is None:
            return
        self._failure_handle(TransientSyncFailure(
            f"no acknowledgment within {self._config.ack_timeout_ms} ms"
        ))

    def _failure_handle(self, failure: TransientSyncFailure) -> None:
        """Schedule a retry, or escalate once retries are exhausted."""
        failed: ElementSnapshot | None = self._pending
        self._pending = None
        self.retry_count += 1

        if self.retry_count <= self._config.max_retries:
            delay_ms: float = retryDelay_compute(self.retry_count - 1, self._config.backoff_base_ms)
            logger.warning(
                "[SYNC] Attempt failed (%s); retry %d/%d in %.0f ms",
                failure, self.retry_count, self._config.max_retries, delay_ms,
            )
            self._retry_handle = self._scheduler.call_later(delay_ms / 1000.0, self._retry_fire)
            return

        self._terminal_handle(
            TerminalSyncFailure(f"{self._config.max_retries} retries exhausted: {failure}"),
            failed,
        )

    def _retry_fire(self) -> None:
        self._retry_handle = None
        if not self._enabled:
            return
        self.resync_pending = False
        snapshot: ElementSnapshot = self.snapshot_take()
        if snapshot == self._last_synced:
            logger.info("[SYNC] Tree matches last synced state, retry dropped")
            self.retry_count = 0
            self._store.value_remove(self._pending_key)
            self._state_set(SyncState.SYNCED)
            return
        self._submit(snapshot)

    def _terminal_handle(self, failure: TerminalSyncFailure, failed: ElementSnapshot | None) -> None:
        logger.error("[SYNC] %s; rolling back to last synced state", failure)
        self.retry_count = 0
        self.resync_pending = False
        if failed is not None:
            self._pendingSnapshot_persist(failed)
        self._rollback.rollback_apply(self._last_synced)
        self._state_set(SyncState.FAILED, str(failure))

    # ------------------------------------------------------------------
    # Durable pending snapshot
    # ------------------------------------------------------------------

    def _pendingSnapshot_persist(self, snapshot: ElementSnapshot) -> None:
        try:
            self._store.value_set(self._pending_key, snapshot_toJson(snapshot))
        except OSError as exc:
            logger.error("[SYNC] Could not persist unsynced snapshot: %s", exc)

    def pendingSnapshot_load(self) -> ElementSnapshot | None:
        """
        Read the persisted unsynced snapshot.

        Unreadable payloads are logged and cleared.

        Returns:
            Stored snapshot, or `None`.
        """
        raw: str | None = self._store.value_get(self._pending_key)
        if raw is None:
            return None
        try:
            return snapshot_fromJson(raw)
        except ValueError as exc:
            logger.warning("[SYNC] Discarding unreadable pending snapshot: %s", exc)
            self._store.value_remove(self._pending_key)
            return None

    def startup_recover(self) -> bool:
        """
        Restore unsynced work left by a previous session, then sync it.

        Returns:
            `True` when a stored snapshot was restored.
        """
        snapshot: ElementSnapshot | None = self.pendingSnapshot_load()
        if snapshot is None:
            return False
        logger.info("[SYNC] Restoring unsynced snapshot from previous session")
        self._rollback.rollback_apply(snapshot)
        self.sync_request()
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _state_set(self, state: SyncState, detail: str | None = None) -> None:
        if state == self._state and detail is None:
            return
        previous: SyncState = self._state
        self._state = state
        logger.debug("[SYNC] State %s -> %s", previous.value, state.value)
        for listener in list(self._listeners):
            try:
                listener(state, detail)
            except Exception:
                logger.exception("[SYNC] Status listener failed")

    def _timeoutTimer_cancel(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _timers_cancel(self) -> None:
        self._timeoutTimer_cancel()
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None
