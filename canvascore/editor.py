"""
Canvas editor coordinator.

`CanvasEditor` constructs every component exactly once and wires them together;
nothing in canvascore is a module-level singleton. It is also the single entry
point for the host: pointer and key input, acknowledgments, synthetic drops and
edit commands all arrive here, as calls or as JSON protocol lines.
"""

from __future__ import annotations

import logging
import random
from typing import Any

from canvascore.common.config import Config
from canvascore.common.errors import BridgeUnavailable
from canvascore.common.scheduler import Scheduler
from canvascore.common.types import Modifiers, Point, PointerEvent, SyncState
from canvascore.drag.classifier import DragModeClassifier
from canvascore.drag.executor import DropExecutor, DropResult
from canvascore.drag.session import DragListener, DragSession, DragStateMachine
from canvascore.drag.zones import DropZoneScorer
from canvascore.protocol.bridge import HostBridge, bridge_check
from canvascore.protocol.message import Message, MessageParser, MessageType
from canvascore.storage.store import DurableStore
from canvascore.sync.change_detector import ChangeDetector
from canvascore.sync.heartbeat import BridgeHeartbeat
from canvascore.sync.recovery import RollbackManager
from canvascore.sync.transport import SyncStatusListener, SyncTransport
from canvascore.tree.mutations import MarkerFilter
from canvascore.tree.node import VisualNode, VisualTree
from canvascore.tree.serializer import IdGenerator, TreeSerializer

logger = logging.getLogger(__name__)

__all__ = ["CANCEL_KEYS", "CanvasEditor"]

CANCEL_KEYS: frozenset[str] = frozenset({"escape", "esc"})


class CanvasEditor:
    """Owns and wires the sync and drag/drop engines for one canvas."""

    def __init__(
        self,
        root: VisualNode,
        bridge: Any,
        store: DurableStore,
        scheduler: Scheduler,
        config: Config | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize editor.

        Args:
            root:
                Detached canvas root node; the editor builds the tree around it.
            bridge:
                Host bridge. A missing or incomplete bridge disables sync at
                `start()`; drag and drop keep working locally.
            store:
                Durable store for unsynced snapshots.
            scheduler:
                Timer source shared by every component.
            config:
                Validated configuration.
            rng:
                Random source for identifier suffixes.
        """
        self.config: Config = config or Config()
        cfg = self.config
        self.scheduler: Scheduler = scheduler
        self.store: DurableStore = store
        self._candidate_bridge: Any = bridge
        self.bridge: HostBridge | None = None
        self._started: bool = False

        if not root.node_id:
            root.id_set(cfg.canvas.root_id)
        self.marker_filter = MarkerFilter(cfg.markers.node_markers, cfg.markers.state_markers)
        self.tree = VisualTree(root, marker_filter=self.marker_filter)
        self.id_generator = IdGenerator(rng=rng)
        self.serializer = TreeSerializer(
            self.id_generator,
            node_markers=cfg.markers.node_markers,
            state_markers=cfg.markers.state_markers,
            non_content_tags=cfg.canvas.non_content_tags,
        )

        self.rollback = RollbackManager(self.tree, pause_scope=lambda: self.detector.pause())
        self.transport = SyncTransport(
            tree=self.tree,
            serializer=self.serializer,
            bridge=None,
            store=store,
            scheduler=scheduler,
            rollback=self.rollback,
            config=cfg.sync,
            pending_key=cfg.store.pending_key,
        )
        self.detector = ChangeDetector(self.tree, self.transport, scheduler, cfg.sync.debounce_ms)
        self.heartbeat: BridgeHeartbeat | None = None

        self.classifier = DragModeClassifier(
            self.tree,
            cfg.markers.palette_markers,
            Modifiers.name_parse(cfg.drag.positioning_modifier),
        )
        self.scorer = DropZoneScorer(self.tree, cfg.zones, cfg.canvas, cfg.markers.node_markers)
        self.executor = DropExecutor(
            self.tree, self.scorer, self.id_generator, bridge=None, void_tags=cfg.canvas.void_tags
        )
        self.drag = DragStateMachine(
            self.classifier, self.scorer, self.executor, scheduler, cfg.drag, cfg.zones, cfg.markers
        )
        self.rollback.beforeRollback_add(lambda: self.drag.cancel("rollback"))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def sync_state(self) -> SyncState:
        return self.transport.state

    def start(self) -> None:
        """Check the bridge, restore unsynced work, then begin observing."""
        if self._started:
            return
        self._started = True

        try:
            self.bridge = bridge_check(self._candidate_bridge)
        except BridgeUnavailable as exc:
            logger.error("[BRIDGE] ********** HOST BRIDGE UNAVAILABLE: %s **********", exc)
            self.transport.sync_disable(str(exc))
        else:
            self.transport.bridge_attach(self.bridge)
            self.executor.bridge_set(self.bridge)

        self.transport.baseline_capture()
        self.transport.startup_recover()
        self.detector.start()

        if self.bridge is not None and self.config.sync.heartbeat_enabled:
            self.heartbeat = BridgeHeartbeat(
                self.bridge, self.scheduler, self.config.sync.heartbeat_interval_ms
            )
            self.heartbeat.start()
        logger.info(
            "[SYNC] Editor started (sync %s)", "enabled" if self.transport.enabled else "disabled"
        )

    def stop(self) -> None:
        """Cancel the gesture, stop observing and cancel every timer."""
        self.drag.cancel("shutdown")
        self.detector.stop()
        if self.heartbeat is not None:
            self.heartbeat.stop()
        self.transport.stop()
        self._started = False

    def statusListener_add(self, listener: SyncStatusListener) -> None:
        self.transport.statusListener_add(listener)

    def dragListener_add(self, listener: DragListener) -> None:
        self.drag.listener_add(listener)

    # ------------------------------------------------------------------
    # Pointer and key input
    # ------------------------------------------------------------------

    def pointer_down(self, node: VisualNode | None, event: PointerEvent) -> DragSession | None:
        return self.drag.pointer_down(node, event)

    def pointer_move(self, event: PointerEvent) -> None:
        self.drag.pointer_move(event)

    def pointer_up(self, event: PointerEvent) -> DropResult | None:
        return self.drag.pointer_up(event)

    def pointer_cancel(self) -> bool:
        return self.drag.cancel("pointer cancel")

    def key_down(self, key: str) -> bool:
        """
        Handle a key press.

        Returns:
            `True` when the key cancelled a gesture.
        """
        if key.strip().lower() in CANCEL_KEYS:
            return self.drag.cancel("cancel key")
        return False

    # ------------------------------------------------------------------
    # Host entry points
    # ------------------------------------------------------------------

    def ack_success(self) -> None:
        self.transport.ack_success()

    def ack_failure(self, reason: str = "host rejected snapshot") -> None:
        self.transport.ack_failure(reason)

    def save_request(self) -> bool:
        """Send pending edits now instead of waiting for the debounce."""
        return self.detector.flush()

    def drop_at_point_request(self, tag: str, x: float, y: float) -> bool:
        """
        Drop a new palette component at canvas coordinates.

        Returns:
            `True` when the component was inserted.
        """
        try:
            node: VisualNode = self.executor.paletteNode_create(tag)
        except ValueError as exc:
            logger.warning("[DRAG] Host drop rejected: %s", exc)
            return False
        result: DropResult | None = self.drag.externalDrop_run(node, Point(float(x), float(y)))
        return result is not None

    def element_delete(self, node_id: str) -> bool:
        return self.executor.element_delete(node_id)

    def element_duplicate(self, node_id: str) -> str | None:
        return self.executor.element_duplicate(node_id)

    def element_move(self, node_id: str, direction: str) -> bool:
        return self.executor.element_move(node_id, direction)

    def elements_wrap(self, node_ids: list[str]) -> str | None:
        return self.executor.elements_wrap(node_ids)

    def message_handle(self, message: Message) -> None:
        """
        Dispatch one incoming host protocol message.

        Raises:
            ValueError: For message types the host never sends, or malformed
                request payloads.
        """
        msg_type: MessageType = message.msg_type
        if msg_type == MessageType.ACK_SUCCESS:
            self.ack_success()
        elif msg_type == MessageType.ACK_FAILURE:
            self.ack_failure(str(message.payload.get("reason", "host rejected snapshot")))
        elif msg_type == MessageType.DROP_REQUEST:
            tag, x, y = MessageParser.dropRequest_parse(message)
            self.drop_at_point_request(tag, x, y)
        elif msg_type == MessageType.DELETE_REQUEST:
            self.element_delete(MessageParser.elementRequest_parse(message))
        elif msg_type == MessageType.DUPLICATE_REQUEST:
            self.element_duplicate(MessageParser.elementRequest_parse(message))
        elif msg_type == MessageType.MOVE_REQUEST:
            node_id, direction = MessageParser.moveRequest_parse(message)
            self.element_move(node_id, direction)
        elif msg_type == MessageType.WRAP_REQUEST:
            self.elements_wrap(MessageParser.wrapRequest_parse(message))
        else:
            raise ValueError(f"Unexpected host message: {msg_type.value}")

    def line_handle(self, line: str) -> bool:
        """
        Decode and dispatch one JSON line read from the host stream.

        Malformed or unexpected lines are logged and dropped so a bad host
        message never stops the read loop.

        Returns:
            `True` when the line was dispatched.
        """
        line = line.strip()
        if not line:
            return False
        try:
            self.message_handle(Message.json_deserialize(line))
        except ValueError as exc:
            logger.warning("[BRIDGE] Dropped host message: %s", exc)
            return False
        return True
