"""
Drag session state machine.

States::

    IDLE --pointer_down--> READY --displacement > threshold--> DRAGGING
      ^                      |                                    |
      |       pointer_up (click) / cancel / watchdog              | pointer_up
      +----------------------+------------------------------------+--> DROPPING --> IDLE

At most one session is active. The watchdog is re-armed on every pointer event
and forces IDLE when a gesture goes silent. A drop is resolved from fresh
geometry at the release point and either commits fully or not at all.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from canvascore.common.config import DragConfig, MarkerConfig, ZoneConfig
from canvascore.common.errors import InvalidDropTarget, StaleZoneReference
from canvascore.common.scheduler import Scheduler, TimerHandle
from canvascore.common.types import (
    DragMode,
    DragSource,
    DragState,
    Modifiers,
    Point,
    PointerEvent,
)
from canvascore.drag.classifier import DragClassification, DragModeClassifier
from canvascore.drag.executor import DropExecutor, DropResult
from canvascore.drag.pointer import PointerTracker
from canvascore.drag.zones import DropZone, DropZoneScorer, ZoneFrameThrottle, ZoneSelection
from canvascore.tree.node import VisualNode

logger = logging.getLogger(__name__)

__all__ = [
    "DragListener",
    "DragOutcome",
    "DragSession",
    "DragStateMachine",
]


class DragOutcome(Enum):
    """How a session ended"""
    DROPPED = "dropped"
    CLICK = "click"
    CANCELLED = "cancelled"
    REJECTED = "rejected"   # no valid zone at release
    STALE = "stale"         # zone went stale before commit
    TIMEOUT = "timeout"     # watchdog fired


@dataclass
class DragSession:
    """State of one gesture"""
    id: str
    mode: DragMode
    source: DragSource
    dragged_node: VisualNode
    start_point: Point
    current_point: Point
    start_time: float
    modifiers: Modifiers = Modifiers.NONE
    confidence: float = 0.0
    state: DragState = DragState.READY
    zone_candidates: list[DropZone] = field(default_factory=list)
    selected_zone: Optional[ZoneSelection] = None
    result: Optional[DropResult] = None


class DragListener(Protocol):
    """Callbacks for the external visual feedback collaborator"""

    def drag_started(self, session: DragSession) -> None:
        ...

    def zones_updated(self, session: DragSession, zones: list[DropZone]) -> None:
        ...

    def drag_ended(self, session: DragSession, outcome: DragOutcome) -> None:
        ...


class DragStateMachine:
    """Owns the single active drag session."""

    def __init__(
        self,
        classifier: DragModeClassifier,
        scorer: DropZoneScorer,
        executor: DropExecutor,
        scheduler: Scheduler,
        drag_config: DragConfig | None = None,
        zone_config: ZoneConfig | None = None,
        marker_config: MarkerConfig | None = None,
    ) -> None:
        """
        Initialize state machine.

        Args:
            classifier:
                Resolves the drag mode at pointer-down.
            scorer:
                Produces ranked zones during the drag and at release.
            executor:
                Commits the drop.
            scheduler:
                Timer source for the watchdog and frame throttle.
            drag_config:
                Thresholds and watchdog timeout.
            zone_config:
                Frame interval for zone recomputation.
            marker_config:
                Supplies the marker class put on the dragged node.
        """
        self._classifier: DragModeClassifier = classifier
        self._scorer: DropZoneScorer = scorer
        self._executor: DropExecutor = executor
        self._scheduler: Scheduler = scheduler
        self._config: DragConfig = drag_config or DragConfig()
        zone_config = zone_config or ZoneConfig()
        self._dragging_marker: str = (marker_config or MarkerConfig()).dragging_marker
        self._throttle = ZoneFrameThrottle(scheduler, zone_config.frame_interval_ms)
        self._tracker = PointerTracker()
        self._watchdog: TimerHandle | None = None
        self._session: DragSession | None = None
        self._listeners: list[DragListener] = []
        self._session_ids = itertools.count(1)

    @property
    def state(self) -> DragState:
        return self._session.state if self._session is not None else DragState.IDLE

    @property
    def session(self) -> DragSession | None:
        return self._session

    @property
    def dragging_marker(self) -> str:
        return self._dragging_marker

    @property
    def throttle(self) -> ZoneFrameThrottle:
        return self._throttle

    def listener_add(self, listener: DragListener) -> None:
        self._listeners.append(listener)

    def threshold_get(self, mode: DragMode) -> float:
        """Displacement needed to leave READY for a mode"""
        if mode == DragMode.POSITIONING:
            return self._config.positioning_threshold_px
        if mode == DragMode.INTERNAL:
            return self._config.internal_threshold_px
        return self._config.external_threshold_px

    # ------------------------------------------------------------------
    # Pointer input
    # ------------------------------------------------------------------

    def pointer_down(self, node: VisualNode | None, event: PointerEvent) -> DragSession | None:
        """
        Start a gesture on ``node``.

        Returns:
            The new session, or `None` for a disabled gesture.
        """
        if self._session is not None:
            logger.warning(
                "[DRAG] pointer_down while %s; abandoning previous session",
                self._session.state.value,
            )
            self._session_end(DragOutcome.CANCELLED)

        classification: DragClassification = self._classifier.gesture_classify(node, event.modifiers)
        if classification.mode == DragMode.DISABLED or node is None:
            logger.debug("[DRAG] Gesture ignored: drag disabled for this source")
            return None

        session = DragSession(
            id=f"drag-{next(self._session_ids)}",
            mode=classification.mode,
            source=classification.source,
            dragged_node=node,
            start_point=event.point,
            current_point=event.point,
            start_time=self._scheduler.now(),
            modifiers=event.modifiers,
            confidence=classification.confidence,
        )
        self._session = session
        self._tracker.reset()
        self._tracker.sample_record(event)
        self._watchdog_arm()
        logger.debug("[DRAG] %s READY (%s)", session.id, session.mode.value)
        return session

    def pointer_move(self, event: PointerEvent) -> None:
        session = self._session
        if session is None or session.state == DragState.DROPPING:
            return
        self._watchdog_arm()
        self._tracker.sample_record(event)
        session.current_point = event.point

        if session.state == DragState.READY:
            displacement: float = session.start_point.distance_to(event.point)
            if displacement <= self.threshold_get(session.mode):
                return
            session.state = DragState.DRAGGING
            if session.mode != DragMode.EXTERNAL:
                session.dragged_node.class_add(self._dragging_marker)
            logger.info("[DRAG] %s DRAGGING (%s, %.1f px)", session.id, session.mode.value, displacement)
            self._listeners_notify("drag_started", session)

        self._throttle.frame_request(session.id, self._zones_refresh)

    def pointer_up(self, event: PointerEvent) -> DropResult | None:
        """
        Finish a gesture.

        Returns:
            The committed drop, or `None` for clicks and rejected drops.
        """
        session = self._session
        if session is None:
            return None
        self._tracker.sample_record(event)
        session.current_point = event.point

        if session.state == DragState.READY:
            self._session_end(DragOutcome.CLICK)
            return None
        if session.state != DragState.DRAGGING:
            return None

        session.state = DragState.DROPPING
        self._watchdog_cancel()
        self._throttle.session_end(session.id)

        zones: list[DropZone] = self._scorer.zones_score(
            event.point, session.dragged_node, session.mode, self._tracker.motion_get()
        )
        session.zone_candidates = zones
        try:
            selection: ZoneSelection = self._scorer.zone_select(zones)
        except InvalidDropTarget as exc:
            logger.debug("[ZONE] %s: %s", session.id, exc)
            self._session_end(DragOutcome.REJECTED)
            return None
        session.selected_zone = selection

        try:
            session.result = self._executor.drop_commit(session, selection.zone)
        except StaleZoneReference as exc:
            logger.warning("[DRAG] Drop aborted: %s", exc)
            self._session_end(DragOutcome.STALE)
            return None

        result = session.result
        self._session_end(DragOutcome.DROPPED)
        return result

    def externalDrop_run(self, node: VisualNode, point: Point) -> DropResult | None:
        """
        Resolve a host-synthesized palette drop at ``point``.

        The drop runs through the same zone resolution and commit path as a
        pointer gesture released at that point.
        """
        if self._session is not None:
            self.cancel("superseded by host drop")
        session = DragSession(
            id=f"drag-{next(self._session_ids)}",
            mode=DragMode.EXTERNAL,
            source=DragSource.EXTERNAL_PALETTE,
            dragged_node=node,
            start_point=point,
            current_point=point,
            start_time=self._scheduler.now(),
            confidence=1.0,
            state=DragState.DRAGGING,
        )
        self._session = session
        self._tracker.reset()
        return self.pointer_up(PointerEvent(point=point, timestamp=session.start_time))

    def cancel(self, reason: str = "cancel") -> bool:
        """
        Abort the active gesture before it reaches DROPPING.

        Returns:
            `True` when a session was cancelled.
        """
        session = self._session
        if session is None or session.state == DragState.DROPPING:
            return False
        logger.info("[DRAG] %s cancelled (%s)", session.id, reason)
        self._session_end(DragOutcome.CANCELLED)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _zones_refresh(self) -> None:
        session = self._session
        if session is None or session.state != DragState.DRAGGING:
            return
        zones: list[DropZone] = self._scorer.zones_score(
            session.current_point, session.dragged_node, session.mode, self._tracker.motion_get()
        )
        session.zone_candidates = zones
        try:
            session.selected_zone = self._scorer.zone_select(zones)
        except InvalidDropTarget:
            session.selected_zone = None
        self._listeners_notify("zones_updated", session, zones)

    def _session_end(self, outcome: DragOutcome) -> None:
        session = self._session
        if session is None:
            return
        self._watchdog_cancel()
        self._throttle.session_end(session.id)
        session.dragged_node.class_remove(self._dragging_marker)
        self._session = None
        self._tracker.reset()
        logger.debug("[DRAG] %s ended: %s", session.id, outcome.value)
        self._listeners_notify("drag_ended", session, outcome)

    def _watchdog_arm(self) -> None:
        self._watchdog_cancel()
        self._watchdog = self._scheduler.call_later(self._config.watchdog_ms / 1000.0, self._watchdog_fire)

    def _watchdog_cancel(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _watchdog_fire(self) -> None:
        self._watchdog = None
        session = self._session
        if session is None:
            return
        logger.warning(
            "[DRAG] Watchdog: %s silent for %d ms in %s; forcing IDLE",
            session.id, self._config.watchdog_ms, session.state.value,
        )
        self._session_end(DragOutcome.TIMEOUT)

    def _listeners_notify(self, method: str, *args: object) -> None:
        for listener in list(self._listeners):
            callback = getattr(listener, method, None)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception:
                logger.exception("[DRAG] Listener %s failed", method)
