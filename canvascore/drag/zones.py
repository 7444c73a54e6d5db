"""
Drop zone candidate generation, scoring and selection.

Zones are regenerated from current node geometry on every computation and
never cached. Zone ids are deterministic per computation (type, target id and
generation ordinal) and carry no identity across computations.

Candidates:

    container   visible content elements at least `min_width` x `min_height`
    insertion   one band per gap between element children of a container
                (or the canvas root) whose bounds contain the pointer
    directional above/below/left/right edge strips of visible elements,
                internal and positioning drags only
    boundary    the canvas root, at reduced weight
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

from canvascore.common.config import CanvasConfig, ZoneConfig
from canvascore.common.errors import InvalidDropTarget
from canvascore.common.scheduler import Scheduler, TimerHandle
from canvascore.common.types import DragMode, LayoutMode, Point, Rect, ZoneType
from canvascore.drag.classifier import COMPONENT_TYPE_ATTR, containerLayout_detect
from canvascore.drag.pointer import Motion
from canvascore.tree.node import VisualNode, VisualTree

logger = logging.getLogger(__name__)

__all__ = [
    "DropZone",
    "DropZoneScorer",
    "INTERACTIVE_TAGS",
    "ZoneFrameThrottle",
    "ZoneSelection",
    "droppedTag_resolve",
    "zones_rank",
]

# Interactive elements never nest inside one another
INTERACTIVE_TAGS: frozenset[str] = frozenset({"a", "button"})


@dataclass
class DropZone:
    """One candidate drop location"""
    id: str
    type: ZoneType
    target_node: VisualNode  # node receiving the dropped child
    bounds: Rect
    score: float = 0.0
    valid: bool = True
    index: Optional[int] = None  # child-list index for insertion and directional zones
    reference_node: Optional[VisualNode] = None  # sibling for directional zones
    ordinal: int = 0  # generation order, used as the final tie-break
    reason: Optional[str] = None  # why the zone is invalid


@dataclass(frozen=True)
class ZoneSelection:
    """Zone chosen for a drop"""
    zone: DropZone
    auto_apply: bool


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def droppedTag_resolve(dragged: VisualNode) -> str:
    """Tag the drop will insert: the component type for palette entries, else the node's own tag"""
    component: str | None = dragged.attribute_get(COMPONENT_TYPE_ATTR)
    return component.strip().lower() if component else dragged.tag


def zones_rank(zones: Iterable[DropZone], pointer: Point) -> list[DropZone]:
    """
    Order zones for selection

    When two or more valid zones contain the pointer they lead, ordered by type
    priority (insertion > directional > container > boundary) then score. All
    other zones follow by score. Ties break on generation order.

    Args:
        zones: Scored zones
        pointer: Pointer position the zones were scored for

    Returns:
        New ranked list
    """
    zones = list(zones)
    containing: list[DropZone] = [
        zone for zone in zones if zone.valid and zone.bounds.contains(pointer)
    ]
    if len(containing) < 2:
        return sorted(zones, key=lambda zone: (-zone.score, zone.ordinal))

    lead: list[DropZone] = sorted(
        containing, key=lambda zone: (-zone.type.priority, -zone.score, zone.ordinal)
    )
    lead_ids: set[int] = {id(zone) for zone in lead}
    rest: list[DropZone] = sorted(
        (zone for zone in zones if id(zone) not in lead_ids),
        key=lambda zone: (-zone.score, zone.ordinal),
    )
    return lead + rest


class DropZoneScorer:
    """Generates, validates, scores and ranks drop zones against live geometry."""

    def __init__(
        self,
        tree: VisualTree,
        config: ZoneConfig | None = None,
        canvas: CanvasConfig | None = None,
        node_markers: Iterable[str] = (),
    ) -> None:
        """
        Initialize scorer.

        Args:
            tree:
                Canvas tree; its root is the boundary zone.
            config:
                Candidate and scoring settings.
            canvas:
                Void and non-content tag lists.
            node_markers:
                Classes marking feedback nodes, never drop targets.
        """
        self._tree: VisualTree = tree
        self._config: ZoneConfig = config or ZoneConfig()
        canvas = canvas or CanvasConfig()
        self._void_tags: frozenset[str] = frozenset(tag.lower() for tag in canvas.void_tags)
        self._non_content_tags: frozenset[str] = frozenset(tag.lower() for tag in canvas.non_content_tags)
        self._node_markers: frozenset[str] = frozenset(node_markers)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def zones_score(
        self,
        pointer: Point,
        dragged: VisualNode | None,
        mode: DragMode,
        motion: Motion | None = None,
    ) -> list[DropZone]:
        """
        Build the ranked candidate list for one pointer sample.

        Args:
            pointer:
                Pointer position in canvas pixels.
            dragged:
                Node being dragged (palette entry or canvas element).
            mode:
                Resolved drag mode; directional zones need internal or
                positioning.
            motion:
                Recent pointer motion for the momentum boost.

        Returns:
            Ranked zones, invalid ones included and flagged.
        """
        zones: list[DropZone] = self.zones_generate(pointer, dragged, mode, motion or Motion())
        for zone in zones:
            zone.reason = self.zoneTarget_validate(zone, dragged)
            zone.valid = zone.reason is None
            if not zone.valid:
                logger.debug("[ZONE] %s rejected: %s", zone.id, zone.reason)
        return zones_rank(zones, pointer)

    def zone_select(self, ranked: Iterable[DropZone]) -> ZoneSelection:
        """
        Pick the best-ranked valid zone.

        A best zone scoring below the accept threshold means no target; lower
        ranked zones are not consulted.

        Args:
            ranked:
                Output of `zones_score`.

        Returns:
            Selected zone with its auto-apply flag.

        Raises:
            InvalidDropTarget: When there is no valid zone or the best one
                scores below the accept threshold.
        """
        best: DropZone | None = next((zone for zone in ranked if zone.valid), None)
        if best is None:
            raise InvalidDropTarget("No valid drop target at pointer")
        if best.score < self._config.accept_threshold:
            logger.debug("[ZONE] Best zone %s below accept threshold (%.2f)", best.id, best.score)
            raise InvalidDropTarget("No valid drop target at pointer")
        return ZoneSelection(
            zone=best,
            auto_apply=best.score >= self._config.auto_apply_threshold,
        )

    def zoneTarget_validate(self, zone: DropZone, dragged: VisualNode | None) -> str | None:
        """
        Check a zone's structural validity against the current tree.

        Used at scoring time and again right before a drop is committed.

        Returns:
            `None` when valid, otherwise a short reason.
        """
        target: VisualNode = zone.target_node
        if not self._tree.contains(target):
            return "target detached from canvas"
        if dragged is not None and (target is dragged or target.descendantOf_check(dragged)):
            return "target is the dragged node or its descendant"
        if target.tag in self._void_tags:
            return f"<{target.tag}> cannot hold children"
        if not self._contentNode_check(target):
            return "target is not content"
        if dragged is not None and target.tag in INTERACTIVE_TAGS:
            dropped_tag: str = droppedTag_resolve(dragged)
            if dropped_tag in INTERACTIVE_TAGS:
                return f"<{dropped_tag}> cannot nest inside <{target.tag}>"
        if zone.type.is_directional:
            reference = zone.reference_node
            if reference is None or reference.parent is not target:
                return "reference sibling moved"
            if reference is dragged:
                return "reference is the dragged node"
        return None

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def zones_generate(
        self,
        pointer: Point,
        dragged: VisualNode | None,
        mode: DragMode,
        motion: Motion,
    ) -> list[DropZone]:
        """Generate unvalidated, scored candidates in deterministic order."""
        zones: list[DropZone] = []
        root: VisualNode = self._tree.root
        directional: bool = mode in (DragMode.INTERNAL, DragMode.POSITIONING)

        if root.visible and root.bounds is not None and root.bounds.contains(pointer):
            zones.extend(self._insertionZones_build(root, pointer, dragged, len(zones)))

        for node in self._visibleContent_iter(root):
            bounds: Rect = node.bounds  # type: ignore[assignment]
            if self._containerCandidate_check(node):
                zones.append(self._containerZone_build(node, pointer, len(zones)))
                if bounds.contains(pointer):
                    zones.extend(self._insertionZones_build(node, pointer, dragged, len(zones)))
            if directional and node is not dragged:
                zones.extend(self._directionalZones_build(node, pointer, motion, len(zones)))

        if root.bounds is not None and root.visible:
            zones.append(DropZone(
                id=self._zoneId_build(ZoneType.BOUNDARY, root, len(zones)),
                type=ZoneType.BOUNDARY,
                target_node=root,
                bounds=root.bounds,
                score=_clamp(root.bounds.proximity_score(pointer) * self._config.boundary_factor),
                ordinal=len(zones),
            ))
        return zones

    def _visibleContent_iter(self, node: VisualNode) -> Iterator[VisualNode]:
        """Pre-order walk of visible content descendants with known bounds"""
        for child in node.element_children:
            if not self._contentNode_check(child) or not child.visible:
                continue
            if child.bounds is not None:
                yield child
            yield from self._visibleContent_iter(child)

    def _contentNode_check(self, node: VisualNode) -> bool:
        if node.tag in self._non_content_tags:
            return False
        return not self._node_markers.intersection(node.classes)

    def _containerCandidate_check(self, node: VisualNode) -> bool:
        bounds = node.bounds
        if bounds is None or node.tag in self._void_tags:
            return False
        return bounds.width >= self._config.min_width and bounds.height >= self._config.min_height

    def _flowChildren_get(self, container: VisualNode, dragged: VisualNode | None) -> list[VisualNode]:
        return [
            child for child in container.element_children
            if child is not dragged
            and child.visible
            and child.bounds is not None
            and self._contentNode_check(child)
        ]

    @staticmethod
    def _zoneId_build(zone_type: ZoneType, target: VisualNode, ordinal: int) -> str:
        return f"{zone_type.value}:{target.node_id or target.tag}:{ordinal}"

    def _containerZone_build(self, node: VisualNode, pointer: Point, ordinal: int) -> DropZone:
        bounds: Rect = node.bounds  # type: ignore[assignment]
        score: float = bounds.proximity_score(pointer)
        if containerLayout_detect(node) != LayoutMode.BLOCK:
            score *= self._config.flow_layout_boost
        if len(self._flowChildren_get(node, None)) >= 2:
            score += self._config.multi_child_bonus
        return DropZone(
            id=self._zoneId_build(ZoneType.CONTAINER, node, ordinal),
            type=ZoneType.CONTAINER,
            target_node=node,
            bounds=bounds,
            score=_clamp(score),
            ordinal=ordinal,
        )

    def _insertionZones_build(
        self,
        container: VisualNode,
        pointer: Point,
        dragged: VisualNode | None,
        first_ordinal: int,
    ) -> list[DropZone]:
        """One band per gap between flow children, scored by distance to the gap line."""
        children: list[VisualNode] = self._flowChildren_get(container, dragged)
        if not children:
            return []
        outer: Rect = container.bounds  # type: ignore[assignment]
        horizontal_flow: bool = containerLayout_detect(container) == LayoutMode.ROW
        band: float = self._config.insertion_band_px

        gaps: list[tuple[float, int]] = []
        for position, child in enumerate(children):
            rect: Rect = child.bounds  # type: ignore[assignment]
            if position == 0:
                line = rect.x if horizontal_flow else rect.y
            else:
                previous: Rect = children[position - 1].bounds  # type: ignore[assignment]
                if horizontal_flow:
                    line = (previous.right + rect.x) / 2.0
                else:
                    line = (previous.bottom + rect.y) / 2.0
            gaps.append((line, child.index_get()))
        last: VisualNode = children[-1]
        last_rect: Rect = last.bounds  # type: ignore[assignment]
        gaps.append((last_rect.right if horizontal_flow else last_rect.bottom, last.index_get() + 1))

        zones: list[DropZone] = []
        for offset, (line, index) in enumerate(gaps):
            if horizontal_flow:
                rect = Rect(line - band / 2.0, outer.y, band, outer.height)
                distance = abs(pointer.x - line)
            else:
                rect = Rect(outer.x, line - band / 2.0, outer.width, band)
                distance = abs(pointer.y - line)
            ordinal: int = first_ordinal + offset
            zones.append(DropZone(
                id=self._zoneId_build(ZoneType.INSERTION, container, ordinal),
                type=ZoneType.INSERTION,
                target_node=container,
                bounds=rect,
                score=_clamp(1.0 - distance / band),
                index=index,
                ordinal=ordinal,
            ))
        return zones

    def _directionalZones_build(
        self,
        node: VisualNode,
        pointer: Point,
        motion: Motion,
        first_ordinal: int,
    ) -> list[DropZone]:
        """Edge strips placing the dropped node before or after ``node``."""
        parent: VisualNode | None = node.parent
        if parent is None:
            return []
        cfg = self._config
        rect: Rect = node.bounds  # type: ignore[assignment]
        strip_v: float = _clamp(rect.height * cfg.directional_ratio, cfg.directional_min_px, cfg.directional_max_px)
        strip_h: float = _clamp(rect.width * cfg.directional_ratio, cfg.directional_min_px, cfg.directional_max_px)
        index: int = node.index_get()

        strips: list[tuple[ZoneType, Rect, int]] = [
            (ZoneType.ABOVE, Rect(rect.x, rect.y, rect.width, strip_v), index),
            (ZoneType.BELOW, Rect(rect.x, rect.bottom - strip_v, rect.width, strip_v), index + 1),
            (ZoneType.LEFT, Rect(rect.x, rect.y, strip_h, rect.height), index),
            (ZoneType.RIGHT, Rect(rect.right - strip_h, rect.y, strip_h, rect.height), index + 1),
        ]
        boosted: bool = motion.speed > cfg.momentum_threshold

        zones: list[DropZone] = []
        for offset, (zone_type, strip, target_index) in enumerate(strips):
            score: float = strip.proximity_score(pointer)
            if boosted and motion.direction == zone_type:
                score *= cfg.momentum_boost
            ordinal: int = first_ordinal + offset
            zones.append(DropZone(
                id=self._zoneId_build(zone_type, node, ordinal),
                type=zone_type,
                target_node=parent,
                bounds=strip,
                score=_clamp(score),
                index=target_index,
                reference_node=node,
                ordinal=ordinal,
            ))
        return zones


class ZoneFrameThrottle:
    """
    Limits zone recomputation to one per frame.

    A request inside the current frame replaces any queued one, so only the
    latest sample is computed. Frames queued for a session that has since
    ended are dropped.
    """

    def __init__(self, scheduler: Scheduler, frame_interval_ms: float = 16.0) -> None:
        self._scheduler: Scheduler = scheduler
        self._interval_s: float = frame_interval_ms / 1000.0
        self._last_run: float | None = None
        self._timer: TimerHandle | None = None
        self._queued: Callable[[], None] | None = None
        self._session_id: str | None = None
        self.frames_run: int = 0
        self.frames_dropped: int = 0

    def frame_request(self, session_id: str, compute: Callable[[], None]) -> bool:
        """
        Ask for a recomputation on behalf of a session.

        Returns:
            `True` when `compute` ran immediately.
        """
        if self._session_id != session_id:
            self.session_end(self._session_id)
            self._session_id = session_id

        now: float = self._scheduler.now()
        if self._timer is None and (self._last_run is None or now - self._last_run >= self._interval_s):
            self._frame_run(compute)
            return True

        if self._queued is not None:
            self.frames_dropped += 1
        self._queued = compute
        if self._timer is None:
            last_run: float = now if self._last_run is None else self._last_run
            delay: float = self._interval_s - (now - last_run)
            self._timer = self._scheduler.call_later(delay, self._frame_fire)
        return False

    def session_end(self, session_id: str | None) -> None:
        """Discard any frame queued for ``session_id``."""
        if session_id is None or session_id != self._session_id:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._queued is not None:
            self.frames_dropped += 1
            self._queued = None
        self._session_id = None

    def _frame_fire(self) -> None:
        self._timer = None
        compute, self._queued = self._queued, None
        if compute is not None:
            self._frame_run(compute)

    def _frame_run(self, compute: Callable[[], None]) -> None:
        self._last_run = self._scheduler.now()
        self.frames_run += 1
        compute()
