"""
Drag mode classification.

`dragMode_classify` is the pure rule table; `DragModeClassifier` gathers its
inputs (source, modifiers, parent layout) from live nodes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from canvascore.common.types import DragMode, DragSource, LayoutMode, Modifiers
from canvascore.tree.node import VisualNode, VisualTree

logger = logging.getLogger(__name__)

__all__ = [
    "COMPONENT_TYPE_ATTR",
    "FLEX_CONTAINER_CLASS",
    "DragClassification",
    "DragModeClassifier",
    "containerLayout_detect",
    "dragMode_classify",
    "parentLayout_detect",
]

COMPONENT_TYPE_ATTR = "data-component-type"
FLEX_CONTAINER_CLASS = "flex-container"


@dataclass(frozen=True)
class DragClassification:
    """Result of classifying a gesture at pointer-down"""
    source: DragSource
    mode: DragMode
    parent_layout: LayoutMode
    confidence: float  # advisory only


def containerLayout_detect(container: VisualNode) -> LayoutMode:
    """
    Flow layout a container applies to its children

    Reads inline ``display``/``flex-direction`` and the ``flex-container`` class.

    Returns:
        ROW or COLUMN for flex containers, BLOCK otherwise
    """
    display: str = (container.style_get("display") or "").strip().lower()
    is_flex: bool = display in ("flex", "inline-flex") or container.class_has(FLEX_CONTAINER_CLASS)
    if not is_flex:
        return LayoutMode.BLOCK
    direction: str = (container.style_get("flex-direction") or "row").strip().lower()
    if direction.startswith("column"):
        return LayoutMode.COLUMN
    return LayoutMode.ROW


def parentLayout_detect(node: VisualNode | None) -> LayoutMode:
    """Flow layout of a node's parent container"""
    if node is None or node.parent is None:
        return LayoutMode.BLOCK
    return containerLayout_detect(node.parent)


def dragMode_classify(
    source: DragSource,
    modifiers: Modifiers,
    parent_layout: LayoutMode,
    positioning_modifier: Modifiers = Modifiers.SHIFT,
) -> DragMode:
    """
    Map gesture inputs to a drag mode

    Args:
        source: Where the gesture started
        modifiers: Modifiers held at pointer-down
        parent_layout: Flow layout of the source's parent
        positioning_modifier: Modifier that forces positioning

    Returns:
        Drag mode; identical inputs always give the same mode
    """
    if source == DragSource.EXTERNAL_PALETTE:
        return DragMode.EXTERNAL
    if source == DragSource.CANVAS_ELEMENT:
        if positioning_modifier & modifiers:
            return DragMode.POSITIONING
        if parent_layout in (LayoutMode.ROW, LayoutMode.COLUMN):
            return DragMode.POSITIONING
        return DragMode.INTERNAL
    return DragMode.DISABLED


class DragModeClassifier:
    """Classifies gestures against a canvas tree"""

    def __init__(
        self,
        tree: VisualTree,
        palette_markers: Iterable[str],
        positioning_modifier: Modifiers = Modifiers.SHIFT,
    ) -> None:
        self._tree: VisualTree = tree
        self._palette_markers: frozenset[str] = frozenset(palette_markers)
        self._positioning_modifier: Modifiers = positioning_modifier

    def paletteNode_check(self, node: VisualNode) -> bool:
        """True when the node or an ancestor belongs to the component palette"""
        if node.attribute_get(COMPONENT_TYPE_ATTR) is not None:
            return True
        current: VisualNode | None = node
        while current is not None:
            if self._palette_markers.intersection(current.classes):
                return True
            current = current.parent
        return False

    def dragSource_identify(self, node: VisualNode | None) -> DragSource:
        """
        Identify where a gesture started

        Args:
            node: Node under the pointer at pointer-down

        Returns:
            Palette, canvas element (non-root node of the canvas tree) or unknown
        """
        if node is None:
            return DragSource.UNKNOWN
        if self.paletteNode_check(node):
            return DragSource.EXTERNAL_PALETTE
        if node is not self._tree.root and self._tree.contains(node):
            return DragSource.CANVAS_ELEMENT
        return DragSource.UNKNOWN

    def gesture_classify(self, node: VisualNode | None, modifiers: Modifiers) -> DragClassification:
        """Classify a pointer-down on ``node``"""
        source: DragSource = self.dragSource_identify(node)
        layout: LayoutMode = (
            parentLayout_detect(node) if source == DragSource.CANVAS_ELEMENT else LayoutMode.BLOCK
        )
        mode: DragMode = dragMode_classify(source, modifiers, layout, self._positioning_modifier)
        confidence: float = self._confidence_estimate(node, source, mode, modifiers)
        logger.debug(
            "[DRAG] Classified source=%s mode=%s layout=%s confidence=%.2f",
            source.value, mode.value, layout.value, confidence,
        )
        return DragClassification(source=source, mode=mode, parent_layout=layout, confidence=confidence)

    def _confidence_estimate(
        self,
        node: VisualNode | None,
        source: DragSource,
        mode: DragMode,
        modifiers: Modifiers,
    ) -> float:
        if mode == DragMode.DISABLED or node is None:
            return 0.0
        if mode == DragMode.EXTERNAL:
            return 1.0 if self._palette_markers.intersection(node.classes) else 0.9
        if mode == DragMode.POSITIONING:
            return 1.0 if self._positioning_modifier & modifiers else 0.9
        return 0.8
