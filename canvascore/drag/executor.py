"""
Drop execution.

Applies a selected zone to the live tree as one batched mutation, then tells the
host what changed. Host edit commands (delete, duplicate, move, wrap) follow the
same pattern. Target validity is checked again immediately before the
mutation; a stale zone aborts the drop with nothing moved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from canvascore.common.errors import StaleZoneReference
from canvascore.common.types import DragMode, ZoneType
from canvascore.drag.zones import DropZone, DropZoneScorer, droppedTag_resolve
from canvascore.tree.node import TextNode, VisualNode, VisualTree
from canvascore.tree.serializer import IdGenerator

if TYPE_CHECKING:
    from canvascore.drag.session import DragSession

logger = logging.getLogger(__name__)

__all__ = [
    "COMPONENT_ATTR",
    "MOVE_DIRECTIONS",
    "WRAPPER_TAG",
    "DropExecutor",
    "DropResult",
]

COMPONENT_ATTR = "data-component"
PALETTE_MIN_STYLES: dict[str, str] = {"min-width": "50px", "min-height": "20px"}
MOVE_DIRECTIONS: dict[str, int] = {"up": -1, "down": 1}
WRAPPER_TAG = "div"


@dataclass(frozen=True)
class DropResult:
    """Outcome of a committed drop"""
    element_id: str
    parent_id: str
    index: int  # position among the parent's element children
    zone_type: ZoneType
    created: bool  # True when a new node was inserted


class DropExecutor:
    """Commits drops and host edit commands to the live tree"""

    def __init__(
        self,
        tree: VisualTree,
        scorer: DropZoneScorer,
        id_generator: IdGenerator,
        bridge: Any | None = None,
        void_tags: Iterable[str] = (),
    ) -> None:
        """
        Initialize executor

        Args:
            tree: Live canvas tree
            scorer: Provides the structural validation reused at commit time
            id_generator: Identifier source for new and unnamed nodes
            bridge: Host bridge notified after each change; None skips notification
            void_tags: Tags created without placeholder text
        """
        self._tree: VisualTree = tree
        self._scorer: DropZoneScorer = scorer
        self._id_generator: IdGenerator = id_generator
        self._bridge: Any | None = bridge
        self._void_tags: frozenset[str] = frozenset(tag.lower() for tag in void_tags)

    def bridge_set(self, bridge: Any | None) -> None:
        self._bridge = bridge

    def paletteNode_create(self, tag: str) -> VisualNode:
        """
        Build a detached node for a palette component

        Args:
            tag: Element tag to create

        Returns:
            Identified node with placeholder text and minimum-size styles
        """
        tag = tag.strip().lower()
        if not tag:
            raise ValueError("Palette component tag must not be empty")
        node = VisualNode(
            tag=tag,
            node_id=self._id_generator.id_next(),
            attrs={COMPONENT_ATTR: tag},
            styles=dict(PALETTE_MIN_STYLES),
        )
        if tag not in self._void_tags:
            node.child_append(TextNode(f"New {tag}"))
        return node

    def dropNode_resolve(self, session: "DragSession") -> tuple[VisualNode, bool]:
        """
        Node that will be inserted for a session

        External drags of an attached palette entry produce a new node; a
        detached node (host-synthesized drop) is inserted as is.

        Returns:
            Tuple of (node, created)
        """
        dragged: VisualNode = session.dragged_node
        if session.mode != DragMode.EXTERNAL:
            return dragged, False
        if dragged.tree is None and dragged.parent is None:
            return dragged, True
        return self.paletteNode_create(droppedTag_resolve(dragged)), True

    def drop_commit(self, session: "DragSession", zone: DropZone) -> DropResult:
        """
        Apply ``zone`` for ``session`` as one tree batch

        Args:
            session: Session in DROPPING state
            zone: Selected zone

        Returns:
            What moved where

        Raises:
            StaleZoneReference: If the target no longer accepts the node
        """
        node, created = self.dropNode_resolve(session)
        reason: str | None = self._scorer.zoneTarget_validate(zone, node)
        if reason is not None:
            raise StaleZoneReference(f"Zone {zone.id} is stale: {reason}")

        parent: VisualNode = zone.target_node
        with self._tree.batch():
            if not node.node_id:
                node.id_set(self._id_generator.id_next())
            parent.child_insert(self._insertIndex_resolve(zone, parent), node)

        result = DropResult(
            element_id=node.node_id,
            parent_id=parent.node_id,
            index=parent.element_children.index(node),
            zone_type=zone.type,
            created=created,
        )
        logger.info(
            "[DRAG] Dropped %s into %s at %d via %s zone",
            result.element_id, result.parent_id, result.index, zone.type.value,
        )
        self._host_notify("element_added" if created else "element_moved", result)
        return result

    @staticmethod
    def _insertIndex_resolve(zone: DropZone, parent: VisualNode) -> int:
        """Child-list index before any same-parent adjustment"""
        if zone.type == ZoneType.INSERTION and zone.index is not None:
            return zone.index
        if zone.type.is_directional and zone.reference_node is not None:
            position: int = parent.children.index(zone.reference_node)
            if zone.type in (ZoneType.ABOVE, ZoneType.LEFT):
                return position
            return position + 1
        return len(parent.children)

    def element_delete(self, node_id: str) -> bool:
        """
        Remove an element and notify the host

        Returns:
            False when the id is unknown or names the canvas root
        """
        node: VisualNode | None = self._tree.node_find(node_id)
        if node is None or node is self._tree.root or node.parent is None:
            logger.debug("[DRAG] Delete ignored for '%s'", node_id)
            return False
        parent: VisualNode = node.parent
        index: int = parent.element_children.index(node)
        parent.child_remove(node)
        logger.info("[DRAG] Deleted %s from %s", node_id, parent.node_id)
        self._host_notify("element_deleted", DropResult(
            element_id=node_id,
            parent_id=parent.node_id,
            index=index,
            zone_type=ZoneType.CONTAINER,
            created=False,
        ))
        return True

    def element_duplicate(self, node_id: str) -> str | None:
        """
        Insert a copy of an element right after it

        Every element in the copy gets a fresh identifier; geometry is left
        for the host's next layout pass.

        Returns:
            Id of the copy, or None when the id is unknown or names the canvas root
        """
        node: VisualNode | None = self._tree.node_find(node_id)
        if node is None or node is self._tree.root or node.parent is None:
            logger.debug("[DRAG] Duplicate ignored for '%s'", node_id)
            return None
        parent: VisualNode = node.parent
        copy: VisualNode = self._subtree_clone(node)
        with self._tree.batch():
            parent.child_insert(node.index_get() + 1, copy)

        result = DropResult(
            element_id=copy.node_id,
            parent_id=parent.node_id,
            index=parent.element_children.index(copy),
            zone_type=ZoneType.INSERTION,
            created=True,
        )
        logger.info("[DRAG] Duplicated %s as %s", node_id, copy.node_id)
        self._host_notify("element_added", result)
        return copy.node_id

    def element_move(self, node_id: str, direction: str) -> bool:
        """
        Swap an element with its previous or next element sibling

        Args:
            node_id: Element to move
            direction: "up" or "down"

        Returns:
            False when the id is unknown or the element is already at that end

        Raises:
            ValueError: For any other direction
        """
        step: int | None = MOVE_DIRECTIONS.get(direction)
        if step is None:
            raise ValueError(f"Unknown move direction '{direction}'")
        node: VisualNode | None = self._tree.node_find(node_id)
        if node is None or node.parent is None:
            logger.debug("[DRAG] Move ignored for '%s'", node_id)
            return False
        parent: VisualNode = node.parent
        siblings: list[VisualNode] = parent.element_children
        position: int = siblings.index(node) + step
        if not 0 <= position < len(siblings):
            logger.debug("[DRAG] %s already at the %s end", node_id, "top" if step < 0 else "bottom")
            return False

        neighbour: VisualNode = siblings[position]
        with self._tree.batch():
            if step < 0:
                parent.child_insert(neighbour.index_get(), node)
            else:
                parent.child_insert(neighbour.index_get() + 1, node)

        logger.info("[DRAG] Moved %s %s to %d", node_id, direction, position)
        self._host_notify("element_moved", DropResult(
            element_id=node_id,
            parent_id=parent.node_id,
            index=position,
            zone_type=ZoneType.ABOVE if step < 0 else ZoneType.BELOW,
            created=False,
        ))
        return True

    def elements_wrap(self, node_ids: Iterable[str]) -> str | None:
        """
        Wrap sibling elements in a new container

        The container takes the place of the first wrapped element and keeps
        the wrapped elements in document order.

        Returns:
            Id of the new container, or None when an id is unknown, names the
            canvas root, or the elements do not share one parent
        """
        nodes: list[VisualNode] = []
        for node_id in dict.fromkeys(node_ids):
            node: VisualNode | None = self._tree.node_find(node_id)
            if node is None or node is self._tree.root or node.parent is None:
                logger.debug("[DRAG] Wrap ignored: '%s' cannot be wrapped", node_id)
                return None
            nodes.append(node)
        if not nodes:
            return None
        parent: VisualNode = nodes[0].parent  # type: ignore[assignment]
        if any(node.parent is not parent for node in nodes):
            logger.debug("[DRAG] Wrap ignored: elements do not share a parent")
            return None
        nodes.sort(key=lambda node: node.index_get())

        wrapper = VisualNode(WRAPPER_TAG, node_id=self._id_generator.id_next())
        with self._tree.batch():
            parent.child_insert(nodes[0].index_get(), wrapper)
            for node in nodes:
                wrapper.child_append(node)

        logger.info("[DRAG] Wrapped %d element(s) in %s", len(nodes), wrapper.node_id)
        self._host_notify("element_added", DropResult(
            element_id=wrapper.node_id,
            parent_id=parent.node_id,
            index=parent.element_children.index(wrapper),
            zone_type=ZoneType.CONTAINER,
            created=True,
        ))
        for index, node in enumerate(nodes):
            self._host_notify("element_moved", DropResult(
                element_id=node.node_id,
                parent_id=wrapper.node_id,
                index=index,
                zone_type=ZoneType.CONTAINER,
                created=False,
            ))
        return wrapper.node_id

    def _subtree_clone(self, node: VisualNode) -> VisualNode:
        """Detached deep copy with fresh ids"""
        copy = VisualNode(
            tag=node.tag,
            node_id=self._id_generator.id_next(),
            classes=list(node.classes),
            attrs=node.attrs,
            styles=node.styles,
            visible=node.visible,
        )
        for child in node.children:
            if isinstance(child, VisualNode):
                copy.child_append(self._subtree_clone(child))
            else:
                copy.child_append(TextNode(child.text))
        return copy

    def _host_notify(self, call: str, result: DropResult) -> None:
        """Best-effort notification; snapshot sync stays authoritative"""
        if self._bridge is None:
            return
        try:
            getattr(self._bridge, call)(result.element_id, result.parent_id, result.index)
        except Exception as exc:
            logger.warning("[BRIDGE] %s notification failed: %s", call, exc)
