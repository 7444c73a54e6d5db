"""
Live visual tree model.

`VisualNode` and `TextNode` form the directly editable tree rendered on the
canvas. Nodes are only changed through their methods so that each change can be
observed: attached nodes report a `MutationRecord` to the owning `VisualTree`,
which filters and dispatches them from one place.

Geometry (`bounds`, `visible`) is written by the host's layout pass and is not
observed; it never reaches snapshots.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Callable, Iterator

from canvascore.common.types import Rect
from canvascore.tree.mutations import (
    MarkerFilter,
    MutationKind,
    MutationListener,
    MutationRecord,
)

logger = logging.getLogger(__name__)

__all__ = [
    "TextNode",
    "VisualNode",
    "VisualTree",
]


class TextNode:
    """Text child of a visual node"""

    def __init__(self, text: str) -> None:
        self._text: str = text
        self.parent: VisualNode | None = None

    @property
    def text(self) -> str:
        return self._text

    def text_set(self, text: str) -> None:
        """Replace text content"""
        if text == self._text:
            return
        old_value: str = self._text
        self._text = text
        _record_emit(self, MutationRecord(
            kind=MutationKind.CHARACTER_DATA,
            target=self,
            old_value=old_value,
        ))

    def __repr__(self) -> str:
        return f"TextNode({self._text!r})"


class VisualNode:
    """Element of the live visual tree"""

    def __init__(
        self,
        tag: str,
        node_id: str = "",
        classes: list[str] | None = None,
        attrs: dict[str, str] | None = None,
        styles: dict[str, str] | None = None,
        bounds: Rect | None = None,
        visible: bool = True,
    ) -> None:
        """
        Initialize a detached element

        Args:
            tag: Element tag (stored lowercase)
            node_id: Stable identifier, empty when not yet assigned
            classes: Ordered class names (duplicates dropped)
            attrs: Attribute map, excluding id/class/style
            styles: Inline style map
            bounds: Current layout bounds in canvas pixels
            visible: Whether the element is rendered
        """
        self.tag: str = tag.lower()
        self._node_id: str = node_id
        self._classes: list[str] = list(dict.fromkeys(classes or []))
        self._attrs: dict[str, str] = dict(attrs or {})
        self._styles: dict[str, str] = dict(styles or {})
        self.children: list[VisualNode | TextNode] = []
        self.parent: VisualNode | None = None
        self.bounds: Rect | None = bounds
        self.visible: bool = visible
        self._tree: VisualTree | None = None

    def __repr__(self) -> str:
        return f"VisualNode(<{self.tag}> id={self._node_id!r})"

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def classes(self) -> tuple[str, ...]:
        return tuple(self._classes)

    @property
    def attrs(self) -> dict[str, str]:
        """Copy of the attribute map"""
        return dict(self._attrs)

    @property
    def styles(self) -> dict[str, str]:
        """Copy of the inline style map"""
        return dict(self._styles)

    @property
    def element_children(self) -> list["VisualNode"]:
        return [child for child in self.children if isinstance(child, VisualNode)]

    @property
    def text_content(self) -> str:
        """Concatenated trimmed text of direct text children"""
        return "".join(
            child.text.strip() for child in self.children if isinstance(child, TextNode)
        )

    @property
    def tree(self) -> "VisualTree | None":
        """Owning tree, or None when detached"""
        node: VisualNode = self
        while node.parent is not None:
            node = node.parent
        return node._tree

    def attribute_get(self, name: str) -> str | None:
        return self._attrs.get(name)

    def style_get(self, name: str) -> str | None:
        return self._styles.get(name)

    def class_has(self, name: str) -> bool:
        return name in self._classes

    def descendantOf_check(self, ancestor: "VisualNode") -> bool:
        """True when ``ancestor`` is a strict ancestor of this node"""
        current = self.parent
        while current is not None:
            if current is ancestor:
                return True
            current = current.parent
        return False

    def descendants_iter(self) -> Iterator["VisualNode"]:
        """Depth-first pre-order walk over element descendants"""
        for child in self.element_children:
            yield child
            yield from child.descendants_iter()

    def index_get(self) -> int:
        """Position in parent's child list, -1 when detached"""
        if self.parent is None:
            return -1
        return self.parent.children.index(self)

    # ------------------------------------------------------------------
    # Observed mutations
    # ------------------------------------------------------------------

    def id_set(self, node_id: str) -> None:
        if node_id == self._node_id:
            return
        old_value: str = self._node_id
        self._node_id = node_id
        self._attributeRecord_emit("id", old_value)

    def attribute_set(self, name: str, value: str) -> None:
        if name in ("id", "class", "style"):
            raise ValueError(f"Use the dedicated setter for '{name}'")
        old_value: str | None = self._attrs.get(name)
        if old_value == value:
            return
        self._attrs[name] = str(value)
        self._attributeRecord_emit(name, old_value)

    def attribute_remove(self, name: str) -> None:
        if name not in self._attrs:
            return
        old_value: str = self._attrs.pop(name)
        self._attributeRecord_emit(name, old_value)

    def style_set(self, name: str, value: str) -> None:
        old_styles: str = self._styleText_get()
        if self._styles.get(name) == value:
            return
        self._styles[name] = str(value)
        self._attributeRecord_emit("style", old_styles)

    def style_remove(self, name: str) -> None:
        if name not in self._styles:
            return
        old_styles: str = self._styleText_get()
        del self._styles[name]
        self._attributeRecord_emit("style", old_styles)

    def class_add(self, name: str) -> None:
        if name in self._classes:
            return
        old_value: str = " ".join(self._classes)
        self._classes.append(name)
        self._attributeRecord_emit("class", old_value)

    def class_remove(self, name: str) -> None:
        if name not in self._classes:
            return
        old_value: str = " ".join(self._classes)
        self._classes.remove(name)
        self._attributeRecord_emit("class", old_value)

    def child_append(self, child: "VisualNode | TextNode") -> None:
        self.child_insert(len(self.children), child)

    def child_insert(self, index: int, child: "VisualNode | TextNode") -> None:
        """
        Insert ``child`` at ``index``, detaching it from any previous parent

        Raises:
            ValueError: If the insertion would create a cycle
        """
        if child is self or (isinstance(child, VisualNode) and self.descendantOf_check(child)):
            raise ValueError("Cannot insert a node into itself or its own descendant")

        tree = self.tree
        with (tree.batch() if tree is not None else contextlib.nullcontext()):
            if child.parent is not None:
                if child.parent is self and self.children.index(child) < index:
                    index -= 1
                child.parent.child_remove(child)
            index = max(0, min(index, len(self.children)))
            self.children.insert(index, child)
            child.parent = self
            _record_emit(self, MutationRecord(
                kind=MutationKind.CHILD_LIST,
                target=self,
                added_nodes=(child,),
            ))

    def child_remove(self, child: "VisualNode | TextNode") -> None:
        if child.parent is not self:
            raise ValueError("Node is not a child of this element")
        self.children.remove(child)
        child.parent = None
        _record_emit(self, MutationRecord(
            kind=MutationKind.CHILD_LIST,
            target=self,
            removed_nodes=(child,),
        ))

    def children_clear(self) -> None:
        """Detach every child in one record"""
        if not self.children:
            return
        removed: tuple[VisualNode | TextNode, ...] = tuple(self.children)
        for child in removed:
            child.parent = None
        self.children = []
        _record_emit(self, MutationRecord(
            kind=MutationKind.CHILD_LIST,
            target=self,
            removed_nodes=removed,
        ))

    def _styleText_get(self) -> str:
        return "; ".join(f"{key}: {value}" for key, value in self._styles.items())

    def _attributeRecord_emit(self, name: str, old_value: str | None) -> None:
        _record_emit(self, MutationRecord(
            kind=MutationKind.ATTRIBUTES,
            target=self,
            attribute_name=name,
            old_value=old_value,
        ))


def _record_emit(node: "VisualNode | TextNode", record: MutationRecord) -> None:
    """Forward a record to the owning tree, if any"""
    owner = node if isinstance(node, VisualNode) else node.parent
    if owner is None:
        return
    tree = owner.tree
    if tree is not None:
        tree.record_emit(record)


class VisualTree:
    """
    Owner of the canvas root and the single mutation dispatch point.

    Records are filtered before any listener runs. Outside a batch each record
    is dispatched on its own; inside `batch()` records accumulate and are
    dispatched once when the outermost batch exits.
    """

    def __init__(self, root: VisualNode, marker_filter: MarkerFilter | None = None) -> None:
        if root.parent is not None:
            raise ValueError("Tree root must be detached")
        self._root: VisualNode = root
        root._tree = self
        self._marker_filter: MarkerFilter | None = marker_filter
        self._listeners: list[MutationListener] = []
        self._batch_depth: int = 0
        self._batch_records: list[MutationRecord] = []
        self._pause_depth: int = 0

    @property
    def root(self) -> VisualNode:
        return self._root

    @property
    def marker_filter(self) -> MarkerFilter | None:
        return self._marker_filter

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        """
        Register a listener for filtered mutation batches

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextlib.contextmanager
    def batch(self) -> Iterator[None]:
        """Group mutations into one dispatched batch"""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                records: list[MutationRecord] = self._batch_records
                self._batch_records = []
                self._dispatch(records)

    @contextlib.contextmanager
    def observation_paused(self) -> Iterator[None]:
        """Drop every record produced inside the scope"""
        self._pause_depth += 1
        try:
            yield
        finally:
            self._pause_depth -= 1

    def record_emit(self, record: MutationRecord) -> None:
        if self._pause_depth > 0:
            return
        if self._batch_depth > 0:
            self._batch_records.append(record)
            return
        self._dispatch([record])

    def _dispatch(self, records: list[MutationRecord]) -> None:
        if self._marker_filter is not None:
            kept: list[MutationRecord] = [
                record for record in records
                if not self._marker_filter.recordInternal_check(record)
            ]
            if len(kept) < len(records):
                logger.debug("Filtered %d internal mutation(s)", len(records) - len(kept))
            records = kept
        if not records:
            return
        for listener in list(self._listeners):
            listener(records)

    def contains(self, node: VisualNode | TextNode) -> bool:
        """True when the node is attached under this tree's root"""
        if node is self._root:
            return True
        current = node.parent
        while current is not None:
            if current is self._root:
                return True
            current = current.parent
        return False

    def node_find(self, node_id: str) -> VisualNode | None:
        """Find an element by identifier"""
        if not node_id:
            return None
        if self._root.node_id == node_id:
            return self._root
        for node in self._root.descendants_iter():
            if node.node_id == node_id:
                return node
        return None
