"""
Mutation records and the internal-marker filter.

Every change to an attached `VisualNode` produces one `MutationRecord`. The
owning `VisualTree` runs `MarkerFilter.recordInternal_check` on each record at
its single dispatch point, so listeners only ever see content changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable

if TYPE_CHECKING:
    from canvascore.tree.node import TextNode, VisualNode

__all__ = [
    "MarkerFilter",
    "MutationKind",
    "MutationListener",
    "MutationRecord",
]


class MutationKind(Enum):
    """Mutation notification kinds"""
    CHILD_LIST = "childList"
    ATTRIBUTES = "attributes"
    CHARACTER_DATA = "characterData"


@dataclass(frozen=True)
class MutationRecord:
    """One observed change"""
    kind: MutationKind
    target: "VisualNode | TextNode"
    added_nodes: tuple["VisualNode | TextNode", ...] = ()
    removed_nodes: tuple["VisualNode | TextNode", ...] = ()
    attribute_name: str | None = None
    old_value: str | None = None


MutationListener = Callable[[list[MutationRecord]], None]


class MarkerFilter:
    """Classifies mutation records caused by transient editor feedback."""

    def __init__(self, node_markers: Iterable[str], state_markers: Iterable[str]) -> None:
        """
        Initialize filter.

        Args:
            node_markers:
                Classes that identify pure feedback nodes (ghosts, indicators).
            state_markers:
                Classes toggled on real content to show transient state.
        """
        self.node_markers: frozenset[str] = frozenset(node_markers)
        self.state_markers: frozenset[str] = frozenset(state_markers)
        self._all_markers: frozenset[str] = self.node_markers | self.state_markers

    def nodeMarked_check(self, node: "VisualNode | TextNode") -> bool:
        """
        Check whether a node is, or sits inside, a feedback node.

        Args:
            node:
                Node under evaluation.

        Returns:
            `True` when the node or one of its ancestors carries a node marker.
        """
        current = node if hasattr(node, "classes") else node.parent
        while current is not None:
            if self.node_markers.intersection(current.classes):
                return True
            current = current.parent
        return False

    def recordInternal_check(self, record: MutationRecord) -> bool:
        """
        Decide whether a record must be hidden from listeners.

        Args:
            record:
                Mutation record under evaluation.

        Returns:
            `True` for feedback-only changes that must never trigger a sync.
        """
        if self.nodeMarked_check(record.target):
            return True
        for node in record.added_nodes + record.removed_nodes:
            if hasattr(node, "classes") and self.node_markers.intersection(node.classes):
                return True

        if record.kind == MutationKind.ATTRIBUTES and record.attribute_name == "class":
            previous: set[str] = set((record.old_value or "").split())
            current: set[str] = set(getattr(record.target, "classes", ()))
            changed: set[str] = previous ^ current
            return changed.issubset(self._all_markers)

        return False
