"""
Rollback of the live tree to a known-good snapshot.

Used after a terminal sync failure (restore the last acknowledged snapshot) and
at startup (restore the unsynced snapshot left in the durable store).
"""

from __future__ import annotations

import contextlib
import logging
from typing import Callable, ContextManager, Protocol

from canvascore.tree.node import VisualNode, VisualTree
from canvascore.tree.serializer import ElementSnapshot, tree_rebuild

logger = logging.getLogger(__name__)

__all__ = [
    "RollbackHandler",
    "RollbackManager",
]


class RollbackHandler(Protocol):
    """Anything able to replace the live tree content with a snapshot"""

    def rollback_apply(self, snapshot: ElementSnapshot | None) -> None:
        ...


class RollbackManager:
    """Rebuilds the canvas root from snapshot values with observation paused"""

    def __init__(
        self,
        tree: VisualTree,
        pause_scope: Callable[[], ContextManager[None]] | None = None,
    ) -> None:
        """
        Initialize rollback manager

        Args:
            tree: Live tree whose root is rebuilt
            pause_scope: Extra scope entered around the rebuild, normally
                `ChangeDetector.pause`
        """
        self._tree: VisualTree = tree
        self._pause_scope: Callable[[], ContextManager[None]] | None = pause_scope
        self._before_callbacks: list[Callable[[], None]] = []
        self.rollback_count: int = 0

    def beforeRollback_add(self, callback: Callable[[], None]) -> None:
        """Register a callback run before any node is replaced"""
        self._before_callbacks.append(callback)

    def rollback_apply(self, snapshot: ElementSnapshot | None) -> None:
        """
        Replace the root's content with fresh nodes built from ``snapshot``

        Args:
            snapshot: Root snapshot; None empties the root
        """
        for callback in self._before_callbacks:
            callback()

        root: VisualNode = self._tree.root
        with contextlib.ExitStack() as stack:
            stack.enter_context(self._tree.observation_paused())
            if self._pause_scope is not None:
                stack.enter_context(self._pause_scope())

            root.children_clear()
            if snapshot is None:
                logger.warning("[ROLLBACK] No known-good snapshot; canvas root emptied")
            else:
                self._rootState_restore(root, snapshot)
                for child in snapshot.children:
                    root.child_append(tree_rebuild(child))

        self.rollback_count += 1
        if snapshot is not None:
            logger.warning(
                "[ROLLBACK] Canvas restored: %d top-level node(s) rebuilt",
                len(snapshot.children),
            )

    @staticmethod
    def _rootState_restore(root: VisualNode, snapshot: ElementSnapshot) -> None:
        """Make root id, classes, attributes and styles match the snapshot"""
        if snapshot.id:
            root.id_set(snapshot.id)

        for name in root.classes:
            if name not in snapshot.classes:
                root.class_remove(name)
        for name in snapshot.classes:
            root.class_add(name)

        attrs: dict[str, str] = snapshot.attrs_map
        for name in root.attrs:
            if name not in attrs:
                root.attribute_remove(name)
        for name, value in attrs.items():
            root.attribute_set(name, value)

        styles: dict[str, str] = snapshot.styles_map
        for name in root.styles:
            if name not in styles:
                root.style_remove(name)
        for name, value in styles.items():
            root.style_set(name, value)
