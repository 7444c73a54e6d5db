"""Live visual tree, mutation records and snapshot serialization."""

from canvascore.tree.mutations import MarkerFilter, MutationKind, MutationRecord
from canvascore.tree.node import TextNode, VisualNode, VisualTree
from canvascore.tree.serializer import ElementSnapshot, IdGenerator, TextSnapshot, TreeSerializer

__all__ = [
    "ElementSnapshot",
    "IdGenerator",
    "MarkerFilter",
    "MutationKind",
    "MutationRecord",
    "TextNode",
    "TextSnapshot",
    "TreeSerializer",
    "VisualNode",
    "VisualTree",
]
