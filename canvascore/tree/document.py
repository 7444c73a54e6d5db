"""
Tree document loading.

A tree document is a JSON file in the snapshot wire shape, extended with the
geometry a host layout pass would normally supply::

    {"tag": "div", "id": "canvas-root", "bounds": [0, 0, 800, 600],
     "visible": true, "children": [...]}

Documents drive the developer CLI and integration tests, where no host is
available to lay out the canvas.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from canvascore.common.types import Rect
from canvascore.tree.mutations import MarkerFilter
from canvascore.tree.node import TextNode, VisualNode, VisualTree

__all__ = [
    "document_load",
    "documentNode_build",
    "documentTree_build",
]


def documentNode_build(data: dict[str, Any]) -> VisualNode | TextNode:
    """
    Build a detached node from one document entry

    Args:
        data: Element or ``{"text": ...}`` dictionary

    Returns:
        Detached node with geometry applied

    Raises:
        ValueError: If the entry is malformed
    """
    if not isinstance(data, dict):
        raise ValueError(f"Document node must be an object, got {type(data).__name__}")
    if "text" in data and "tag" not in data:
        return TextNode(str(data["text"]))

    tag = data.get("tag")
    if not isinstance(tag, str) or not tag:
        raise ValueError("Document element requires a non-empty 'tag'")

    bounds: Rect | None = None
    raw_bounds = data.get("bounds")
    if raw_bounds is not None:
        if not isinstance(raw_bounds, list) or len(raw_bounds) != 4:
            raise ValueError(f"Element <{tag}> 'bounds' must be [x, y, width, height]")
        bounds = Rect(*(float(value) for value in raw_bounds))

    node = VisualNode(
        tag=tag,
        node_id=str(data.get("id", "")),
        classes=[str(name) for name in data.get("classes", [])],
        attrs={str(k): str(v) for k, v in data.get("attrs", {}).items()},
        styles={str(k): str(v) for k, v in data.get("styles", {}).items()},
        bounds=bounds,
        visible=bool(data.get("visible", True)),
    )
    children = data.get("children", [])
    if not isinstance(children, list):
        raise ValueError(f"Element <{tag}> 'children' must be a list")
    for child in children:
        node.child_append(documentNode_build(child))
    return node


def documentTree_build(data: dict[str, Any], marker_filter: MarkerFilter | None = None) -> VisualTree:
    """Build a `VisualTree` from a parsed document"""
    root = documentNode_build(data)
    if not isinstance(root, VisualNode):
        raise ValueError("Document root must be an element")
    return VisualTree(root, marker_filter=marker_filter)


def document_load(path: Path, marker_filter: MarkerFilter | None = None) -> VisualTree:
    """
    Load a tree document from disk

    Args:
        path: JSON document path
        marker_filter: Filter installed on the resulting tree

    Returns:
        Live tree

    Raises:
        FileNotFoundError: If the document does not exist
        ValueError: If the document is not valid JSON or malformed
    """
    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Document {path} is not valid JSON: {exc}") from exc
    return documentTree_build(data, marker_filter=marker_filter)
