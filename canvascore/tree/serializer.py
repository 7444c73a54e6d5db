"""
Tree serializer and snapshot value types.

A snapshot is a pure value copy of the live tree taken at one instant. It is
built from immutable dataclasses so two captures of the same tree compare equal
with `==`, and it never references live nodes.

Wire shape::

    {"tag": str, "id": str, "classes": [str], "attrs": {str: str},
     "styles": {str: str}, "children": [<element> | {"text": str}]}
"""

from __future__ import annotations

import itertools
import json
import random
import string
from dataclasses import dataclass
from typing import Any, Iterable, Union

from canvascore.tree.node import TextNode, VisualNode

__all__ = [
    "ElementSnapshot",
    "IdGenerator",
    "Snapshot",
    "SnapshotChild",
    "TextSnapshot",
    "TreeSerializer",
    "snapshotPayload_build",
    "snapshot_fromJson",
    "snapshot_fromPayload",
    "snapshot_toJson",
    "tree_rebuild",
]

_SUFFIX_ALPHABET: str = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH: int = 9


@dataclass(frozen=True)
class TextSnapshot:
    """Captured text child"""
    text: str


@dataclass(frozen=True)
class ElementSnapshot:
    """Captured element; maps are stored as sorted key/value tuples"""
    tag: str
    id: str
    classes: tuple[str, ...] = ()
    attrs: tuple[tuple[str, str], ...] = ()
    styles: tuple[tuple[str, str], ...] = ()
    children: tuple["SnapshotChild", ...] = ()

    @property
    def attrs_map(self) -> dict[str, str]:
        return dict(self.attrs)

    @property
    def styles_map(self) -> dict[str, str]:
        return dict(self.styles)


SnapshotChild = Union[ElementSnapshot, TextSnapshot]
Snapshot = ElementSnapshot


class IdGenerator:
    """Produces ``bv_<counter>_<suffix>`` identifiers for unnamed elements"""

    def __init__(self, prefix: str = "bv", rng: random.Random | None = None) -> None:
        self._prefix: str = prefix
        self._counter = itertools.count(1)
        self._rng: random.Random = rng or random.Random()

    def id_next(self) -> str:
        suffix: str = "".join(self._rng.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
        return f"{self._prefix}_{next(self._counter)}_{suffix}"


class TreeSerializer:
    """Converts a live subtree into an `ElementSnapshot`"""

    def __init__(
        self,
        id_generator: IdGenerator,
        node_markers: Iterable[str] = (),
        state_markers: Iterable[str] = (),
        non_content_tags: Iterable[str] = ("style", "script", "template"),
    ) -> None:
        """
        Initialize serializer

        Args:
            id_generator: Source of identifiers for unnamed elements
            node_markers: Classes marking feedback nodes to skip
            state_markers: Classes stripped from captured class lists
            non_content_tags: Tags skipped entirely
        """
        self._id_generator: IdGenerator = id_generator
        self._node_markers: frozenset[str] = frozenset(node_markers)
        self._state_markers: frozenset[str] = frozenset(state_markers)
        self._non_content_tags: frozenset[str] = frozenset(tag.lower() for tag in non_content_tags)

    def contentNode_check(self, node: VisualNode) -> bool:
        """True when the element belongs in snapshots"""
        if node.tag in self._non_content_tags:
            return False
        return not self._node_markers.intersection(node.classes)

    def snapshot_capture(self, root: VisualNode) -> ElementSnapshot:
        """
        Capture ``root`` and its content descendants

        Elements without an identifier get one, written back to the live node.
        The write-back is a mutation; callers that observe the tree should
        capture with observation paused.

        Args:
            root: Subtree root

        Returns:
            Immutable snapshot
        """
        return self._element_capture(root)

    def _element_capture(self, node: VisualNode) -> ElementSnapshot:
        if not node.node_id:
            node.id_set(self._id_generator.id_next())

        children: list[SnapshotChild] = []
        for child in node.children:
            if isinstance(child, TextNode):
                text: str = child.text.strip()
                if text:
                    children.append(TextSnapshot(text=text))
                continue
            if not self.contentNode_check(child):
                continue
            children.append(self._element_capture(child))

        return ElementSnapshot(
            tag=node.tag,
            id=node.node_id,
            classes=tuple(name for name in node.classes if name not in self._state_markers),
            attrs=tuple(sorted(node.attrs.items())),
            styles=tuple(sorted(node.styles.items())),
            children=tuple(children),
        )


def snapshotPayload_build(snapshot: SnapshotChild) -> dict[str, Any]:
    """
    Convert a snapshot value into its wire dictionary

    Args:
        snapshot: Element or text snapshot

    Returns:
        JSON-compatible dictionary
    """
    if isinstance(snapshot, TextSnapshot):
        return {"text": snapshot.text}
    return {
        "tag": snapshot.tag,
        "id": snapshot.id,
        "classes": list(snapshot.classes),
        "attrs": dict(snapshot.attrs),
        "styles": dict(snapshot.styles),
        "children": [snapshotPayload_build(child) for child in snapshot.children],
    }


def snapshot_fromPayload(payload: dict[str, Any]) -> SnapshotChild:
    """
    Parse a wire dictionary into a snapshot value

    Args:
        payload: Element or ``{"text": ...}`` dictionary

    Returns:
        Snapshot value

    Raises:
        ValueError: If the payload does not match the wire shape
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Snapshot node must be an object, got {type(payload).__name__}")
    if "text" in payload and "tag" not in payload:
        if not isinstance(payload["text"], str):
            raise ValueError("Text snapshot 'text' must be a string")
        return TextSnapshot(text=payload["text"])

    tag = payload.get("tag")
    if not isinstance(tag, str) or not tag:
        raise ValueError("Element snapshot requires a non-empty 'tag'")
    classes = payload.get("classes", [])
    attrs = payload.get("attrs", {})
    styles = payload.get("styles", {})
    children = payload.get("children", [])
    if not isinstance(classes, list) or not isinstance(attrs, dict) or not isinstance(styles, dict):
        raise ValueError(f"Malformed element snapshot for <{tag}>")
    if not isinstance(children, list):
        raise ValueError(f"Element snapshot <{tag}> 'children' must be a list")

    return ElementSnapshot(
        tag=tag.lower(),
        id=str(payload.get("id", "")),
        classes=tuple(str(name) for name in classes),
        attrs=tuple(sorted((str(k), str(v)) for k, v in attrs.items())),
        styles=tuple(sorted((str(k), str(v)) for k, v in styles.items())),
        children=tuple(snapshot_fromPayload(child) for child in children),
    )


def snapshot_toJson(snapshot: ElementSnapshot) -> str:
    """Serialize snapshot to compact JSON text"""
    return json.dumps(snapshotPayload_build(snapshot), separators=(",", ":"))


def snapshot_fromJson(data: str) -> ElementSnapshot:
    """
    Deserialize snapshot from JSON text

    Raises:
        ValueError: On invalid JSON or a non-element root
    """
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Snapshot is not valid JSON: {exc}") from exc
    snapshot = snapshot_fromPayload(parsed)
    if not isinstance(snapshot, ElementSnapshot):
        raise ValueError("Snapshot root must be an element")
    return snapshot


def tree_rebuild(snapshot: SnapshotChild) -> "VisualNode | TextNode":
    """
    Build fresh detached live nodes from a snapshot value

    Args:
        snapshot: Element or text snapshot

    Returns:
        New node; no existing node object is reused
    """
    if isinstance(snapshot, TextSnapshot):
        return TextNode(snapshot.text)
    node = VisualNode(
        tag=snapshot.tag,
        node_id=snapshot.id,
        classes=list(snapshot.classes),
        attrs=dict(snapshot.attrs),
        styles=dict(snapshot.styles),
    )
    for child in snapshot.children:
        node.child_append(tree_rebuild(child))
    return node
