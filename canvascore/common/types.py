"""Common types and data structures for canvascore"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, Flag, auto


class SyncState(Enum):
    """Process-wide synchronization state"""
    SYNCED = "synced"
    SYNCING = "syncing"
    FAILED = "failed"


class DragState(Enum):
    """Gesture lifecycle states"""
    IDLE = "idle"
    READY = "ready"          # Pointer down, displacement below threshold
    DRAGGING = "dragging"    # Threshold exceeded
    DROPPING = "dropping"    # Pointer released, target resolving


class DragSource(Enum):
    """Where a gesture originated"""
    EXTERNAL_PALETTE = "external-palette"
    CANVAS_ELEMENT = "canvas-element"
    UNKNOWN = "unknown"


class DragMode(Enum):
    """Resolved drag behaviour"""
    EXTERNAL = "external"
    INTERNAL = "internal"
    POSITIONING = "positioning"
    DISABLED = "disabled"


class LayoutMode(Enum):
    """Flow layout of a container"""
    BLOCK = "block"
    ROW = "row"
    COLUMN = "column"


class ZoneType(Enum):
    """Drop zone kinds"""
    INSERTION = "insertion"
    ABOVE = "above"
    BELOW = "below"
    LEFT = "left"
    RIGHT = "right"
    CONTAINER = "container"
    BOUNDARY = "boundary"

    @property
    def is_directional(self) -> bool:
        """True for above/below/left/right zones"""
        return self in (ZoneType.ABOVE, ZoneType.BELOW, ZoneType.LEFT, ZoneType.RIGHT)

    @property
    def priority(self) -> int:
        """Overlap priority: insertion > directional > container > boundary"""
        if self == ZoneType.INSERTION:
            return 3
        if self.is_directional:
            return 2
        if self == ZoneType.CONTAINER:
            return 1
        return 0


class Modifiers(Flag):
    """Keyboard modifiers held during a pointer event"""
    NONE = 0
    SHIFT = auto()
    CTRL = auto()
    ALT = auto()
    META = auto()

    @staticmethod
    def name_parse(name: str) -> "Modifiers":
        """
        Parse a modifier name such as ``shift`` or ``ctrl``

        Args:
            name: Case-insensitive modifier name

        Returns:
            Matching flag

        Raises:
            ValueError: If the name is unknown
        """
        try:
            return Modifiers[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown modifier key '{name}'") from None


@dataclass(frozen=True)
class Point:
    """2D pointer coordinates in canvas pixels"""
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        """Euclidean distance to another point"""
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned bounds in canvas pixels"""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def half_diagonal(self) -> float:
        return math.hypot(self.width, self.height) / 2.0

    def contains(self, point: Point) -> bool:
        """Check if point lies inside bounds (edges inclusive)"""
        return self.x <= point.x <= self.right and self.y <= point.y <= self.bottom

    def proximity_score(self, point: Point) -> float:
        """
        Normalized closeness of ``point`` to the center of these bounds.

        Returns:
            ``max(0, 1 - distance(point, center) / half_diagonal)``; 0.0 for
            degenerate bounds.
        """
        reach = self.half_diagonal
        if reach <= 0:
            return 0.0
        return max(0.0, 1.0 - point.distance_to(self.center) / reach)


@dataclass(frozen=True)
class PointerEvent:
    """Pointer sample delivered by the host"""
    point: Point
    timestamp: float
    modifiers: Modifiers = Modifiers.NONE
    button: int = 0  # 0=primary
