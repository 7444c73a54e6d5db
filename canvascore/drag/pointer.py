"""Pointer sample tracking and motion estimation"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Optional

from canvascore.common.types import Point, PointerEvent, ZoneType


@dataclass(frozen=True)
class Motion:
    """Recent pointer motion: speed in px/s and the dominant side it heads to"""
    speed: float = 0.0
    direction: Optional[ZoneType] = None


class PointerTracker:
    """Keeps recent pointer samples for velocity and direction estimates"""

    def __init__(self, history_size: int = 5) -> None:
        """
        Initialize pointer tracker

        Args:
            history_size: Number of samples kept for velocity calculation
        """
        self._last_point: Optional[Point] = None
        # Track recent positions for velocity calculation (point, timestamp)
        self._position_history: deque[tuple[Point, float]] = deque(maxlen=history_size)

    def sample_record(self, event: PointerEvent) -> None:
        """Store one pointer sample"""
        self._last_point = event.point
        self._position_history.append((event.point, event.timestamp))

    def reset(self) -> None:
        self._last_point = None
        self._position_history.clear()

    def velocity_calculate(self) -> float:
        """
        Calculate current pointer velocity based on recent position history

        Returns:
            Velocity in pixels per second (Manhattan distance)
        """
        if len(self._position_history) < 2:
            return 0.0

        oldest_pos, oldest_time = self._position_history[0]
        newest_pos, newest_time = self._position_history[-1]

        time_delta = newest_time - oldest_time
        if time_delta <= 0:
            return 0.0

        distance = abs(newest_pos.x - oldest_pos.x) + abs(newest_pos.y - oldest_pos.y)
        return distance / time_delta

    def direction_dominant(self) -> Optional[ZoneType]:
        """
        Dominant axis of recent motion mapped to the side it approaches

        Returns:
            RIGHT/LEFT/BELOW/ABOVE, or None without movement
        """
        if len(self._position_history) < 2:
            return None

        oldest_pos, _ = self._position_history[0]
        newest_pos, _ = self._position_history[-1]
        dx = newest_pos.x - oldest_pos.x
        dy = newest_pos.y - oldest_pos.y
        if dx == 0 and dy == 0:
            return None
        if abs(dx) >= abs(dy):
            return ZoneType.RIGHT if dx > 0 else ZoneType.LEFT
        return ZoneType.BELOW if dy > 0 else ZoneType.ABOVE

    def motion_get(self) -> Motion:
        return Motion(speed=self.velocity_calculate(), direction=self.direction_dominant())

    def pointLast_get(self) -> Optional[Point]:
        """Get last recorded point"""
        return self._last_point
