"""Periodic bridge liveness probe"""

from __future__ import annotations

import logging
from typing import Any

from canvascore.common.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

__all__ = ["BridgeHeartbeat"]


class BridgeHeartbeat:
    """
    Pings the host bridge on a fixed interval.

    Missed answers are logged and counted; editing and sync are never
    interrupted by the heartbeat.
    """

    def __init__(self, bridge: Any, scheduler: Scheduler, interval_ms: float = 1000.0) -> None:
        self._bridge: Any = bridge
        self._scheduler: Scheduler = scheduler
        self._interval_s: float = interval_ms / 1000.0
        self._timer: TimerHandle | None = None
        self.beats: int = 0
        self.consecutive_misses: int = 0
        self.total_misses: int = 0

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self) -> bool:
        """
        Begin pinging

        Returns:
            False when the bridge has no ``ping`` call
        """
        if not callable(getattr(self._bridge, "ping", None)):
            logger.info("[BRIDGE] Bridge has no ping(); heartbeat not started")
            return False
        if self._timer is None:
            self._timer = self._scheduler.call_later(self._interval_s, self._beat)
        return True

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _beat(self) -> None:
        self._timer = None
        self.beats += 1
        try:
            answer = self._bridge.ping()
        except Exception as exc:
            logger.debug("[BRIDGE] ping raised: %s", exc)
            answer = None

        if answer == "pong":
            if self.consecutive_misses:
                logger.info(
                    "[BRIDGE] Heartbeat recovered after %d missed ping(s)", self.consecutive_misses
                )
            self.consecutive_misses = 0
        else:
            self.consecutive_misses += 1
            self.total_misses += 1
            logger.warning(
                "[BRIDGE] Heartbeat missed (%d consecutive, answer=%r)",
                self.consecutive_misses, answer,
            )

        self._timer = self._scheduler.call_later(self._interval_s, self._beat)
