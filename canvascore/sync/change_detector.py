"""
Change detection and debounce.

The detector listens at the tree's single dispatch point, so every batch it
receives has already passed the marker filter. Each batch (re)arms one debounce
timer; the sync request goes out on the trailing edge after a quiet period.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Callable, Iterator, Protocol

from canvascore.common.scheduler import Scheduler, TimerHandle
from canvascore.tree.mutations import MutationRecord
from canvascore.tree.node import VisualTree

logger = logging.getLogger(__name__)

__all__ = [
    "ChangeDetector",
    "SyncRequester",
]


class SyncRequester(Protocol):
    """Receiver of debounced sync requests"""

    def sync_request(self) -> None:
        ...


class ChangeDetector:
    """Turns filtered mutation batches into debounced sync requests."""

    def __init__(
        self,
        tree: VisualTree,
        requester: SyncRequester,
        scheduler: Scheduler,
        debounce_ms: float = 150.0,
    ) -> None:
        """
        Initialize detector.

        Args:
            tree:
                Observed visual tree.
            requester:
                Usually the `SyncTransport`.
            scheduler:
                Timer source for the debounce.
            debounce_ms:
                Quiet period before a sync request is issued.
        """
        self._tree: VisualTree = tree
        self._requester: SyncRequester = requester
        self._scheduler: Scheduler = scheduler
        self._debounce_s: float = debounce_ms / 1000.0
        self._timer: TimerHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._pause_depth: int = 0
        self.records_seen: int = 0

    @property
    def observing(self) -> bool:
        return self._unsubscribe is not None

    @property
    def debounce_armed(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        """Subscribe to tree mutations."""
        if self._unsubscribe is None:
            self._unsubscribe = self._tree.subscribe(self._mutations_handle)

    def stop(self) -> None:
        """Unsubscribe and drop any armed debounce."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._timer_cancel()

    @contextlib.contextmanager
    def pause(self) -> Iterator[None]:
        """Ignore every batch delivered inside the scope."""
        self._pause_depth += 1
        try:
            yield
        finally:
            self._pause_depth -= 1

    def flush(self) -> bool:
        """
        Fire an armed debounce immediately.

        Returns:
            `True` when a sync request was issued.
        """
        if self._timer is None:
            return False
        self._timer_cancel()
        self._requester.sync_request()
        return True

    def _mutations_handle(self, records: list[MutationRecord]) -> None:
        if self._pause_depth > 0:
            logger.debug("[SYNC] Ignoring %d mutation(s) while paused", len(records))
            return
        self.records_seen += len(records)
        self._timer_cancel()
        self._timer = self._scheduler.call_later(self._debounce_s, self._debounce_fire)

    def _debounce_fire(self) -> None:
        self._timer = None
        self._requester.sync_request()

    def _timer_cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
