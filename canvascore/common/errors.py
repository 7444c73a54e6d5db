"""Error taxonomy for sync and drag/drop failures."""


class CanvasCoreError(RuntimeError):
    """Base class for canvascore failures."""
    pass


class TransientSyncFailure(CanvasCoreError):
    """Raised when one snapshot submission is rejected or times out; retried with backoff."""
    pass


class TerminalSyncFailure(CanvasCoreError):
    """Raised when retries are exhausted; triggers rollback and a visible failure state."""
    pass


class InvalidDropTarget(CanvasCoreError):
    """Raised when no zone qualifies for a drop (cycle, structural violation, low score)."""
    pass


class StaleZoneReference(CanvasCoreError):
    """Raised when a scored zone's target vanished or moved before commit."""
    pass


class BridgeUnavailable(CanvasCoreError):
    """Raised when the host bridge is missing or incomplete; sync is disabled."""
    pass
