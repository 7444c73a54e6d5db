"""Retry backoff policy"""

from __future__ import annotations


def retryDelay_compute(attempt: int, base_ms: float = 100.0) -> float:
    """
    Delay before a retry, in milliseconds

    Args:
        attempt: Zero-based retry index (0 for the first retry)
        base_ms: Delay of the first retry

    Returns:
        ``base_ms * 2 ** attempt``

    Raises:
        ValueError: If attempt is negative
    """
    if attempt < 0:
        raise ValueError(f"Retry attempt must not be negative, got {attempt}")
    return base_ms * (2 ** attempt)
