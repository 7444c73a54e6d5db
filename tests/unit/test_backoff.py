"""Unit tests for retry backoff policy"""

import pytest
from canvascore.sync.backoff import retryDelay_compute


class TestRetryDelay:
    """Test exponential retry delays"""

    def test_default_schedule(self):
        """Test delays double from 100 ms"""
        assert [retryDelay_compute(attempt) for attempt in range(3)] == [100.0, 200.0, 400.0]

    def test_custom_base(self):
        assert retryDelay_compute(2, base_ms=50) == 200

    def test_negative_attempt_raises(self):
        with pytest.raises(ValueError):
            retryDelay_compute(-1)
