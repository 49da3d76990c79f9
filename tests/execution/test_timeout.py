"""Tests for synthspine.execution.timeout."""

import time

import pytest

from synthspine.core.errors import EntityLookupError, LookupTimeoutError
from synthspine.execution.timeout import run_with_timeout


class TestRunWithTimeout:
    """Tests for run_with_timeout."""

    def test_returns_result(self):
        assert run_with_timeout(lambda a, b=0: a + b, 1.0, args=(1,), kwargs={"b": 2}) == 3

    def test_propagates_errors(self):
        def boom():
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError, match="refused"):
            run_with_timeout(boom, 1.0)

    @pytest.mark.slow
    def test_timeout(self):
        started = time.monotonic()
        with pytest.raises(LookupTimeoutError) as exc_info:
            run_with_timeout(time.sleep, 0.05, operation="find", args=(0.5,))

        assert time.monotonic() - started < 0.4
        assert isinstance(exc_info.value, EntityLookupError)
        assert isinstance(exc_info.value, TimeoutError)
        assert "find" in exc_info.value.message

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            run_with_timeout(lambda: None, 0)
