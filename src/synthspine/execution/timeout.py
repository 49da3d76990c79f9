"""Timeout enforcement for collaborator calls.

Every call into the external entity store runs under a deadline. A lookup
that overruns is abandoned (its worker thread is left to finish on its
own) and reported as ``LookupTimeoutError`` so the caller can count it and
move on instead of stalling the event pipeline.

Guardrails:
    - The abandoned thread is not killed; collaborators should honour their
      own I/O timeouts too
    - Not suitable for CPU-bound work
"""

from __future__ import annotations

import concurrent.futures
import time
from collections.abc import Callable
from typing import Any, TypeVar

from synthspine.core.errors import LookupTimeoutError

T = TypeVar("T")


def run_with_timeout(
    func: Callable[..., T],
    timeout_seconds: float,
    operation: str | None = None,
    args: tuple[Any, ...] | None = None,
    kwargs: dict[str, Any] | None = None,
) -> T:
    """Run a callable with a timeout using a one-shot worker thread.

    Args:
        func: Callable to execute
        timeout_seconds: Maximum execution time
        operation: Name for error messages
        args: Positional arguments for func
        kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Raises:
        LookupTimeoutError: If execution exceeds timeout
        Exception: Any exception raised by func
    """
    if timeout_seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_seconds}")

    op_name = operation or getattr(func, "__name__", "unknown")
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="synth-lookup")
    start = time.monotonic()
    future = executor.submit(func, *(args or ()), **(kwargs or {}))
    try:
        return future.result(timeout=timeout_seconds)
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise LookupTimeoutError(op_name, timeout_seconds).with_context(
            elapsed_seconds=round(time.monotonic() - start, 3)
        ) from None
    finally:
        executor.shutdown(wait=False)
