"""Execution helpers: bounded retries and timeouts for collaborator calls."""

from .retry import ConstantBackoff, ExponentialBackoff, NoRetry, RetryContext, RetryStrategy
from .timeout import run_with_timeout

__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "ConstantBackoff",
    "NoRetry",
    "RetryContext",
    "run_with_timeout",
]
