"""Retry strategies and deadlines for remote calls."""

from catalog_cache.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy
from catalog_cache.execution.timeout import TimeoutExpired, with_deadline_async

__all__ = [
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "RetryStrategy",
    "TimeoutExpired",
    "with_deadline_async",
]
