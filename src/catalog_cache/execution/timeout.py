"""Async deadlines for remote calls.

Each attempt the client makes against the remote catalog runs under
:func:`with_deadline_async`. An expired deadline surfaces as
:class:`TimeoutExpired`, which the client reclassifies as a transport
failure.

Example:
    >>> async with with_deadline_async(10.0, "GET /v1/catalog/stats") as ctx:
    ...     response = await http.get("/v1/catalog/stats")
    >>> ctx.elapsed()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Inherits from built-in TimeoutError for broad exception handling.
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"
        super().__init__(msg)


@dataclass
class DeadlineContext:
    """Deadline state (monotonic clock)."""

    deadline: float
    timeout_seconds: float
    operation: str
    start_time: float

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def is_expired(self) -> bool:
        return time.monotonic() >= self.deadline


@asynccontextmanager
async def with_deadline_async(
    seconds: float, operation: str | None = None
) -> AsyncIterator[DeadlineContext]:
    """Async context manager enforcing a time limit via ``asyncio.timeout``.

    Raises:
        TimeoutExpired: If the deadline is exceeded
        ValueError: If seconds < 0
    """
    if seconds < 0:
        raise ValueError(f"Timeout must be non-negative, got {seconds}")

    now = time.monotonic()
    ctx = DeadlineContext(
        deadline=now + seconds,
        timeout_seconds=seconds,
        operation=operation or "operation",
        start_time=now,
    )

    try:
        async with asyncio.timeout(seconds):
            yield ctx
    except TimeoutError as e:
        if isinstance(e, TimeoutExpired):
            raise
        raise TimeoutExpired(
            timeout=seconds, elapsed=ctx.elapsed(), operation=ctx.operation
        ) from e


__all__ = ["TimeoutExpired", "DeadlineContext", "with_deadline_async"]
