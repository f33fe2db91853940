"""
Bounded retry for transient I/O.

Lower layers retry a failed call a small, fixed number of times and then
let the error propagate to the orchestrator, which classifies it.  Only
errors listed as transient are retried; anything else propagates on the
first occurrence.
"""

import time
from collections.abc import Callable
from logging import Logger
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

T = TypeVar("T")

# Lock waits, busy databases, dropped connections and pool exhaustion
TRANSIENT_DB_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    PoolTimeoutError,
)

# Collaborators behind a network (remote stores, renderers) also surface
# connection resets and socket timeouts
TRANSIENT_IO_ERRORS: tuple[type[BaseException], ...] = TRANSIENT_DB_ERRORS + (
    ConnectionError,
    TimeoutError,
)


def call_with_retries(
    fn: Callable[[], T],
    *,
    operation: str,
    logger: Logger,
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
    retry_on: tuple[type[BaseException], ...] = TRANSIENT_DB_ERRORS,
) -> T:
    """
    Call ``fn`` until it succeeds or ``max_attempts`` is reached.

    Backoff is linear: attempt N sleeps ``backoff_seconds * N`` before
    the next try.  The last error is re-raised unchanged.

    Raises:
        ValueError: If ``max_attempts`` < 1.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            if attempt == max_attempts:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation,
                        "attempts": attempt,
                        "error": type(exc).__name__,
                    },
                )
                raise
            logger.info(
                "transient_failure_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "error": type(exc).__name__,
                },
            )
            time.sleep(backoff_seconds * attempt)

    raise AssertionError("unreachable")
