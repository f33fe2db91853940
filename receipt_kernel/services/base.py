"""
BaseStoreService -- common base for the kernel's SQL-backed collaborators.

Responsibility:
    Holds the session factory and retry policy shared by the sequencer,
    the member directory, the artifact store and the income ledger.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Short transactions -- each public operation opens its own session
        from the factory and commits before returning.  No service holds
        a transaction (or a lock) across another collaborator's call, so
        the saga never keeps the counter row locked while rendering.

Failure modes:
    - Transient database errors (lock waits, busy databases, dropped
      connections) are retried ``max_attempts`` times, then re-raised
      for the subclass to translate into its typed exception.
"""

from abc import ABC
from collections.abc import Callable
from logging import Logger
from typing import TypeVar

from sqlalchemy.orm import Session, sessionmaker

from receipt_kernel.utils.retry import call_with_retries

T = TypeVar("T")


class BaseStoreService(ABC):
    """
    Abstract base for services that own their transactions.

    Contract:
        Accepts a ``sessionmaker`` instead of a live session.  Every
        operation runs ``with factory() as session, session.begin():``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ):
        """
        Args:
            session_factory: Factory for short-lived sessions.
            max_attempts: Attempts for transient database errors.
            backoff_seconds: Linear backoff step between attempts.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

    def _retrying(self, operation: str, fn: Callable[[], T], logger: Logger) -> T:
        return call_with_retries(
            fn,
            operation=operation,
            logger=logger,
            max_attempts=self._max_attempts,
            backoff_seconds=self._backoff_seconds,
        )
