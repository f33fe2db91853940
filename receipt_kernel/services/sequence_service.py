"""
CorrelativeSequencer -- receipt number allocation via a single counter row.

Responsibility:
    Produces the next unused correlative exactly once per ``allocate()``
    call, even under concurrent callers, and previews the next value for
    display without reserving it.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by IssuanceOrchestrator immediately before rendering, and by
    ReconciliationService to learn the highest spent value.

Invariants enforced:
    Uniqueness -- ``allocate()`` is one atomic
        ``UPDATE sequence_counters SET current_value = current_value + 1
        ... RETURNING current_value`` committed in its own transaction.
        Concurrent callers serialize on the row (PostgreSQL row lock,
        SQLite database write lock); no two callers see the same value.
        The aggregate-max-plus-one anti-pattern is FORBIDDEN -- the counter
        row is the sole source of truth for the next value.
    Spent on commit -- once the UPDATE commits the value is spent for good.
        A later failure in the saga leaves a gap, never a reuse.
    Single writer path -- ``peek()`` only reads.  ``initialize()`` and
        ``reset()`` are setup/migration tools, never called by the saga.

Failure modes:
    - IntegrityError: concurrent first-use counter creation (handled via
      savepoint rollback and re-running the UPDATE).
    - SequencerUnavailableError: the counter update could not be committed
      after bounded retries of transient errors, or failed outright with
      a non-transient database error.  No correlative is issued.

Audit relevance:
    Every allocation is logged at INFO with sequence_name and the canonical
    correlative, so a gap can always be traced to a spent allocation.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from receipt_kernel.domain.correlative import Correlative, CorrelativeFormat
from receipt_kernel.exceptions import SequencerUnavailableError
from receipt_kernel.logging_config import get_logger
from receipt_kernel.models.sequence_counter import SequenceCounter
from receipt_kernel.services.base import BaseStoreService
from receipt_kernel.utils.retry import TRANSIENT_DB_ERRORS

logger = get_logger("services.sequence")


class CorrelativeSequencer(BaseStoreService):
    """
    Owner of the receipt correlative counter.

    Contract:
        ``allocate()`` returns the post-increment counter value formatted
        as a Correlative: with the counter at 10 the next allocation is
        ``R-00011``.  ``peek()`` returns what ``allocate()`` would return
        if called now by the only caller.

    Guarantees:
        - Linearizable allocation: N concurrent calls return N pairwise
          distinct values in the order their updates committed.
        - Each allocation commits before returning; the caller never holds
          a counter lock across rendering or storage.

    Non-goals:
        - Does NOT reserve values on ``peek()``.
        - Does NOT return values to the pool on downstream failure.
    """

    RECEIPT = "receipt"

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sequence_name: str = RECEIPT,
        correlative_format: CorrelativeFormat | None = None,
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ):
        """
        Initialize the sequencer.

        Args:
            session_factory: Factory for short-lived sessions; every call
                opens and commits its own transaction.
            sequence_name: Counter row name.
            correlative_format: Prefix/width used to render values.
            max_attempts: Attempts for transient database errors.
            backoff_seconds: Linear backoff step between attempts.
        """
        super().__init__(session_factory, max_attempts, backoff_seconds)
        self._sequence_name = sequence_name
        self._format = correlative_format or CorrelativeFormat()

    @property
    def correlative_format(self) -> CorrelativeFormat:
        return self._format

    @property
    def sequence_name(self) -> str:
        return self._sequence_name

    def peek(self) -> Correlative:
        """
        Preview the next correlative. No side effects.

        Raises:
            SequencerUnavailableError: If the counter cannot be read.
        """
        last = self._guarded("peek", self._read_current)
        return self._format.of((last or 0) + 1)

    def allocate(self) -> Correlative:
        """
        Atomically spend the next correlative.

        Postconditions:
            - The counter row holds the returned value and is committed.
            - The returned value is strictly greater than every value
              previously returned for this sequence.

        Raises:
            SequencerUnavailableError: If the update cannot be committed.
        """
        value = self._guarded("allocate", self._allocate_once)
        correlative = self._format.of(value)
        logger.info(
            "correlative_allocated",
            extra={
                "sequence_name": self._sequence_name,
                "value": value,
                "correlative": str(correlative),
            },
        )
        return correlative

    def current_value(self) -> int | None:
        """
        Last allocated value, or None if the counter does not exist yet.

        Raises:
            SequencerUnavailableError: If the counter cannot be read.
        """
        return self._guarded("current_value", self._read_current)

    def initialize(self, last_issued: int = 0) -> None:
        """
        Create the counter row if it does not exist.

        An existing counter is left untouched.  Called during database
        setup so the first allocation returns ``last_issued + 1``.
        """
        if last_issued < 0:
            raise ValueError("last_issued must be >= 0")
        with self._session_factory() as session, session.begin():
            existing = session.execute(
                select(SequenceCounter.id)
                .where(SequenceCounter.name == self._sequence_name)
            ).scalar_one_or_none()
            if existing is None:
                session.add(
                    SequenceCounter(name=self._sequence_name, current_value=last_issued)
                )
        logger.info(
            "sequence_initialized",
            extra={"sequence_name": self._sequence_name, "last_issued": last_issued},
        )

    def reset(self, value: int = 0) -> None:
        """
        Reset the counter to a specific value.

        WARNING: Only for tests or migration scripts.  Lowering the counter
        in production re-issues numbers that already exist.
        """
        with self._session_factory() as session, session.begin():
            counter = session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == self._sequence_name)
                .with_for_update()
            ).scalar_one_or_none()
            if counter is None:
                session.add(SequenceCounter(name=self._sequence_name, current_value=value))
            else:
                counter.current_value = value
        logger.warning(
            "sequence_reset",
            extra={"sequence_name": self._sequence_name, "value": value},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guarded(self, operation: str, fn):
        try:
            return self._retrying(f"sequence.{operation}", fn, logger)
        except TRANSIENT_DB_ERRORS as exc:
            raise SequencerUnavailableError(
                self._sequence_name, self._max_attempts, str(exc.__class__.__name__)
            ) from exc
        except SQLAlchemyError as exc:
            raise SequencerUnavailableError(
                self._sequence_name, 1, str(exc.__class__.__name__)
            ) from exc

    def _read_current(self) -> int | None:
        with self._session_factory() as session:
            return session.execute(
                select(SequenceCounter.current_value)
                .where(SequenceCounter.name == self._sequence_name)
            ).scalar_one_or_none()

    def _increment(self, session: Session) -> int | None:
        # Single-statement read-modify-write: the row lock is held only
        # for the duration of this transaction.
        return session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == self._sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .returning(SequenceCounter.current_value)
            .execution_options(synchronize_session=False)
        ).scalar_one_or_none()

    def _allocate_once(self) -> int:
        with self._session_factory() as session, session.begin():
            value = self._increment(session)
            if value is None:
                value = self._create_counter(session)
            assert value > 0, "allocated correlative must be strictly positive"
            return value

    def _create_counter(self, session: Session) -> int:
        """First use of this sequence: insert the row holding 1."""
        try:
            with session.begin_nested():
                session.add(SequenceCounter(name=self._sequence_name, current_value=1))
            return 1
        except IntegrityError:
            # Another caller created the counter first; increment theirs
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": self._sequence_name},
            )
            value = self._increment(session)
            if value is None:
                raise SequencerUnavailableError(
                    self._sequence_name, 1, "counter row vanished during creation"
                )
            return value
