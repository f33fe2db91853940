"""
IncomeLedger -- idempotent income records keyed by receipt number.

Responsibility:
    Appends one ``income_entries`` row per issued receipt and answers
    whether a receipt number is already recorded.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Consumed by IssuanceOrchestrator through the LedgerRecorder protocol.

Invariants enforced:
    Idempotency -- appending an entry whose receipt_number already exists
        with the same payload hash returns ALREADY_EXISTS and writes
        nothing.  This is what makes ``retry_ledger`` safe.
    Payload integrity -- the same receipt_number with a different payload
        hash raises LedgerEntryMismatchError.
    Append-only -- rows are never updated or deleted by this service.

Failure modes:
    - LedgerEntryMismatchError: conflicting payload for an existing key.
    - LedgerWriteError: the database could not be written after bounded
      retries.

Audit relevance:
    ``ledger_entry_recorded`` / ``ledger_entry_already_exists`` are logged
    with the receipt number and payload hash.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from receipt_kernel.domain.dtos import AppendResult, LedgerEntry, PaymentMethod, TransactionType
from receipt_kernel.exceptions import LedgerEntryMismatchError, LedgerWriteError
from receipt_kernel.logging_config import get_logger
from receipt_kernel.models.income_entry import IncomeEntry
from receipt_kernel.services.base import BaseStoreService
from receipt_kernel.utils.hashing import hash_payload

logger = get_logger("services.income_ledger")


class IncomeLedger(BaseStoreService):
    """Income ledger backed by the ``income_entries`` table."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ):
        super().__init__(session_factory, max_attempts, backoff_seconds)

    def append(self, entry: LedgerEntry) -> AppendResult:
        """
        Record ``entry`` unless an identical entry is already present.

        Returns:
            RECORDED for a new row, ALREADY_EXISTS for an idempotent replay.

        Raises:
            LedgerEntryMismatchError: Same receipt number, different payload.
            LedgerWriteError: If the write could not be completed.
        """
        payload_hash = hash_payload(entry.payload())

        try:
            result = self._retrying(
                "income_ledger.append",
                lambda: self._append_once(entry, payload_hash),
                logger,
            )
        except SQLAlchemyError as exc:
            logger.error(
                "ledger_write_failed",
                extra={"receipt_number": entry.receipt_number, "error": type(exc).__name__},
            )
            raise LedgerWriteError(entry.receipt_number, type(exc).__name__) from exc

        logger.info(
            "ledger_entry_recorded"
            if result == AppendResult.RECORDED
            else "ledger_entry_already_exists",
            extra={
                "receipt_number": entry.receipt_number,
                "payload_hash": payload_hash,
                "amount": entry.amount,
                "account": entry.account.value,
            },
        )
        return result

    def get(self, receipt_number: str) -> LedgerEntry | None:
        """The recorded entry for ``receipt_number``, or None."""
        with self._session_factory() as session:
            row = session.execute(
                select(IncomeEntry).where(IncomeEntry.receipt_number == receipt_number)
            ).scalar_one_or_none()
            if row is None:
                return None
            return LedgerEntry(
                receipt_number=row.receipt_number,
                member_document=row.member_document,
                member_name=row.member_name,
                amount=row.amount,
                account=PaymentMethod(row.account),
                entry_date=row.entry_date,
                transaction_type=TransactionType(row.transaction_type),
                operation_number=row.operation_number,
            )

    def list_receipt_numbers(self) -> list[str]:
        """All recorded receipt numbers, in key order."""
        with self._session_factory() as session:
            return list(
                session.execute(
                    select(IncomeEntry.receipt_number).order_by(IncomeEntry.receipt_number)
                ).scalars()
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _compare(self, existing_hash: str, entry: LedgerEntry, payload_hash: str) -> AppendResult:
        if existing_hash != payload_hash:
            logger.error(
                "ledger_entry_mismatch",
                extra={
                    "receipt_number": entry.receipt_number,
                    "existing_hash": existing_hash,
                    "received_hash": payload_hash,
                },
            )
            raise LedgerEntryMismatchError(entry.receipt_number, existing_hash, payload_hash)
        return AppendResult.ALREADY_EXISTS

    def _append_once(self, entry: LedgerEntry, payload_hash: str) -> AppendResult:
        with self._session_factory() as session, session.begin():
            existing_hash = session.execute(
                select(IncomeEntry.payload_hash)
                .where(IncomeEntry.receipt_number == entry.receipt_number)
            ).scalar_one_or_none()
            if existing_hash is not None:
                return self._compare(existing_hash, entry, payload_hash)

            try:
                with session.begin_nested():
                    session.add(
                        IncomeEntry(
                            receipt_number=entry.receipt_number,
                            member_document=entry.member_document,
                            member_name=entry.member_name,
                            amount=entry.amount,
                            account=entry.account.value,
                            entry_date=entry.entry_date,
                            transaction_type=entry.transaction_type.value,
                            operation_number=entry.operation_number,
                            payload_hash=payload_hash,
                        )
                    )
                return AppendResult.RECORDED
            except IntegrityError:
                winner_hash = session.execute(
                    select(IncomeEntry.payload_hash)
                    .where(IncomeEntry.receipt_number == entry.receipt_number)
                ).scalar_one()
                return self._compare(winner_hash, entry, payload_hash)
