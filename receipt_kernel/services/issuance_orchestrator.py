"""
IssuanceOrchestrator -- the receipt issuance saga.

Responsibility:
    Runs one receipt submission through validate -> directory lookup ->
    allocate -> render -> artifact put -> ledger append, and reports the
    result as an IssuanceOutcome.  Also exposes the display-only preview
    of the next correlative, member lookup for the entry form, and the
    ledger-only retry for LEDGER_WRITE_FAILED outcomes.

Architecture position:
    Kernel > Services -- saga control logic.
    Depends only on the collaborator protocols in
    ``receipt_kernel.domain.ports``; concrete stores are injected by
    ``receipt_services.wiring``.

Invariants enforced:
    Allocate late -- the correlative is allocated only after validation and
        lookup succeeded, immediately before rendering.  Nothing that can
        be rejected locally ever spends a number.
    Strict step order -- the ledger is never appended before the artifact
        put has returned a handle, so every ledger row references a stored
        document.
    Disclose spent numbers -- every outcome after allocation carries the
        correlative; failures are logged with it and never swallowed.
    Same key on retry -- ``retry_ledger`` re-appends the exact LedgerEntry
        of the failed run; ALREADY_EXISTS counts as success.
    Deferred cancellation -- the cancel event is honoured only before
        allocation.  Afterwards the saga runs to completion.

Failure modes:
    - VALIDATION_FAILED / LOOKUP_NOT_FOUND / DIRECTORY_UNAVAILABLE /
      SEQUENCER_UNAVAILABLE / CANCELLED: nothing spent.
    - RENDER_FAILED / ARTIFACT_STORE_FAILED: correlative spent, skipped.
    - LEDGER_WRITE_FAILED: correlative spent, artifact stored, ledger
      step resumable via ``retry_ledger``.
    - A BaseException (KeyboardInterrupt, SystemExit) after allocation is
      logged as ``issuance_orphaned`` and re-raised.

Audit relevance:
    ``issuance_started`` / ``issuance_completed`` / ``issuance_failed``
    are logged under a per-run correlation_id with the receipt number
    bound into the log context once allocated.
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import TypeVar
from uuid import uuid4

from receipt_kernel.domain.clock import Clock, SystemClock
from receipt_kernel.domain.correlative import Correlative
from receipt_kernel.domain.dtos import (
    AppendResult,
    ArtifactHandle,
    CorrelativePreview,
    IssuedReceipt,
    LedgerEntry,
    MemberInfo,
    ReceiptData,
    ReceiptRequest,
    ValidationError,
    ValidationResult,
)
from receipt_kernel.domain.outcomes import IssuanceOutcome, IssuanceStatus
from receipt_kernel.domain.ports import (
    ArtifactStore,
    ClientDirectory,
    LedgerRecorder,
    ReceiptRenderer,
    Sequencer,
)
from receipt_kernel.domain.validation import validate_document_number, validate_request
from receipt_kernel.exceptions import (
    DirectoryError,
    DirectoryUnavailableError,
    RenderError,
    RequestValidationError,
    SequencerError,
)
from receipt_kernel.logging_config import LogContext, get_logger
from receipt_kernel.utils.retry import TRANSIENT_IO_ERRORS, call_with_retries

logger = get_logger("services.issuance_orchestrator")

T = TypeVar("T")


class IssuanceOrchestrator:
    """
    Coordinates one receipt issuance across five collaborators.

    Contract:
        ``issue(request)`` never raises for collaborator failures; it
        returns an IssuanceOutcome.  Programming errors raised before
        allocation propagate unchanged.

    Guarantees:
        - At most one correlative is allocated per ``issue()`` call.
        - Concurrent ``issue()`` calls only serialize inside
          ``Sequencer.allocate()``.

    Non-goals:
        - Does NOT compensate (delete artifacts or release numbers) on
          failure.  Gaps are reported, never hidden.
    """

    def __init__(
        self,
        directory: ClientDirectory,
        sequencer: Sequencer,
        renderer: ReceiptRenderer,
        artifact_store: ArtifactStore,
        ledger: LedgerRecorder,
        clock: Clock | None = None,
        render_timeout_seconds: float | None = 30.0,
        step_attempts: int = 3,
        backoff_seconds: float = 0.05,
        render_workers: int = 2,
    ):
        """
        Initialize the orchestrator.

        Args:
            directory: Member lookup.
            sequencer: Correlative allocation.
            renderer: ReceiptData -> document bytes.
            artifact_store: Durable document store.
            ledger: Income ledger.
            clock: Clock for IssuedReceipt timestamps. Defaults to SystemClock.
            render_timeout_seconds: Upper bound on one render, counted from
                the moment a worker picks it up.  Waiting for a free worker
                has the same bound.  None renders inline without a timeout.
            step_attempts: Attempts for transient lookup/put/append failures.
            backoff_seconds: Linear backoff step between attempts.
            render_workers: Size of the render worker pool.  A hung render
                occupies its worker until the renderer returns.
        """
        if step_attempts < 1:
            raise ValueError("step_attempts must be >= 1")
        self._directory = directory
        self._sequencer = sequencer
        self._renderer = renderer
        self._artifact_store = artifact_store
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._render_timeout = render_timeout_seconds
        self._step_attempts = step_attempts
        self._backoff_seconds = backoff_seconds
        self._render_executor: ThreadPoolExecutor | None = None
        if render_timeout_seconds is not None:
            self._render_executor = ThreadPoolExecutor(
                max_workers=render_workers,
                thread_name_prefix="receipt-render",
            )

    def close(self) -> None:
        """Release the render worker pool."""
        if self._render_executor is not None:
            self._render_executor.shutdown(wait=False, cancel_futures=True)
            self._render_executor = None

    def __enter__(self) -> "IssuanceOrchestrator":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Exposed operations
    # ------------------------------------------------------------------

    def peek_next_correlative(self) -> CorrelativePreview:
        """
        Display-only preview of the next correlative.

        The value is not reserved.  The number actually issued is
        allocated when ``issue()`` runs and may be higher.
        """
        return CorrelativePreview(correlative=self._sequencer.peek(), binding=False)

    def lookup_member(self, document_number: str) -> MemberInfo | None:
        """
        Resolve a member for the entry form.

        Raises:
            RequestValidationError: If ``document_number`` is not 8 digits.
            DirectoryUnavailableError: If the directory cannot be reached.
        """
        errors = validate_document_number(document_number)
        if errors:
            raise RequestValidationError("document_number", errors[0].message)
        try:
            return self._with_retries(
                "directory.lookup",
                lambda: self._directory.lookup(document_number),
            )
        except TRANSIENT_IO_ERRORS as exc:
            raise DirectoryUnavailableError(document_number, type(exc).__name__) from exc

    def issue(
        self,
        request: ReceiptRequest,
        cancel: threading.Event | None = None,
    ) -> IssuanceOutcome:
        """
        Issue one receipt.

        Args:
            request: The submission.
            cancel: Optional cooperative cancellation flag.  Honoured only
                before the correlative is allocated.

        Returns:
            IssuanceOutcome describing where the saga ended.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            document_number=str(request.document_number),
        ):
            logger.info(
                "issuance_started",
                extra={
                    "payment_method": getattr(request.payment_method, "value", None),
                    "amount": request.amount,
                    "issue_date": str(request.issue_date),
                },
            )
            t0 = time.monotonic()
            outcome = self._do_issue(request, cancel)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            extra = {
                "status": outcome.status.value,
                "correlative": outcome.spent_correlative,
                "recovery": outcome.recovery.value,
                "duration_ms": duration_ms,
            }
            if outcome.is_success:
                logger.info("issuance_completed", extra=extra)
            elif outcome.correlative_spent:
                logger.error("issuance_failed", extra=extra)
            else:
                logger.warning("issuance_failed", extra=extra)
            return outcome

    def retry_ledger(self, outcome: IssuanceOutcome) -> IssuanceOutcome:
        """
        Re-run only the ledger step of a LEDGER_WRITE_FAILED outcome.

        The same LedgerEntry (same key, same payload) is appended again;
        an ALREADY_EXISTS answer means an earlier attempt landed and is
        treated as success.

        Returns:
            ISSUED on success, otherwise a LEDGER_WRITE_FAILED outcome with
            the same correlative, handle and entry.

        Raises:
            ValueError: If ``outcome`` is not LEDGER_WRITE_FAILED.
        """
        if outcome.status != IssuanceStatus.LEDGER_WRITE_FAILED:
            raise ValueError(
                f"retry_ledger requires a {IssuanceStatus.LEDGER_WRITE_FAILED.value} "
                f"outcome, got {outcome.status.value}"
            )

        entry = outcome.ledger_entry
        with LogContext.bind(
            correlation_id=str(uuid4()),
            receipt_number=str(outcome.correlative),
            document_number=outcome.document_number,
        ):
            logger.info("ledger_retry_started", extra={"correlative": str(outcome.correlative)})
            try:
                result = self._with_retries("ledger.append", lambda: self._ledger.append(entry))
            except Exception as exc:
                logger.error(
                    "ledger_retry_failed",
                    extra={"correlative": str(outcome.correlative), "error": type(exc).__name__},
                    exc_info=True,
                )
                return replace(outcome, message=self._spent_message(outcome.correlative, exc))

            logger.info(
                "ledger_retry_completed",
                extra={"correlative": str(outcome.correlative), "result": result.value},
            )
            return self._issued(
                outcome.correlative,
                outcome.request,
                outcome.member,
                outcome.artifact_handle,
                entry,
            )

    # ------------------------------------------------------------------
    # Saga
    # ------------------------------------------------------------------

    def _do_issue(
        self,
        request: ReceiptRequest,
        cancel: threading.Event | None,
    ) -> IssuanceOutcome:
        # 1. Validate (pure)
        validation = validate_request(request)
        if not validation:
            return IssuanceOutcome(
                status=IssuanceStatus.VALIDATION_FAILED,
                document_number=request.document_number,
                validation=validation,
                message=validation.message,
            )

        if self._cancelled(cancel, "before_lookup"):
            return self._cancelled_outcome(request)

        # 2. Directory lookup
        try:
            member = self._with_retries(
                "directory.lookup",
                lambda: self._directory.lookup(request.document_number),
            )
        except (DirectoryError, *TRANSIENT_IO_ERRORS) as exc:
            logger.warning(
                "directory_unavailable",
                extra={"error": type(exc).__name__},
            )
            return IssuanceOutcome(
                status=IssuanceStatus.DIRECTORY_UNAVAILABLE,
                document_number=request.document_number,
                message=str(exc),
            )

        if member is None:
            return IssuanceOutcome(
                status=IssuanceStatus.LOOKUP_NOT_FOUND,
                document_number=request.document_number,
                message=f"No member registered under document {request.document_number}",
            )

        if request.member is not None and request.member.id != member.id:
            mismatch = ValidationResult.failure(
                ValidationError(
                    code="MEMBER_CHANGED",
                    message="Member record changed since it was selected; look it up again",
                    field="member",
                    details={
                        "selected_id": str(request.member.id),
                        "current_id": str(member.id),
                    },
                )
            )
            return IssuanceOutcome(
                status=IssuanceStatus.VALIDATION_FAILED,
                document_number=request.document_number,
                member=member,
                validation=mismatch,
                message=mismatch.message,
            )

        if self._cancelled(cancel, "before_allocate"):
            return self._cancelled_outcome(request)

        # 3. Allocate: from here on the number is spent
        try:
            correlative = self._sequencer.allocate()
        except (SequencerError, *TRANSIENT_IO_ERRORS) as exc:
            logger.error("sequencer_unavailable", extra={"error": type(exc).__name__})
            return IssuanceOutcome(
                status=IssuanceStatus.SEQUENCER_UNAVAILABLE,
                document_number=request.document_number,
                member=member,
                message=str(exc),
            )

        with LogContext.bind(receipt_number=str(correlative)):
            outcome = self._complete(correlative, request, member)
            if cancel is not None and cancel.is_set():
                logger.info(
                    "cancellation_deferred",
                    extra={"correlative": str(correlative), "status": outcome.status.value},
                )
            return outcome

    def _complete(
        self,
        correlative: Correlative,
        request: ReceiptRequest,
        member: MemberInfo,
    ) -> IssuanceOutcome:
        """Render, store and record an allocated correlative."""
        stage = IssuanceStatus.RENDER_FAILED
        handle: ArtifactHandle | None = None
        entry = LedgerEntry.for_receipt(correlative, request, member)

        try:
            # 4. Render
            content = self._render(ReceiptData.build(correlative, request, member))

            # 5. Artifact put
            stage = IssuanceStatus.ARTIFACT_STORE_FAILED
            handle = self._with_retries(
                "artifact_store.put",
                lambda: self._artifact_store.put(str(correlative), content, member.id),
            )

            # 6. Ledger append, only after the artifact exists
            stage = IssuanceStatus.LEDGER_WRITE_FAILED
            result = self._with_retries("ledger.append", lambda: self._ledger.append(entry))
        except Exception as exc:
            return self._step_failed(stage, correlative, request, member, handle, entry, exc)
        except BaseException:
            logger.critical(
                "issuance_orphaned",
                extra={
                    "correlative": str(correlative),
                    "stage": stage.value,
                    "artifact_key": handle.key if handle is not None else None,
                    "artifact_uri": handle.uri if handle is not None else None,
                },
            )
            raise

        if result == AppendResult.ALREADY_EXISTS:
            logger.warning("ledger_entry_replayed", extra={"correlative": str(correlative)})

        # 7. Done
        return self._issued(correlative, request, member, handle, entry)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _render(self, data: ReceiptData) -> bytes:
        if self._render_executor is None:
            content = self._renderer.render(data)
        else:
            started = threading.Event()

            def run() -> bytes:
                started.set()
                return self._renderer.render(data)

            future = self._render_executor.submit(run)
            # Timed-out renders hold their worker until they return; queue
            # wait and render time each get their own bound.
            if not started.wait(timeout=self._render_timeout) and future.cancel():
                raise RenderError(
                    str(data.correlative),
                    f"no render worker free after {self._render_timeout}s",
                )
            try:
                content = future.result(timeout=self._render_timeout)
            except TimeoutError as exc:
                raise RenderError(
                    str(data.correlative),
                    f"render timed out after {self._render_timeout}s",
                ) from exc
        if not isinstance(content, bytes) or not content:
            raise RenderError(str(data.correlative), "renderer returned no content")
        return content

    def _with_retries(self, operation: str, fn: Callable[[], T]) -> T:
        return call_with_retries(
            fn,
            operation=operation,
            logger=logger,
            max_attempts=self._step_attempts,
            backoff_seconds=self._backoff_seconds,
            retry_on=TRANSIENT_IO_ERRORS,
        )

    def _cancelled(self, cancel: threading.Event | None, checkpoint: str) -> bool:
        if cancel is not None and cancel.is_set():
            logger.info("issuance_cancelled", extra={"checkpoint": checkpoint})
            return True
        return False

    @staticmethod
    def _cancelled_outcome(request: ReceiptRequest) -> IssuanceOutcome:
        return IssuanceOutcome(
            status=IssuanceStatus.CANCELLED,
            document_number=request.document_number,
            message="Issuance cancelled before a receipt number was allocated",
        )

    @staticmethod
    def _spent_message(correlative: Correlative, exc: BaseException) -> str:
        return f"Receipt number {correlative} was spent: {exc}"

    def _step_failed(
        self,
        status: IssuanceStatus,
        correlative: Correlative,
        request: ReceiptRequest,
        member: MemberInfo,
        handle: ArtifactHandle | None,
        entry: LedgerEntry,
        exc: Exception,
    ) -> IssuanceOutcome:
        logger.error(
            "issuance_step_failed",
            extra={
                "status": status.value,
                "correlative": str(correlative),
                "error": type(exc).__name__,
                "error_code": getattr(exc, "code", None),
                "artifact_key": handle.key if handle is not None else None,
            },
            exc_info=True,
        )
        return IssuanceOutcome(
            status=status,
            document_number=request.document_number,
            correlative=correlative,
            request=request,
            member=member,
            artifact_handle=handle,
            ledger_entry=entry if status == IssuanceStatus.LEDGER_WRITE_FAILED else None,
            message=self._spent_message(correlative, exc),
        )

    def _issued(
        self,
        correlative: Correlative,
        request: ReceiptRequest,
        member: MemberInfo,
        handle: ArtifactHandle,
        entry: LedgerEntry,
    ) -> IssuanceOutcome:
        receipt = IssuedReceipt(
            correlative=correlative,
            request=request,
            member=member,
            artifact_handle=handle,
            ledger_entry=entry,
            created_at=self._clock.now(),
        )
        return IssuanceOutcome(
            status=IssuanceStatus.ISSUED,
            document_number=request.document_number,
            correlative=correlative,
            request=request,
            member=member,
            artifact_handle=handle,
            ledger_entry=entry,
            receipt=receipt,
        )
