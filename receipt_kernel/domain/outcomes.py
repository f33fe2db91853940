"""
Issuance outcomes -- the state-tagged result of one saga run.

Responsibility:
    Represents every way ``IssuanceOrchestrator.issue()`` can end, together
    with the state a caller needs to decide what to do next: resubmit,
    retry the whole saga, retry only the ledger step, or escalate to
    manual reconciliation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every status after allocation carries the spent correlative.
    - LEDGER_WRITE_FAILED additionally carries the persisted artifact handle,
      the ledger entry to re-append under the same key, and the request and
      member needed to complete the receipt afterwards.
    - ISSUED carries the IssuedReceipt.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from receipt_kernel.domain.correlative import Correlative
from receipt_kernel.domain.dtos import (
    ArtifactHandle,
    IssuedReceipt,
    LedgerEntry,
    MemberInfo,
    ReceiptRequest,
    ValidationResult,
)


class IssuanceStatus(str, Enum):
    """Status of an issuance saga run."""

    ISSUED = "issued"
    VALIDATION_FAILED = "validation_failed"
    LOOKUP_NOT_FOUND = "lookup_not_found"
    DIRECTORY_UNAVAILABLE = "directory_unavailable"
    SEQUENCER_UNAVAILABLE = "sequencer_unavailable"
    RENDER_FAILED = "render_failed"
    ARTIFACT_STORE_FAILED = "artifact_store_failed"
    LEDGER_WRITE_FAILED = "ledger_write_failed"
    CANCELLED = "cancelled"


class RecoveryAction(str, Enum):
    """What the caller should do with an outcome."""

    NONE = "none"
    FIX_AND_RESUBMIT = "fix_and_resubmit"
    RETRY_SAGA = "retry_saga"
    RETRY_LEDGER_STEP = "retry_ledger_step"
    MANUAL_RECONCILIATION = "manual_reconciliation"


# Statuses reached only after allocate() committed
_SPENT_STATUSES = frozenset({
    IssuanceStatus.ISSUED,
    IssuanceStatus.RENDER_FAILED,
    IssuanceStatus.ARTIFACT_STORE_FAILED,
    IssuanceStatus.LEDGER_WRITE_FAILED,
})

_RECOVERY: dict[IssuanceStatus, RecoveryAction] = {
    IssuanceStatus.ISSUED: RecoveryAction.NONE,
    IssuanceStatus.VALIDATION_FAILED: RecoveryAction.FIX_AND_RESUBMIT,
    IssuanceStatus.LOOKUP_NOT_FOUND: RecoveryAction.FIX_AND_RESUBMIT,
    IssuanceStatus.DIRECTORY_UNAVAILABLE: RecoveryAction.RETRY_SAGA,
    IssuanceStatus.SEQUENCER_UNAVAILABLE: RecoveryAction.RETRY_SAGA,
    IssuanceStatus.CANCELLED: RecoveryAction.RETRY_SAGA,
    # The spent number is skipped; a resubmission gets a new one
    IssuanceStatus.RENDER_FAILED: RecoveryAction.MANUAL_RECONCILIATION,
    IssuanceStatus.ARTIFACT_STORE_FAILED: RecoveryAction.MANUAL_RECONCILIATION,
    IssuanceStatus.LEDGER_WRITE_FAILED: RecoveryAction.RETRY_LEDGER_STEP,
}


@dataclass(frozen=True)
class IssuanceOutcome:
    """Result of an issuance saga run."""

    status: IssuanceStatus
    document_number: str
    correlative: Correlative | None = None
    request: ReceiptRequest | None = None
    member: MemberInfo | None = None
    artifact_handle: ArtifactHandle | None = None
    ledger_entry: LedgerEntry | None = None
    receipt: IssuedReceipt | None = None
    validation: ValidationResult | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        if self.status in _SPENT_STATUSES and self.correlative is None:
            raise ValueError(f"{self.status.value} outcome must carry the spent correlative")
        if self.status == IssuanceStatus.ISSUED and self.receipt is None:
            raise ValueError("issued outcome must carry the receipt")
        if self.status == IssuanceStatus.LEDGER_WRITE_FAILED and (
            self.artifact_handle is None
            or self.ledger_entry is None
            or self.request is None
            or self.member is None
        ):
            raise ValueError(
                "ledger_write_failed outcome must carry the request, member, "
                "artifact handle and ledger entry"
            )

    @property
    def is_success(self) -> bool:
        return self.status == IssuanceStatus.ISSUED

    @property
    def correlative_spent(self) -> bool:
        """True when a correlative was consumed by this run."""
        return self.status in _SPENT_STATUSES

    @property
    def recovery(self) -> RecoveryAction:
        return _RECOVERY[self.status]

    @property
    def spent_correlative(self) -> str | None:
        """Canonical string of the spent correlative, for operator display."""
        if not self.correlative_spent:
            return None
        return str(self.correlative)
