"""
Data Transfer Objects for the receipt issuance workflow.

Responsibility:
    Immutable value objects that flow between the presentation boundary,
    the orchestrator and the external collaborators.  No ORM objects cross
    these boundaries; stores convert their rows into these DTOs.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - LedgerEntry.payload() is deterministic, so the same entry always
      hashes to the same fingerprint (idempotent append detection).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from receipt_kernel.domain.correlative import Correlative


class PaymentMethod(str, Enum):
    """
    How a receipt was paid.

    BBVA_EMPRESA is the company bank account; transfers into it are
    identified by the bank voucher's operation number.
    """

    BBVA_EMPRESA = "BBVA Empresa"
    CASH = "Efectivo"
    CUENTA_FIDEL = "Cuenta Fidel"

    @property
    def requires_operation_reference(self) -> bool:
        return self is PaymentMethod.BBVA_EMPRESA


class TransactionType(str, Enum):
    """Income ledger transaction types produced by this kernel."""

    RECEIPT_OF_PAYMENT = "Recibo de Pago"


class AppendResult(str, Enum):
    """Result status of a ledger append."""

    RECORDED = "recorded"
    ALREADY_EXISTS = "already_exists"  # Idempotent success


@dataclass(frozen=True)
class MemberInfo:
    """
    Immutable DTO for a directory member.

    Owned by the client directory; the orchestrator only reads it.
    """

    id: UUID
    document_number: str
    legal_name: str


@dataclass(frozen=True)
class ReceiptRequest:
    """
    One receipt submission.

    ``member`` is the record an operator resolved earlier (e.g. from a
    search); it is advisory.  The orchestrator re-resolves
    ``document_number`` at commit time and rejects the request if the
    directory now returns a different member.
    """

    document_number: str
    issue_date: date
    amount: Decimal
    concept: str
    payment_method: PaymentMethod
    operation_reference: str = ""
    member: MemberInfo | None = None

    @property
    def operation_number(self) -> int | None:
        """Numeric operation reference, or None when the method needs none."""
        if not self.payment_method.requires_operation_reference:
            return None
        reference = self.operation_reference.strip()
        if not reference.isdigit():
            return None
        return int(reference.lstrip("0") or "0")


@dataclass(frozen=True)
class ReceiptData:
    """
    Everything the renderer needs to produce one receipt document.

    Deterministic input: identical ReceiptData must render identical bytes.
    """

    correlative: Correlative
    issue_date: date
    amount: Decimal
    concept: str
    payment_method: PaymentMethod
    operation_reference: str
    member_name: str
    member_document: str

    @classmethod
    def build(
        cls,
        correlative: Correlative,
        request: ReceiptRequest,
        member: MemberInfo,
    ) -> ReceiptData:
        return cls(
            correlative=correlative,
            issue_date=request.issue_date,
            amount=request.amount,
            concept=request.concept.strip(),
            payment_method=request.payment_method,
            operation_reference=(
                request.operation_reference.strip()
                if request.payment_method.requires_operation_reference
                else ""
            ),
            member_name=member.legal_name,
            member_document=member.document_number,
        )


@dataclass(frozen=True)
class ArtifactHandle:
    """Opaque reference to a stored receipt document."""

    key: str
    uri: str
    sha256: str
    size: int
    content_type: str = "application/pdf"

    @property
    def filename(self) -> str:
        return f"{self.key}.pdf"


@dataclass(frozen=True)
class LedgerEntry:
    """
    Income record for one receipt, keyed by ``receipt_number``.

    Contract:
        Two LedgerEntry values with the same receipt_number must carry the
        same payload; otherwise the second append is a conflict.
    """

    receipt_number: str
    member_document: str
    member_name: str
    amount: Decimal
    account: PaymentMethod
    entry_date: date
    transaction_type: TransactionType = TransactionType.RECEIPT_OF_PAYMENT
    operation_number: int | None = None

    @classmethod
    def for_receipt(
        cls,
        correlative: Correlative,
        request: ReceiptRequest,
        member: MemberInfo,
    ) -> LedgerEntry:
        return cls(
            receipt_number=str(correlative),
            member_document=member.document_number,
            member_name=member.legal_name,
            amount=request.amount,
            account=request.payment_method,
            entry_date=request.issue_date,
            operation_number=request.operation_number,
        )

    def payload(self) -> dict[str, Any]:
        """Canonical field mapping used for hashing and persistence."""
        return {
            "receipt_number": self.receipt_number,
            "member_document": self.member_document,
            "member_name": self.member_name,
            "amount": self.amount,
            "account": self.account.value,
            "entry_date": self.entry_date,
            "transaction_type": self.transaction_type.value,
            "operation_number": self.operation_number,
        }


@dataclass(frozen=True)
class IssuedReceipt:
    """
    A receipt whose artifact and ledger entry both exist.

    Produced exactly once per successful saga run.
    """

    correlative: Correlative
    request: ReceiptRequest
    member: MemberInfo
    artifact_handle: ArtifactHandle
    ledger_entry: LedgerEntry
    created_at: datetime


@dataclass(frozen=True)
class CorrelativePreview:
    """
    Display-only preview of the next correlative.

    NOT a reservation: the number actually issued is allocated at commit
    time and may differ if another receipt is issued first.
    """

    correlative: Correlative
    binding: bool = False

    @property
    def label(self) -> str:
        return f"{self.correlative} (provisional)"


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Carries a machine-readable code, a human-readable message and the
    offending field.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Aggregates zero or more ValidationErrors.

    bool(result) == result.is_valid for convenience.
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    @property
    def message(self) -> str:
        return "; ".join(e.message for e in self.errors)

    def __bool__(self) -> bool:
        return self.is_valid
