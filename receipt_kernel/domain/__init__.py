"""
Pure domain layer.

Data transfer objects, the correlative value type, request validation and
issuance outcomes, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from receipt_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from receipt_kernel.domain.correlative import Correlative, CorrelativeFormat
from receipt_kernel.domain.dtos import (
    AppendResult,
    ArtifactHandle,
    CorrelativePreview,
    IssuedReceipt,
    LedgerEntry,
    MemberInfo,
    PaymentMethod,
    ReceiptData,
    ReceiptRequest,
    TransactionType,
    ValidationError,
    ValidationResult,
)
from receipt_kernel.domain.outcomes import IssuanceOutcome, IssuanceStatus, RecoveryAction
from receipt_kernel.domain.validation import validate_request

__all__ = [
    "AppendResult",
    "ArtifactHandle",
    "Clock",
    "Correlative",
    "CorrelativeFormat",
    "CorrelativePreview",
    "DeterministicClock",
    "IssuanceOutcome",
    "IssuanceStatus",
    "IssuedReceipt",
    "LedgerEntry",
    "MemberInfo",
    "PaymentMethod",
    "ReceiptData",
    "ReceiptRequest",
    "RecoveryAction",
    "SystemClock",
    "TransactionType",
    "ValidationError",
    "ValidationResult",
    "validate_request",
]
