"""ReceiptRequest validation -- pure functions, run before any allocation."""

from datetime import date
from decimal import Decimal
from typing import Any

from receipt_kernel.domain.dtos import (
    PaymentMethod,
    ReceiptRequest,
    ValidationError,
    ValidationResult,
)
from receipt_kernel.logging_config import get_logger

logger = get_logger("domain.validation")

DOCUMENT_NUMBER_LENGTH = 8

# Largest amount that fits Numeric(14, 2)
MAX_AMOUNT = Decimal("999999999999.99")

# Largest operation number that fits the BigInteger ledger column
MAX_OPERATION_NUMBER = 2**63 - 1


def validate_request(request: ReceiptRequest) -> ValidationResult:
    """Validate a receipt request at the issuance boundary."""
    errors: list[ValidationError] = []

    errors.extend(validate_document_number(request.document_number))
    errors.extend(validate_issue_date(request.issue_date))
    errors.extend(validate_amount(request.amount))
    errors.extend(validate_concept(request.concept))
    errors.extend(
        validate_operation_reference(request.payment_method, request.operation_reference)
    )

    if request.member is not None and request.member.document_number != request.document_number:
        errors.append(
            ValidationError(
                code="MEMBER_DOCUMENT_MISMATCH",
                message="Selected member does not match the document number",
                field="member",
            )
        )

    if errors:
        logger.warning(
            "request_validation_failed",
            extra={
                "error_count": len(errors),
                "error_codes": [e.code for e in errors],
            },
        )
        return ValidationResult.failure(*errors)

    return ValidationResult.success()


def validate_document_number(document_number: Any) -> list[ValidationError]:
    """A DNI is exactly eight ASCII digits."""
    if (
        not isinstance(document_number, str)
        or len(document_number) != DOCUMENT_NUMBER_LENGTH
        or not document_number.isascii()
        or not document_number.isdigit()
    ):
        return [
            ValidationError(
                code="INVALID_DOCUMENT_NUMBER",
                message=f"Document number must be {DOCUMENT_NUMBER_LENGTH} digits",
                field="document_number",
            )
        ]
    return []


def validate_issue_date(issue_date: Any) -> list[ValidationError]:
    """Validate the issue date is a calendar date."""
    if not isinstance(issue_date, date):
        return [
            ValidationError(
                code="INVALID_ISSUE_DATE",
                message="Issue date must be a calendar date",
                field="issue_date",
            )
        ]
    return []


def validate_amount(amount: Any, field_name: str = "amount") -> list[ValidationError]:
    """Amount must be a positive Decimal with at most two fractional digits."""
    if amount is None:
        return [
            ValidationError(
                code="MISSING_AMOUNT",
                message=f"{field_name} is required",
                field=field_name,
            )
        ]

    if not isinstance(amount, Decimal) or not amount.is_finite():
        return [
            ValidationError(
                code="INVALID_AMOUNT",
                message=f"{field_name} must be a finite Decimal",
                field=field_name,
            )
        ]

    errors = []

    if amount <= 0:
        errors.append(
            ValidationError(
                code="NON_POSITIVE_AMOUNT",
                message=f"{field_name} must be greater than zero",
                field=field_name,
            )
        )
    elif amount > MAX_AMOUNT:
        errors.append(
            ValidationError(
                code="AMOUNT_TOO_LARGE",
                message=f"{field_name} exceeds {MAX_AMOUNT}",
                field=field_name,
            )
        )
    elif amount != amount.quantize(Decimal("0.01")):
        errors.append(
            ValidationError(
                code="AMOUNT_PRECISION",
                message=f"{field_name} must have at most two decimal places",
                field=field_name,
            )
        )

    return errors


def validate_concept(concept: Any) -> list[ValidationError]:
    """The payment concept is required."""
    if not isinstance(concept, str) or not concept.strip():
        return [
            ValidationError(
                code="MISSING_CONCEPT",
                message="Concept is required",
                field="concept",
            )
        ]
    return []


def validate_operation_reference(
    payment_method: Any,
    operation_reference: Any,
) -> list[ValidationError]:
    """
    Bank transfers need the voucher's numeric operation number.

    Other methods ignore the reference entirely.
    """
    if not isinstance(payment_method, PaymentMethod):
        return [
            ValidationError(
                code="INVALID_PAYMENT_METHOD",
                message="Unknown payment method",
                field="payment_method",
            )
        ]

    if not payment_method.requires_operation_reference:
        return []

    reference = operation_reference.strip() if isinstance(operation_reference, str) else ""
    if not reference:
        return [
            ValidationError(
                code="MISSING_OPERATION_REFERENCE",
                message=f"Operation number is required for {payment_method.value}",
                field="operation_reference",
            )
        ]
    if not reference.isascii() or not reference.isdigit():
        return [
            ValidationError(
                code="INVALID_OPERATION_REFERENCE",
                message="Operation number must be numeric",
                field="operation_reference",
            )
        ]
    significant = reference.lstrip("0") or "0"
    if (
        len(significant) > len(str(MAX_OPERATION_NUMBER))
        or int(significant) > MAX_OPERATION_NUMBER
    ):
        return [
            ValidationError(
                code="INVALID_OPERATION_REFERENCE",
                message=f"Operation number must not exceed {MAX_OPERATION_NUMBER}",
                field="operation_reference",
            )
        ]
    return []
