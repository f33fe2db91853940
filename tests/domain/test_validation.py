"""Tests for receipt request validation (pure, runs before allocation)."""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from receipt_kernel.domain.dtos import MemberInfo, PaymentMethod
from receipt_kernel.domain.validation import (
    MAX_AMOUNT,
    MAX_OPERATION_NUMBER,
    validate_amount,
    validate_document_number,
    validate_request,
)


def _codes(result) -> set[str]:
    return {e.code for e in result.errors}


class TestValidRequests:
    def test_default_request_is_valid(self, make_request):
        result = validate_request(make_request())
        assert result.is_valid
        assert bool(result)

    def test_bank_transfer_with_numeric_reference(self, make_request):
        request = make_request(
            payment_method=PaymentMethod.BBVA_EMPRESA,
            operation_reference="004512",
        )
        assert validate_request(request).is_valid
        assert request.operation_number == 4512

    @pytest.mark.parametrize("method", [PaymentMethod.CASH, PaymentMethod.CUENTA_FIDEL])
    def test_reference_ignored_when_not_required(self, make_request, method):
        request = make_request(payment_method=method, operation_reference="abc")
        assert validate_request(request).is_valid
        assert request.operation_number is None

    @given(st.decimals(min_value=Decimal("0.01"), max_value=MAX_AMOUNT, places=2))
    def test_any_positive_two_place_amount_is_valid(self, amount):
        assert validate_amount(amount) == []


class TestDocumentNumber:
    @pytest.mark.parametrize(
        "value",
        ["1234567", "123456789", "1234567a", "", None, 12345678, "１２３４５６７８"],
    )
    def test_rejects_anything_but_eight_ascii_digits(self, value):
        errors = validate_document_number(value)
        assert [e.code for e in errors] == ["INVALID_DOCUMENT_NUMBER"]

    def test_accepts_leading_zeros(self):
        assert validate_document_number("00012345") == []


class TestAmount:
    @pytest.mark.parametrize(
        "amount,code",
        [
            (Decimal("0"), "NON_POSITIVE_AMOUNT"),
            (Decimal("-10.00"), "NON_POSITIVE_AMOUNT"),
            (Decimal("-1E+30"), "NON_POSITIVE_AMOUNT"),
            (Decimal("-0.001"), "NON_POSITIVE_AMOUNT"),
            (Decimal("10.005"), "AMOUNT_PRECISION"),
            (MAX_AMOUNT + Decimal("0.01"), "AMOUNT_TOO_LARGE"),
            (Decimal("1E+40"), "AMOUNT_TOO_LARGE"),
            (Decimal("NaN"), "INVALID_AMOUNT"),
            (Decimal("Infinity"), "INVALID_AMOUNT"),
            (250.0, "INVALID_AMOUNT"),
            (None, "MISSING_AMOUNT"),
        ],
    )
    def test_rejected_amounts(self, amount, code):
        assert code in {e.code for e in validate_amount(amount)}

    def test_trailing_zero_precision_is_fine(self):
        assert validate_amount(Decimal("250.000")) == []

    @given(st.decimals(allow_nan=False, allow_infinity=False, max_value=Decimal("0")))
    def test_non_positive_amounts_only_report_sign(self, amount):
        assert [e.code for e in validate_amount(amount)] == ["NON_POSITIVE_AMOUNT"]


class TestRequestLevel:
    def test_missing_concept(self, make_request):
        result = validate_request(make_request(concept="   "))
        assert _codes(result) == {"MISSING_CONCEPT"}

    def test_bank_transfer_requires_reference(self, make_request):
        result = validate_request(
            make_request(payment_method=PaymentMethod.BBVA_EMPRESA, operation_reference="")
        )
        assert _codes(result) == {"MISSING_OPERATION_REFERENCE"}

    def test_bank_reference_must_be_numeric(self, make_request):
        result = validate_request(
            make_request(payment_method=PaymentMethod.BBVA_EMPRESA, operation_reference="OP-12")
        )
        assert _codes(result) == {"INVALID_OPERATION_REFERENCE"}

    @pytest.mark.parametrize("reference", ["1" * 25, str(MAX_OPERATION_NUMBER + 1), "9" * 5000])
    def test_bank_reference_must_fit_ledger_column(self, make_request, reference):
        result = validate_request(
            make_request(payment_method=PaymentMethod.BBVA_EMPRESA, operation_reference=reference)
        )
        assert _codes(result) == {"INVALID_OPERATION_REFERENCE"}

    def test_bank_reference_leading_zeros_do_not_count(self, make_request):
        request = make_request(
            payment_method=PaymentMethod.BBVA_EMPRESA,
            operation_reference="0" * 5000 + str(MAX_OPERATION_NUMBER),
        )
        assert validate_request(request).is_valid
        assert request.operation_number == MAX_OPERATION_NUMBER

    def test_unknown_payment_method(self, make_request):
        result = validate_request(make_request(payment_method="Yape"))
        assert _codes(result) == {"INVALID_PAYMENT_METHOD"}

    def test_non_date_issue_date(self, make_request):
        result = validate_request(make_request(issue_date="2024-03-15"))
        assert _codes(result) == {"INVALID_ISSUE_DATE"}

    def test_selected_member_must_match_document(self, make_request):
        other = MemberInfo(id=uuid4(), document_number="87654321", legal_name="Otro Socio")
        result = validate_request(make_request(member=other))
        assert _codes(result) == {"MEMBER_DOCUMENT_MISMATCH"}

    def test_errors_are_aggregated(self, make_request):
        result = validate_request(
            make_request(document_number="123", amount=Decimal("0"), concept="")
        )
        assert _codes(result) == {
            "INVALID_DOCUMENT_NUMBER",
            "NON_POSITIVE_AMOUNT",
            "MISSING_CONCEPT",
        }
        assert not result
        assert "; " in result.message

    def test_failure_is_logged(self, make_request, captured_logs):
        validate_request(make_request(concept=""))
        records = [r for r in captured_logs() if r["message"] == "request_validation_failed"]
        assert records and records[0]["error_codes"] == ["MISSING_CONCEPT"]
