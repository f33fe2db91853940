"""Tests that model columns take their types from the shared aliases in db/types.py."""

import pytest
from sqlalchemy import BigInteger, Numeric, String

from receipt_kernel.models import IncomeEntry, Member, SequenceCounter, StoredArtifact


def _column(model, name):
    return model.__table__.c[name]


@pytest.mark.parametrize(
    "model,name,length",
    [
        (IncomeEntry, "receipt_number", 32),
        (StoredArtifact, "key", 32),
        (IncomeEntry, "member_document", 8),
        (Member, "document_number", 8),
        (IncomeEntry, "payload_hash", 64),
        (StoredArtifact, "sha256", 64),
    ],
)
def test_string_aliases(model, name, length):
    column = _column(model, name)
    assert isinstance(column.type, String)
    assert column.type.length == length
    assert not column.nullable


def test_money_column_has_two_places():
    column_type = _column(IncomeEntry, "amount").type
    assert isinstance(column_type, Numeric)
    assert (column_type.precision, column_type.scale) == (14, 2)


def test_counter_and_operation_number_are_bigint():
    assert isinstance(_column(SequenceCounter, "current_value").type, BigInteger)
    operation_number = _column(IncomeEntry, "operation_number")
    assert isinstance(operation_number.type, BigInteger)
    assert operation_number.nullable
