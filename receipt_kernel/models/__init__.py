"""ORM models for the receipt kernel."""

from receipt_kernel.models.artifact import StoredArtifact
from receipt_kernel.models.income_entry import IncomeEntry
from receipt_kernel.models.member import Member
from receipt_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "IncomeEntry",
    "Member",
    "SequenceCounter",
    "StoredArtifact",
]
