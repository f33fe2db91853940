"""
Module: receipt_kernel.models.income_entry
Responsibility: ORM persistence for income ledger rows ("ingresos")
    recorded for each issued receipt.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - receipt_number is unique (uq_income_receipt_number): one ledger row
      per correlative, so a retried append can never duplicate income.
    - payload_hash fingerprints the recorded fields; a re-append with the
      same receipt_number but a different payload is rejected.
"""

from datetime import date

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receipt_kernel.db.base import TrackedBase
from receipt_kernel.db.types import DocumentNumber, Money, PayloadHash, ReceiptNumber


class IncomeEntry(TrackedBase):
    """One income record per issued receipt."""

    __tablename__ = "income_entries"

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_income_receipt_number"),
        Index("idx_income_document", "member_document"),
        Index("idx_income_date", "entry_date"),
    )

    receipt_number: Mapped[ReceiptNumber] = mapped_column(nullable=False)

    member_document: Mapped[DocumentNumber] = mapped_column(nullable=False)

    member_name: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[Money] = mapped_column(nullable=False)

    # Payment method the money came in through
    account: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    transaction_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Bank voucher number, only for bank transfers that require one
    operation_number: Mapped[int | None] = mapped_column(nullable=True)

    payload_hash: Mapped[PayloadHash] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<IncomeEntry {self.receipt_number}: {self.amount} via {self.account}>"
