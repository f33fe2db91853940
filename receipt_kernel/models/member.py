"""
Module: receipt_kernel.models.member
Responsibility: ORM persistence for organization members ("socios") that
    receipts are issued to.  The member directory resolves a national
    identity document number (DNI) to one of these rows.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - document_number is unique (uq_member_document_number).
    - Members are looked up, never created or mutated, by the issuance
      workflow.  Rows are maintained by the membership registry.

Failure modes:
    - IntegrityError on duplicate document_number.
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receipt_kernel.db.base import TrackedBase
from receipt_kernel.db.types import DocumentNumber


class Member(TrackedBase):
    """
    A member of the organization.

    Only active primary holders ("socio titular") can be issued receipts;
    dependants share the holder's document but are not directory results.
    """

    __tablename__ = "members"

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_member_document_number"),
        Index("idx_member_active", "is_active"),
    )

    # National identity document (DNI), 8 digits
    document_number: Mapped[DocumentNumber] = mapped_column(nullable=False)

    # Full legal name ("razon social")
    legal_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    is_primary_holder: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Member {self.document_number}: {self.legal_name}>"
