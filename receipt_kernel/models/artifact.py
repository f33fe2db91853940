"""
Module: receipt_kernel.models.artifact
Responsibility: ORM persistence for rendered receipt documents, stored under
    the canonical correlative and linked to the member they were issued to.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - key is unique (uq_receipt_artifact_key): at most one artifact per
      correlative.  Puts are idempotent for identical bytes; stored content
      is never overwritten.
    - sha256 is computed from content at write time and used to detect a
      conflicting re-put.

Failure modes:
    - IntegrityError on concurrent insert of the same key (resolved by the
      store re-reading the winner).
"""

from uuid import UUID

from sqlalchemy import Index, Integer, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receipt_kernel.db.base import TrackedBase, UUIDString
from receipt_kernel.db.types import PayloadHash, ReceiptNumber


class StoredArtifact(TrackedBase):
    """A rendered receipt document and its link to a member."""

    __tablename__ = "receipt_artifacts"

    __table_args__ = (
        UniqueConstraint("key", name="uq_receipt_artifact_key"),
        Index("idx_receipt_artifact_member", "member_id"),
    )

    # Canonical correlative, e.g. "R-00042"
    key: Mapped[ReceiptNumber] = mapped_column(nullable=False)

    # Download name, e.g. "R-00042.pdf"
    filename: Mapped[str] = mapped_column(String(64), nullable=False)

    content_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="application/pdf",
    )

    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    sha256: Mapped[PayloadHash] = mapped_column(nullable=False)

    size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Member the document belongs to
    member_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<StoredArtifact {self.key} ({self.size} bytes)>"
