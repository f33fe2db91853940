"""
Module: receipt_kernel.models.sequence_counter
Responsibility: The durable counter record behind correlative allocation.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per named sequence (unique name).
    - current_value is written ONLY by CorrelativeSequencer.allocate() via a
      single atomic UPDATE; no other code path read-modify-writes it.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from receipt_kernel.db.base import Base
from receipt_kernel.db.types import Sequence


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with the last value handed out
    (0 when nothing has been allocated yet).
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "receipt")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    # Last allocated value
    current_value: Mapped[Sequence] = mapped_column(nullable=False, default=0)
