"""
Module: receipt_kernel.db.types
Responsibility: Annotated type aliases for receipt columns, so every model
    uses identical type definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/
    and services/.  MUST NOT import from any of those layers.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Receipt amount: 12 integer digits, 2 decimal places
Money = Annotated[Decimal, Numeric(14, 2)]

# Monotonic counter value
Sequence = Annotated[int, BigInteger]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

# Canonical correlative string (e.g. "R-00042")
ReceiptNumber = Annotated[str, String(32)]

# National identity document number (DNI, 8 digits)
DocumentNumber = Annotated[str, String(8)]
