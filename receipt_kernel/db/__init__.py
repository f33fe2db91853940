"""Database layer - engine, base classes and column types."""

from receipt_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from receipt_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from receipt_kernel.db.types import DocumentNumber, Money, PayloadHash, ReceiptNumber, Sequence

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Sequence",
    "PayloadHash",
    "ReceiptNumber",
    "DocumentNumber",
]
