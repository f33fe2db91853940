"""
Collaborator contracts consumed by the IssuanceOrchestrator.

Each external system is a ``typing.Protocol`` so the orchestrator is
constructed with capabilities, never with concrete stores.  Every call is
a potential suspension point and may fail.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from receipt_kernel.domain.correlative import Correlative
from receipt_kernel.domain.dtos import (
    AppendResult,
    ArtifactHandle,
    LedgerEntry,
    MemberInfo,
    ReceiptData,
)


class ClientDirectory(Protocol):
    """Read-only member lookup. May be retried freely."""

    def lookup(self, document_number: str) -> MemberInfo | None:
        """Return the member for ``document_number`` or None when not found."""
        ...


class Sequencer(Protocol):
    """Owner of the correlative counter."""

    def peek(self) -> Correlative:
        """Value the next allocate() would return. Display only."""
        ...

    def allocate(self) -> Correlative:
        """Atomically spend and return the next correlative."""
        ...


class ReceiptRenderer(Protocol):
    """Pure function from receipt data to document bytes."""

    def render(self, data: ReceiptData) -> bytes:
        ...


class ArtifactStore(Protocol):
    """Durable content store keyed by canonical correlative."""

    def put(self, key: str, content: bytes, link_target: UUID) -> ArtifactHandle:
        """Store ``content`` under ``key``; idempotent for identical bytes."""
        ...


class LedgerRecorder(Protocol):
    """Income ledger keyed by receipt number."""

    def append(self, entry: LedgerEntry) -> AppendResult:
        """Append ``entry``; ALREADY_EXISTS when the same entry is present."""
        ...
