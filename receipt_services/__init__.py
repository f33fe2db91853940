"""
receipt_services -- concrete collaborators and wiring.

PDF rendering, the filesystem artifact store, reconciliation reporting,
and the container that assembles the kernel services from configuration.
"""

from receipt_services.filesystem_store import FilesystemArtifactStore
from receipt_services.receipt_renderer import ReceiptPdfRenderer
from receipt_services.reconciliation_service import ReconciliationReport, ReconciliationService
from receipt_services.wiring import (
    IssuanceServices,
    build_issuance_orchestrator,
    build_issuance_services,
)

__all__ = [
    "FilesystemArtifactStore",
    "IssuanceServices",
    "ReceiptPdfRenderer",
    "ReconciliationReport",
    "ReconciliationService",
    "build_issuance_orchestrator",
    "build_issuance_services",
]
