"""
Kernel services.

SQL-backed collaborators (sequencer, member directory, artifact store,
income ledger) and the issuance saga that coordinates them.  Each store
owns its own short transactions; the orchestrator owns none.
"""

from receipt_kernel.services.artifact_store import SqlArtifactStore
from receipt_kernel.services.base import BaseStoreService
from receipt_kernel.services.client_directory import SqlClientDirectory
from receipt_kernel.services.income_ledger import IncomeLedger
from receipt_kernel.services.issuance_orchestrator import IssuanceOrchestrator
from receipt_kernel.services.sequence_service import CorrelativeSequencer

__all__ = [
    "BaseStoreService",
    "CorrelativeSequencer",
    "IncomeLedger",
    "IssuanceOrchestrator",
    "SqlArtifactStore",
    "SqlClientDirectory",
]
