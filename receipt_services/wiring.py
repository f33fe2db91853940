"""
receipt_services.wiring -- DI container for the issuance workflow.

Responsibility:
    Creates every collaborator exactly once from a ReceiptConfig and wires
    them into an IssuanceOrchestrator.  No service constructs another
    service internally.

Architecture position:
    Services -- top of the service layer.  The CLI and tests obtain the
    orchestrator here.

Invariants enforced:
    - Single-instance lifecycle: one sequencer, one artifact store, one
      ledger per container.
    - DI transparency: all wiring is visible in ``IssuanceServices.__init__``.

Usage:
    from receipt_config import get_active_config
    from receipt_services.wiring import build_issuance_services

    services = build_issuance_services(get_active_config())
    outcome = services.orchestrator.issue(request)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from receipt_config.schema import ReceiptConfig
from receipt_kernel.db.engine import get_session_factory, init_engine_from_url
from receipt_kernel.domain.clock import Clock, SystemClock
from receipt_kernel.logging_config import get_logger
from receipt_kernel.services.artifact_store import SqlArtifactStore
from receipt_kernel.services.client_directory import SqlClientDirectory
from receipt_kernel.services.income_ledger import IncomeLedger
from receipt_kernel.services.issuance_orchestrator import IssuanceOrchestrator
from receipt_kernel.services.sequence_service import CorrelativeSequencer
from receipt_services.filesystem_store import FilesystemArtifactStore
from receipt_services.receipt_renderer import ReceiptPdfRenderer
from receipt_services.reconciliation_service import ReconciliationService

logger = get_logger("services.wiring")


class IssuanceServices:
    """Container holding one instance of every issuance collaborator.

    Contract:
        Receives a ReceiptConfig and a session factory (or builds the
        module-level engine from ``config.database``), then exposes the
        collaborators as public attributes.
    """

    def __init__(
        self,
        config: ReceiptConfig,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.clock = clock or SystemClock()

        if session_factory is None:
            db = config.database
            init_engine_from_url(
                db.url,
                echo=db.echo,
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_timeout=db.pool_timeout,
                pool_recycle=db.pool_recycle,
                lock_timeout_seconds=db.lock_timeout_seconds,
            )
            session_factory = get_session_factory()
        self.session_factory = session_factory

        issuance = config.issuance

        self.sequencer = CorrelativeSequencer(
            session_factory,
            sequence_name=config.correlative.sequence_name,
            correlative_format=config.correlative.format,
            max_attempts=issuance.sequencer_attempts,
            backoff_seconds=issuance.backoff_seconds,
        )
        self.directory = SqlClientDirectory(
            session_factory,
            max_attempts=issuance.step_attempts,
            backoff_seconds=issuance.backoff_seconds,
        )
        self.ledger = IncomeLedger(
            session_factory,
            max_attempts=issuance.step_attempts,
            backoff_seconds=issuance.backoff_seconds,
        )

        if config.storage.backend == "filesystem":
            self.artifact_store: SqlArtifactStore | FilesystemArtifactStore = (
                FilesystemArtifactStore(config.storage.directory)
            )
        else:
            self.artifact_store = SqlArtifactStore(
                session_factory,
                max_attempts=issuance.step_attempts,
                backoff_seconds=issuance.backoff_seconds,
            )

        self.renderer = ReceiptPdfRenderer(config.issuer)

        self.orchestrator = IssuanceOrchestrator(
            directory=self.directory,
            sequencer=self.sequencer,
            renderer=self.renderer,
            artifact_store=self.artifact_store,
            ledger=self.ledger,
            clock=self.clock,
            render_timeout_seconds=issuance.render_timeout_seconds,
            step_attempts=issuance.step_attempts,
            backoff_seconds=issuance.backoff_seconds,
            render_workers=issuance.render_workers,
        )

        self.reconciliation = ReconciliationService(
            self.sequencer,
            artifact_keys=self.artifact_store.list_keys,
            ledger_keys=self.ledger.list_receipt_numbers,
            start_after=config.correlative.last_issued,
        )

        logger.info(
            "issuance_services_wired",
            extra={
                "storage_backend": config.storage.backend,
                "sequence_name": config.correlative.sequence_name,
                "config_checksum": config.checksum,
            },
        )

    @property
    def engine(self) -> Engine:
        """Engine the session factory is bound to."""
        return self.session_factory.kw["bind"]

    def close(self) -> None:
        self.orchestrator.close()


def build_issuance_services(
    config: ReceiptConfig,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
) -> IssuanceServices:
    """Build the full collaborator container."""
    return IssuanceServices(config, session_factory=session_factory, clock=clock)


def build_issuance_orchestrator(
    config: ReceiptConfig,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
) -> IssuanceOrchestrator:
    """Build the collaborators and return only the orchestrator."""
    return build_issuance_services(config, session_factory, clock).orchestrator
