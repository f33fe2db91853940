"""
SqlArtifactStore -- durable receipt documents keyed by correlative.

Responsibility:
    Stores the rendered bytes of each receipt under its canonical
    correlative, linked to the member it was issued to, and returns an
    ArtifactHandle the ledger step and the caller can reference.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Consumed by IssuanceOrchestrator through the ArtifactStore protocol.
    ``receipt_services.filesystem_store`` is the on-disk alternative.

Invariants enforced:
    Idempotent put -- a second put of identical bytes under the same key
        returns the existing handle and writes nothing.
    No overwrite -- a put of different bytes under an existing key raises
        ArtifactConflictError; stored content is never replaced.
    One artifact per key -- enforced by uq_receipt_artifact_key; a
        concurrent insert of the same key is resolved by re-reading the
        winner inside a savepoint.

Failure modes:
    - ArtifactConflictError: key exists with a different sha256.
    - ArtifactStoreError: the database could not be written after
      bounded retries, or the content is empty.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from receipt_kernel.domain.dtos import ArtifactHandle
from receipt_kernel.exceptions import ArtifactConflictError, ArtifactStoreError
from receipt_kernel.logging_config import get_logger
from receipt_kernel.models.artifact import StoredArtifact
from receipt_kernel.services.base import BaseStoreService
from receipt_kernel.utils.hashing import hash_content

logger = get_logger("services.artifact_store")

PDF_CONTENT_TYPE = "application/pdf"


class SqlArtifactStore(BaseStoreService):
    """
    Artifact store backed by the ``receipt_artifacts`` table.

    Contract:
        ``put(key, content, link_target)`` either returns a handle whose
        sha256 matches ``content`` or raises.  Never partially writes.
    """

    URI_SCHEME = "artifact://receipts/"

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
        content_type: str = PDF_CONTENT_TYPE,
    ):
        super().__init__(session_factory, max_attempts, backoff_seconds)
        self._content_type = content_type

    def put(self, key: str, content: bytes, link_target: UUID) -> ArtifactHandle:
        """
        Store ``content`` under ``key`` and link it to ``link_target``.

        Raises:
            ArtifactConflictError: If ``key`` already holds other bytes.
            ArtifactStoreError: If the write could not be completed.
        """
        if not content:
            raise ArtifactStoreError(key, "refusing to store empty content")

        sha256 = hash_content(content)

        try:
            handle, created = self._retrying(
                "artifact_store.put",
                lambda: self._put_once(key, content, sha256, link_target),
                logger,
            )
        except SQLAlchemyError as exc:
            logger.error(
                "artifact_store_failed",
                extra={"key": key, "error": type(exc).__name__},
            )
            raise ArtifactStoreError(key, type(exc).__name__) from exc

        logger.info(
            "artifact_stored" if created else "artifact_already_stored",
            extra={
                "key": key,
                "sha256": sha256,
                "size": handle.size,
                "member_id": str(link_target),
            },
        )
        return handle

    def get(self, key: str) -> bytes | None:
        """Stored bytes for ``key``, or None."""
        with self._session_factory() as session:
            return session.execute(
                select(StoredArtifact.content).where(StoredArtifact.key == key)
            ).scalar_one_or_none()

    def handle_for(self, key: str) -> ArtifactHandle | None:
        """Handle of the artifact stored under ``key``, or None."""
        with self._session_factory() as session:
            row = session.execute(
                select(StoredArtifact).where(StoredArtifact.key == key)
            ).scalar_one_or_none()
            return self._to_handle(row) if row is not None else None

    def list_keys(self) -> list[str]:
        """All stored keys, in key order."""
        with self._session_factory() as session:
            return list(
                session.execute(
                    select(StoredArtifact.key).order_by(StoredArtifact.key)
                ).scalars()
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _to_handle(self, row: StoredArtifact) -> ArtifactHandle:
        return ArtifactHandle(
            key=row.key,
            uri=f"{self.URI_SCHEME}{row.filename}",
            sha256=row.sha256,
            size=row.size,
            content_type=row.content_type,
        )

    def _check_existing(self, existing: StoredArtifact, sha256: str) -> ArtifactHandle:
        if existing.sha256 != sha256:
            logger.error(
                "artifact_conflict",
                extra={
                    "key": existing.key,
                    "existing_sha256": existing.sha256,
                    "received_sha256": sha256,
                },
            )
            raise ArtifactConflictError(existing.key, existing.sha256, sha256)
        return self._to_handle(existing)

    def _put_once(
        self,
        key: str,
        content: bytes,
        sha256: str,
        link_target: UUID,
    ) -> tuple[ArtifactHandle, bool]:
        with self._session_factory() as session, session.begin():
            existing = session.execute(
                select(StoredArtifact).where(StoredArtifact.key == key)
            ).scalar_one_or_none()
            if existing is not None:
                return self._check_existing(existing, sha256), False

            row = StoredArtifact(
                key=key,
                filename=f"{key}.pdf",
                content_type=self._content_type,
                content=content,
                sha256=sha256,
                size=len(content),
                member_id=link_target,
            )
            try:
                with session.begin_nested():
                    session.add(row)
                return self._to_handle(row), True
            except IntegrityError:
                # Concurrent put of the same key won the race
                winner = session.execute(
                    select(StoredArtifact).where(StoredArtifact.key == key)
                ).scalar_one()
                return self._check_existing(winner, sha256), False
