"""
FilesystemArtifactStore -- receipt documents as files on disk.

Responsibility:
    Alternative ArtifactStore that keeps each receipt at
    ``<root>/<correlative>.pdf`` with a ``<correlative>.json`` sidecar
    holding the member link and content hash.

Architecture position:
    Services -- concrete ArtifactStore selected by ``storage.backend:
    filesystem``.

Invariants enforced:
    - No overwrite: the document is published with ``os.link`` from a
      temporary file, which fails if the target exists, so two writers
      can never replace each other's bytes.
    - Idempotent put: identical bytes under an existing key return the
      existing handle.
    - Different bytes under an existing key raise ArtifactConflictError.

Failure modes:
    - ArtifactStoreError wraps any OSError raised while writing.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from uuid import UUID

from receipt_kernel.domain.dtos import ArtifactHandle
from receipt_kernel.exceptions import ArtifactConflictError, ArtifactStoreError
from receipt_kernel.logging_config import get_logger
from receipt_kernel.services.artifact_store import PDF_CONTENT_TYPE
from receipt_kernel.utils.hashing import hash_content

logger = get_logger("services.filesystem_store")


class FilesystemArtifactStore:
    """Artifact store rooted at a directory."""

    def __init__(self, root: Path | str, content_type: str = PDF_CONTENT_TYPE):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._content_type = content_type

    @property
    def root(self) -> Path:
        return self._root

    def put(self, key: str, content: bytes, link_target: UUID) -> ArtifactHandle:
        if not content:
            raise ArtifactStoreError(key, "refusing to store empty content")

        sha256 = hash_content(content)
        target = self._document_path(key)

        try:
            created = self._publish(target, content)
            if not created:
                existing_sha = hash_content(target.read_bytes())
                if existing_sha != sha256:
                    logger.error(
                        "artifact_conflict",
                        extra={
                            "key": key,
                            "existing_sha256": existing_sha,
                            "received_sha256": sha256,
                        },
                    )
                    raise ArtifactConflictError(key, existing_sha, sha256)
            self._write_metadata(key, sha256, len(content), link_target)
        except OSError as exc:
            logger.error("artifact_store_failed", extra={"key": key, "error": type(exc).__name__})
            raise ArtifactStoreError(key, f"{type(exc).__name__}: {exc}") from exc

        logger.info(
            "artifact_stored" if created else "artifact_already_stored",
            extra={"key": key, "sha256": sha256, "path": str(target)},
        )
        return ArtifactHandle(
            key=key,
            uri=target.resolve().as_uri(),
            sha256=sha256,
            size=len(content),
            content_type=self._content_type,
        )

    def get(self, key: str) -> bytes | None:
        path = self._document_path(key)
        return path.read_bytes() if path.exists() else None

    def metadata(self, key: str) -> dict | None:
        """Sidecar contents for ``key``, or None."""
        path = self._metadata_path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def list_keys(self) -> list[str]:
        return sorted(p.stem for p in self._root.glob("*.pdf") if not p.name.startswith("."))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _document_path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ArtifactStoreError(key, "key is not a safe file name")
        return self._root / f"{key}.pdf"

    def _metadata_path(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def _publish(self, target: Path, content: bytes) -> bool:
        """Write ``content`` to ``target`` unless it exists. True if written."""
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-", suffix=".pdf")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.link(tmp_name, target)
            except FileExistsError:
                return False
            return True
        finally:
            os.unlink(tmp_name)

    def _write_metadata(self, key: str, sha256: str, size: int, link_target: UUID) -> None:
        payload = {
            "key": key,
            "filename": f"{key}.pdf",
            "content_type": self._content_type,
            "sha256": sha256,
            "size": size,
            "member_id": str(link_target),
        }
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-", suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, sort_keys=True)
        os.replace(tmp_name, self._metadata_path(key))
