"""Tests for the issuance DI container."""

from dataclasses import replace

import pytest

from receipt_config import get_active_config
from receipt_config.schema import CorrelativeConfig, StorageConfig
from receipt_kernel.services.artifact_store import SqlArtifactStore
from receipt_services.filesystem_store import FilesystemArtifactStore
from receipt_services.receipt_renderer import ReceiptPdfRenderer
from receipt_services.wiring import build_issuance_orchestrator, build_issuance_services


@pytest.fixture
def config():
    return get_active_config()


def test_default_wiring(config, session_factory, deterministic_clock, member, make_request):
    services = build_issuance_services(config, session_factory, deterministic_clock)
    try:
        assert isinstance(services.artifact_store, SqlArtifactStore)
        assert isinstance(services.renderer, ReceiptPdfRenderer)
        assert services.engine is session_factory.kw["bind"]

        outcome = services.orchestrator.issue(make_request())
        assert outcome.is_success
        assert services.artifact_store.get(outcome.spent_correlative).startswith(b"%PDF-")
        assert services.reconciliation.scan().is_clean
    finally:
        services.close()


def test_filesystem_backend(config, session_factory, tmp_path):
    config = replace(config, storage=StorageConfig(backend="filesystem", directory=tmp_path / "pdf"))
    services = build_issuance_services(config, session_factory)
    try:
        assert isinstance(services.artifact_store, FilesystemArtifactStore)
        assert services.artifact_store.root == tmp_path / "pdf"
    finally:
        services.close()


def test_correlative_settings_reach_sequencer(config, session_factory):
    config = replace(config, correlative=CorrelativeConfig(sequence_name="rec", prefix="REC-", width=6))
    orchestrator = build_issuance_orchestrator(config, session_factory)
    try:
        assert str(orchestrator.peek_next_correlative().correlative) == "REC-000001"
    finally:
        orchestrator.close()
