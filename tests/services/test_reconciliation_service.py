"""Tests for ReconciliationService gap and orphan detection."""

from uuid import uuid4

from receipt_kernel.domain.correlative import Correlative
from receipt_kernel.domain.dtos import LedgerEntry
from receipt_kernel.domain.outcomes import IssuanceStatus
from receipt_kernel.exceptions import ArtifactStoreError, LedgerWriteError
from receipt_services.reconciliation_service import ReconciliationService


def _service(sequencer, artifact_store, ledger, start_after=0):
    return ReconciliationService(
        sequencer,
        artifact_keys=artifact_store.list_keys,
        ledger_keys=ledger.list_receipt_numbers,
        start_after=start_after,
    )


def test_empty_series_is_clean(sequencer, artifact_store, ledger):
    report = _service(sequencer, artifact_store, ledger).scan()
    assert report.last_allocated == 0
    assert report.is_clean


def test_issued_receipts_are_clean(orchestrator, sequencer, artifact_store, ledger, member, make_request):
    for _ in range(3):
        assert orchestrator.issue(make_request()).is_success
    report = _service(sequencer, artifact_store, ledger).scan()
    assert report.last_allocated == 3
    assert report.is_clean


def test_failed_steps_are_reported(
    orchestrator, renderer, flaky_artifact_store, flaky_ledger, sequencer, artifact_store, ledger,
    member, make_request, captured_logs,
):
    renderer.error = RuntimeError("font missing")
    assert orchestrator.issue(make_request()).status == IssuanceStatus.RENDER_FAILED
    renderer.error = None

    flaky_artifact_store.fail_next(ArtifactStoreError("R-00002", "disk full"))
    assert orchestrator.issue(make_request()).status == IssuanceStatus.ARTIFACT_STORE_FAILED

    flaky_ledger.fail_next(LedgerWriteError("R-00003", "offline"))
    pending = orchestrator.issue(make_request())
    assert pending.status == IssuanceStatus.LEDGER_WRITE_FAILED

    assert orchestrator.issue(make_request()).is_success

    report = _service(sequencer, artifact_store, ledger).scan()
    assert report.last_allocated == 4
    assert report.skipped == ("R-00001", "R-00002")
    assert report.artifacts_without_ledger == ("R-00003",)
    assert report.ledger_without_artifact == ()
    assert not report.is_clean

    record = next(r for r in captured_logs() if r["message"] == "reconciliation_completed")
    assert record["level"] == "WARNING"
    assert record["skipped_count"] == 2

    # Resuming the ledger step clears the half-finished receipt
    assert orchestrator.retry_ledger(pending).is_success
    report = _service(sequencer, artifact_store, ledger).scan()
    assert report.artifacts_without_ledger == ()
    assert report.skipped == ("R-00001", "R-00002")


def test_ledger_without_artifact(sequencer, artifact_store, ledger, member, make_request):
    sequencer.allocate()
    ledger.append(LedgerEntry.for_receipt(Correlative(1), make_request(), member))
    report = _service(sequencer, artifact_store, ledger).scan()
    assert report.ledger_without_artifact == ("R-00001",)
    assert report.skipped == ()


def test_unexpected_keys(sequencer, artifact_store, ledger):
    sequencer.allocate()
    artifact_store.put("R-00001", b"%PDF a", uuid4())
    artifact_store.put("R-00009", b"%PDF b", uuid4())
    artifact_store.put("misc", b"%PDF c", uuid4())

    report = _service(sequencer, artifact_store, ledger).scan()
    assert report.unexpected_keys == ("R-00009", "misc")


def test_numbers_before_start_are_not_gaps(sequencer, artifact_store, ledger):
    sequencer.initialize(last_issued=10)
    assert _service(sequencer, artifact_store, ledger, start_after=10).scan().is_clean
    assert _service(sequencer, artifact_store, ledger).scan().skipped[0] == "R-00001"
