"""
Pytest fixtures for the receipt kernel test suite.

Provides:
- A fresh SQLite database file per test (tables created, counter empty)
- Real SQL-backed collaborators (sequencer, directory, artifact store, ledger)
- Scriptable fakes for failure injection around those collaborators
- Structured log capture

Environment Variables:
- RECEIPT_TEST_DATABASE_URL: run the database-backed tests against another
  server (e.g. PostgreSQL).  Tables are dropped and recreated per test.
"""

import json
import logging
import os
import threading
import time
from datetime import UTC, date, datetime
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from receipt_kernel.db.engine import build_engine, create_tables, drop_tables
from receipt_kernel.domain.clock import DeterministicClock
from receipt_kernel.domain.correlative import CorrelativeFormat
from receipt_kernel.domain.dtos import PaymentMethod, ReceiptRequest
from receipt_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from receipt_kernel.services.artifact_store import SqlArtifactStore
from receipt_kernel.services.client_directory import SqlClientDirectory
from receipt_kernel.services.income_ledger import IncomeLedger
from receipt_kernel.services.issuance_orchestrator import IssuanceOrchestrator
from receipt_kernel.services.sequence_service import CorrelativeSequencer

TEST_DOCUMENT = "12345678"
TEST_MEMBER_NAME = "Juana Quispe Mamani"
TEST_ISSUE_DATE = date(2024, 3, 15)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture receipt_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.issue(request)
            logs = captured_logs()
            assert any(r["message"] == "issuance_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("receipt_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    """SQLite file per test unless RECEIPT_TEST_DATABASE_URL is set."""
    return os.environ.get(
        "RECEIPT_TEST_DATABASE_URL",
        f"sqlite:///{tmp_path / 'receipts.db'}",
    )


@pytest.fixture
def engine(database_url):
    """Engine with freshly created tables.

    A file database (not ``:memory:``) so that concurrency tests get one
    connection per thread and real lock contention.
    """
    eng = build_engine(database_url, pool_size=20, max_overflow=20, lock_timeout_seconds=30.0)
    drop_tables(eng)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A plain session for direct row inspection in assertions."""
    with session_factory() as s:
        yield s


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 3, 15, 10, 30, tzinfo=UTC))


@pytest.fixture
def correlative_format():
    return CorrelativeFormat(prefix="R-", width=5)


@pytest.fixture
def make_request():
    """Factory for valid receipt requests; override any field by keyword."""

    def _make(**overrides) -> ReceiptRequest:
        fields = {
            "document_number": TEST_DOCUMENT,
            "issue_date": TEST_ISSUE_DATE,
            "amount": Decimal("250.00"),
            "concept": "Elaboracion de Expediente Tecnico",
            "payment_method": PaymentMethod.CASH,
            "operation_reference": "",
            "member": None,
        }
        fields.update(overrides)
        return ReceiptRequest(**fields)

    return _make


# =============================================================================
# Real collaborators
# =============================================================================


@pytest.fixture
def sequencer(session_factory, correlative_format):
    return CorrelativeSequencer(
        session_factory,
        correlative_format=correlative_format,
        backoff_seconds=0,
    )


@pytest.fixture
def directory(session_factory):
    return SqlClientDirectory(session_factory, backoff_seconds=0)


@pytest.fixture
def artifact_store(session_factory):
    return SqlArtifactStore(session_factory, backoff_seconds=0)


@pytest.fixture
def ledger(session_factory):
    return IncomeLedger(session_factory, backoff_seconds=0)


@pytest.fixture
def member(directory):
    """The active primary holder registered under TEST_DOCUMENT."""
    return directory.register(TEST_DOCUMENT, TEST_MEMBER_NAME)


# =============================================================================
# Fakes for failure injection
# =============================================================================


class FakeRenderer:
    """Deterministic renderer: bytes depend only on the receipt data."""

    def __init__(self):
        self.calls: list = []
        self.error: Exception | None = None
        self.delay_seconds: float = 0.0
        self.release = threading.Event()
        self.release.set()

    def render(self, data) -> bytes:
        self.calls.append(data)
        self.release.wait(timeout=10)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return (
            f"%PDF-fake {data.correlative} {data.member_document} "
            f"{data.amount} {data.payment_method.value}"
        ).encode()


class ScriptedFailures:
    """Raises queued exceptions on successive calls, then delegates."""

    def __init__(self):
        self.failures: list[BaseException] = []
        self.calls = 0

    def fail_next(self, *errors: BaseException) -> None:
        self.failures.extend(errors)

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)


class FlakyDirectory(ScriptedFailures):
    def __init__(self, inner):
        super().__init__()
        self.inner = inner

    def lookup(self, document_number):
        self._maybe_fail()
        return self.inner.lookup(document_number)


class FlakySequencer(ScriptedFailures):
    def __init__(self, inner):
        super().__init__()
        self.inner = inner

    def peek(self):
        return self.inner.peek()

    def allocate(self):
        self._maybe_fail()
        return self.inner.allocate()


class FlakyArtifactStore(ScriptedFailures):
    def __init__(self, inner):
        super().__init__()
        self.inner = inner

    def put(self, key, content, link_target):
        self._maybe_fail()
        return self.inner.put(key, content, link_target)


class FlakyLedger(ScriptedFailures):
    def __init__(self, inner):
        super().__init__()
        self.inner = inner

    def append(self, entry):
        self._maybe_fail()
        return self.inner.append(entry)


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def flaky_directory(directory):
    return FlakyDirectory(directory)


@pytest.fixture
def flaky_sequencer(sequencer):
    return FlakySequencer(sequencer)


@pytest.fixture
def flaky_artifact_store(artifact_store):
    return FlakyArtifactStore(artifact_store)


@pytest.fixture
def flaky_ledger(ledger):
    return FlakyLedger(ledger)


@pytest.fixture
def orchestrator(
    flaky_directory,
    flaky_sequencer,
    renderer,
    flaky_artifact_store,
    flaky_ledger,
    deterministic_clock,
):
    """Orchestrator over real stores, each wrapped for failure injection."""
    orch = IssuanceOrchestrator(
        directory=flaky_directory,
        sequencer=flaky_sequencer,
        renderer=renderer,
        artifact_store=flaky_artifact_store,
        ledger=flaky_ledger,
        clock=deterministic_clock,
        render_timeout_seconds=5.0,
        step_attempts=3,
        backoff_seconds=0,
    )
    yield orch
    orch.close()
