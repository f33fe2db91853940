"""
receipt_services.reconciliation_service -- gap and orphan detection.

Responsibility:
    Compares the correlative counter, the stored artifact keys and the
    income ledger keys, and reports what an operator must account for:
    skipped correlatives, artifacts whose ledger step never completed,
    and ledger rows without a stored document.

Architecture position:
    Services -- read-only reporting over kernel stores.

Invariants enforced:
    - Read-only: never writes to any store.  Resuming a ledger step is an
      explicit operator action (``IssuanceOrchestrator.retry_ledger`` or
      the CLI).

Audit relevance:
    Gaps are legal (failed renders and puts spend numbers) but must be
    explainable.  ``reconciliation_completed`` logs the counts so every
    gap in the receipt series appears in the audit log.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from receipt_kernel.domain.correlative import CorrelativeFormat
from receipt_kernel.exceptions import InvalidCorrelativeError
from receipt_kernel.logging_config import get_logger
from receipt_kernel.services.sequence_service import CorrelativeSequencer

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class ReconciliationReport:
    """Result of one reconciliation scan."""

    last_allocated: int
    # Spent numbers with neither a document nor a ledger row
    skipped: tuple[str, ...] = ()
    # Document stored, ledger step not completed: resume the ledger step
    artifacts_without_ledger: tuple[str, ...] = ()
    # Ledger row recorded without a stored document
    ledger_without_artifact: tuple[str, ...] = ()
    # Keys above the counter or not in canonical form
    unexpected_keys: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return not (
            self.skipped
            or self.artifacts_without_ledger
            or self.ledger_without_artifact
            or self.unexpected_keys
        )


class ReconciliationService:
    """
    Scans the receipt series for gaps and half-finished issuances.

    Contract:
        ``artifact_keys`` and ``ledger_keys`` are callables returning the
        current key lists (``list_keys`` / ``list_receipt_numbers`` of the
        configured stores), so any store implementation can be scanned.
    """

    def __init__(
        self,
        sequencer: CorrelativeSequencer,
        artifact_keys: Callable[[], list[str]],
        ledger_keys: Callable[[], list[str]],
        start_after: int = 0,
    ):
        """
        Args:
            sequencer: Source of the last allocated value and the format.
            artifact_keys: Lists stored artifact keys.
            ledger_keys: Lists recorded receipt numbers.
            start_after: Values up to and including this one predate the
                system (the counter's initial value) and are not expected
                to have documents.
        """
        self._sequencer = sequencer
        self._artifact_keys = artifact_keys
        self._ledger_keys = ledger_keys
        self._start_after = start_after

    def scan(self) -> ReconciliationReport:
        fmt: CorrelativeFormat = self._sequencer.correlative_format
        last = self._sequencer.current_value() or 0

        unexpected: set[str] = set()

        def _values(keys: list[str]) -> set[int]:
            values = set()
            for key in keys:
                try:
                    value = fmt.parse(key).value
                except InvalidCorrelativeError:
                    unexpected.add(key)
                    continue
                if value > last:
                    unexpected.add(key)
                values.add(value)
            return values

        artifacts = _values(self._artifact_keys())
        ledger = _values(self._ledger_keys())

        expected = range(self._start_after + 1, last + 1)
        skipped = [v for v in expected if v not in artifacts and v not in ledger]

        report = ReconciliationReport(
            last_allocated=last,
            skipped=tuple(str(fmt.of(v)) for v in skipped),
            artifacts_without_ledger=tuple(str(fmt.of(v)) for v in sorted(artifacts - ledger)),
            ledger_without_artifact=tuple(str(fmt.of(v)) for v in sorted(ledger - artifacts)),
            unexpected_keys=tuple(sorted(unexpected)),
        )

        log = logger.info if report.is_clean else logger.warning
        log(
            "reconciliation_completed",
            extra={
                "last_allocated": last,
                "skipped_count": len(report.skipped),
                "artifacts_without_ledger_count": len(report.artifacts_without_ledger),
                "ledger_without_artifact_count": len(report.ledger_without_artifact),
                "unexpected_key_count": len(report.unexpected_keys),
            },
        )
        return report
