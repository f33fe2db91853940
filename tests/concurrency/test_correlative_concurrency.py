"""
Correlative allocation under real concurrency.

Each thread gets its own connection from the pool; a Barrier releases
them together so the counter row is genuinely contended.  SQLite
serializes writers on the database lock (BEGIN IMMEDIATE), PostgreSQL on
the counter row.

Run with: pytest tests/concurrency/test_correlative_concurrency.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from receipt_kernel.domain.outcomes import IssuanceStatus

pytestmark = pytest.mark.slow_locks


def _run_together(n: int, fn):
    barrier = Barrier(n)

    def worker(_):
        barrier.wait(timeout=10)
        return fn()

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(worker, range(n)))


class TestConcurrentAllocation:
    @pytest.mark.parametrize("threads", [2, 8])
    def test_concurrent_allocations_are_distinct_and_contiguous(self, sequencer, threads):
        sequencer.reset(10)
        values = sorted(c.value for c in _run_together(threads, sequencer.allocate))

        assert values == list(range(11, 11 + threads))
        assert sequencer.current_value() == 10 + threads

    def test_first_use_race_creates_one_counter(self, sequencer):
        # No counter row yet: every caller races to create it
        values = sorted(c.value for c in _run_together(6, sequencer.allocate))
        assert values == [1, 2, 3, 4, 5, 6]

    def test_repeated_rounds_never_reuse(self, sequencer):
        seen: set[int] = set()
        for _ in range(5):
            batch = [c.value for c in _run_together(4, sequencer.allocate)]
            assert seen.isdisjoint(batch)
            seen.update(batch)
        assert seen == set(range(1, 21))


class TestConcurrentIssuance:
    def test_two_callers_at_counter_ten(self, orchestrator, sequencer, artifact_store, ledger, member, make_request):
        sequencer.reset(10)
        request = make_request()
        outcomes = _run_together(2, lambda: orchestrator.issue(request))

        assert all(o.status == IssuanceStatus.ISSUED for o in outcomes)
        assert {o.spent_correlative for o in outcomes} == {"R-00011", "R-00012"}
        assert artifact_store.list_keys() == ["R-00011", "R-00012"]
        assert ledger.list_receipt_numbers() == ["R-00011", "R-00012"]

    def test_failed_issue_does_not_block_others(self, orchestrator, sequencer, renderer, member, make_request):
        sequencer.reset(10)
        render = renderer.render
        calls = []

        def fail_first(data):
            calls.append(data.correlative)
            if str(data.correlative) == "R-00011":
                raise RuntimeError("printer on fire")
            return render(data)

        renderer.render = fail_first
        outcomes = _run_together(3, lambda: orchestrator.issue(make_request()))

        by_status = {}
        for o in outcomes:
            by_status.setdefault(o.status, []).append(o.spent_correlative)
        assert by_status[IssuanceStatus.RENDER_FAILED] == ["R-00011"]
        assert sorted(by_status[IssuanceStatus.ISSUED]) == ["R-00012", "R-00013"]
