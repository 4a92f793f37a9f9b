"""Concurrency tests for the batch ledger.

Worker threads consume from the same (kitchen, material) on a file-backed
SQLite database. Every consume must either apply its whole plan or fail,
and the batches must account for every successful consume exactly.
"""

import threading
from decimal import Decimal

from kitchen_stock.services.batch_ledger_service import consume, get_batches, valuate
from kitchen_stock.services.dto import AllocationDraft
from kitchen_stock.services.exceptions import InsufficientStock
from kitchen_stock.services.ledger_locks import ledger_lock, ledger_locks
from kitchen_stock.services.stock_out_service import allocate_to_outlet


def _run_workers(count, target):
    results = []
    results_lock = threading.Lock()
    start = threading.Barrier(count)

    def _worker():
        start.wait()
        try:
            outcome = target()
        except InsufficientStock as e:
            outcome = e
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=_worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


class TestConcurrentConsume:
    def test_parallel_consumes_never_oversell(self, file_two_batches):
        data = file_two_batches

        results = _run_workers(
            8, lambda: consume(data["kitchen_id"], data["rice_id"], Decimal("3"))
        )

        succeeded = [r for r in results if not isinstance(r, InsufficientStock)]
        failed = [r for r in results if isinstance(r, InsufficientStock)]
        assert len(results) == 8
        assert len(succeeded) == 6  # 20 on hand, 3 per consume
        assert len(failed) == 2
        for error in failed:
            assert error.available == Decimal("2")
            assert error.shortfall == Decimal("1")

        batches = get_batches(data["kitchen_id"], data["rice_id"])
        remaining = sum(b.quantity_remaining for b in batches)
        assert remaining == Decimal("2")
        for batch in batches:
            assert Decimal("0") <= batch.quantity_remaining <= batch.quantity_purchased

    def test_every_consumed_unit_is_costed_once(self, file_two_batches):
        data = file_two_batches
        before = valuate(data["kitchen_id"], data["rice_id"]).total_value

        results = _run_workers(
            5, lambda: consume(data["kitchen_id"], data["rice_id"], Decimal("4"))
        )

        consumed_cost = sum(plan.total_cost for plan in results)
        after = valuate(data["kitchen_id"], data["rice_id"]).total_value
        assert before - after == consumed_cost
        assert after == 0

    def test_parallel_multi_material_allocations(self, file_two_batches):
        data = file_two_batches
        from kitchen_stock.services.batch_ledger_service import receive_batch

        receive_batch(data["kitchen_id"], data["oil_id"], 10, 100)

        def _allocate():
            draft = AllocationDraft(data["kitchen_id"])
            draft.add(data["oil_id"], 4)
            draft.add(data["rice_id"], 5)
            return allocate_to_outlet(draft, data["outlet_id"])

        results = _run_workers(4, _allocate)

        # Oil runs out first: 10 / 4 allows two allocations
        failed = [r for r in results if isinstance(r, InsufficientStock)]
        assert len(failed) == 2
        rice_left = sum(b.quantity_remaining for b in get_batches(data["kitchen_id"], data["rice_id"]))
        oil_left = sum(b.quantity_remaining for b in get_batches(data["kitchen_id"], data["oil_id"]))
        assert rice_left == Decimal("10")
        assert oil_left == Decimal("2")


class TestLedgerLocks:
    def test_lock_is_reentrant(self):
        with ledger_lock(1, 7):
            with ledger_locks([(1, 7), (1, 3)]):
                pass

    def test_locks_acquired_in_sorted_order(self, monkeypatch):
        from kitchen_stock.services import ledger_locks as module

        acquired = []
        real_lock_for = module._lock_for

        def _tracking_lock_for(key):
            acquired.append(key)
            return real_lock_for(key)

        monkeypatch.setattr(module, "_lock_for", _tracking_lock_for)

        with ledger_locks([(2, 1), (1, 9), (1, 3), (2, 1)]):
            pass

        assert acquired == [(1, 3), (1, 9), (2, 1)]
