"""In-process mutual exclusion per (kitchen, material) ledger key.

Consumption is a read-modify-write of batch quantities. Two writers on the
same key must not interleave, so every consuming service takes the key's
lock before reading batches. A service that owns its transaction holds the
lock until the commit; with a caller session the lock is released when the
service returns, before the caller commits. The batch version counter (see
StockBatch) catches what the lock cannot: writers in other processes and
writers between that release and the caller's commit.

Usage:
    with ledger_lock(kitchen_id, raw_material_id):
        ...

    with ledger_locks([(1, 7), (1, 3)]):  # acquired as (1, 3), (1, 7)
        ...
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Tuple

LedgerKey = Tuple[int, int]

_registry_lock = threading.Lock()
_locks: Dict[LedgerKey, threading.RLock] = {}


def _lock_for(key: LedgerKey) -> threading.RLock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


@contextmanager
def ledger_lock(cloud_kitchen_id: int, raw_material_id: int):
    """Hold the lock of one (kitchen, material) key."""
    lock = _lock_for((cloud_kitchen_id, raw_material_id))
    with lock:
        yield


@contextmanager
def ledger_locks(keys: Iterable[LedgerKey]):
    """
    Hold the locks of several keys.

    Keys are de-duplicated and acquired in sorted order so two multi-material
    allocations can never wait on each other in a cycle. Locks are re-entrant,
    so a service already holding a key may call another that takes it again.
    """
    ordered = sorted(set(keys))
    acquired = []
    try:
        for key in ordered:
            lock = _lock_for(key)
            lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()
