"""Per-order mutation lock.

Mutations of the same order are serialized inside a process; different
orders proceed in parallel. Entries are reference counted and dropped as
soon as no caller holds or waits on them, so idle order ids do not pile up.
"""

import threading
from contextlib import contextmanager

_registry_lock = threading.Lock()
_locks: dict[str, list] = {}  # order_id -> [lock, holders_and_waiters]


@contextmanager
def order_lock(order_id: str):
    key = str(order_id)
    with _registry_lock:
        entry = _locks.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1

    entry[0].acquire()
    try:
        yield
    finally:
        entry[0].release()
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                _locks.pop(key, None)


def active_lock_count() -> int:
    with _registry_lock:
        return len(_locks)
