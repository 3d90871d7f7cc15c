# Overview: In-process sequencing for stock mutations.

from __future__ import annotations

import threading
from contextlib import contextmanager


class KeyedLock:
    """
    Serialize work per key (product id).

    Locks for several keys are always taken in sorted order, so two callers
    touching overlapping product sets cannot deadlock each other. Locks are
    re-entrant: a batch that already holds a product's lock may call into a
    single-product path for the same id.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, *keys: str):
        ordered = sorted({str(k) for k in keys})
        acquired = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
