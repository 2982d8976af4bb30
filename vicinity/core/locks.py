"""Per-key re-entrant locks."""

from __future__ import annotations

import threading
import weakref
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLocks:
    """One RLock per key, created on first use.

    Used to serialize SOS and safety-timer transitions per user without a
    process-wide lock. Entries are weak: a key's lock is dropped once no
    thread holds or waits on it, so the map only covers keys in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[Hashable, threading.RLock] = weakref.WeakValueDictionary()

    def get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
