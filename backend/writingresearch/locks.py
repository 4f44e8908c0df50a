from __future__ import annotations

from contextlib import contextmanager
import threading
from typing import Iterator


class KeyedLocks:
    """Re-entrant lock per key; multi-key acquisition always runs in sorted order.

    An entry lives only while some thread holds or waits on it, so deleted
    records do not leave locks behind.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            remaining = self._users.get(key, 0) - 1
            if remaining > 0:
                self._users[key] = remaining
                return
            self._users.pop(key, None)
            self._locks.pop(key, None)

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        ordered = sorted({key for key in keys if key})
        held: list[tuple[str, threading.RLock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                lock.acquire()
                held.append((key, lock))
            yield
        finally:
            for key, lock in reversed(held):
                lock.release()
                self._checkin(key)
