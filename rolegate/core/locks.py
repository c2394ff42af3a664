from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator, List


class KeyedLocks:
    """One lock per key, so writers of the same key are serialized while
    different keys proceed in parallel.

    Locks are reentrant, a holder may call other methods taking the same key.
    An entry lives only while some thread holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, List] = {}  # key -> [RLock, users]
        self._guard = Lock()

    def _acquire_entry(self, key: str) -> RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [RLock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
