"""
Process-local keyed locks.

Used to make per-key operations single-flight inside one process: a second
caller for the same key blocks until the first finishes and then observes its
result. Cross-process exclusion is provided separately by row-level locks
(select_for_update).
"""
import threading
from contextlib import contextmanager


class KeyedLock:
    """A registry of reference-counted locks, one per key"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    @contextmanager
    def hold(self, key, timeout=None):
        """
        Hold the lock for ``key``.

        Raises TimeoutError if ``timeout`` seconds pass without acquiring it.
        """
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        lock = entry[0]
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        try:
            if not acquired:
                raise TimeoutError(f"Timed out waiting for lock on {key!r}")
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def is_held(self, key) -> bool:
        with self._guard:
            entry = self._locks.get(key)
            return entry is not None and entry[0].locked()
