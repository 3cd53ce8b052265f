"""Keyed Locks - In-process mutual exclusion per instance / entity type"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from ..domain.errors import ConcurrencyConflictError


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLock:
    """
    One lock per key, created on demand and dropped when unused

    Only serializes callers inside this process; the stores back it with
    an optimistic version check for callers in other processes.
    """

    def __init__(self, name: str = "keyed-lock"):
        self.name = name
        self._entries: Dict[str, _Entry] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the lock for key until the block exits

        Raises:
            ConcurrencyConflictError: If the lock is not acquired within timeout
        """
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1

        acquired = False
        try:
            if timeout is None:
                acquired = entry.lock.acquire()
            else:
                acquired = entry.lock.acquire(timeout=timeout)
            if not acquired:
                raise ConcurrencyConflictError(
                    f"Timed out waiting for {self.name} on {key}",
                    details={"key": key, "timeout": timeout}
                )
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
