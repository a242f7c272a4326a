"""Per-resource mutual exclusion.

Some operations must not overlap for the same resource, for example
adding servers to one project and then verifying the count. The registry
hands out one lock per key, created on first use and kept for the life of
the process. The registry's own lock only guards map insertion; it is
released before the caller waits on the per-key lock, so waiting on one
key never blocks another.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a per-resource lock cannot be acquired in time."""

    def __init__(self, key: Hashable, timeout: float) -> None:
        super().__init__(f"Could not acquire lock for {key} within {timeout} seconds")
        self.key = key
        self.timeout = timeout


class ResourceMutexRegistry:
    """Lazily-created locks keyed by resource."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def lock_for(self, key: Hashable) -> threading.Lock:
        """Return the lock for a key, creating it on first use."""
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for a key for the duration of the block.

        Raises:
            LockTimeoutError: If a timeout is given and the lock is still
                held elsewhere when it expires.
        """
        lock = self.lock_for(key)
        acquired = lock.acquire() if timeout is None else lock.acquire(timeout=timeout)
        if not acquired:
            logger.warning("Resource lock acquisition timed out", extra={"lock_key": str(key), "timeout_seconds": timeout})
            raise LockTimeoutError(key, timeout or 0.0)
        try:
            yield
        finally:
            lock.release()

    def keys(self) -> list[Hashable]:
        with self._registry_lock:
            return list(self._locks)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
