"""Per-target mutual exclusion for rollouts."""

import threading
from contextlib import contextmanager
from typing import Iterator

from deployctl.core.exceptions import TargetBusyError


class TargetLocks:
    """Registry of named locks keyed by target identifier.

    Locks are process-local. Two rollouts against the same target id are
    serialized; different targets proceed independently.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, target_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(target_id)
            if lock is None:
                lock = self._locks[target_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, target_id: str, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for ``target_id`` for the duration of the block.

        Args:
            target_id: Target identifier
            timeout: Seconds to wait before giving up (None waits forever)

        Raises:
            TargetBusyError: If the lock could not be acquired in time
        """
        lock = self._lock_for(target_id)
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise TargetBusyError(
                f"Another rollout is in progress for {target_id}",
                target_id=target_id,
                timeout_seconds=timeout,
            )
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, target_id: str) -> bool:
        return self._lock_for(target_id).locked()


_shared_locks = TargetLocks()


def get_shared_locks() -> TargetLocks:
    """Process-wide lock registry used when the caller supplies none."""
    return _shared_locks
