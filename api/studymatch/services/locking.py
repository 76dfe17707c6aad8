from __future__ import annotations

import threading


class InMemoryCycleLock:
    """Non-blocking process-local lock; a second concurrent run is refused, not queued."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()


class ChainedCycleLock:
    """Holds every lock in order, or none of them."""

    def __init__(self, *locks) -> None:
        self.locks = locks
        self._held: list = []

    def acquire(self) -> bool:
        try:
            for lock in self.locks:
                if not lock.acquire():
                    self.release()
                    return False
                self._held.append(lock)
        except Exception:
            self.release()
            raise
        return True

    def release(self) -> None:
        while self._held:
            self._held.pop().release()


process_cycle_lock = InMemoryCycleLock()
