import threading
from contextlib import contextmanager

from sqlalchemy.orm import Session

from core.config import settings
from core.errors import StoreTimeoutError


class KeyedLocks:
    """Process-wide mutual exclusion keyed by document id.

    Keys are strings such as ``"script:<id>"`` or ``"project:<id>"``. Locks are
    always taken in sorted order so two operations holding overlapping key
    sets cannot deadlock each other. An entry lives only while some caller
    holds or waits for it.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str):
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str):
        acquired: list[tuple[str, threading.Lock]] = []
        try:
            for key in sorted({k for k in keys if k}):
                lock = self._checkout(key)
                if not lock.acquire(timeout=self.timeout):
                    self._checkin(key)
                    raise StoreTimeoutError(f"Timed out waiting for lock on {key}")
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


def script_key(script_id: str) -> str:
    return f"script:{script_id}"


def project_key(project_id: str) -> str:
    return f"project:{project_id}"


_fallback_locks = KeyedLocks()


def locks_for(db: Session) -> KeyedLocks:
    # Sessions built by core.database.Database carry the handle's registry
    registry = db.info.get("locks")
    return registry if registry is not None else _fallback_locks
