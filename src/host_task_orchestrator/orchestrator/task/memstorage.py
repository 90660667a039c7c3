"""Process-wide shared store with a transactional mutual-exclusion primitive.

`MemStorage.tx` serialises composite operations that touch host-level shared
resources (for example a single fstab file) across concurrently running tasks.

Locks are scoped: callers that pass the same `scope` are strictly serialised,
callers with different scopes do not block each other. `scope=None` is the one
process-wide scope.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

GLOBAL_SCOPE = "__global__"


class SafeMap:
    """A small thread-safe key/value map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[Hashable, object] = {}

    def get(self, key: Hashable, default: object = None) -> object:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: Hashable, value: object) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def snapshot(self) -> dict[Hashable, object]:
        with self._lock:
            return dict(self._data)


class _ScopeLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class MemStorage:
    """Long-lived store shared by every task of the process.

    A scope's lock lives only while some caller holds or waits for it, so
    per-device and per-file scopes do not accumulate over a long run.
    """

    def __init__(self) -> None:
        self._map = SafeMap()
        self._locks: dict[Hashable, _ScopeLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def map(self) -> SafeMap:
        return self._map

    def active_scopes(self) -> tuple[Hashable, ...]:
        """Scopes currently held or waited for."""

        with self._locks_guard:
            return tuple(self._locks)

    def _acquire_entry(self, key: Hashable) -> _ScopeLock:
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _ScopeLock()
            entry.users += 1
            return entry

    def _release_entry(self, key: Hashable, entry: _ScopeLock) -> None:
        with self._locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def tx(self, fn: Callable[[SafeMap], T], *, scope: Hashable | None = None) -> T:
        """Run `fn` while holding the lock of `scope`.

        Whatever `fn` returns is returned unchanged; whatever it raises
        propagates unchanged. The lock is released in both cases. The lock is
        re-entrant for the owning thread.
        """

        key = GLOBAL_SCOPE if scope is None else scope
        entry = self._acquire_entry(key)
        try:
            started = time.monotonic()
            with entry.lock:
                waited = time.monotonic() - started
                if waited > 0.5:
                    logger.debug(
                        "Waited for shared store transaction",
                        extra={"scope": repr(scope), "waited_seconds": round(waited, 3)},
                    )
                return fn(self._map)
        finally:
            self._release_entry(key, entry)
