"""In-process mutual exclusion keyed by edition id.

Reconciliations of the same edition serialize on one lock; different
editions never contend. Cross-process serialization is the database's
job (IMMEDIATE transactions plus the edition revision check).
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class EditionLocks:
    """Registry of one ``threading.Lock`` per edition id.

    An entry lives only while some thread holds or waits for it, so ids
    that are reconciled once (or never exist) do not accumulate.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def _acquire_entry(self, edition_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.setdefault(edition_id, threading.Lock())
            self._users[edition_id] = self._users.get(edition_id, 0) + 1
            return lock

    def _release_entry(self, edition_id: str) -> None:
        with self._guard:
            remaining = self._users[edition_id] - 1
            if remaining:
                self._users[edition_id] = remaining
            else:
                del self._users[edition_id]
                del self._locks[edition_id]

    @contextmanager
    def hold(self, edition_id: str) -> Iterator[None]:
        """Block until *edition_id* is free, then hold it for the block."""
        lock = self._acquire_entry(edition_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(edition_id)

    def is_held(self, edition_id: str) -> bool:
        with self._guard:
            lock = self._locks.get(edition_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
