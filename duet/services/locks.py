# File: duet/services/locks.py

"""
Per-key mutual exclusion inside one process.

Requests touching different invite codes or users never wait on each
other. Entries are dropped as soon as nobody holds or waits on them, so the
registry does not grow with traffic. Cross-process safety comes from the
database (row locks and conditional UPDATEs), not from here.
"""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List

from duet.core.errors import ConcurrencyError


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class KeyedLock:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def _checkout(self, key: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
            return entry

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(self, *keys: str, timeout: float) -> Iterator[None]:
        """
        Acquire every key (in sorted order, so two holders can't deadlock)
        or raise ConcurrencyError once ``timeout`` seconds have passed.
        """
        deadline = time.monotonic() + max(timeout, 0.0)
        held: List[tuple] = []
        try:
            for key in sorted(set(keys)):
                entry = self._checkout(key)
                remaining = max(deadline - time.monotonic(), 0.0)
                if not entry.lock.acquire(timeout=remaining):
                    self._checkin(key, entry)
                    raise ConcurrencyError()
                held.append((key, entry))
            yield
        finally:
            for key, entry in reversed(held):
                entry.lock.release()
                self._checkin(key, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
