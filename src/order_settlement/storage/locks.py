"""Per-row exclusive locks for settlement transaction scopes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable
import threading


def wallet_key(user_id: str) -> tuple[str, str]:
    return ("wallet", user_id)


def position_key(user_id: str, symbol: str) -> tuple[str, str, str]:
    return ("position", user_id, symbol)


@dataclass(slots=True)
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    refs: int = 0


class RowLockManager:
    """
    Hands out one mutex per row key.

    Entries are reference counted so idle keys do not accumulate; the guard
    lock is only held while looking up an entry, never while waiting on a row.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _LockEntry] = {}

    def acquire(self, key: Hashable, timeout: float) -> bool:
        """Block up to `timeout` seconds for `key`; True if acquired."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _LockEntry()
                self._entries[key] = entry
            entry.refs += 1
        acquired = entry.lock.acquire(timeout=max(timeout, 0.0))
        if not acquired:
            self._drop_ref(key, entry)
        return acquired

    def release(self, key: Hashable) -> None:
        with self._guard:
            entry = self._entries.get(key)
        if entry is None:
            raise RuntimeError(f"release of unknown row lock {key!r}")
        entry.lock.release()
        self._drop_ref(key, entry)

    def _drop_ref(self, key: Hashable, entry: _LockEntry) -> None:
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)
