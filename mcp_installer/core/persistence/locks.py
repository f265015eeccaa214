"""
Process-wide locks keyed by file path.

Every read-modify-write of a shared file (host config, registry) holds
the lock for that path, so concurrent sessions in one process serialize
and each one re-reads what the previous writer committed.
"""

from __future__ import annotations

import threading

_guard = threading.Lock()
_locks: dict[str, threading.RLock] = {}


def lock_for(path: str) -> threading.RLock:
    """The lock guarding ``path``; the same object for the same path."""
    with _guard:
        lock = _locks.get(path)
        if lock is None:
            lock = _locks[path] = threading.RLock()
        return lock
