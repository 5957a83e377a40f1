# modtune/core/locks.py
"""
Modtune – per-directory serialization
=====================================

The manifest, the audit log and the metadata file are single shared
documents per config directory.  Every load → mutate → save cycle on
them runs inside `directory_lock(config_dir)`, so two overlapping
apply / backup / rollback calls can't lose each other's updates.

The lock is re-entrant for the task that holds it: `restore_backup`
holds it and calls `create_backup`, which takes it again.
"""

from __future__ import annotations

import asyncio
import weakref
from pathlib import Path
from typing import Dict, Optional


class DirectoryLock:
    """asyncio.Lock that the owning task may enter more than once."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None
        self._depth = 0

    def locked(self) -> bool:
        return self._lock.locked()

    async def __aenter__(self) -> "DirectoryLock":
        task = asyncio.current_task()
        if task is not None and self._owner is task:
            self._depth += 1
            return self
        await self._lock.acquire()
        self._owner = task
        self._depth = 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._owner = None
            self._lock.release()


# one registry per event loop; a lock must not outlive the loop it waits on
_REGISTRY: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, DirectoryLock]]" = (
    weakref.WeakKeyDictionary()
)


def _key(path: Path | str) -> str:
    return str(Path(path).expanduser().resolve())


def directory_lock(path: Path | str) -> DirectoryLock:
    """Return the lock guarding *path* (created on first use)."""
    loop = asyncio.get_running_loop()
    locks = _REGISTRY.setdefault(loop, {})
    key = _key(path)
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = DirectoryLock()
    return lock
