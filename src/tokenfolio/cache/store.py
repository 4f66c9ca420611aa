"""In-process expiring key/value store shared by every price and FX lookup.

Entries expire lazily (an expired entry read through ``get`` is deleted and
reported absent) and proactively through a periodic sweep that bounds
memory for keys which are never read again.

One instance is constructed at startup and injected into every consumer.
Multiple processes each hold their own independent cache.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_DEFAULT_SWEEP_INTERVAL = 5 * 60.0


@dataclass(frozen=True)
class CacheEntry:
    """A stored value with its insertion time and time-to-live (seconds)."""

    key: str
    value: Any
    inserted_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class ExpiringCache:
    """Thread-safe TTL cache.

    Parameters
    ----------
    clock : Callable[[], float]
        Monotonic time source in seconds. Injectable for tests.
    sweep_interval : float
        Seconds between background sweeps once ``start()`` is called.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = _DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task | None = None

    # --- Core operations ---

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store or overwrite ``key`` unconditionally."""
        entry = CacheEntry(key=key, value=value, inserted_at=self._clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key``, or ``default`` if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return default
            return entry.value

    def has(self, key: str) -> bool:
        """True if ``key`` holds a live entry. Expired entries are evicted."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        """Size and keys currently held, expired-but-unswept entries included."""
        with self._lock:
            return {"size": len(self._entries), "keys": list(self._entries)}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- Eviction ---

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def start(self) -> None:
        """Start the periodic background sweep on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the background sweep, if running."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()
