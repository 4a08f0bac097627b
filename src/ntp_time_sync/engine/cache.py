"""
Synchronization Cache

Holds the result of the last synchronization round (at most one entry,
replaced on every round) and coordinates concurrent refreshes so that callers
arriving while a round is in flight share it instead of starting their own.

A cache is an explicit object. Each NtpTimeSync owns a private one unless a
cache is injected; SyncCache.shared() returns a process-wide instance for
callers that want every client to share one poll interval.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)


ComputeFn = Callable[[], Awaitable[Tuple[float, float]]]


@dataclass(frozen=True)
class CacheEntry:
    """Offset/precision of one synchronization round."""
    offset_ms: float
    precision_ms: float
    computed_at: float       # Unix seconds

    def age(self, now: Optional[float] = None) -> float:
        if now is None:
            now = time.time()
        return now - self.computed_at


class SyncCache:
    """Single-entry result cache with in-flight round sharing."""

    _shared: Optional["SyncCache"] = None
    _shared_lock = threading.Lock()

    def __init__(self):
        self._lock = threading.Lock()
        self._entry: Optional[CacheEntry] = None
        self._pending: Optional[asyncio.Task] = None

    @classmethod
    def shared(cls) -> "SyncCache":
        """Process-wide cache, created on first use."""
        with cls._shared_lock:
            if cls._shared is None:
                cls._shared = cls()
            return cls._shared

    @property
    def entry(self) -> Optional[CacheEntry]:
        with self._lock:
            return self._entry

    def lookup(self, max_age_s: float, now: Optional[float] = None) -> Optional[CacheEntry]:
        """Return the cached entry if it is younger than max_age_s, else None."""
        entry = self.entry
        if entry is None or entry.age(now) >= max_age_s:
            return None
        return entry

    def store(
        self,
        offset_ms: float,
        precision_ms: float,
        computed_at: Optional[float] = None
    ) -> CacheEntry:
        """Replace the cached entry."""
        entry = CacheEntry(
            offset_ms=offset_ms,
            precision_ms=precision_ms,
            computed_at=time.time() if computed_at is None else computed_at,
        )
        with self._lock:
            self._entry = entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entry = None

    async def refresh(self, compute: ComputeFn, share: bool = True) -> CacheEntry:
        """
        Run a synchronization round and store its result.

        Args:
            compute: coroutine function returning (offset_ms, precision_ms)
            share: join a round already in flight on this event loop instead
                   of starting a new one

        Raises:
            whatever compute() raises (ExhaustionError for failed rounds)
        """
        loop = asyncio.get_running_loop()

        with self._lock:
            task = self._pending
            joining = (
                share and task is not None and not task.done()
                and task.get_loop() is loop
            )
            if not joining:
                task = loop.create_task(self._compute_and_store(compute))
                self._pending = task

        if joining:
            logger.debug("Joining synchronization round already in flight")

        # Shielded: a cancelled waiter must not cancel the round other callers wait on
        return await asyncio.shield(task)

    async def _compute_and_store(self, compute: ComputeFn) -> CacheEntry:
        offset_ms, precision_ms = await compute()
        return self.store(offset_ms, precision_ms)
