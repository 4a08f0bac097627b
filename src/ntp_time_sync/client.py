"""
NTP Time Sync Client

Caller-facing entry point. Owns the configuration, the synchronization engine
and a result cache, and answers "what time is it really?".

Usage:
    sync = NtpTimeSync({'servers': ['0.pool.ntp.org', 'time.example.net:123']})
    result = await sync.get_time()       # SyncResult(now, offset_ms, precision_ms)
    corrected = await sync.now()          # corrected time at the moment of the call

    shared = NtpTimeSync.get_instance()   # process-wide instance
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, List, Mapping, Optional, Tuple

from .config import SyncConfiguration
from .engine.cache import SyncCache
from .engine.statistics import ComputedSample, aggregate
from .engine.sync_engine import ExchangeFn, SyncEngine
from .interfaces.sync_result import SyncResult, corrected_datetime
from .protocol.transport import exchange as udp_exchange

logger = logging.getLogger(__name__)


class _InstanceHolder:
    """Lazily created, thread-safe single instance."""

    def __init__(self):
        self._lock = threading.Lock()
        self._instance: Optional["NtpTimeSync"] = None

    def get(self, factory, options: Optional[Mapping[str, Any]]) -> "NtpTimeSync":
        with self._lock:
            if self._instance is None:
                self._instance = factory(options)
            elif options:
                logger.debug("Shared NtpTimeSync already exists, ignoring options")
            return self._instance


_shared_instance = _InstanceHolder()


class NtpTimeSync:
    """
    NTP time synchronization client.

    Args:
        options: partial options, deep-merged onto config.DEFAULT_OPTIONS
        cache: result cache; a private cache is created when omitted.
               Pass SyncCache.shared() to share one poll interval across clients.
        exchange: coroutine function performing one UDP exchange (for testing)

    Raises:
        ConfigurationError: unknown option key or invalid value
    """

    def __init__(
        self,
        options: Optional[Mapping[str, Any]] = None,
        *,
        cache: Optional[SyncCache] = None,
        exchange: Optional[ExchangeFn] = None
    ):
        self._options = SyncConfiguration.from_options(options)
        self.cache = cache if cache is not None else SyncCache()
        self.engine = SyncEngine(self._options, exchange=exchange or udp_exchange)

        # Samples selected by the last round run by this instance
        self.samples: List[ComputedSample] = []

        logger.debug(
            f"NtpTimeSync created: servers={', '.join(str(s) for s in self._options.servers)}"
        )

    @property
    def options(self) -> SyncConfiguration:
        """Resolved configuration (servers as host/port endpoints)."""
        return self._options

    @classmethod
    def get_instance(cls, options: Optional[Mapping[str, Any]] = None) -> "NtpTimeSync":
        """
        Return the process-wide instance, creating it on first call.

        Options passed after the instance exists are ignored.
        """
        return _shared_instance.get(cls, options)

    async def get_time(self, force: bool = False) -> SyncResult:
        """
        Corrected time with offset and precision.

        Served from the cache while the last round is younger than the
        minimum poll interval (2**min_poll_exp seconds), unless force is set.

        Raises:
            ExhaustionError: no server produced a usable reply
        """
        if not force:
            entry = self.cache.lookup(self._options.protocol_defaults.min_poll_seconds)
            if entry is not None:
                return SyncResult.project(entry.offset_ms, entry.precision_ms)

        entry = await self.cache.refresh(self._synchronize, share=not force)
        return SyncResult.project(entry.offset_ms, entry.precision_ms, entry.computed_at)

    async def now(self, force: bool = False) -> datetime:
        """Corrected time for the moment this method was called."""
        called_at = time.time()
        result = await self.get_time(force)
        return corrected_datetime(called_at, result.offset_ms)

    async def _synchronize(self) -> Tuple[float, float]:
        samples = await self.engine.synchronize(self._options.sample_count)
        self.samples = samples

        offset_ms, precision_ms = aggregate(samples)
        logger.info(
            f"Synchronized: offset={offset_ms:+.3f}ms, precision={precision_ms:.3f}ms "
            f"({len(samples)} samples)"
        )
        return offset_ms, precision_ms
