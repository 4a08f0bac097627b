"""
ntp-time-sync: NTP offset client for applications that cannot trust the
system clock.

Queries a set of NTP servers concurrently over UDP, validates the replies,
keeps the lowest-delay samples and reports the local clock offset together
with a precision estimate. Results are cached for the minimum poll interval
so that frequent callers do not flood the servers.

Architecture:
    NtpTimeSync -> SyncCache -> SyncEngine -> Exchange (UDP) per server
                                           -> accept_response -> statistics

Version: 1.0.0
"""

__version__ = "1.0.0"

from .client import NtpTimeSync
from .config import DEFAULT_OPTIONS, ProtocolDefaults, ServerEndpoint, SyncConfiguration
from .engine.cache import CacheEntry, SyncCache
from .exceptions import (
    NtpTimeSyncError,
    ConfigurationError,
    TransportError,
    ExchangeTimeoutError,
    ValidationError,
    FormatError,
    StratumError,
    DistanceError,
    ExhaustionError,
)
from .interfaces.sync_result import SyncResult

__all__ = [
    "NtpTimeSync",
    "SyncResult",
    "SyncConfiguration",
    "ServerEndpoint",
    "ProtocolDefaults",
    "DEFAULT_OPTIONS",
    "SyncCache",
    "CacheEntry",
    "NtpTimeSyncError",
    "ConfigurationError",
    "TransportError",
    "ExchangeTimeoutError",
    "ValidationError",
    "FormatError",
    "StratumError",
    "DistanceError",
    "ExhaustionError",
    "__version__",
]
