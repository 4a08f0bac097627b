"""Synchronization engine - sample statistics, round/retry control, result cache.

Contains:
- SyncEngine: concurrent rounds with retry on empty rounds
- SyncCache: single-entry result cache shared by concurrent callers
"""

from .cache import CacheEntry, SyncCache
from .statistics import ComputedSample, aggregate, compute_sample, select_samples
from .sync_engine import SyncEngine

__all__ = [
    'CacheEntry', 'SyncCache',
    'ComputedSample', 'aggregate', 'compute_sample', 'select_samples',
    'SyncEngine',
]
