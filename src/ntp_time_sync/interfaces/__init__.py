"""Interface definitions for synchronization results."""

from .sync_result import SyncResult, corrected_datetime

__all__ = ['SyncResult', 'corrected_datetime']
