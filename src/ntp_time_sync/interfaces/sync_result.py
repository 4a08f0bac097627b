"""
Synchronization Result Data Model

SyncResult is the contract between ntp-time-sync and its callers. The offset
is additive: corrected time = local time + offset_ms.

Contract Version: 1.0.0
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import json
import time
from typing import Optional


@dataclass(frozen=True)
class SyncResult:
    """
    Corrected time plus the offset/precision it was derived from.

    `now` is the corrected (server) time at the moment the result was built.
    """
    now: datetime                        # corrected time, UTC
    offset_ms: float                     # server time - local time
    precision_ms: float = 0.0            # std dev of the sample offsets

    @property
    def timestamp(self) -> float:
        """Corrected time as Unix seconds."""
        return self.now.timestamp()

    @classmethod
    def project(
        cls,
        offset_ms: float,
        precision_ms: float,
        local_time: Optional[float] = None
    ) -> "SyncResult":
        """Build a result by applying offset_ms to a local Unix time (default: now)."""
        if local_time is None:
            local_time = time.time()
        return cls(
            now=corrected_datetime(local_time, offset_ms),
            offset_ms=offset_ms,
            precision_ms=precision_ms,
        )

    def to_dict(self) -> dict:
        return {
            "now": self.now.isoformat(),
            "timestamp": self.timestamp,
            "offset_ms": self.offset_ms,
            "precision_ms": self.precision_ms,
        }

    def to_json(self) -> str:
        """Serialize to JSON."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "SyncResult":
        """Deserialize from JSON."""
        data = json.loads(json_str)
        if "now" in data:
            now = datetime.fromisoformat(data["now"])
        else:
            now = datetime.fromtimestamp(data.get("timestamp", 0.0), tz=timezone.utc)
        return cls(
            now=now,
            offset_ms=data.get("offset_ms", 0.0),
            precision_ms=data.get("precision_ms", 0.0),
        )


def corrected_datetime(local_time: float, offset_ms: float) -> datetime:
    """Local Unix time shifted by offset_ms, as an aware UTC datetime."""
    return (
        datetime.fromtimestamp(local_time, tz=timezone.utc)
        + timedelta(milliseconds=offset_ms)
    )
