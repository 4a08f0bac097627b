"""
Reply acceptability checks (simplified RFC 5905 section 8 / 11.2 tests).

A rejected reply is dropped from the round exactly like a transport failure.
"""

import time
from typing import Optional

from ..config import SyncConfiguration
from ..exceptions import DistanceError, FormatError, StratumError
from .packet import LEAP_UNSYNCHRONIZED, RawReply


def root_distance(raw: RawReply) -> float:
    """Root distance in seconds: half the root delay plus root dispersion."""
    return raw.root_delay / 2 + raw.root_dispersion


def accept_response(raw: RawReply, config: SyncConfiguration, now: Optional[float] = None) -> None:
    """
    Test if a reply is acceptable for synchronization.

    Raises:
        FormatError: newer protocol version, or origin timestamp in the future
        StratumError: server never synchronized or stratum too high
        DistanceError: root distance too large
    """
    defaults = config.protocol_defaults

    if raw.version > defaults.version:
        raise FormatError(
            f"Format error: Expected version {defaults.version}, got {raw.version}"
        )

    # (1) server has never been synchronized, (2) server stratum is invalid
    if raw.leap_indicator == LEAP_UNSYNCHRONIZED or raw.stratum >= defaults.max_stratum:
        raise StratumError(
            f"Stratum error: Remote clock is unsynchronized "
            f"(leap={raw.leap_indicator}, stratum={raw.stratum})"
        )

    distance = root_distance(raw)
    if distance >= defaults.max_dispersion_seconds:
        raise DistanceError(f"Distance error: Root distance too large ({distance:.3f}s)")

    if now is None:
        now = time.time()
    if raw.origin_timestamp > now:
        raise FormatError("Format error: Origin timestamp is from the future")
