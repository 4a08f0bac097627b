"""
Sample Statistics

Each accepted reply becomes a ComputedSample (offset, delay, dispersion).
Samples are ranked by delay, the best N are kept, and their offsets are
combined into a single offset estimate (mean) and precision (population
standard deviation).

Timestamps (Unix seconds):
    T1 origin       - client transmit time, echoed by the server
    T2 receive      - server receive time
    T3 transmit     - server transmit time
    T4 destination  - client receive time

This is a simplified estimate, not the RFC 5905 clock filter / selection /
cluster / combine pipeline.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ..config import ProtocolDefaults
from ..protocol.packet import RawReply


@dataclass(frozen=True)
class ComputedSample:
    """Timing statistics for one reply."""
    raw: RawReply
    offset: float        # ms, added to local time to get server time
    delay: float         # ms, round-trip delay, floored at local precision
    dispersion: float    # s, error bound; kept for inspection, not used in aggregation


def compute_sample(raw: RawReply, defaults: ProtocolDefaults) -> ComputedSample:
    """Compute offset, delay and dispersion for one accepted reply."""
    t1 = raw.origin_timestamp * 1000.0
    t2 = raw.receive_timestamp * 1000.0
    t3 = raw.transmit_timestamp * 1000.0
    t4 = raw.destination_timestamp * 1000.0

    sign = 1 if t3 > t4 else -1
    offset = sign * (abs(t2 - t1) + abs(t3 - t4)) / 2

    local_precision = 2.0 ** defaults.precision_exp
    delay = max((t4 - t1) - (t2 - t3), local_precision)

    dispersion = (
        2.0 ** raw.precision_exp
        + local_precision
        + defaults.tolerance_parts * (raw.destination_timestamp - raw.origin_timestamp)
    )

    return ComputedSample(raw=raw, offset=offset, delay=delay, dispersion=dispersion)


def select_samples(samples: Sequence[ComputedSample], count: int) -> List[ComputedSample]:
    """Keep the `count` samples with the lowest delay, ordered by ascending delay."""
    # sorted() is stable: equal delays keep discovery order
    return sorted(samples, key=lambda sample: sample.delay)[:max(count, 0)]


def aggregate(samples: Sequence[ComputedSample]) -> Tuple[float, float]:
    """
    Combine sample offsets.

    Returns:
        (offset_ms, precision_ms): mean offset and population standard deviation
    """
    if not samples:
        return 0.0, 0.0

    offsets = np.array([sample.offset for sample in samples], dtype=np.float64)
    offset_ms = float(np.mean(offsets))
    precision_ms = float(np.std(offsets)) if len(offsets) > 1 else 0.0
    return offset_ms, precision_ms
