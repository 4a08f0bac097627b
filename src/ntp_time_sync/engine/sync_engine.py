"""
Synchronization Round & Retry Controller

A round queries every configured server concurrently and waits for all of
them to finish (reply, error or timeout). Failed or rejected exchanges are
dropped; they never abort their siblings.

Retry policy:
    - A round with at least one accepted reply ends the synchronization,
      even if fewer than sample_count replies were accepted.
    - A round with zero accepted replies is retried against all servers.
    - After max_retries empty rounds, ExhaustionError is raised.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List

from ..config import ServerEndpoint, SyncConfiguration
from ..exceptions import ExhaustionError, NtpTimeSyncError
from ..protocol.packet import RawReply, encode_request
from ..protocol.transport import exchange as udp_exchange
from ..protocol.validation import accept_response
from .statistics import ComputedSample, compute_sample, select_samples

logger = logging.getLogger(__name__)


ExchangeFn = Callable[[ServerEndpoint, bytes, float], Awaitable[RawReply]]


class SyncEngine:
    """
    Runs synchronization rounds against the configured servers.

    Args:
        config: resolved client configuration
        exchange: coroutine function performing one request/reply exchange
    """

    def __init__(self, config: SyncConfiguration, exchange: ExchangeFn = udp_exchange):
        self.config = config
        self.exchange = exchange
        self.stats = {
            'rounds': 0,
            'empty_rounds': 0,
            'replies_accepted': 0,
            'replies_dropped': 0,
        }

    async def _query(self, endpoint: ServerEndpoint) -> RawReply:
        """Exchange with one server and validate the reply."""
        defaults = self.config.protocol_defaults
        request = encode_request(
            version=defaults.version,
            reference_epoch=defaults.reference_epoch,
        )
        raw = await self.exchange(endpoint, request, self.config.reply_timeout_seconds)
        accept_response(raw, self.config)
        return raw

    async def collect_round(self) -> List[RawReply]:
        """Run one concurrent round over all servers; return accepted replies."""
        self.stats['rounds'] += 1
        servers = self.config.servers

        outcomes = await asyncio.gather(
            *(self._query(endpoint) for endpoint in servers),
            return_exceptions=True
        )

        accepted: List[RawReply] = []
        for endpoint, outcome in zip(servers, outcomes):
            if isinstance(outcome, NtpTimeSyncError):
                self.stats['replies_dropped'] += 1
                logger.debug(f"{endpoint}: dropped ({type(outcome).__name__}: {outcome})")
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            accepted.append(outcome)

        self.stats['replies_accepted'] += len(accepted)
        logger.debug(f"Round {self.stats['rounds']}: {len(accepted)}/{len(servers)} replies accepted")
        return accepted

    async def synchronize(self, sample_count: int) -> List[ComputedSample]:
        """
        Collect replies (retrying empty rounds) and return the best samples.

        Raises:
            ExhaustionError: every round came back empty
        """
        max_rounds = max(self.config.max_retries, 1)
        retry = 0

        while True:
            replies = await self.collect_round()
            if replies:
                break

            retry += 1
            self.stats['empty_rounds'] += 1
            logger.warning(f"No usable NTP response in round {retry}/{max_rounds}")
            if retry >= max_rounds:
                raise ExhaustionError(retry)

        # Partial rounds are used as-is, only empty rounds are retried
        defaults = self.config.protocol_defaults
        samples = [compute_sample(raw, defaults) for raw in replies]
        return select_samples(samples, sample_count)
