"""
UDP Exchange Transport

One Exchange sends a single request datagram to one server and waits for
exactly one reply. Three events race each other:

    reply datagram   -> decode, stamp destination time, succeed
    transport error  -> fail with TransportError
    timeout          -> fail with ExchangeTimeoutError

The exchange is a two-state machine (PENDING -> FINISHED). The first event
wins; every later event is ignored. The datagram transport is released inside
the single PENDING -> FINISHED transition, so it is closed exactly once no
matter which event (or combination of events) finishes the exchange.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional

from ..config import ServerEndpoint
from ..exceptions import ExchangeTimeoutError, TransportError
from .packet import RawReply, decode_reply

logger = logging.getLogger(__name__)


Decoder = Callable[[bytes, float, Optional[ServerEndpoint]], RawReply]


class ExchangeState(Enum):
    """Exchange lifecycle state."""
    PENDING = "PENDING"
    FINISHED = "FINISHED"


class _ExchangeProtocol(asyncio.DatagramProtocol):
    """Forwards datagram endpoint events to the owning Exchange."""

    def __init__(self, exchange: "Exchange"):
        self.exchange = exchange

    def datagram_received(self, data: bytes, addr) -> None:
        self.exchange._on_datagram(data)

    def error_received(self, exc: Exception) -> None:
        self.exchange._fail(TransportError(f"{self.exchange.endpoint}: {exc}"))

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            self.exchange._fail(TransportError(f"{self.exchange.endpoint}: connection lost: {exc}"))


class Exchange:
    """
    A single request/reply exchange with one NTP server.

    Usage:
        reply = await Exchange(endpoint, encode_request(), timeout_s=3.0).run()
    """

    def __init__(
        self,
        endpoint: ServerEndpoint,
        request: bytes,
        timeout_s: float,
        decoder: Decoder = decode_reply
    ):
        self.endpoint = endpoint
        self.request = request
        self.timeout_s = timeout_s
        self.decoder = decoder

        self.state = ExchangeState.PENDING
        self.releases = 0

        self._transport: Optional[asyncio.DatagramTransport] = None
        self._future: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def finished(self) -> bool:
        return self.state is ExchangeState.FINISHED

    async def run(self) -> RawReply:
        """
        Perform the exchange.

        Raises:
            TransportError: resolution, send or receive failure
            ExchangeTimeoutError: no reply within timeout_s
            FormatError: reply could not be decoded
        """
        if self._future is not None:
            raise RuntimeError("An Exchange can only be run once")

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self._timer = loop.call_later(self.timeout_s, self._on_timeout)
        opener = loop.create_task(self._open(loop))

        try:
            return await self._future
        finally:
            if not opener.done():
                opener.cancel()
            # Caller cancelled us while still waiting
            if not self.finished:
                self._finish(error=TransportError(f"{self.endpoint}: exchange cancelled"))

    async def _open(self, loop: asyncio.AbstractEventLoop) -> None:
        """Create the datagram endpoint (no fixed local port) and send the request."""
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _ExchangeProtocol(self),
                remote_addr=(self.endpoint.host, self.endpoint.port),
            )
        except (OSError, UnicodeError) as e:
            # UnicodeError: host name fails IDNA encoding during resolution
            self._fail(TransportError(f"Cannot reach {self.endpoint}: {e}"))
            return

        if self.finished:
            # Timed out while resolving; nobody owns this transport any more
            transport.close()
            return

        self._transport = transport
        try:
            transport.sendto(self.request)
        except OSError as e:
            self._fail(TransportError(f"Failed to send request to {self.endpoint}: {e}"))

    def _on_datagram(self, data: bytes) -> None:
        if self.finished:
            return

        destination_timestamp = time.time()
        try:
            reply = self.decoder(data, destination_timestamp, self.endpoint)
        except Exception as e:
            # Surfaced to the caller of run(), never raised into the protocol callback
            self._fail(e)
            return

        self._finish(reply=reply)

    def _on_timeout(self) -> None:
        self._timer = None
        self._fail(ExchangeTimeoutError(
            f"Timeout waiting for NTP response from {self.endpoint} "
            f"after {self.timeout_s:.3f}s"
        ))

    def _fail(self, error: Exception) -> None:
        self._finish(error=error)

    def _finish(self, reply: Optional[RawReply] = None, error: Optional[Exception] = None) -> bool:
        """
        PENDING -> FINISHED transition. Returns False if already finished.
        """
        if self.finished:
            return False
        self.state = ExchangeState.FINISHED

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        self._release()

        if self._future is not None and not self._future.done():
            if error is not None:
                self._future.set_exception(error)
            else:
                self._future.set_result(reply)

        if error is not None:
            logger.debug(f"{self.endpoint}: exchange failed: {error}")
        else:
            logger.debug(f"{self.endpoint}: reply received (stratum {reply.stratum})")
        return True

    def _release(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            self.releases += 1
            transport.close()


async def exchange(endpoint: ServerEndpoint, request: bytes, timeout_s: float) -> RawReply:
    """Send one request to one endpoint and wait for its reply."""
    return await Exchange(endpoint, request, timeout_s).run()
