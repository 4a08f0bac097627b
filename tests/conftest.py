"""
Pytest configuration and fixtures for ntp-time-sync tests.
"""

import asyncio
import struct
import sys
import time
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from ntp_time_sync.config import ServerEndpoint, SyncConfiguration
from ntp_time_sync.protocol.packet import RawReply


NTP_DELTA = 2208988800  # seconds between 1900-01-01 and 1970-01-01


def _ntp_parts(unix_seconds):
    value = round((unix_seconds + NTP_DELTA) * 2 ** 32)
    return value >> 32, value & 0xFFFFFFFF


@pytest.fixture
def config():
    """Configuration with two local servers."""
    return SyncConfiguration.from_options({
        'servers': ['127.0.0.1:10123', '127.0.0.2:10123'],
        'reply_timeout_ms': 200,
    })


@pytest.fixture
def make_reply():
    """
    Factory for decoded replies.

    The server clock runs offset_s ahead of ours; the reply travelled delay_s
    round trip with no server processing time.
    """
    def make(offset_s=0.5, delay_s=0.02, **overrides):
        t1 = time.time() - 0.1
        t4 = t1 + delay_s
        t2 = t1 + delay_s / 2 + offset_s
        fields = dict(
            leap_indicator=0,
            version=4,
            mode=4,
            stratum=2,
            root_delay=0.01,
            root_dispersion=0.01,
            origin_timestamp=t1,
            receive_timestamp=t2,
            transmit_timestamp=t2,
            destination_timestamp=t4,
            precision_exp=-20,
        )
        fields.update(overrides)
        return RawReply(**fields)
    return make


@pytest.fixture
def build_reply_datagram():
    """Factory for server reply datagrams answering a given request."""
    def build(request, leap=0, version=4, stratum=2, precision=-20,
              root_delay=0.01, root_dispersion=0.01, server_offset=0.0):
        orig_high, orig_low = struct.unpack('!II', request[40:48])
        now_high, now_low = _ntp_parts(time.time() + server_offset)
        return struct.pack(
            '!B B B b 11I',
            (leap << 6) | (version << 3) | 4,
            stratum,
            0,
            precision,
            int(root_delay * 2 ** 16),
            int(root_dispersion * 2 ** 16),
            0,
            0, 0,
            orig_high, orig_low,
            now_high, now_low,
            now_high, now_low,
        )
    return build


class _Responder(asyncio.DatagramProtocol):
    """In-process UDP server; respond(data) returns the reply or None."""

    def __init__(self, respond):
        self.respond = respond
        self.requests = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.requests.append(data)
        reply = self.respond(data)
        if reply is not None:
            self.transport.sendto(reply, addr)


@pytest.fixture
def ntp_responder():
    """
    Start a local UDP responder (call from inside a running event loop).

    Returns (transport, protocol, endpoint); the caller closes the transport.
    """
    async def start(respond):
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: _Responder(respond),
            local_addr=('127.0.0.1', 0),
        )
        host, port = transport.get_extra_info('sockname')[:2]
        return transport, protocol, ServerEndpoint(host, port)
    return start
