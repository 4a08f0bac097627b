"""
NTP Packet Encoding and Decoding

Client requests are built here. Replies are decoded by ntplib's NTPPacket
parser and converted into a RawReply carrying Unix-time timestamps.

Request layout (48 bytes, RFC 5905 section 7.3):

     0      LI (2 bits) | VN (3 bits) | Mode (3 bits)
     1-23   zero (stratum, poll, precision, root delay/dispersion, refid, reftime)
    24-31   origin timestamp   (64-bit NTP fixed point)
    32-39   zero (receive timestamp)
    40-47   transmit timestamp (same value as origin)

The 64-bit timestamp holds seconds since the reference epoch in the high
32 bits and the fraction of a second in the low 32 bits.
"""

import struct
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import ntplib

from ..config import NTP_EPOCH, ServerEndpoint
from ..exceptions import FormatError


PACKET_SIZE = 48

LEAP_UNSYNCHRONIZED = 3
MODE_CLIENT = 3
MODE_SERVER = 4

ORIGIN_TIMESTAMP_OFFSET = 24
TRANSMIT_TIMESTAMP_OFFSET = 40


@dataclass(frozen=True)
class RawReply:
    """
    Decoded reply for one exchange.

    All timestamps are Unix seconds. destination_timestamp is stamped by the
    transport at the moment the datagram arrived, not by the decoder.
    """
    leap_indicator: int
    version: int
    mode: int
    stratum: int
    root_delay: float            # seconds
    root_dispersion: float       # seconds
    origin_timestamp: float
    receive_timestamp: float
    transmit_timestamp: float
    destination_timestamp: float
    precision_exp: int           # log2 seconds, as reported by the server
    server: Optional[ServerEndpoint] = None


def to_ntp_timestamp(unix_seconds: float, reference_epoch: datetime = NTP_EPOCH) -> int:
    """Convert Unix seconds to a 64-bit NTP fixed-point timestamp."""
    value = round((unix_seconds - reference_epoch.timestamp()) * 2 ** 32)
    if not 0 <= value < 2 ** 64:
        raise ValueError(f"Time {unix_seconds} not representable relative to {reference_epoch}")
    return value


def encode_request(
    leap_indicator: int = LEAP_UNSYNCHRONIZED,
    version: Optional[int] = None,
    mode: int = MODE_CLIENT,
    *,
    reference_epoch: datetime = NTP_EPOCH,
    now: Optional[float] = None
) -> bytes:
    """
    Build a 48-byte client request stamped with the current local time.

    Args:
        leap_indicator: 2-bit leap indicator, defaults to 3 (unsynchronized)
        version: 3-bit protocol version, defaults to 4
        mode: 3-bit association mode, defaults to 3 (client)
        reference_epoch: epoch of the NTP timescale
        now: Unix time to embed (default: time.time())

    Returns:
        Request datagram
    """
    if version is None:
        version = 4
    if not 0 <= leap_indicator < 4:
        raise ValueError(f"Leap indicator must fit in 2 bits, got {leap_indicator}")
    if not 0 <= version < 8:
        raise ValueError(f"Version must fit in 3 bits, got {version}")
    if not 0 <= mode < 8:
        raise ValueError(f"Mode must fit in 3 bits, got {mode}")

    if now is None:
        now = time.time()

    packet = bytearray(PACKET_SIZE)
    packet[0] = (leap_indicator << 6) | (version << 3) | mode

    timestamp = struct.pack('!Q', to_ntp_timestamp(now, reference_epoch))
    packet[ORIGIN_TIMESTAMP_OFFSET:ORIGIN_TIMESTAMP_OFFSET + 8] = timestamp
    packet[TRANSMIT_TIMESTAMP_OFFSET:TRANSMIT_TIMESTAMP_OFFSET + 8] = timestamp

    return bytes(packet)


def decode_reply(
    data: bytes,
    destination_timestamp: float,
    server: Optional[ServerEndpoint] = None
) -> RawReply:
    """
    Decode a reply datagram.

    Raises:
        FormatError: datagram is too short or otherwise not an NTP packet
    """
    packet = ntplib.NTPPacket()
    try:
        packet.from_data(data)
    except ntplib.NTPException as e:
        raise FormatError(f"Undecodable reply from {server}: {e}") from e

    return RawReply(
        leap_indicator=packet.leap,
        version=packet.version,
        mode=packet.mode,
        stratum=packet.stratum,
        root_delay=packet.root_delay,
        root_dispersion=packet.root_dispersion,
        origin_timestamp=ntplib.ntp_to_system_time(packet.orig_timestamp),
        receive_timestamp=ntplib.ntp_to_system_time(packet.recv_timestamp),
        transmit_timestamp=ntplib.ntp_to_system_time(packet.tx_timestamp),
        destination_timestamp=destination_timestamp,
        precision_exp=packet.precision,
        server=server,
    )
