"""NTP wire protocol - request encoding, UDP exchange, reply validation."""

from .packet import RawReply, encode_request, decode_reply, PACKET_SIZE
from .transport import Exchange, ExchangeState, exchange
from .validation import accept_response

__all__ = [
    'RawReply', 'encode_request', 'decode_reply', 'PACKET_SIZE',
    'Exchange', 'ExchangeState', 'exchange',
    'accept_response',
]
