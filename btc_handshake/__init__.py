__version__ = "0.1.0"

from btc_handshake.command import Command
from btc_handshake.config import DEFAULT_CONFIG, ProtocolConfig
from btc_handshake.errors import (
    BTCP2PError, ConnectionClosedError, DecodeError, DecodeTruncatedError,
    HandshakeError, HandshakeTimeoutError, InvalidChecksumError,
    InvalidAddressError, InvalidCommandError, InvalidHeaderSizeError,
    InvalidUtf8Error, NetworkMismatchError, PayloadTooLargeError,
    TruncatedPayloadError, UnexpectedMessageError, UnknownNetworkError,
)
from btc_handshake.handshake import Handshake, HandshakeState, handshake, read_message
from btc_handshake.message import HEADER_SIZE, Message, MessageHeader
from btc_handshake.network import Network
from btc_handshake.payload import (
    EmptyPayload, PingPayload, PongPayload, ServiceFlags, VerackPayload,
    VersionPayload, decode_payload,
)
from btc_handshake.utils import compute_checksum
