from tabulate import tabulate

from btc_handshake.command import Command
from btc_handshake.config import DEFAULT_CONFIG
from btc_handshake.errors import (
    InvalidChecksumError, InvalidHeaderSizeError, PayloadTooLargeError,
    TruncatedPayloadError,
)
from btc_handshake.network import Network
from btc_handshake.payload import decode_payload
from btc_handshake.utils import (
    bytes_to_int, compute_checksum, encode_command, fmt, int_to_bytes,
)

HEADER_SIZE = 24

# byte ranges of the header fields
START_STRING = slice(0, 4)
COMMAND_NAME = slice(4, 16)
PAYLOAD_LENGTH = slice(16, 20)
CHECKSUM = slice(20, 24)


class MessageHeader:
    """The fixed 24 bytes in front of every payload

    [ 4] magic     network start string
    [12] command   ascii, NUL padded
    [ 4] length    uint32, little endian
    [ 4] checksum  sha256(sha256(payload))[:4]
    """

    def __init__(self, network, command, length, checksum):
        self.network = network
        self.command = command
        self.length = length
        self.checksum = checksum

    @classmethod
    def from_bytes(cls, b, config=DEFAULT_CONFIG):
        if len(b) < HEADER_SIZE:
            raise InvalidHeaderSizeError(len(b))
        network = Network.from_bytes(b[START_STRING])
        command = Command.from_bytes(b[COMMAND_NAME])
        length = bytes_to_int(b[PAYLOAD_LENGTH])
        if length > config.max_payload_size:
            raise PayloadTooLargeError(length, config.max_payload_size)
        checksum = bytes(b[CHECKSUM])
        return cls(network, command, length, checksum)

    def to_bytes(self):
        result = self.network.to_bytes()
        result += encode_command(self.command.to_bytes())
        result += int_to_bytes(self.length, 4)
        result += self.checksum
        return result

    def __eq__(self, other):
        return isinstance(other, MessageHeader) and self.__dict__ == other.__dict__

    def __repr__(self):
        return f"<MessageHeader {self.network.name} {self.command.name} length={self.length}>"


class Message:
    def __init__(self, network, command, payload):
        if payload.command is not None and payload.command != command:
            raise ValueError(
                f"{payload!r} cannot be sent as a {command.name.lower()} message"
            )
        self.network = network
        self.command = command
        self.payload = payload

    @classmethod
    def from_bytes(cls, b, config=DEFAULT_CONFIG):
        header = MessageHeader.from_bytes(b, config)

        end = HEADER_SIZE + header.length
        if len(b) < end:
            raise TruncatedPayloadError(header.length, len(b) - HEADER_SIZE)
        payload_bytes = bytes(b[HEADER_SIZE:end])

        computed_checksum = compute_checksum(payload_bytes)
        if computed_checksum != header.checksum:
            raise InvalidChecksumError(header.checksum, computed_checksum)

        payload = decode_payload(header.command, payload_bytes)
        return cls(header.network, header.command, payload)

    def header(self, payload_bytes=None):
        if payload_bytes is None:
            payload_bytes = self.payload.to_bytes()
        return MessageHeader(
            self.network,
            self.command,
            len(payload_bytes),
            compute_checksum(payload_bytes),
        )

    def to_bytes(self):
        payload_bytes = self.payload.to_bytes()
        return self.header(payload_bytes).to_bytes() + payload_bytes

    def __str__(self):
        headers = ["Message", ""]
        rows = [
            ["network", self.network.name],
            ["command", self.command.name.lower()],
            ["payload", fmt(repr(self.payload))],
        ]
        return tabulate(rows, headers, tablefmt="grid")

    def __eq__(self, other):
        return isinstance(other, Message) and self.__dict__ == other.__dict__

    def __repr__(self):
        return f"<Message {self.network.name} command={self.command.name.lower()}>"
