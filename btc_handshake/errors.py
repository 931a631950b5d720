class BTCP2PError(Exception):
    """Base class for everything that can go wrong talking to a peer"""


class UnknownNetworkError(BTCP2PError):
    def __init__(self, magic):
        super().__init__(f"Unknown network magic {magic.hex()}")
        self.magic = magic


class InvalidCommandError(BTCP2PError):
    def __init__(self, raw):
        super().__init__(f"Invalid command {raw!r}")
        self.raw = raw


class InvalidHeaderSizeError(BTCP2PError):
    def __init__(self, size):
        super().__init__(f"Invalid header size: got {size} bytes, need 24")
        self.size = size


class PayloadTooLargeError(BTCP2PError):
    def __init__(self, length, limit):
        super().__init__(f"Payload of {length} bytes exceeds limit of {limit} bytes")
        self.length = length
        self.limit = limit


class InvalidChecksumError(BTCP2PError):
    def __init__(self, expected, actual):
        super().__init__(
            f"Checksums don't match: header says {expected.hex()}, payload hashes to {actual.hex()}"
        )
        self.expected = expected
        self.actual = actual


class DecodeError(BTCP2PError):
    pass


class DecodeTruncatedError(DecodeError):
    def __init__(self, field, needed, received):
        super().__init__(
            f"Tried to read {needed} bytes for {field}, only received {received} bytes"
        )
        self.field = field
        self.needed = needed
        self.received = received


class TruncatedPayloadError(DecodeTruncatedError):
    def __init__(self, needed, received):
        super().__init__("payload", needed, received)


class InvalidUtf8Error(DecodeError):
    pass


class InvalidAddressError(BTCP2PError):
    def __init__(self, host):
        super().__init__(f"{host!r} is not an IPv4 or IPv6 address")
        self.host = host


class HandshakeError(BTCP2PError):
    pass


class ConnectionClosedError(HandshakeError):
    pass


class HandshakeTimeoutError(HandshakeError):
    pass


class UnexpectedMessageError(HandshakeError):
    def __init__(self, expected, received):
        super().__init__(f"Expected {expected.name.lower()}, received {received.name.lower()}")
        self.expected = expected
        self.received = received


class NetworkMismatchError(HandshakeError):
    def __init__(self, expected, received):
        super().__init__(f"Expected a {expected.name} message, received {received.name}")
        self.expected = expected
        self.received = received
