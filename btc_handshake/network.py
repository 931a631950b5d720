from enum import Enum

from btc_handshake.errors import UnknownNetworkError

DEFAULT_PORTS = {
    b"\xf9\xbe\xb4\xd9": 8333,
    b"\x0b\x11\x09\x07": 18333,
    b"\xfa\xbf\xb5\xda": 18444,
}


class Network(Enum):
    """The chain a message belongs to, valued by its magic bytes"""

    MAINNET = b"\xf9\xbe\xb4\xd9"
    TESTNET = b"\x0b\x11\x09\x07"
    REGTEST = b"\xfa\xbf\xb5\xda"

    @classmethod
    def from_bytes(cls, b):
        b = bytes(b)
        try:
            return cls(b)
        except ValueError:
            raise UnknownNetworkError(b) from None

    @classmethod
    def from_name(cls, name):
        return cls[name.upper()]

    def to_bytes(self):
        return self.value

    @property
    def default_port(self):
        return DEFAULT_PORTS[self.value]
