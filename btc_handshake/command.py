from enum import Enum

from btc_handshake.errors import InvalidCommandError


class Command(Enum):
    VERSION = b"version"
    VERACK = b"verack"
    PING = b"ping"
    PONG = b"pong"

    @classmethod
    def from_bytes(cls, raw):
        # remove trailing empty bytes
        name = bytes(raw).rstrip(b"\x00")
        try:
            return cls(name)
        except ValueError:
            raise InvalidCommandError(bytes(raw)) from None

    def to_bytes(self):
        # padding to 12 bytes is the framer's job, see utils.encode_command
        return self.value
