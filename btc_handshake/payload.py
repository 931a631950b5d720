import io
import time
from enum import IntFlag

from tabulate import tabulate

from btc_handshake.command import Command
from btc_handshake.config import DEFAULT_CONFIG
from btc_handshake.errors import DecodeError, DecodeTruncatedError
from btc_handshake.utils import (
    bool_to_bytes, bytes_to_int, bytes_to_ip, fmt, int_to_bytes, ip_to_bytes,
    port_to_bytes, read_bool, read_bytes, read_int, read_port, read_short_str,
    str_to_short_str,
)

NONCE_SIZE = 8


class ServiceFlags(IntFlag):
    """Services bitfield advertised in version messages"""

    UNNAMED = 0
    NODE_NETWORK = 0x1
    NODE_GETUTXO = 0x2
    NODE_BLOOM = 0x4
    NODE_WITNESS = 0x8
    NODE_XTHIN = 0x10
    NODE_NETWORK_LIMITED = 0x400


class EmptyPayload:

    command = None

    @classmethod
    def from_bytes(cls, payload):
        return cls()

    def to_bytes(self):
        return b""

    def __eq__(self, other):
        return type(other) is type(self)

    def __repr__(self):
        return "<Empty>"


class VerackPayload(EmptyPayload):

    command = Command.VERACK

    def __str__(self):
        headers = ["VerackPayload", ""]
        rows = []
        return tabulate(rows, headers, tablefmt="grid")

    def __repr__(self):
        return "<Verack>"


class NoncePayload:

    command = None

    def __init__(self, nonce):
        self.nonce = nonce

    @classmethod
    def from_bytes(cls, payload):
        if len(payload) < NONCE_SIZE:
            raise DecodeTruncatedError("nonce", NONCE_SIZE, len(payload))
        if len(payload) > NONCE_SIZE:
            raise DecodeError(
                f"{cls.command.name.lower()} payload must be {NONCE_SIZE} bytes, got {len(payload)}"
            )
        return cls(bytes_to_int(payload))

    def to_bytes(self):
        return int_to_bytes(self.nonce, NONCE_SIZE)

    def __eq__(self, other):
        return type(other) is type(self) and self.nonce == other.nonce

    def __repr__(self):
        return f"<{self.command.name.capitalize()} nonce={self.nonce}>"


class PingPayload(NoncePayload):

    command = Command.PING


class PongPayload(NoncePayload):

    command = Command.PONG


class VersionPayload:

    command = Command.VERSION

    def __init__(
        self,
        version,
        services,
        timestamp,
        addr_recv_services,
        addr_recv_ip,
        addr_recv_port,
        addr_trans_services,
        addr_trans_ip,
        addr_trans_port,
        nonce,
        user_agent,
        start_height,
        relay,
    ):
        if len(user_agent.encode("utf-8")) > 0xFF:
            raise ValueError("user_agent must encode to at most 255 bytes")
        if len(addr_recv_ip) != 16 or len(addr_trans_ip) != 16:
            raise ValueError("ip addresses must be 16 bytes")
        self.version = version
        self.services = services
        self.timestamp = timestamp
        self.addr_recv_services = addr_recv_services
        self.addr_recv_ip = bytes(addr_recv_ip)
        self.addr_recv_port = addr_recv_port
        self.addr_trans_services = addr_trans_services
        self.addr_trans_ip = bytes(addr_trans_ip)
        self.addr_trans_port = addr_trans_port
        self.nonce = nonce
        self.user_agent = user_agent
        self.start_height = start_height
        self.relay = bool(relay)

    @classmethod
    def build(
        cls,
        services,
        addr_recv_services,
        addr_recv_socket,
        addr_trans_services,
        addr_trans_socket,
        nonce,
        start_height,
        relay,
        config=DEFAULT_CONFIG,
    ):
        """Version payload for an outgoing handshake, stamped with the current time

        Sockets are ``(host, port)`` tuples; IPv4 hosts are sent as IPv4-mapped
        IPv6 addresses.
        """
        recv_host, recv_port = addr_recv_socket[:2]
        trans_host, trans_port = addr_trans_socket[:2]
        return cls(
            version=config.protocol_version,
            services=int(services),
            timestamp=int(time.time()),
            addr_recv_services=int(addr_recv_services),
            addr_recv_ip=ip_to_bytes(recv_host),
            addr_recv_port=recv_port,
            addr_trans_services=int(addr_trans_services),
            addr_trans_ip=ip_to_bytes(trans_host),
            addr_trans_port=trans_port,
            nonce=nonce,
            user_agent=config.user_agent,
            start_height=start_height,
            relay=relay,
        )

    @classmethod
    def from_bytes(cls, payload):
        stream = io.BytesIO(payload)
        return cls.from_stream(stream)

    @classmethod
    def from_stream(cls, stream):
        version = read_int(stream, 4, "version", signed=True)
        services = read_int(stream, 8, "services")
        timestamp = read_int(stream, 8, "timestamp", signed=True)
        addr_recv_services = read_int(stream, 8, "addr_recv_services")
        addr_recv_ip = read_bytes(stream, 16, "addr_recv_ip")
        addr_recv_port = read_port(stream, "addr_recv_port")
        addr_trans_services = read_int(stream, 8, "addr_trans_services")
        addr_trans_ip = read_bytes(stream, 16, "addr_trans_ip")
        addr_trans_port = read_port(stream, "addr_trans_port")
        nonce = read_int(stream, 8, "nonce")
        user_agent = read_short_str(stream, "user_agent")
        start_height = read_int(stream, 4, "start_height", signed=True)
        relay = read_bool(stream, "relay")
        return cls(
            version,
            services,
            timestamp,
            addr_recv_services,
            addr_recv_ip,
            addr_recv_port,
            addr_trans_services,
            addr_trans_ip,
            addr_trans_port,
            nonce,
            user_agent,
            start_height,
            relay,
        )

    def to_bytes(self):
        msg = int_to_bytes(self.version, 4, signed=True)
        msg += int_to_bytes(self.services, 8)
        msg += int_to_bytes(self.timestamp, 8, signed=True)
        msg += int_to_bytes(self.addr_recv_services, 8)
        msg += self.addr_recv_ip
        msg += port_to_bytes(self.addr_recv_port)
        msg += int_to_bytes(self.addr_trans_services, 8)
        msg += self.addr_trans_ip
        msg += port_to_bytes(self.addr_trans_port)
        msg += int_to_bytes(self.nonce, 8)
        msg += str_to_short_str(self.user_agent)
        msg += int_to_bytes(self.start_height, 4, signed=True)
        msg += bool_to_bytes(self.relay)
        return msg

    @property
    def addr_recv(self):
        return (bytes_to_ip(self.addr_recv_ip), self.addr_recv_port)

    @property
    def addr_trans(self):
        return (bytes_to_ip(self.addr_trans_ip), self.addr_trans_port)

    def __str__(self):
        headers = ["VersionPayload", ""]
        rows = [
            ["version", self.version],
            ["services", fmt(ServiceFlags(self.services))],
            ["timestamp", self.timestamp],
            ["addr_recv", fmt(self.addr_recv)],
            ["addr_trans", fmt(self.addr_trans)],
            ["nonce", self.nonce],
            ["user_agent", fmt(self.user_agent)],
            ["start_height", self.start_height],
            ["relay", self.relay],
        ]
        return tabulate(rows, headers, tablefmt="grid")

    def __eq__(self, other):
        return type(other) is type(self) and self.__dict__ == other.__dict__

    def __repr__(self):
        return f"<Version {self.version} {self.user_agent!r} height={self.start_height}>"


command_to_payload = {
    Command.VERSION: VersionPayload,
    Command.VERACK: VerackPayload,
    Command.PING: PingPayload,
    Command.PONG: PongPayload,
}


def decode_payload(command, payload):
    """Interprets raw payload bytes according to the command that carried them"""
    return command_to_payload[command].from_bytes(bytes(payload))
