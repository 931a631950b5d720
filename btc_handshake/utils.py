import hashlib
import ipaddress
import re

from btc_handshake.errors import (
    DecodeTruncatedError, InvalidAddressError, InvalidUtf8Error,
)

IPV4_PREFIX = b"\x00" * 10 + b"\xff" * 2
COMMAND_NAME_SIZE = 12
CHECKSUM_SIZE = 4


def double_sha256(b):
    first_round = hashlib.sha256(b).digest()
    second_round = hashlib.sha256(first_round).digest()
    return second_round


def compute_checksum(payload_bytes):
    return double_sha256(payload_bytes)[:CHECKSUM_SIZE]


def fmt(bytestr):
    string = str(bytestr)
    maxlen = 500
    msg = string[:maxlen]
    if len(string) > maxlen:
        msg += "..."
    return re.sub("(.{80})", "\\1\n", msg, 0, re.DOTALL)


def bytes_to_int(b, byte_order="little", signed=False):
    return int.from_bytes(b, byte_order, signed=signed)


def int_to_bytes(i, length, byte_order="little", signed=False):
    return int.to_bytes(i, length, byte_order, signed=signed)


def read_bytes(stream, n, field):
    b = stream.read(n)
    if len(b) != n:
        raise DecodeTruncatedError(field, n, len(b))
    return b


def read_int(stream, n, field, byte_order="little", signed=False):
    return bytes_to_int(read_bytes(stream, n, field), byte_order, signed)


def read_bool(stream, field):
    return bool(read_int(stream, 1, field))


def bool_to_bytes(boolean):
    return int_to_bytes(int(boolean), 1)


def read_port(stream, field):
    return read_int(stream, 2, field, byte_order="big")


def port_to_bytes(port):
    return int_to_bytes(port, 2, byte_order="big")


def read_short_str(stream, field):
    """Reads a string prefixed by a single length byte"""
    length = read_int(stream, 1, f"{field} length")
    raw = read_bytes(stream, length, field)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidUtf8Error(f"{field} is not valid utf-8: {raw!r}") from e


def str_to_short_str(s):
    raw = s.encode("utf-8")
    if len(raw) > 0xFF:
        raise ValueError(f"string too long for a one byte length prefix: {len(raw)} bytes")
    return bytes([len(raw)]) + raw


def encode_command(cmd):
    padding_needed = COMMAND_NAME_SIZE - len(cmd)
    if padding_needed < 0:
        raise ValueError(f"command name too long: {cmd!r}")
    padding = b"\x00" * padding_needed
    return cmd + padding


def ip_to_bytes(ip):
    """Maps an IPv4 or IPv6 address to the 16 byte form used on the wire"""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        raise InvalidAddressError(ip) from None
    if address.version == 4:
        return IPV4_PREFIX + address.packed
    return address.packed


def bytes_to_ip(b):
    if bytes(b[0:12]) == IPV4_PREFIX:  # IPv4
        return str(ipaddress.IPv4Address(bytes(b[12:16])))
    else:  # IPv6
        return str(ipaddress.IPv6Address(bytes(b)))
