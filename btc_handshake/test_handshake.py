import asyncio

import pytest

from btc_handshake.command import Command
from btc_handshake.config import ProtocolConfig
from btc_handshake.errors import (
    ConnectionClosedError, HandshakeTimeoutError, InvalidAddressError,
    InvalidChecksumError, NetworkMismatchError, PayloadTooLargeError,
    UnexpectedMessageError,
)
from btc_handshake.handshake import (
    Handshake, HandshakeState, handshake, read_message,
)
from btc_handshake.message import Message
from btc_handshake.network import Network
from btc_handshake.payload import PingPayload, VerackPayload, VersionPayload
from btc_handshake.test_data import VERACK, VERSION, make_version_payload

LOCAL = ("127.0.0.1", 50000)
PEER = ("6.6.6.6", 8333)


class FakeWriter:
    def __init__(self, fail_after=None):
        self.written = []
        self.fail_after = fail_after
        self.closed = False

    def write(self, data):
        if self.fail_after is not None and len(self.written) >= self.fail_after:
            raise ConnectionResetError("connection reset by peer")
        self.written.append(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


def make_reader(data):
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def run_handshake(data, network=Network.MAINNET, writer=None, peer=PEER, **kwargs):
    async def go():
        return await handshake(make_reader(data), writer or FakeWriter(), network, LOCAL, peer, **kwargs)

    return asyncio.run(go())


def version_frame(network=Network.MAINNET):
    return Message(network, Command.VERSION, make_version_payload()).to_bytes()


def verack_frame(network=Network.MAINNET):
    return Message(network, Command.VERACK, VerackPayload()).to_bytes()


def test_handshake_established():
    writer = FakeWriter()
    hs = run_handshake(VERSION + VERACK, writer=writer, nonce=99)
    assert hs.state == HandshakeState.ESTABLISHED
    assert hs.established
    assert hs.error is None
    assert hs.peer_version.user_agent == "/some-cool-software/"
    assert hs.peer_verack == VerackPayload()

    # we sent our version first, then our verack
    assert len(writer.written) == 2
    sent_version = Message.from_bytes(writer.written[0])
    assert sent_version.command == Command.VERSION
    assert sent_version.payload.nonce == 99
    assert sent_version.payload.addr_recv == PEER
    assert sent_version.payload.addr_trans == LOCAL
    assert writer.written[1] == VERACK


def test_handshake_on_testnet():
    writer = FakeWriter()
    hs = run_handshake(version_frame(Network.TESTNET) + verack_frame(Network.TESTNET), Network.TESTNET, writer)
    assert hs.established
    assert Message.from_bytes(writer.written[0]).network == Network.TESTNET


def test_handshake_peer_closes_immediately():
    hs = run_handshake(b"")
    assert hs.state == HandshakeState.FAILED
    assert isinstance(hs.error, ConnectionClosedError)


def test_handshake_peer_closes_after_version():
    hs = run_handshake(VERSION)
    assert hs.state == HandshakeState.FAILED
    assert isinstance(hs.error, ConnectionClosedError)
    # the version was still recorded
    assert hs.peer_version is not None


def test_handshake_peer_closes_mid_header():
    hs = run_handshake(VERSION[:10])
    assert isinstance(hs.error, ConnectionClosedError)


def test_handshake_write_fails():
    hs = run_handshake(VERSION + VERACK, writer=FakeWriter(fail_after=0))
    assert hs.state == HandshakeState.FAILED
    assert isinstance(hs.error, ConnectionResetError)


def test_handshake_requires_version_first():
    hs = run_handshake(VERACK + VERSION)
    assert hs.state == HandshakeState.FAILED
    assert isinstance(hs.error, UnexpectedMessageError)
    assert hs.error.expected == Command.VERSION
    assert hs.error.received == Command.VERACK


def test_handshake_requires_verack_second():
    ping = Message(Network.MAINNET, Command.PING, PingPayload(1)).to_bytes()
    hs = run_handshake(VERSION + ping)
    assert isinstance(hs.error, UnexpectedMessageError)


def test_handshake_wrong_network():
    hs = run_handshake(version_frame(Network.REGTEST) + verack_frame(Network.REGTEST))
    assert hs.state == HandshakeState.FAILED
    assert isinstance(hs.error, NetworkMismatchError)
    assert hs.error.received == Network.REGTEST


def test_handshake_corrupt_message():
    corrupted = bytearray(VERSION)
    corrupted[-1] ^= 0xFF
    hs = run_handshake(bytes(corrupted) + VERACK)
    assert isinstance(hs.error, InvalidChecksumError)


def test_read_message_rejects_oversized_length_before_reading_payload():
    header = VERACK[:16] + (33 * 1024 * 1024).to_bytes(4, "little") + VERACK[20:24]

    async def go():
        return await read_message(make_reader(header))

    with pytest.raises(PayloadTooLargeError):
        asyncio.run(go())


def test_read_message_one_at_a_time():
    async def go():
        reader = make_reader(VERSION + VERACK)
        return await read_message(reader), await read_message(reader)

    version, verack = asyncio.run(go())
    assert isinstance(version.payload, VersionPayload)
    assert verack.payload == VerackPayload()


def test_version_message_uses_config():
    config = ProtocolConfig(protocol_version=70016, user_agent="/other:2.0/")
    hs = Handshake(None, None, Network.MAINNET, LOCAL, PEER, config)
    payload = hs.version_message().payload
    assert payload.version == 70016
    assert payload.user_agent == "/other:2.0/"


def test_independent_handshakes():
    async def go():
        good = handshake(make_reader(VERSION + VERACK), FakeWriter(), Network.MAINNET, LOCAL, PEER)
        bad = handshake(make_reader(b""), FakeWriter(), Network.MAINNET, LOCAL, PEER)
        return await asyncio.gather(good, bad)

    good, bad = asyncio.run(go())
    assert good.state == HandshakeState.ESTABLISHED
    assert bad.state == HandshakeState.FAILED


def test_handshake_with_hostname_peer_fails():
    writer = FakeWriter()
    hs = run_handshake(VERSION + VERACK, writer=writer, peer=("localhost", 8333))
    assert hs.state == HandshakeState.FAILED
    assert isinstance(hs.error, InvalidAddressError)
    assert hs.error.host == "localhost"
    # nothing went out on the wire
    assert writer.written == []


def test_handshake_timeout():
    async def go():
        # no data and no eof, the peer just sits there
        reader = asyncio.StreamReader()
        return await handshake(reader, FakeWriter(), Network.MAINNET, LOCAL, PEER, timeout=0.1)

    hs = asyncio.run(go())
    assert hs.state == HandshakeState.FAILED
    assert isinstance(hs.error, HandshakeTimeoutError)
    assert hs.stop is not None


def test_handshake_within_timeout():
    hs = run_handshake(VERSION + VERACK, timeout=5)
    assert hs.established
