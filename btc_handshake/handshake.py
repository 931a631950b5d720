import asyncio
import logging
import random
import time
from enum import Enum

from btc_handshake.command import Command
from btc_handshake.config import DEFAULT_CONFIG
from btc_handshake.errors import (
    BTCP2PError, ConnectionClosedError, HandshakeTimeoutError,
    NetworkMismatchError, UnexpectedMessageError,
)
from btc_handshake.message import HEADER_SIZE, Message, MessageHeader
from btc_handshake.payload import ServiceFlags, VerackPayload, VersionPayload

logger = logging.getLogger(__name__)


class HandshakeState(Enum):
    CONNECTED = "connected"
    VERSION_SENT = "version-sent"
    VERSION_RECEIVED = "version-received"
    VERACK_SENT = "verack-sent"
    ESTABLISHED = "established"
    FAILED = "failed"


async def read_exactly(reader, n, what):
    try:
        return await reader.readexactly(n)
    except asyncio.IncompleteReadError as e:
        raise ConnectionClosedError(
            f"Peer closed the connection after {len(e.partial)} of {n} {what} bytes"
        ) from e


async def read_message(reader, config=DEFAULT_CONFIG):
    """Reads one full message off an asyncio stream

    The header is parsed before the payload is read so an oversized length is
    rejected without buffering anything.
    """
    raw_header = await read_exactly(reader, HEADER_SIZE, "header")
    header = MessageHeader.from_bytes(raw_header, config)
    payload = await read_exactly(reader, header.length, "payload")
    return Message.from_bytes(raw_header + payload, config)


async def send_message(writer, message):
    writer.write(message.to_bytes())
    await writer.drain()


class Handshake:
    """version/verack exchange with one peer over an open stream

    The peer's first message has to be a ``version`` and its second a
    ``verack``; anything else fails the handshake.
    """

    def __init__(
        self,
        reader,
        writer,
        network,
        local_address,
        peer_address,
        config=DEFAULT_CONFIG,
        services=ServiceFlags.NODE_NETWORK,
        nonce=None,
        start_height=0,
        relay=True,
    ):
        self.reader = reader
        self.writer = writer
        self.network = network
        self.local_address = local_address
        self.peer_address = peer_address
        self.config = config
        self.services = services
        self.nonce = random.getrandbits(64) if nonce is None else nonce
        self.start_height = start_height
        self.relay = relay
        self.state = HandshakeState.CONNECTED
        self.error = None
        self.start = None
        self.stop = None
        # What the peer told us
        self.peer_version = None
        self.peer_verack = None

    def transition(self, state):
        logger.debug("%s: %s -> %s", self.peer_label, self.state.value, state.value)
        self.state = state

    def fail(self, error):
        self.error = error
        self.transition(HandshakeState.FAILED)

    @property
    def peer_label(self):
        host, port = self.peer_address[:2]
        return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"

    @property
    def established(self):
        return self.state == HandshakeState.ESTABLISHED

    def version_message(self):
        payload = VersionPayload.build(
            services=self.services,
            addr_recv_services=ServiceFlags.NODE_NETWORK,
            addr_recv_socket=self.peer_address,
            addr_trans_services=self.services,
            addr_trans_socket=self.local_address,
            nonce=self.nonce,
            start_height=self.start_height,
            relay=self.relay,
            config=self.config,
        )
        return Message(self.network, Command.VERSION, payload)

    def verack_message(self):
        return Message(self.network, Command.VERACK, VerackPayload())

    async def expect(self, command):
        message = await read_message(self.reader, self.config)
        logger.debug("%s: received %r", self.peer_label, message)
        if message.network != self.network:
            raise NetworkMismatchError(self.network, message.network)
        if message.command != command:
            raise UnexpectedMessageError(command, message.command)
        return message

    async def _run(self):
        await send_message(self.writer, self.version_message())
        self.transition(HandshakeState.VERSION_SENT)

        message = await self.expect(Command.VERSION)
        self.peer_version = message.payload
        self.transition(HandshakeState.VERSION_RECEIVED)

        await send_message(self.writer, self.verack_message())
        self.transition(HandshakeState.VERACK_SENT)

        message = await self.expect(Command.VERACK)
        self.peer_verack = message.payload
        self.transition(HandshakeState.ESTABLISHED)

    async def run(self):
        """Returns True once established, False after recording the failure in ``error``"""
        self.start = time.time()
        try:
            await self._run()
        except (BTCP2PError, OSError) as e:
            logger.debug("%s: handshake failed in state %s: %s", self.peer_label, self.state.value, e)
            self.fail(e)
        finally:
            self.stop = time.time()
        return self.established


async def handshake(reader, writer, network, local_address, peer_address, config=DEFAULT_CONFIG, timeout=None, **kwargs):
    """Runs a handshake to completion, failing it with HandshakeTimeoutError after ``timeout`` seconds"""
    hs = Handshake(reader, writer, network, local_address, peer_address, config, **kwargs)
    try:
        await asyncio.wait_for(hs.run(), timeout)
    except asyncio.TimeoutError:
        hs.fail(HandshakeTimeoutError(f"Handshake with {hs.peer_label} took longer than {timeout}s"))
        hs.stop = time.time()
    return hs
