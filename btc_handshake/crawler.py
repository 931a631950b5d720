import asyncio
import logging
import socket
import time

import requests
from tabulate import tabulate

from btc_handshake.config import DEFAULT_CONFIG
from btc_handshake.errors import (
    BTCP2PError, ConnectionClosedError, HandshakeTimeoutError,
)
from btc_handshake.handshake import Handshake
from btc_handshake.network import Network

logger = logging.getLogger(__name__)

DEFAULT_SEEDS = {
    Network.MAINNET: [
        "seed.bitcoin.sipa.be",
        "dnsseed.bluematt.me",
        "seed.bitcoinstats.com",
        "seed.btc.petertodd.net",
    ],
    Network.TESTNET: [
        "testnet-seed.bitcoin.jonasschnelli.ch",
        "seed.tbtc.petertodd.net",
        "testnet-seed.bluematt.me",
    ],
    Network.REGTEST: [],
}
BITNODES_URL = "https://bitnodes.io/api/v1/snapshots/latest/"

DEFAULT_TIMEOUT = 3
DEFAULT_WORKERS = 50
DEFAULT_QUEUE_SIZE = 100


async def lookup_seeds(seeds, port):
    """Resolves DNS seeds into a de-duplicated list of (ip, port) tuples"""
    loop = asyncio.get_running_loop()
    addresses = []
    for seed in seeds:
        try:
            infos = await loop.getaddrinfo(seed, port, type=socket.SOCK_STREAM)
        except OSError as e:
            logger.warning("Failed to resolve seed %s: %s", seed, e)
            continue
        for *_, sockaddr in infos:
            address = (sockaddr[0], sockaddr[1])
            if address not in addresses:
                addresses.append(address)
        logger.info("Seed %s gave us %d addresses", seed, len(infos))
    return addresses


def get_nodes(url=BITNODES_URL):
    response = requests.get(url, timeout=30)
    response.raise_for_status()
    return response.json()["nodes"]


def nodes_to_address_tuples(nodes):
    addr_tuples = []
    for raw_addr in nodes.keys():
        ip, port = raw_addr.rsplit(":", 1)
        # tor peers are unreachable without a proxy
        if ip.endswith(".onion"):
            continue
        addr_tuple = (ip.strip("[]"), int(port))
        addr_tuples.append(addr_tuple)
    return addr_tuples


def get_address_tuples(url=BITNODES_URL):
    nodes = get_nodes(url)
    return nodes_to_address_tuples(nodes)


class Connection:
    """One connect-and-handshake attempt against a single peer"""

    def __init__(self, address, worker, network=Network.MAINNET, config=DEFAULT_CONFIG, timeout=DEFAULT_TIMEOUT):
        self.address = address
        self.worker = worker
        self.network = network
        self.config = config
        self.timeout = timeout
        self.start = None
        self.stop = None
        self.error = None
        self.handshake = None
        self.writer = None

    @property
    def outcome(self):
        if self.error is None:
            return "established" if self.handshake and self.handshake.established else "pending"
        if isinstance(self.error, HandshakeTimeoutError):
            return "timeout"
        if isinstance(self.error, (ConnectionClosedError, OSError)):
            return "io-error"
        return "protocol-error"

    @property
    def peer_version(self):
        return self.handshake.peer_version if self.handshake else None

    async def _connect(self):
        host, port = self.address
        reader, self.writer = await asyncio.open_connection(host, port)
        # resolved endpoints, the version payload needs IP literals
        local_address = self.writer.get_extra_info("sockname")
        peer_address = self.writer.get_extra_info("peername")
        self.handshake = Handshake(
            reader,
            self.writer,
            self.network,
            local_address,
            peer_address,
            self.config,
        )
        if not await self.handshake.run():
            raise self.handshake.error

    async def close(self):
        if self.writer is None:
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug("Error closing connection to %s: %s", self.address, e)

    async def connect(self):
        self.start = time.time()
        try:
            await asyncio.wait_for(self._connect(), self.timeout)
        except asyncio.TimeoutError:
            self.error = HandshakeTimeoutError(f"Handshake with {self.address} took longer than {self.timeout}s")
            if self.handshake is not None:
                self.handshake.fail(self.error)
        except (BTCP2PError, OSError) as e:
            self.error = e
        finally:
            self.stop = time.time()
            await self.close()
        return self.error is None

    def __repr__(self):
        return f"<Connection {self.address} {self.outcome}>"


class Crawler:
    """Hands candidate addresses to a fixed pool of handshake workers

    Addresses flow through a bounded queue so the producer never gets far
    ahead of the workers. Each worker owns one connection at a time.
    """

    def __init__(
        self,
        addresses,
        network=Network.MAINNET,
        num_workers=DEFAULT_WORKERS,
        queue_size=DEFAULT_QUEUE_SIZE,
        timeout=DEFAULT_TIMEOUT,
        config=DEFAULT_CONFIG,
    ):
        if num_workers < 1:
            raise ValueError("need at least one worker")
        self.addresses = addresses
        self.network = network
        self.num_workers = num_workers
        self.queue_size = queue_size
        self.timeout = timeout
        self.config = config
        self.connections = []
        self.address_queue = None

    async def produce(self):
        for address in self.addresses:
            await self.address_queue.put(address)
        # one stop marker per worker
        for _ in range(self.num_workers):
            await self.address_queue.put(None)

    async def work(self, name):
        while True:
            address = await self.address_queue.get()
            if address is None:
                break
            connection = Connection(address, name, self.network, self.config, self.timeout)
            await connection.connect()
            if connection.error is None:
                logger.info("%s: handshake with %s established", name, address)
            else:
                logger.warning("%s: handshake with %s failed (%s): %s", name, address, connection.outcome, connection.error)
            self.connections.append(connection)

    async def crawl(self):
        self.address_queue = asyncio.Queue(maxsize=self.queue_size)
        workers = [self.work(f"worker-{i}") for i in range(self.num_workers)]
        await asyncio.gather(self.produce(), *workers)
        return self.connections

    def summary(self):
        counts = {}
        for connection in self.connections:
            counts[connection.outcome] = counts.get(connection.outcome, 0) + 1
        return counts

    def report(self):
        headers = ["Address", "Outcome", "Seconds", "User agent / error"]
        rows = []
        for connection in self.connections:
            host, port = connection.address
            duration = connection.stop - connection.start
            if connection.peer_version is not None and connection.error is None:
                detail = connection.peer_version.user_agent
            else:
                detail = str(connection.error)
            rows.append([f"{host}:{port}", connection.outcome, f"{duration:.2f}", detail])
        table = tabulate(rows, headers, tablefmt="grid")
        totals = tabulate(sorted(self.summary().items()), ["Outcome", "Count"], tablefmt="grid")
        return table + "\n" + totals
