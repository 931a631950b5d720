import argparse
import asyncio
import logging
import sys

from btc_handshake.config import DEFAULT_CONFIG
from btc_handshake.crawler import (
    DEFAULT_QUEUE_SIZE, DEFAULT_SEEDS, DEFAULT_TIMEOUT, DEFAULT_WORKERS,
    Crawler, get_address_tuples, lookup_seeds,
)
from btc_handshake.network import Network


def parse_peer(raw, default_port):
    if raw.startswith("["):  # [ipv6]:port
        host, _, port = raw[1:].partition("]")
        port = port.lstrip(":")
        return (host, int(port) if port else default_port)
    if raw.count(":") == 1:
        host, port = raw.split(":")
        return (host, int(port))
    return (raw, default_port)


def parse_args(argv):
    parser = argparse.ArgumentParser(
        prog="btc_handshake",
        description="Run the version/verack handshake against bitcoin peers",
    )
    parser.add_argument(
        "--network",
        choices=[network.name.lower() for network in Network],
        default="mainnet",
    )
    parser.add_argument("--seed", action="append", dest="seeds", help="DNS seed to resolve (repeatable)")
    parser.add_argument("--peer", action="append", dest="peers", default=[], help="HOST:PORT to handshake with (repeatable)")
    parser.add_argument("--bitnodes", action="store_true", help="also use the bitnodes.io snapshot of reachable nodes")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS)
    parser.add_argument("--queue-size", type=int, default=DEFAULT_QUEUE_SIZE)
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    parser.add_argument("--limit", type=int, default=None, help="stop after this many addresses")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


async def gather_addresses(args, network):
    addresses = [parse_peer(raw, network.default_port) for raw in args.peers]
    seeds = args.seeds if args.seeds is not None else DEFAULT_SEEDS[network]
    if not args.peers or args.seeds is not None:
        addresses += await lookup_seeds(seeds, network.default_port)
    if args.bitnodes:
        loop = asyncio.get_running_loop()
        addresses += await loop.run_in_executor(None, get_address_tuples)
    if args.limit is not None:
        addresses = addresses[: args.limit]
    return addresses


async def run(args):
    network = Network.from_name(args.network)
    addresses = await gather_addresses(args, network)
    logging.getLogger(__name__).info("Handshaking with %d addresses on %s", len(addresses), network.name)
    crawler = Crawler(
        addresses,
        network=network,
        num_workers=args.workers,
        queue_size=args.queue_size,
        timeout=args.timeout,
        config=DEFAULT_CONFIG,
    )
    await crawler.crawl()
    return crawler


def main(argv=None):
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    crawler = asyncio.run(run(args))
    print(crawler.report())
    return 0 if crawler.summary().get("established") else 1


if __name__ == "__main__":
    sys.exit(main())
