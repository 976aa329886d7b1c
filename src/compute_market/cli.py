import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .common.config import resolve_chain_context, settings
from .common.exceptions import ComputeMarketError
from .integrations.ledger.client import LedgerClient
from .integrations.pinata.client import PinataMetadataResolver
from .monitor.monitor_proposals import monitor_rent_proposals
from .services.listings import ListingAggregator
from .services.proposals import ProposalStateEngine

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _print(payload):
    print(json.dumps(payload, indent=2))


async def run_command(args: argparse.Namespace):
    """Run the selected command against the configured network."""
    context = resolve_chain_context(args.network)
    logger.info(f"Using network {context.network} ({context.rpc_endpoint}), marketplace {context.marketplace_address}")

    if args.command == "monitor":
        check_interval = args.interval or settings.CHECK_INTERVAL
        await monitor_rent_proposals(context, continuous=not args.once, check_interval=check_interval)
        return

    async with LedgerClient.for_context(context, timeout=settings.RPC_TIMEOUT) as ledger, \
            PinataMetadataResolver.from_settings(settings) as metadata:
        if args.command == "listings":
            aggregator = ListingAggregator(
                context,
                ledger,
                metadata,
                concurrency=settings.LISTING_CONCURRENCY,
                entry_timeout=settings.LISTING_TIMEOUT
            )
            listings = await aggregator.get_listings()
            _print([listing.to_payload() for listing in listings])
        elif args.command == "proposal":
            engine = ProposalStateEngine(context, ledger)
            proposal = await engine.get_proposal(args.dao)
            _print(proposal.to_payload())
        elif args.command == "oracle-price":
            aggregator = ListingAggregator(context, ledger, metadata)
            _print({"price": await aggregator.get_native_usd_price()})
        elif args.command == "upload-image":
            _print(await metadata.upload_hardware_image(args.path))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute marketplace chain tools")
    parser.add_argument("--network", default=None, help="Network to use (default: NETWORK setting)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("listings", help="Print every marketplace listing")

    proposal = subparsers.add_parser("proposal", help="Print the rental price proposal of a DAO")
    proposal.add_argument("--dao", required=True, help="DAO contract address")

    subparsers.add_parser("oracle-price", help="Print the latest price oracle value")

    upload = subparsers.add_parser("upload-image", help="Pin a hardware image to IPFS")
    upload.add_argument("path", help="Image file to upload")

    monitor = subparsers.add_parser("monitor", help="Track rental price proposals")
    monitor.add_argument("--once", action="store_true", help="Run a single check and exit")
    monitor.add_argument("--interval", type=int, default=None, help="Seconds between checks")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except ComputeMarketError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        _print(e.to_dict())
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
