"""
Explore a bridge transfer from the command line.

Usage:
    python scripts/explore_transfer.py --network testnet <tx hash or signature>
    python scripts/explore_transfer.py --network mainnet --json <reference>

Exit codes: 0 found, 1 query error, 2 invalid input or configuration.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bridge_explorer import (
    BridgeExplorer,
    BridgeExplorerError,
    ConfigurationError,
    ExploreResult,
    ExplorerConfig,
    InvalidReferenceError,
)
from chain_adapters import ChainAdapterError


logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def print_result(result: ExploreResult) -> None:
    print_banner(f"{result.reference.chain_hint.value.upper()} {result.reference.raw_value}")
    print(f"  Role: {result.entity_kind.value}")

    lifecycle = result.lifecycle
    if lifecycle is None:
        print("  Not part of a bridge message")
        return

    message = lifecycle.message
    print(f"  Message: {lifecycle.message_hash}")
    print(f"  Status: {lifecycle.status.value}")
    print(f"  Route: {message.source_chain.value} -> {message.dest_chain.value}")
    print(f"  Amount: {message.display_amount} {message.symbol or message.asset_identifier}")
    if message.sender:
        print(f"  From: {message.sender}")
    print(f"  To: {message.receiver}")

    print_banner("Lifecycle")
    for event in lifecycle.events:
        print(f"  {event.stage.value:<9} {event.block_timestamp.isoformat()}  {event.chain_name or event.chain.value}")
        print(f"            {event.explorer_url or event.transaction_hash}")
    for attempt in lifecycle.failed_attempts:
        print(f"  failed    {attempt.block_timestamp.isoformat()}  {attempt.transaction_hash}")


async def run(args: argparse.Namespace) -> int:
    try:
        config = ExplorerConfig.from_env(network=args.network)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    explorer = BridgeExplorer(config)
    try:
        result = await explorer.explore(args.reference, timeout=args.timeout)
    except (InvalidReferenceError, ConfigurationError) as e:
        logger.error(str(e))
        return 2
    except (BridgeExplorerError, ChainAdapterError) as e:
        if args.json:
            print(json.dumps({"error": e.to_dict()}, indent=2, default=str))
        else:
            logger.error(str(e))
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_result(result)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Show the lifecycle of a Base <-> Solana bridge transfer")
    parser.add_argument("reference", help="EVM transaction hash or Solana signature")
    parser.add_argument(
        "--network",
        required=True,
        choices=["mainnet", "testnet"],
        help="Network pair to query (Base/Solana or Base Sepolia/Solana Devnet)",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Query deadline in seconds")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
