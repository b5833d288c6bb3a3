"""chainscope command line entry point.

Usage:
    chainscope analyze ADDRESS [--depth N] [--limit N] [--no-external] [--pretty]
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import orjson
import structlog
from dotenv import load_dotenv

from .config.settings import ForensicsConfig
from .orchestrator import ForensicsOrchestrator
from .utils.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chainscope",
        description="Wallet clustering, anomaly patterns and risk scoring",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze one wallet address")
    analyze.add_argument("address", help="Solana wallet address")
    analyze.add_argument(
        "--depth",
        type=int,
        default=None,
        help="Cluster expansion depth (1 = no expansion)"
    )
    analyze.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Transfers fetched for the address"
    )
    analyze.add_argument(
        "--no-external",
        action="store_true",
        help="Skip the external risk service"
    )
    analyze.add_argument(
        "--pretty",
        action="store_true",
        help="Indent JSON output"
    )
    return parser


async def run_analysis(args: argparse.Namespace, config: ForensicsConfig) -> int:
    orchestrator = ForensicsOrchestrator(config)
    try:
        result = await orchestrator.analyze_safely(
            args.address,
            depth=args.depth,
            limit=args.limit,
            include_external=not args.no_external,
        )
    finally:
        await orchestrator.close()

    option = orjson.OPT_INDENT_2 if args.pretty else 0
    sys.stdout.write(orjson.dumps(result.to_dict(), option=option).decode() + "\n")
    return 0 if result.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    config = ForensicsConfig.get_instance()
    configure_logging(config.log_level, config.log_json)

    if args.command == "analyze":
        return asyncio.run(run_analysis(args, config))
    return 2


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
