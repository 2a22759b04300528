"""
Runnable script for token sale lifecycle operations.
"""

import argparse
import sys

import structlog

from tokensale.main import main as run_operation
from tokensale.utils.exceptions import TokenSaleException

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Token sale lifecycle operations")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy = subparsers.add_parser("deploy", help="Deploy the TokenSale contract")
    deploy.add_argument("--artifact", required=True, help="Compiled contract artifact JSON (abi + bytecode)")
    deploy.add_argument("--receiver", help="Sale proceeds receiver (default: SALE_RECEIVER)")

    create = subparsers.add_parser("create", help="Add a new token sale")
    create.add_argument("--token-id", type=int, required=True, help="Sale slot identifier")
    create.add_argument("--token", required=True, help="ERC20 token address")
    create.add_argument("--price", required=True, help="Price per token in the payment asset, e.g. 0.01")
    create.add_argument("--duration-minutes", type=int, required=True, help="Sale duration in minutes")

    fund = subparsers.add_parser("fund", help="Approve and deposit tokens into a sale")
    fund.add_argument("--token-id", type=int, required=True, help="Sale slot identifier")

    withdraw = subparsers.add_parser("withdraw", help="Pause a sale and withdraw unsold tokens")
    withdraw.add_argument("--token-id", type=int, required=True, help="Sale slot identifier")

    status = subparsers.add_parser("status", help="Show the on-chain state of a sale")
    status.add_argument("--token-id", type=int, required=True, help="Sale slot identifier")

    return parser


if __name__ == "__main__":
    args = build_parser().parse_args()
    params = {k: v for k, v in vars(args).items() if k not in ("command", "debug") and v is not None}

    try:
        run_operation(args.command, debug=args.debug, **params)
    except TokenSaleException as e:
        logger.error("Operation aborted", error=e.message, completed_steps=list(e.completed_steps))
        sys.exit(1)
