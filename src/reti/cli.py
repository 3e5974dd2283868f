"""
Command-line interface for the Reti client.

Provides read commands for registry and pool state and write commands
for staking operations. Results are printed as JSON.
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

import structlog

from reti import __version__
from reti.config import NetworkType, RetiConfig, set_config
from reti.engine.queries import NotFoundError, ValidatorQueries
from reti.node.algod import AlgodGateway
from reti.node.interface import LedgerError
from reti.node.nfd import ExternalLookupError, NfdDirectory
from reti.tx.builder import StakingTransactionBuilder
from reti.tx.signer import SignerNotLoadedError, TransactionSigner

logger = structlog.get_logger(__name__)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdout carries command output
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="reti",
        description="Client for the Reti validator staking protocol on Algorand",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--network",
        choices=[network.value for network in NetworkType],
        default=None,
        help="Algorand network (default: RETI_NETWORK or testnet)",
    )
    parser.add_argument(
        "--registry-app-id",
        type=int,
        default=None,
        help="Validator registry application id (default: RETI_REGISTRY_APP_ID)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Read commands
    subparsers.add_parser("validators", help="List every registered validator")

    validator_parser = subparsers.add_parser("validator", help="Show one validator")
    validator_parser.add_argument("validator_id", type=int, help="Validator id")

    pools_parser = subparsers.add_parser("pools", help="List a validator's pools")
    pools_parser.add_argument("validator_id", type=int, help="Validator id")

    stakes_parser = subparsers.add_parser("stakes", help="Show a staker's positions per validator")
    stakes_parser.add_argument("address", help="Staker account address")

    subparsers.add_parser("constraints", help="Show protocol constraints")
    subparsers.add_parser("mbr", help="Show minimum balance reserve amounts")

    nfd_parser = subparsers.add_parser("nfd", help="Resolve an NFD name")
    nfd_parser.add_argument("name", help="NFD name, e.g. validator.algo")

    # Write commands (signing account from RETI_SIGNER_MNEMONIC)
    add_stake_parser = subparsers.add_parser("add-stake", help="Stake with a validator")
    add_stake_parser.add_argument("validator_id", type=int, help="Validator id")
    add_stake_parser.add_argument("amount", type=int, help="Amount in microAlgos")
    add_stake_parser.add_argument(
        "--value-to-verify",
        type=int,
        default=0,
        help="Gating value checked on entry (default: 0)",
    )

    remove_stake_parser = subparsers.add_parser("remove-stake", help="Withdraw stake from a pool")
    remove_stake_parser.add_argument("pool_app_id", type=int, help="Pool application id")
    remove_stake_parser.add_argument("amount", type=int, help="Amount in microAlgos (0 withdraws all)")

    claim_parser = subparsers.add_parser("claim", help="Claim reward tokens from pools")
    claim_parser.add_argument("pool_app_ids", type=int, nargs="+", help="Pool application ids")

    epoch_parser = subparsers.add_parser("epoch-update", help="Trigger a pool's epoch payout")
    epoch_parser.add_argument("pool_app_id", type=int, help="Pool application id")

    return parser


def build_config(args: argparse.Namespace) -> RetiConfig:
    """Create configuration from the environment plus command-line overrides."""
    overrides = {
        "log_level": args.log_level,
        "log_json": args.log_json,
    }
    if args.network:
        overrides["network"] = NetworkType(args.network)
    if args.registry_app_id is not None:
        overrides["registry_app_id"] = args.registry_app_id
    return RetiConfig(**overrides)


def to_jsonable(value: Any) -> Any:
    """Convert results (dataclasses, bytes, enums) into JSON-compatible values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


async def run_read(args: argparse.Namespace, config: RetiConfig) -> Any:
    """Run a read-only command."""
    if args.command == "nfd":
        directory = NfdDirectory(config)
        try:
            return await directory.resolve(args.name)
        finally:
            await directory.disconnect()

    gateway = AlgodGateway(config)
    await gateway.connect()
    queries = ValidatorQueries(gateway, config)

    try:
        if args.command == "validators":
            return await queries.fetch_validators()
        if args.command == "validator":
            return await queries.fetch_validator(args.validator_id)
        if args.command == "pools":
            return await queries.fetch_validator_pools(args.validator_id)
        if args.command == "stakes":
            return await queries.fetch_staker_validator_data(args.address)
        if args.command == "constraints":
            return await queries.fetch_protocol_constraints()
        if args.command == "mbr":
            return await queries.fetch_mbr_amounts()
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await gateway.disconnect()


async def run_write(args: argparse.Namespace, config: RetiConfig) -> Any:
    """Run a state-mutating command with the configured signing account."""
    signer = TransactionSigner(config)
    signer.load_from_config()

    gateway = AlgodGateway(config)
    await gateway.connect()
    builder = StakingTransactionBuilder(gateway, signer, config=config)

    try:
        if args.command == "add-stake":
            return await builder.add_stake(args.validator_id, args.amount, args.value_to_verify)
        if args.command == "remove-stake":
            result = await builder.remove_stake(args.pool_app_id, args.amount)
        elif args.command == "claim":
            result = await builder.claim_tokens(args.pool_app_ids)
        elif args.command == "epoch-update":
            result = await builder.epoch_balance_update(args.pool_app_id)
        else:
            raise ValueError(f"Unknown command: {args.command}")
        return {"tx_ids": result.tx_ids, "confirmed_round": result.confirmed_round}
    finally:
        await gateway.disconnect()


WRITE_COMMANDS = {"add-stake", "remove-stake", "claim", "epoch-update"}


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level, args.log_json)
    config = build_config(args)
    set_config(config)

    runner = run_write if args.command in WRITE_COMMANDS else run_read

    try:
        output = asyncio.run(runner(args, config))
    except (NotFoundError, LedgerError, ExternalLookupError, SignerNotLoadedError, ValueError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(json.dumps({"error": type(e).__name__, "message": str(e)}), file=sys.stderr)
        sys.exit(1)

    print(json.dumps(to_jsonable(output), indent=2))


if __name__ == "__main__":
    main()
