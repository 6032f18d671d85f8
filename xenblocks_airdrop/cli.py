"""Command-line entry point.

    xenblocks-airdrop run [--dry-run] [--batch-size N] [--concurrency N]
    xenblocks-airdrop pending
    xenblocks-airdrop records
    xenblocks-airdrop runs

Settings come from the environment (and a ``.env`` file in the working
directory); flags override the matching variables.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys

import httpx
from dotenv import load_dotenv
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.airdrop import compute_pending, run_airdrop
from xenblocks_airdrop.amounts import format_amount
from xenblocks_airdrop.client import Client
from xenblocks_airdrop.config import PROGRAM_ID, RPC_URLS, AirdropConfig
from xenblocks_airdrop.errors import AirdropError
from xenblocks_airdrop.leaderboard import LeaderboardClient
from xenblocks_airdrop.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def load_keypair(path: str) -> Keypair:
    with open(path) as f:
        secret = json.load(f)
    return Keypair.from_bytes(bytes(secret))


def _config_from_args(args: argparse.Namespace) -> AirdropConfig:
    config = AirdropConfig.from_env()
    overrides = {}
    if args.dry_run:
        overrides["dry_run"] = True
    if args.batch_size is not None:
        overrides["batch_size"] = args.batch_size
    if args.concurrency is not None:
        overrides["concurrency"] = args.concurrency
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return config


def _read_client(args: argparse.Namespace) -> Client:
    url = args.rpc_url or os.environ.get("RPC_ENDPOINT") or RPC_URLS[args.network]
    program_id = args.program_id or os.environ.get("AIRDROP_TRACKER_PROGRAM_ID") or PROGRAM_ID
    return Client.from_url(url, Pubkey.from_string(program_id))


async def cmd_run(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    payer = load_keypair(config.keypair_path)
    client = Client.from_url(config.rpc_endpoint, config.program_id)
    leaderboard = LeaderboardClient(config.api_endpoint, config.page_size)
    try:
        summary = await run_airdrop(config, client, payer, leaderboard)
    finally:
        await leaderboard.aclose()
        await client.ledger.close()
    print(
        json.dumps(
            {
                "run_id": summary.run_id,
                "dry_run": summary.dry_run,
                "succeeded": summary.success_count,
                "failed": summary.failure_count,
                "sent": {
                    t.symbol: format_amount(summary.sent(t.symbol), t.decimals)
                    for t in config.tokens
                },
            },
            indent=2,
        )
    )
    return 1 if summary.failure_count else 0


async def cmd_pending(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    client = Client.from_url(config.rpc_endpoint, config.program_id)
    leaderboard = LeaderboardClient(config.api_endpoint, config.page_size)
    try:
        deltas, _ = await compute_pending(client, leaderboard, config)
    finally:
        await leaderboard.aclose()
        await client.ledger.close()
    rows = [
        {
            "sol_wallet": str(d.sol_wallet),
            "eth_address": d.eth_address,
            "has_record": d.has_record,
            "pending": {
                t.symbol: format_amount(d.amount(t.symbol), t.decimals) for t in config.tokens
            },
            "bonus": d.bonus,
        }
        for d in deltas
    ]
    print(json.dumps(rows, indent=2))
    return 0


async def cmd_records(args: argparse.Namespace) -> int:
    client = _read_client(args)
    try:
        records = await client.fetch_all_records()
    finally:
        await client.ledger.close()
    rows = [
        {
            "sol_wallet": str(r.sol_wallet),
            "eth_address": r.eth_address,
            "layout": r.layout.name.lower(),
            "xnm": format_amount(r.xnm_airdropped),
            "xblk": format_amount(r.xblk_airdropped),
            "bonus_paid": r.bonus_paid,
            "last_updated": r.last_updated,
        }
        for r in records
    ]
    print(json.dumps(rows, indent=2))
    return 0


async def cmd_runs(args: argparse.Namespace) -> int:
    client = _read_client(args)
    try:
        runs = await client.fetch_all_runs()
    finally:
        await client.ledger.close()
    print(json.dumps([dataclasses.asdict(r) for r in runs], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xenblocks-airdrop",
        description="Reconcile the XenBlocks leaderboard with on-chain airdrop records",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in (
        ("run", cmd_run, "pay out pending amounts"),
        ("pending", cmd_pending, "print pending amounts without sending anything"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--dry-run", action="store_true", help="validate without moving funds")
        p.add_argument("--batch-size", type=int, default=None)
        p.add_argument("--concurrency", type=int, default=None)
        p.set_defaults(func=func)

    for name, func, help_text in (
        ("records", cmd_records, "dump every airdrop record"),
        ("runs", cmd_runs, "dump every airdrop run"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--network", default="testnet", choices=sorted(RPC_URLS))
        p.add_argument("--rpc-url", default=None)
        p.add_argument("--program-id", default=None)
        p.set_defaults(func=func)
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    try:
        return asyncio.run(args.func(args))
    except (AirdropError, httpx.HTTPError) as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
