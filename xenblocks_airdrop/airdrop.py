"""One reconciliation-and-payout cycle.

    leaderboard -> snapshot -> deltas -> balance checks -> run record
        -> batches -> executor -> report -> run totals
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.amounts import format_amount
from xenblocks_airdrop.client import Client, RecipientKey
from xenblocks_airdrop.config import AirdropConfig
from xenblocks_airdrop.delta import RecipientDelta, calculate_deltas, total_bonus, total_pending
from xenblocks_airdrop.errors import InsufficientBalance
from xenblocks_airdrop.executor import BatchResult, DistributionExecutor, RecipientOutcome
from xenblocks_airdrop.leaderboard import LeaderboardClient
from xenblocks_airdrop.planner import BatchPlanner, partition
from xenblocks_airdrop.report import JSONLReport
from xenblocks_airdrop.runs import RunLifecycle

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    run_id: int | None
    dry_run: bool
    pending: list[RecipientDelta] = field(default_factory=list)
    results: list[BatchResult] = field(default_factory=list)

    @property
    def outcomes(self) -> list[RecipientOutcome]:
        return [o for r in self.results for o in r.outcomes]

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)

    def sent(self, symbol: str) -> int:
        return sum(o.amounts.get(symbol, 0) for o in self.outcomes if o.succeeded)

    @property
    def bonus_sent(self) -> int:
        return sum(o.bonus for o in self.outcomes if o.succeeded)

    @property
    def run_total_amount(self) -> int:
        """The single figure stored on the run account.

        Sums base units across the recurring token mints, bonus excluded. Use
        :meth:`sent` for per-token totals.
        """
        return sum(sum(o.amounts.values()) for o in self.outcomes if o.succeeded)


def _shortfall(dry_run: bool, what: str, have: int, need: int) -> None:
    err = InsufficientBalance(what, have, need)
    if not dry_run:
        raise err
    logger.warning("%s (ignored in dry run)", err)


async def compute_pending(
    client: Client, leaderboard: LeaderboardClient, config: AirdropConfig
) -> tuple[list[RecipientDelta], set[RecipientKey]]:
    """Return pending deltas and the set of recipients that already have a record."""
    miners = await leaderboard.fetch_miners(config.address_filter)
    snapshot = await client.fetch_records([m.key for m in miners])
    logger.info("found %d existing records for %d miners", len(snapshot), len(miners))
    deltas = calculate_deltas(miners, snapshot, config.tokens, config.bonus)
    for token in config.tokens:
        logger.info(
            "pending %s: %s across %d recipients",
            token.symbol.upper(),
            format_amount(total_pending(deltas, token.symbol), token.decimals),
            sum(1 for d in deltas if d.amount(token.symbol) > 0),
        )
    return deltas, set(snapshot)


async def check_native_balance(client: Client, payer: Pubkey, config: AirdropConfig) -> int:
    balance = await client.fetch_balance(payer)
    logger.info("payer native balance: %s", format_amount(balance, 9))
    if balance < config.min_fee_balance:
        _shortfall(config.dry_run, "native", balance, config.min_fee_balance)
    return balance


async def check_token_balances(
    client: Client, payer: Pubkey, config: AirdropConfig, deltas: list[RecipientDelta]
) -> None:
    needed: dict[tuple[Pubkey, Pubkey], tuple[str, int]] = {}
    for token in config.tokens:
        key = (token.mint, token.program_id)
        label, amount = needed.get(key, (token.symbol.upper(), 0))
        needed[key] = (label, amount + total_pending(deltas, token.symbol))
    bonus = config.bonus
    if bonus.enabled and bonus.mint is not None:
        key = (bonus.mint, bonus.program_id)
        label, amount = needed.get(key, ("bonus", 0))
        needed[key] = (label, amount + total_bonus(deltas))

    for (mint, program_id), (label, amount) in needed.items():
        if amount == 0:
            continue
        balance = await client.fetch_token_balance(payer, mint, program_id)
        logger.info("payer %s balance: %d base units, need %d", label, balance, amount)
        if balance < amount:
            _shortfall(config.dry_run, label, balance, amount)


async def run_airdrop(
    config: AirdropConfig,
    client: Client,
    payer: Keypair,
    leaderboard: LeaderboardClient,
) -> RunSummary:
    payer_key = payer.pubkey()
    await check_native_balance(client, payer_key, config)

    deltas, existing = await compute_pending(client, leaderboard, config)
    if not deltas:
        logger.info("nothing pending; no run created")
        return RunSummary(run_id=None, dry_run=config.dry_run)

    await check_token_balances(client, payer_key, config, deltas)

    lifecycle = RunLifecycle(client, payer)
    run_id = await lifecycle.open_run(config.dry_run)

    batches = partition(deltas, config.batch_size)
    logger.info(
        "run #%d: %d recipients in %d batches (batch_size=%d, concurrency=%d)",
        run_id,
        len(deltas),
        len(batches),
        config.batch_size,
        config.concurrency,
    )
    planner = BatchPlanner(
        client.ledger, payer, config.compute_unit_price, config.fee_buffer_multiplier
    )
    executor = DistributionExecutor(
        client,
        payer,
        config.tokens,
        planner,
        bonus=config.bonus,
        dry_run=config.dry_run,
        concurrency=config.concurrency,
    )
    results = await executor.execute(batches, existing)
    summary = RunSummary(run_id=run_id, dry_run=config.dry_run, pending=deltas, results=results)

    if config.report_path:
        JSONLReport(config.report_path).append(run_id, summary.outcomes)

    await lifecycle.close_run(
        run_id, summary.success_count, summary.run_total_amount, config.dry_run
    )

    for token in config.tokens:
        logger.info(
            "run #%d %s sent: %s",
            run_id,
            token.symbol.upper(),
            format_amount(summary.sent(token.symbol), token.decimals),
        )
    if config.bonus.enabled:
        logger.info(
            "run #%d bonus sent: %s",
            run_id,
            format_amount(summary.bonus_sent, config.bonus.decimals),
        )
    logger.info(
        "run #%d complete: %d succeeded, %d failed",
        run_id,
        summary.success_count,
        summary.failure_count,
    )
    return summary
