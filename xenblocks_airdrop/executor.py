"""Batched, atomic distribution of pending amounts.

Each batch becomes one transaction: token account creation where needed,
one transfer per non-zero token amount, and exactly one record instruction
per recipient. The transaction either lands as a whole or not at all, so
every recipient in a batch shares one outcome.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from solders.instruction import Instruction  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.client import Client, RecipientKey
from xenblocks_airdrop.config import BonusAirdropConfig, TokenConfig
from xenblocks_airdrop.delta import RecipientDelta
from xenblocks_airdrop.errors import (
    FailureKind,
    InsufficientFee,
    LedgerError,
    TransactionTooLarge,
    classify_error,
)
from xenblocks_airdrop.instructions import initialize_and_update_ix, update_record_ix
from xenblocks_airdrop.ledger import PACKET_DATA_SIZE, compile_transaction
from xenblocks_airdrop.planner import Batch, BatchPlanner, FeeEstimate, check_fee_balance
from xenblocks_airdrop.tokens import (
    create_idempotent_ata_ix,
    get_associated_token_address,
    transfer_checked_ix,
)

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class RecipientOutcome:
    sol_wallet: Pubkey
    eth_address: str
    amounts: dict[str, int]
    bonus: int
    status: OutcomeStatus
    batch_index: int
    signature: str | None = None
    error_kind: FailureKind | None = None
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


@dataclass
class BatchResult:
    batch: Batch
    status: OutcomeStatus
    signature: str | None = None
    error_kind: FailureKind | None = None
    reason: str | None = None
    fee: FeeEstimate | None = None
    outcomes: list[RecipientOutcome] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.outcomes:
            self.outcomes = [
                RecipientOutcome(
                    sol_wallet=d.sol_wallet,
                    eth_address=d.eth_address,
                    amounts=dict(d.amounts),
                    bonus=d.bonus,
                    status=self.status,
                    batch_index=self.batch.index,
                    signature=self.signature,
                    error_kind=self.error_kind,
                    reason=self.reason,
                )
                for d in self.batch.recipients
            ]


class DistributionExecutor:
    def __init__(
        self,
        client: Client,
        payer: Keypair,
        tokens: Sequence[TokenConfig],
        planner: BatchPlanner,
        bonus: BonusAirdropConfig | None = None,
        dry_run: bool = False,
        concurrency: int = 4,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._client = client
        self._payer = payer
        self._tokens = list(tokens)
        self._planner = planner
        self._bonus = bonus if bonus is not None and bonus.enabled else None
        self._dry_run = dry_run
        self._concurrency = concurrency

    async def execute(
        self, batches: Sequence[Batch], existing_records: set[RecipientKey]
    ) -> list[BatchResult]:
        """Run every batch, at most ``concurrency`` at a time.

        ``existing_records`` holds the recipients whose record existed at
        snapshot time. It is updated in place as batches are built.
        """
        if self._dry_run:
            results = []
            for batch in batches:
                for d in batch.recipients:
                    logger.info(
                        "[dry run] would pay %s %s bonus=%d",
                        d.sol_wallet,
                        {k: v for k, v in d.amounts.items() if v},
                        d.bonus,
                    )
                results.append(BatchResult(batch, OutcomeStatus.SUCCESS))
            return results

        sem = asyncio.Semaphore(self._concurrency)

        async def run(batch: Batch) -> list[BatchResult]:
            async with sem:
                return await self._execute_batch(batch, existing_records)

        nested = await asyncio.gather(*(run(b) for b in batches))
        return [result for results in nested for result in results]

    async def _execute_batch(
        self, batch: Batch, existing_records: set[RecipientKey]
    ) -> list[BatchResult]:
        """Execute one planned batch, split into as many transactions as it needs.

        Sub-batches keep the planned batch index.
        """
        try:
            existing_atas = await self._fetch_existing_atas(batch)
            parts = self._fit(batch, existing_records, existing_atas)
        except LedgerError as e:
            kind, reason = classify_error(str(e), e.logs)
            return [self._failed(batch, kind, reason, None)]
        except Exception as e:
            logger.exception("batch %d: unexpected error", batch.index)
            return [self._failed(batch, FailureKind.UNKNOWN, str(e), None)]
        existing_records.update(d.key for d in batch.recipients)
        if len(parts) > 1:
            logger.info(
                "batch %d: split into %d transactions to fit the packet size",
                batch.index,
                len(parts),
            )
        return [await self._send(part, instructions) for part, instructions in parts]

    def _fit(
        self,
        batch: Batch,
        existing_records: set[RecipientKey],
        existing_atas: set[Pubkey],
    ) -> list[tuple[Batch, list[Instruction]]]:
        """Halve ``batch`` until every part fits in one transaction."""
        instructions = self._assemble(batch, existing_records, existing_atas)
        if len(batch) == 1 or (
            self._planner.transaction_size(instructions) <= PACKET_DATA_SIZE
        ):
            return [(batch, instructions)]
        mid = len(batch) // 2
        return [
            *self._fit(Batch(batch.index, batch.recipients[:mid]), existing_records, existing_atas),
            *self._fit(Batch(batch.index, batch.recipients[mid:]), existing_records, existing_atas),
        ]

    async def _send(self, batch: Batch, instructions: list[Instruction]) -> BatchResult:
        payer = self._payer.pubkey()
        estimate = None
        try:
            self._planner.check_transaction_size(instructions)
            estimate = await self._planner.plan(instructions)
            balance = await self._client.fetch_balance(payer)
            check_fee_balance(balance, estimate)

            blockhash = await self._client.ledger.get_latest_blockhash()
            tx = compile_transaction(
                self._payer,
                [*estimate.compute_budget_instructions(), *instructions],
                blockhash.blockhash,
            )
            signature = await self._client.ledger.send_and_confirm(
                tx, blockhash.last_valid_block_height
            )
        except InsufficientFee as e:
            return self._failed(batch, FailureKind.INSUFFICIENT_FEE, str(e), estimate)
        except TransactionTooLarge as e:
            return self._failed(batch, FailureKind.UNKNOWN, str(e), estimate)
        except LedgerError as e:
            kind, reason = classify_error(str(e), e.logs)
            return self._failed(batch, kind, reason, estimate)
        except Exception as e:
            logger.exception("batch %d: unexpected error", batch.index)
            return self._failed(batch, FailureKind.UNKNOWN, str(e), estimate)

        logger.info(
            "batch %d: paid %d recipients in %s", batch.index, len(batch), signature
        )
        return BatchResult(batch, OutcomeStatus.SUCCESS, signature=signature, fee=estimate)

    def _failed(
        self,
        batch: Batch,
        kind: FailureKind,
        reason: str,
        estimate: FeeEstimate | None,
    ) -> BatchResult:
        logger.error(
            "batch %d failed (%s) for %d recipients: %s",
            batch.index,
            kind.value,
            len(batch),
            reason,
        )
        return BatchResult(
            batch, OutcomeStatus.FAILED, error_kind=kind, reason=reason, fee=estimate
        )

    def _payouts(
        self, d: RecipientDelta
    ) -> list[tuple[Pubkey, int, Pubkey, int]]:
        """(mint, decimals, token program, amount) for each non-zero payout."""
        out = [
            (t.mint, t.decimals, t.program_id, d.amount(t.symbol))
            for t in self._tokens
            if d.amount(t.symbol) > 0
        ]
        if self._bonus is not None and d.bonus > 0:
            out.append((self._bonus.mint, self._bonus.decimals, self._bonus.program_id, d.bonus))
        return out

    async def _fetch_existing_atas(self, batch: Batch) -> set[Pubkey]:
        destinations: dict[Pubkey, None] = {}
        for d in batch.recipients:
            for mint, _, token_program, _ in self._payouts(d):
                destinations[get_associated_token_address(d.sol_wallet, mint, token_program)] = None
        return await self._client.fetch_existing_accounts(list(destinations))

    async def build_instructions(
        self, batch: Batch, existing_records: set[RecipientKey]
    ) -> list[Instruction]:
        """Instructions for ``batch`` as one transaction, without a size check.

        Adds the batch's recipients to ``existing_records``.
        """
        existing_atas = await self._fetch_existing_atas(batch)
        instructions = self._assemble(batch, existing_records, existing_atas)
        existing_records.update(d.key for d in batch.recipients)
        return instructions

    def _assemble(
        self,
        batch: Batch,
        existing_records: set[RecipientKey],
        existing_atas: set[Pubkey],
    ) -> list[Instruction]:
        payer = self._payer.pubkey()
        program_id = self._client.program_id

        instructions: list[Instruction] = []
        created: set[Pubkey] = set()
        for d in batch.recipients:
            for mint, decimals, token_program, amount in self._payouts(d):
                dest = get_associated_token_address(d.sol_wallet, mint, token_program)
                if dest not in existing_atas and dest not in created:
                    instructions.append(
                        create_idempotent_ata_ix(payer, d.sol_wallet, mint, token_program)
                    )
                    created.add(dest)
                source = get_associated_token_address(payer, mint, token_program)
                instructions.append(
                    transfer_checked_ix(
                        source, mint, dest, payer, amount, decimals, token_program
                    )
                )

            amounts = {
                "xnm_amount": d.amount("xnm"),
                "xblk_amount": d.amount("xblk"),
                "bonus_amount": d.bonus,
            }
            if d.key in existing_records:
                ix = update_record_ix(program_id, payer, d.sol_wallet, d.eth_address, **amounts)
            else:
                ix = initialize_and_update_ix(
                    program_id, payer, d.sol_wallet, d.eth_address, **amounts
                )
            instructions.append(ix)
        return instructions
