"""Batch partitioning, transaction simulation and fee estimation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Sequence

from solders.compute_budget import (  # type: ignore[import-untyped]
    set_compute_unit_limit,
    set_compute_unit_price,
)
from solders.hash import Hash  # type: ignore[import-untyped]
from solders.instruction import Instruction  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]

from xenblocks_airdrop.delta import RecipientDelta
from xenblocks_airdrop.errors import InsufficientFee, SimulationFailed, TransactionTooLarge
from xenblocks_airdrop.ledger import PACKET_DATA_SIZE, LedgerClient, compile_transaction

logger = logging.getLogger(__name__)

MAX_COMPUTE_UNITS = 1_400_000
BASE_FEE_LAMPORTS = 5_000  # per signature
MICRO_LAMPORTS_PER_LAMPORT = 1_000_000


@dataclass(frozen=True)
class Batch:
    index: int
    recipients: tuple[RecipientDelta, ...]

    def __len__(self) -> int:
        return len(self.recipients)


def partition(pending: Sequence[RecipientDelta], batch_size: int) -> list[Batch]:
    """Split pending recipients into consecutive batches, preserving order."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [
        Batch(index=i // batch_size, recipients=tuple(pending[i : i + batch_size]))
        for i in range(0, len(pending), batch_size)
    ]


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


@dataclass(frozen=True)
class FeeEstimate:
    units_consumed: int
    compute_unit_limit: int
    compute_unit_price: int  # micro-lamports per unit
    fee: int  # lamports
    fee_with_buffer: int  # lamports

    def compute_budget_instructions(self) -> list[Instruction]:
        ixs = [set_compute_unit_limit(self.compute_unit_limit)]
        if self.compute_unit_price > 0:
            ixs.append(set_compute_unit_price(self.compute_unit_price))
        return ixs


def estimate_fee(
    units_consumed: int,
    compute_unit_price: int = 0,
    buffer_multiplier: Decimal | float | str = Decimal("1.2"),
    signatures: int = 1,
) -> FeeEstimate:
    """Derive the compute budget and fee for a simulated unit count.

    The limit carries a 10% margin over the simulated units, capped at the
    per-transaction maximum. The priority fee is charged on the requested
    limit, not on the units actually consumed.
    """
    multiplier = Decimal(str(buffer_multiplier))
    if multiplier < 1:
        raise ValueError(f"buffer multiplier must be >= 1.0, got {multiplier}")
    limit = min(_ceil_div(units_consumed * 11, 10), MAX_COMPUTE_UNITS)
    priority_fee = _ceil_div(limit * compute_unit_price, MICRO_LAMPORTS_PER_LAMPORT)
    fee = BASE_FEE_LAMPORTS * signatures + priority_fee
    fee_with_buffer = int((Decimal(fee) * multiplier).to_integral_value(rounding=ROUND_CEILING))
    return FeeEstimate(
        units_consumed=units_consumed,
        compute_unit_limit=limit,
        compute_unit_price=compute_unit_price,
        fee=fee,
        fee_with_buffer=fee_with_buffer,
    )


def check_fee_balance(balance: int, estimate: FeeEstimate) -> None:
    if balance < estimate.fee_with_buffer:
        raise InsufficientFee(balance, estimate.fee_with_buffer)


class BatchPlanner:
    """Prices a batch by simulating it with the maximum compute limit."""

    def __init__(
        self,
        ledger: LedgerClient,
        payer: Keypair,
        compute_unit_price: int = 0,
        buffer_multiplier: Decimal = Decimal("1.2"),
    ) -> None:
        self._ledger = ledger
        self._payer = payer
        self._compute_unit_price = compute_unit_price
        self._buffer_multiplier = buffer_multiplier

    def _with_compute_budget(self, instructions: Sequence[Instruction]) -> list[Instruction]:
        ixs = [set_compute_unit_limit(MAX_COMPUTE_UNITS)]
        if self._compute_unit_price > 0:
            ixs.append(set_compute_unit_price(self._compute_unit_price))
        ixs.extend(instructions)
        return ixs

    def transaction_size(self, instructions: Sequence[Instruction]) -> int:
        """Serialized size of the signed transaction that would carry ``instructions``.

        Compute budget instructions have fixed-width arguments, so the size does
        not change once the real limit and blockhash are filled in.
        """
        tx = compile_transaction(
            self._payer, self._with_compute_budget(instructions), Hash.default()
        )
        return len(bytes(tx))

    def check_transaction_size(self, instructions: Sequence[Instruction]) -> None:
        size = self.transaction_size(instructions)
        if size > PACKET_DATA_SIZE:
            raise TransactionTooLarge(size, PACKET_DATA_SIZE)

    async def plan(self, instructions: Sequence[Instruction]) -> FeeEstimate:
        blockhash = await self._ledger.get_latest_blockhash()
        tx = compile_transaction(
            self._payer, self._with_compute_budget(instructions), blockhash.blockhash
        )

        sim = await self._ledger.simulate(tx)
        if sim.err is not None:
            raise SimulationFailed(f"simulation failed: {sim.err}", sim.logs)
        estimate = estimate_fee(
            sim.units_consumed, self._compute_unit_price, self._buffer_multiplier
        )
        logger.debug(
            "simulated %d units, limit %d, fee %d (%d with buffer)",
            estimate.units_consumed,
            estimate.compute_unit_limit,
            estimate.fee,
            estimate.fee_with_buffer,
        )
        return estimate
