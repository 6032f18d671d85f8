"""Pending-amount calculation from leaderboard totals and on-chain records.

The ledger is the accumulator: a recipient is owed the leaderboard total
minus what its record says was already paid, floored at zero. Nothing here
keeps state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.amounts import parse_external_amount
from xenblocks_airdrop.config import SOURCE_DECIMALS, BonusAirdropConfig, TokenConfig
from xenblocks_airdrop.leaderboard import Miner
from xenblocks_airdrop.state import AirdropRecord

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1


@dataclass
class RecipientDelta:
    sol_wallet: Pubkey
    eth_address: str
    amounts: dict[str, int] = field(default_factory=dict)  # pending base units per token
    bonus: int = 0
    current: dict[str, int] = field(default_factory=dict)
    previous: dict[str, int] = field(default_factory=dict)
    has_record: bool = False

    @property
    def key(self) -> tuple[Pubkey, str]:
        return (self.sol_wallet, self.eth_address)

    def amount(self, symbol: str) -> int:
        return self.amounts.get(symbol, 0)

    @property
    def is_pending(self) -> bool:
        return self.bonus > 0 or any(v > 0 for v in self.amounts.values())


def calculate_deltas(
    miners: Sequence[Miner],
    snapshot: Mapping[tuple[Pubkey, str], AirdropRecord],
    tokens: Sequence[TokenConfig],
    bonus: BonusAirdropConfig | None = None,
) -> list[RecipientDelta]:
    """Return the recipients with something owed, in feed order."""
    pending: list[RecipientDelta] = []
    seen: set[tuple[Pubkey, str]] = set()
    xnm_decimals = next((t.decimals for t in tokens if t.symbol == "xnm"), 9)

    for miner in miners:
        if miner.key in seen:
            logger.warning(
                "duplicate leaderboard entry for %s / %s ignored", miner.sol_address, miner.account
            )
            continue
        seen.add(miner.key)
        record = snapshot.get(miner.key)

        delta = RecipientDelta(
            sol_wallet=miner.sol_address,
            eth_address=miner.account,
            has_record=record is not None,
        )
        for token in tokens:
            current = parse_external_amount(
                miner.amount_for(token.symbol), SOURCE_DECIMALS, token.decimals
            )
            if current > U64_MAX:
                logger.warning(
                    "%s total for %s exceeds u64, skipping token", token.symbol, miner.sol_address
                )
                continue
            previous = record.amount_for(token.symbol) if record is not None else 0
            delta.current[token.symbol] = current
            delta.previous[token.symbol] = previous
            delta.amounts[token.symbol] = max(0, current - previous)

        if bonus is not None and bonus.enabled:
            current_xnm = parse_external_amount(miner.xnm, SOURCE_DECIMALS, xnm_decimals)
            if current_xnm >= bonus.min_balance_threshold:
                paid = record.bonus_paid if record is not None else 0
                delta.bonus = max(0, bonus.amount - paid)

        if delta.is_pending:
            pending.append(delta)

    return pending


def total_pending(deltas: Sequence[RecipientDelta], symbol: str) -> int:
    return sum(d.amount(symbol) for d in deltas)


def total_bonus(deltas: Sequence[RecipientDelta]) -> int:
    return sum(d.bonus for d in deltas)
