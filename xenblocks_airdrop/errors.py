"""Exception types and ledger error classification."""

from __future__ import annotations

import re
from enum import Enum
from typing import Sequence

MAX_REASON_LENGTH = 200


class AirdropError(Exception):
    """Base class for airdrop engine errors."""


class ConfigError(AirdropError, ValueError):
    pass


class MalformedInput(AirdropError, ValueError):
    """An amount string from the leaderboard feed could not be parsed."""


class MalformedAccount(AirdropError, ValueError):
    """Account data has an unexpected length or does not decode."""


class InsufficientBalance(AirdropError):
    def __init__(self, what: str, have: int, need: int) -> None:
        super().__init__(f"insufficient {what} balance: have {have}, need {need}")
        self.what = what
        self.have = have
        self.need = need


class InsufficientFee(AirdropError):
    def __init__(self, have: int, need: int) -> None:
        super().__init__(f"insufficient fee balance: have {have} lamports, need {need}")
        self.have = have
        self.need = need


class LedgerError(AirdropError):
    """A ledger RPC call failed. Carries program logs when the node returned any."""

    def __init__(self, message: str, logs: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.logs = list(logs or [])


class SimulationFailed(LedgerError):
    pass


class TransactionTooLarge(AirdropError, ValueError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"transaction too large: {size} bytes, limit {limit}")
        self.size = size
        self.limit = limit


class FailureKind(str, Enum):
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_FEE = "insufficient_fee"
    ACCOUNT_OWNERSHIP_MISMATCH = "account_ownership_mismatch"
    ACCOUNT_UNINITIALIZED = "account_uninitialized"
    ACCOUNT_DECODE_MISMATCH = "account_decode_mismatch"
    RATE_LIMITED = "rate_limited"
    BLOCKHASH_EXPIRED = "blockhash_expired"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


# Checked in order against the lowercased message and logs; first match wins.
_PATTERNS: list[tuple[FailureKind, re.Pattern[str], str]] = [
    (
        FailureKind.INSUFFICIENT_BALANCE,
        re.compile(
            r"insufficient (funds|lamports)|custom program error: 0x1\b"
            r"|no record of a prior credit"
        ),
        "payer does not hold enough tokens or lamports for this batch",
    ),
    (
        FailureKind.ACCOUNT_UNINITIALIZED,
        re.compile(
            r"accountnotinitialized|\b0xbc4\b|uninitialized account"
            r"|invalid account data for instruction"
        ),
        "an account the program expected is not initialized",
    ),
    (
        FailureKind.ACCOUNT_DECODE_MISMATCH,
        re.compile(
            r"accountdid(not)?deserialize|\b0xbbb\b|\b0xbba\b"
            r"|account discriminator mismatch"
        ),
        "account data does not match the program layout; check the program id",
    ),
    (
        FailureKind.ACCOUNT_OWNERSHIP_MISMATCH,
        re.compile(
            r"accountownedbywrongprogram|\b0xbbf\b|incorrect ?program ?id"
            r"|owner does not match"
        ),
        "an account is owned by another program; check the token program variant",
    ),
    (
        FailureKind.RATE_LIMITED,
        re.compile(r"\b429\b|too many requests|rate limit"),
        "RPC node is rate limiting; lower concurrency or retry later",
    ),
    (
        FailureKind.BLOCKHASH_EXPIRED,
        re.compile(
            r"blockhash ?not ?found|block ?height ?exceeded|transaction expired"
        ),
        "transaction expired before confirmation; safe to rerun",
    ),
    (
        FailureKind.SERVICE_UNAVAILABLE,
        re.compile(
            r"\b50[234]\b|service unavailable|bad gateway|connection refused"
            r"|timed out|timeout"
        ),
        "RPC node unavailable; retry later",
    ),
]


def _truncate(message: str, limit: int = MAX_REASON_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


def classify_error(
    message: str, logs: Sequence[str] | None = None
) -> tuple[FailureKind, str]:
    """Map a ledger error message and its program logs to a failure kind and reason."""
    haystack = "\n".join([message, *(logs or [])]).lower()
    for kind, pattern, hint in _PATTERNS:
        if pattern.search(haystack):
            return kind, f"{hint} ({_truncate(message, 120)})"
    return FailureKind.UNKNOWN, _truncate(message or "unknown error")
