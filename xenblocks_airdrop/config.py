"""Network constants and runtime configuration for the airdrop engine.

Runtime settings are read from environment variables (optionally via a
``.env`` file loaded by the CLI) into frozen dataclasses. Invalid values
raise :class:`ConfigError` before any ledger traffic happens.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Mapping

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.errors import ConfigError
from xenblocks_airdrop.tokens import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

PROGRAM_ID = "JAzubT5NSiyRkLgaFRTkrdLGzzMb57CVhMhdDCiqoRu6"

RPC_URLS = {
    "testnet": "https://rpc.testnet.x1.xyz",
    "localnet": "http://localhost:8899",
}

LEADERBOARD_URL = "https://xenblocks.io/v1/leaderboard"

# Token amounts on the leaderboard are 18-decimal fixed point.
SOURCE_DECIMALS = 18

SUPPORTED_TOKENS = ("xnm", "xblk")

TOKEN_PROGRAMS = {
    "token": TOKEN_PROGRAM_ID,
    "token-2022": TOKEN_2022_PROGRAM_ID,
}

DEFAULT_BATCH_SIZE = 5
DEFAULT_CONCURRENCY = 4
DEFAULT_FEE_BUFFER_MULTIPLIER = Decimal("1.2")
DEFAULT_MIN_FEE_BALANCE = 10_000_000  # lamports
DEFAULT_PAGE_SIZE = 1000


@dataclass(frozen=True)
class TokenConfig:
    symbol: str
    mint: Pubkey
    decimals: int = 9
    program_id: Pubkey = TOKEN_PROGRAM_ID


@dataclass(frozen=True)
class BonusAirdropConfig:
    enabled: bool = False
    mint: Pubkey | None = None
    decimals: int = 9
    program_id: Pubkey = TOKEN_PROGRAM_ID
    amount: int = 0  # bonus token base units
    min_balance_threshold: int = 0  # xnm base units


@dataclass(frozen=True)
class AddressFilter:
    """Optional allow-list over recipient identities and external addresses.

    An empty filter admits everyone. When both lists are set a miner must
    match either one.
    """

    identities: frozenset[str] = frozenset()
    external_addresses: frozenset[str] = frozenset()

    @property
    def active(self) -> bool:
        return bool(self.identities or self.external_addresses)

    def admits(self, identity: str, external_address: str) -> bool:
        if not self.active:
            return True
        if identity in self.identities:
            return True
        return external_address.lower() in self.external_addresses


@dataclass(frozen=True)
class AirdropConfig:
    rpc_endpoint: str
    program_id: Pubkey
    keypair_path: str
    tokens: tuple[TokenConfig, ...]
    api_endpoint: str = LEADERBOARD_URL
    dry_run: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    min_fee_balance: int = DEFAULT_MIN_FEE_BALANCE
    fee_buffer_multiplier: Decimal = DEFAULT_FEE_BUFFER_MULTIPLIER
    compute_unit_price: int = 0  # micro-lamports per compute unit
    page_size: int = DEFAULT_PAGE_SIZE
    bonus: BonusAirdropConfig = field(default_factory=BonusAirdropConfig)
    address_filter: AddressFilter = field(default_factory=AddressFilter)
    report_path: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.fee_buffer_multiplier < 1:
            raise ConfigError(
                f"fee_buffer_multiplier must be >= 1.0, got {self.fee_buffer_multiplier}"
            )
        if not 1 <= self.page_size <= DEFAULT_PAGE_SIZE:
            raise ConfigError(
                f"page_size must be in 1..{DEFAULT_PAGE_SIZE}, got {self.page_size}"
            )
        if not self.tokens:
            raise ConfigError("at least one token must be enabled")
        if self.bonus.enabled and self.bonus.mint is None:
            raise ConfigError("bonus airdrop is enabled but has no mint")

    def token(self, symbol: str) -> TokenConfig | None:
        for t in self.tokens:
            if t.symbol == symbol:
                return t
        return None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AirdropConfig:
        """Build a configuration from environment variables."""
        env = os.environ if environ is None else environ

        rpc_endpoint = env.get("RPC_ENDPOINT")
        if not rpc_endpoint:
            network = env.get("NETWORK", "testnet")
            if network not in RPC_URLS:
                raise ConfigError(f"unknown NETWORK {network!r}")
            rpc_endpoint = RPC_URLS[network]

        symbols = [
            s.strip().lower()
            for s in env.get("TOKEN_TYPES", "xnm").split(",")
            if s.strip()
        ]
        tokens = []
        for symbol in symbols:
            if symbol not in SUPPORTED_TOKENS:
                raise ConfigError(
                    f"unsupported token type {symbol!r}, expected one of {SUPPORTED_TOKENS}"
                )
            prefix = symbol.upper()
            tokens.append(
                TokenConfig(
                    symbol=symbol,
                    mint=_pubkey(env, f"{prefix}_TOKEN_MINT"),
                    decimals=_int(env, f"{prefix}_DECIMALS", 9, minimum=0),
                    program_id=_token_program(env, f"{prefix}_TOKEN_PROGRAM"),
                )
            )

        bonus_enabled = _bool(env, "BONUS_AIRDROP_ENABLED", False)
        bonus = BonusAirdropConfig()
        if bonus_enabled:
            bonus = BonusAirdropConfig(
                enabled=True,
                mint=_pubkey(env, "BONUS_AIRDROP_MINT"),
                decimals=_int(env, "BONUS_AIRDROP_DECIMALS", 9, minimum=0),
                program_id=_token_program(env, "BONUS_AIRDROP_TOKEN_PROGRAM"),
                amount=_int(env, "BONUS_AIRDROP_AMOUNT", 0, minimum=0),
                min_balance_threshold=_int(env, "BONUS_AIRDROP_MIN_BALANCE", 0, minimum=0),
            )

        return cls(
            rpc_endpoint=rpc_endpoint,
            program_id=_pubkey(env, "AIRDROP_TRACKER_PROGRAM_ID", PROGRAM_ID),
            keypair_path=os.path.expanduser(
                env.get("KEYPAIR_PATH", "~/.config/solana/id.json")
            ),
            tokens=tuple(tokens),
            api_endpoint=env.get("API_ENDPOINT", LEADERBOARD_URL),
            dry_run=_bool(env, "DRY_RUN", False),
            batch_size=_int(env, "BATCH_SIZE", DEFAULT_BATCH_SIZE, minimum=1),
            concurrency=_int(env, "CONCURRENCY", DEFAULT_CONCURRENCY, minimum=1),
            min_fee_balance=_int(env, "MIN_FEE_BALANCE", DEFAULT_MIN_FEE_BALANCE, minimum=0),
            fee_buffer_multiplier=_decimal(
                env, "FEE_BUFFER_MULTIPLIER", DEFAULT_FEE_BUFFER_MULTIPLIER
            ),
            compute_unit_price=_int(env, "COMPUTE_UNIT_PRICE", 0, minimum=0),
            bonus=bonus,
            address_filter=AddressFilter(
                identities=frozenset(_csv(env, "X1_ADDRESS_FILTER")),
                external_addresses=frozenset(
                    a.lower() for a in _csv(env, "ETH_ADDRESS_FILTER")
                ),
            ),
            report_path=env.get("REPORT_PATH") or None,
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


def _csv(env: Mapping[str, str], key: str) -> list[str]:
    return [s.strip() for s in env.get(key, "").split(",") if s.strip()]


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{key} must be a boolean, got {raw!r}")


def _int(env: Mapping[str, str], key: str, default: int, minimum: int | None = None) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _decimal(env: Mapping[str, str], key: str, default: Decimal) -> Decimal:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
    if not value.is_finite():
        raise ConfigError(f"{key} must be finite, got {raw!r}")
    return value


def _pubkey(env: Mapping[str, str], key: str, default: str | None = None) -> Pubkey:
    raw = env.get(key) or default
    if not raw:
        raise ConfigError(f"{key} is required")
    try:
        return Pubkey.from_string(raw)
    except ValueError:
        raise ConfigError(f"{key} is not a valid public key: {raw!r}") from None


def _token_program(env: Mapping[str, str], key: str) -> Pubkey:
    raw = env.get(key, "token").strip().lower()
    if raw not in TOKEN_PROGRAMS:
        raise ConfigError(
            f"{key} must be one of {sorted(TOKEN_PROGRAMS)}, got {raw!r}"
        )
    return TOKEN_PROGRAMS[raw]
