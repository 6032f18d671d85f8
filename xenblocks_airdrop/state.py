"""On-chain account data structures for the airdrop tracker program.

Binary layout matches the Anchor (borsh) structs: an 8-byte discriminator
followed by fixed-width little-endian fields. Two generations of the
per-recipient record coexist on chain and are told apart by byte length
only; both decode to one :class:`AirdropRecord` shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from borsh_construct import Bool, I64, U8, U32, U64
from construct import Array, Bytes as CBytes, Struct as CStruct
from construct.core import ConstructError
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.discriminator import (
    DISCRIMINATOR_AIRDROP_RECORD,
    DISCRIMINATOR_AIRDROP_RUN,
    DISCRIMINATOR_GLOBAL_STATE,
    DISCRIMINATOR_SIZE,
    validate_discriminator,
)
from xenblocks_airdrop.errors import MalformedAccount
from xenblocks_airdrop.pda import EXTERNAL_ADDRESS_LEN, external_address_bytes

RESERVED_SLOTS = 6
# reserved[0] counts the one-time bonus paid to the recipient (the program's xuni
# total). reserved[1] is the program's native total, always sent as 0.
RESERVED_BONUS_INDEX = 0

Discriminator = CBytes(DISCRIMINATOR_SIZE)
PubkeyBytes = CBytes(32)
ExternalAddress = CBytes(EXTERNAL_ADDRESS_LEN)

GLOBAL_STATE_LAYOUT = CStruct(
    "discriminator" / Discriminator,
    "authority" / PubkeyBytes,
    "run_counter" / U64,
    "bump" / U8,
)

AIRDROP_RUN_LAYOUT = CStruct(
    "discriminator" / Discriminator,
    "run_id" / U64,
    "run_date" / I64,
    "total_recipients" / U32,
    "total_amount" / U64,
    "dry_run" / Bool,
    "bump" / U8,
)

LEGACY_RECORD_LAYOUT = CStruct(
    "discriminator" / Discriminator,
    "sol_wallet" / PubkeyBytes,
    "eth_address" / ExternalAddress,
    "total_airdropped" / U64,
    "last_updated" / I64,
    "bump" / U8,
)

CURRENT_RECORD_LAYOUT = CStruct(
    "discriminator" / Discriminator,
    "sol_wallet" / PubkeyBytes,
    "eth_address" / ExternalAddress,
    "xnm_airdropped" / U64,
    "xblk_airdropped" / U64,
    "reserved" / Array(RESERVED_SLOTS, U64),
    "last_updated" / I64,
    "bump" / U8,
)


class RecordLayout(Enum):
    LEGACY = 99
    CURRENT = 155

    @property
    def size(self) -> int:
        return self.value


def _decode_external_address(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8", "replace")


def _parse(layout: CStruct, data: bytes, what: str):
    try:
        return layout.parse(data)
    except ConstructError as e:
        raise MalformedAccount(f"{what}: {e}") from e


@dataclass
class GlobalState:
    authority: Pubkey
    run_counter: int  # u64
    bump: int  # u8

    STRUCT_SIZE = 49

    @classmethod
    def from_bytes(cls, data: bytes) -> GlobalState:
        validate_discriminator(data, DISCRIMINATOR_GLOBAL_STATE)
        if len(data) < cls.STRUCT_SIZE:
            raise MalformedAccount(
                f"global state too short: {len(data)} bytes, need {cls.STRUCT_SIZE}"
            )
        c = _parse(GLOBAL_STATE_LAYOUT, data, "global state")
        return cls(Pubkey.from_bytes(c.authority), c.run_counter, c.bump)

    def to_bytes(self) -> bytes:
        return GLOBAL_STATE_LAYOUT.build(
            {
                "discriminator": DISCRIMINATOR_GLOBAL_STATE,
                "authority": bytes(self.authority),
                "run_counter": self.run_counter,
                "bump": self.bump,
            }
        )


@dataclass
class AirdropRun:
    run_id: int  # u64
    run_date: int  # i64 unix seconds
    total_recipients: int  # u32
    total_amount: int  # u64
    dry_run: bool
    bump: int  # u8

    STRUCT_SIZE = 38

    @classmethod
    def from_bytes(cls, data: bytes) -> AirdropRun:
        validate_discriminator(data, DISCRIMINATOR_AIRDROP_RUN)
        if len(data) < cls.STRUCT_SIZE:
            raise MalformedAccount(
                f"airdrop run too short: {len(data)} bytes, need {cls.STRUCT_SIZE}"
            )
        c = _parse(AIRDROP_RUN_LAYOUT, data, "airdrop run")
        return cls(
            c.run_id,
            c.run_date,
            c.total_recipients,
            c.total_amount,
            bool(c.dry_run),
            c.bump,
        )

    def to_bytes(self) -> bytes:
        return AIRDROP_RUN_LAYOUT.build(
            {
                "discriminator": DISCRIMINATOR_AIRDROP_RUN,
                "run_id": self.run_id,
                "run_date": self.run_date,
                "total_recipients": self.total_recipients,
                "total_amount": self.total_amount,
                "dry_run": self.dry_run,
                "bump": self.bump,
            }
        )


@dataclass
class AirdropRecord:
    """Normalized per-recipient record.

    Legacy records carry a single undifferentiated total, which is exposed
    as ``xnm_airdropped`` with ``xblk_airdropped`` and all reserved slots 0.
    """

    sol_wallet: Pubkey
    eth_address: str
    xnm_airdropped: int  # u64
    xblk_airdropped: int  # u64
    last_updated: int  # i64
    bump: int  # u8
    reserved: list[int] = field(default_factory=lambda: [0] * RESERVED_SLOTS)
    layout: RecordLayout = RecordLayout.CURRENT

    @property
    def bonus_paid(self) -> int:
        return self.reserved[RESERVED_BONUS_INDEX]

    def amount_for(self, symbol: str) -> int:
        if symbol == "xnm":
            return self.xnm_airdropped
        if symbol == "xblk":
            return self.xblk_airdropped
        raise KeyError(symbol)

    @classmethod
    def from_bytes(cls, data: bytes) -> AirdropRecord:
        return decode_recipient_record(data)

    def to_bytes(self) -> bytes:
        if self.layout is RecordLayout.LEGACY:
            if self.xblk_airdropped or any(self.reserved):
                raise ValueError("legacy records hold a single total only")
            return LEGACY_RECORD_LAYOUT.build(
                {
                    "discriminator": DISCRIMINATOR_AIRDROP_RECORD,
                    "sol_wallet": bytes(self.sol_wallet),
                    "eth_address": external_address_bytes(self.eth_address),
                    "total_airdropped": self.xnm_airdropped,
                    "last_updated": self.last_updated,
                    "bump": self.bump,
                }
            )
        return CURRENT_RECORD_LAYOUT.build(
            {
                "discriminator": DISCRIMINATOR_AIRDROP_RECORD,
                "sol_wallet": bytes(self.sol_wallet),
                "eth_address": external_address_bytes(self.eth_address),
                "xnm_airdropped": self.xnm_airdropped,
                "xblk_airdropped": self.xblk_airdropped,
                "reserved": list(self.reserved),
                "last_updated": self.last_updated,
                "bump": self.bump,
            }
        )


def decode_recipient_record(data: bytes) -> AirdropRecord:
    """Decode either record generation, selected by total byte length."""
    if len(data) == RecordLayout.CURRENT.size:
        c = _parse(CURRENT_RECORD_LAYOUT, data, "airdrop record")
        return AirdropRecord(
            sol_wallet=Pubkey.from_bytes(c.sol_wallet),
            eth_address=_decode_external_address(c.eth_address),
            xnm_airdropped=c.xnm_airdropped,
            xblk_airdropped=c.xblk_airdropped,
            last_updated=c.last_updated,
            bump=c.bump,
            reserved=list(c.reserved),
            layout=RecordLayout.CURRENT,
        )
    if len(data) == RecordLayout.LEGACY.size:
        c = _parse(LEGACY_RECORD_LAYOUT, data, "legacy airdrop record")
        return AirdropRecord(
            sol_wallet=Pubkey.from_bytes(c.sol_wallet),
            eth_address=_decode_external_address(c.eth_address),
            xnm_airdropped=c.total_airdropped,
            xblk_airdropped=0,
            last_updated=c.last_updated,
            bump=c.bump,
            layout=RecordLayout.LEGACY,
        )
    raise MalformedAccount(
        f"unexpected airdrop record size: {len(data)} bytes, "
        f"want {RecordLayout.LEGACY.size} or {RecordLayout.CURRENT.size}"
    )
