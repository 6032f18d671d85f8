"""Instruction encoding and builders for the airdrop tracker program.

Each instruction is an 8-byte Anchor opcode tag followed by its fixed-width
little-endian arguments. Byte arrays are zero-padded to their declared
length, never length-prefixed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from borsh_construct import Bool, U32, U64
from construct import Bytes as CBytes, Struct as CStruct
from construct.core import ConstructError
from solders.instruction import AccountMeta, Instruction  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.system_program import ID as SYSTEM_PROGRAM_ID  # type: ignore[import-untyped]

from xenblocks_airdrop.discriminator import DISCRIMINATOR_SIZE, instruction_discriminator
from xenblocks_airdrop.pda import (
    EXTERNAL_ADDRESS_LEN,
    derive_global_state_pda,
    derive_record_pda,
    derive_run_pda,
    external_address_bytes,
)


class InstructionKind(Enum):
    INITIALIZE_STATE = "initialize_state"
    CREATE_RUN = "create_run"
    UPDATE_RUN_TOTALS = "update_run_totals"
    INITIALIZE_RECORD = "initialize_record"
    UPDATE_RECORD = "update_record"
    INITIALIZE_AND_UPDATE = "initialize_and_update"

    @property
    def discriminator(self) -> bytes:
        return instruction_discriminator(self.value)


_ARGS: dict[InstructionKind, CStruct] = {
    InstructionKind.INITIALIZE_STATE: CStruct(),
    InstructionKind.CREATE_RUN: CStruct("dry_run" / Bool),
    InstructionKind.UPDATE_RUN_TOTALS: CStruct(
        "total_recipients" / U32,
        "total_amount" / U64,
    ),
    InstructionKind.INITIALIZE_RECORD: CStruct(
        "eth_address" / CBytes(EXTERNAL_ADDRESS_LEN),
    ),
    # The program names the third and fourth amounts xuni and native. The
    # third carries the one-time bonus (record reserved[0]); native is unused.
    InstructionKind.UPDATE_RECORD: CStruct(
        "xnm_amount" / U64,
        "xblk_amount" / U64,
        "bonus_amount" / U64,
        "native_amount" / U64,
    ),
    InstructionKind.INITIALIZE_AND_UPDATE: CStruct(
        "eth_address" / CBytes(EXTERNAL_ADDRESS_LEN),
        "xnm_amount" / U64,
        "xblk_amount" / U64,
        "bonus_amount" / U64,
        "native_amount" / U64,
    ),
}

_BY_DISCRIMINATOR = {kind.discriminator: kind for kind in InstructionKind}


def encode_instruction(kind: InstructionKind, args: dict[str, Any] | None = None) -> bytes:
    """Encode instruction data. ``eth_address`` may be given as str or bytes."""
    values = dict(args or {})
    eth = values.get("eth_address")
    if isinstance(eth, str):
        values["eth_address"] = external_address_bytes(eth)
    elif isinstance(eth, bytes) and len(eth) < EXTERNAL_ADDRESS_LEN:
        values["eth_address"] = eth.ljust(EXTERNAL_ADDRESS_LEN, b"\x00")
    try:
        body = _ARGS[kind].build(values)
    except ConstructError as e:
        raise ValueError(f"cannot encode {kind.value}: {e}") from e
    return kind.discriminator + body


def decode_instruction(data: bytes) -> tuple[InstructionKind, dict[str, Any]]:
    """Inverse of :func:`encode_instruction`. Raises ValueError on unknown data."""
    if len(data) < DISCRIMINATOR_SIZE:
        raise ValueError(f"instruction data too short: {len(data)} bytes")
    kind = _BY_DISCRIMINATOR.get(data[:DISCRIMINATOR_SIZE])
    if kind is None:
        raise ValueError(f"unknown instruction tag {data[:DISCRIMINATOR_SIZE].hex()}")
    layout = _ARGS[kind]
    body = data[DISCRIMINATOR_SIZE:]
    if len(body) != layout.sizeof():
        raise ValueError(
            f"{kind.value}: expected {layout.sizeof()} argument bytes, got {len(body)}"
        )
    parsed = layout.parse(body)
    args = {k: v for k, v in parsed.items() if not k.startswith("_")}
    if "eth_address" in args:
        args["eth_address"] = args["eth_address"].rstrip(b"\x00").decode("utf-8", "replace")
    if "dry_run" in args:
        args["dry_run"] = bool(args["dry_run"])
    return kind, args


# ---------------------------------------------------------------------------
# Instruction builders
# ---------------------------------------------------------------------------


def initialize_state_ix(program_id: Pubkey, authority: Pubkey) -> Instruction:
    state, _ = derive_global_state_pda(program_id)
    accounts = [
        AccountMeta(pubkey=authority, is_signer=True, is_writable=True),
        AccountMeta(pubkey=state, is_signer=False, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    data = encode_instruction(InstructionKind.INITIALIZE_STATE)
    return Instruction(program_id, data, accounts)


def create_run_ix(
    program_id: Pubkey, authority: Pubkey, run_id: int, dry_run: bool
) -> Instruction:
    """``run_id`` must be the current run counter plus one."""
    state, _ = derive_global_state_pda(program_id)
    run, _ = derive_run_pda(program_id, run_id)
    accounts = [
        AccountMeta(pubkey=authority, is_signer=True, is_writable=True),
        AccountMeta(pubkey=state, is_signer=False, is_writable=True),
        AccountMeta(pubkey=run, is_signer=False, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    data = encode_instruction(InstructionKind.CREATE_RUN, {"dry_run": dry_run})
    return Instruction(program_id, data, accounts)


def update_run_totals_ix(
    program_id: Pubkey,
    authority: Pubkey,
    run_id: int,
    total_recipients: int,
    total_amount: int,
) -> Instruction:
    state, _ = derive_global_state_pda(program_id)
    run, _ = derive_run_pda(program_id, run_id)
    accounts = [
        AccountMeta(pubkey=authority, is_signer=True, is_writable=True),
        AccountMeta(pubkey=state, is_signer=False, is_writable=False),
        AccountMeta(pubkey=run, is_signer=False, is_writable=True),
    ]
    data = encode_instruction(
        InstructionKind.UPDATE_RUN_TOTALS,
        {"total_recipients": total_recipients, "total_amount": total_amount},
    )
    return Instruction(program_id, data, accounts)


def _init_record_accounts(
    program_id: Pubkey, authority: Pubkey, sol_wallet: Pubkey, eth_address: str
) -> list[AccountMeta]:
    record, _ = derive_record_pda(program_id, sol_wallet, eth_address)
    return [
        AccountMeta(pubkey=authority, is_signer=True, is_writable=True),
        AccountMeta(pubkey=sol_wallet, is_signer=False, is_writable=False),
        AccountMeta(pubkey=record, is_signer=False, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]


def initialize_record_ix(
    program_id: Pubkey, authority: Pubkey, sol_wallet: Pubkey, eth_address: str
) -> Instruction:
    accounts = _init_record_accounts(program_id, authority, sol_wallet, eth_address)
    data = encode_instruction(
        InstructionKind.INITIALIZE_RECORD, {"eth_address": eth_address}
    )
    return Instruction(program_id, data, accounts)


def update_record_ix(
    program_id: Pubkey,
    authority: Pubkey,
    sol_wallet: Pubkey,
    eth_address: str,
    xnm_amount: int = 0,
    xblk_amount: int = 0,
    bonus_amount: int = 0,
    native_amount: int = 0,
) -> Instruction:
    record, _ = derive_record_pda(program_id, sol_wallet, eth_address)
    accounts = [
        AccountMeta(pubkey=authority, is_signer=True, is_writable=True),
        AccountMeta(pubkey=record, is_signer=False, is_writable=True),
    ]
    data = encode_instruction(
        InstructionKind.UPDATE_RECORD,
        {
            "xnm_amount": xnm_amount,
            "xblk_amount": xblk_amount,
            "bonus_amount": bonus_amount,
            "native_amount": native_amount,
        },
    )
    return Instruction(program_id, data, accounts)


def initialize_and_update_ix(
    program_id: Pubkey,
    authority: Pubkey,
    sol_wallet: Pubkey,
    eth_address: str,
    xnm_amount: int = 0,
    xblk_amount: int = 0,
    bonus_amount: int = 0,
    native_amount: int = 0,
) -> Instruction:
    accounts = _init_record_accounts(program_id, authority, sol_wallet, eth_address)
    data = encode_instruction(
        InstructionKind.INITIALIZE_AND_UPDATE,
        {
            "eth_address": eth_address,
            "xnm_amount": xnm_amount,
            "xblk_amount": xblk_amount,
            "bonus_amount": bonus_amount,
            "native_amount": native_amount,
        },
    )
    return Instruction(program_id, data, accounts)
