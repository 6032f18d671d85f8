"""SPL token helpers: associated token addresses, account layout, instructions.

Instructions are built by hand so the same code serves both the Token and
Token-2022 programs; the caller passes the owning program for each mint.
"""

from __future__ import annotations

from dataclasses import dataclass

from borsh_construct import U8, U64
from construct import Bytes as CBytes, Struct as CStruct
from solders.instruction import AccountMeta, Instruction  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.system_program import ID as SYSTEM_PROGRAM_ID  # type: ignore[import-untyped]

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)

# Token program instruction indices.
IX_TRANSFER_CHECKED = 12
# Associated token program instruction indices.
IX_CREATE_IDEMPOTENT = 1

# Leading fields of a token account; Token-2022 extensions follow at offset 165.
TOKEN_ACCOUNT_LAYOUT = CStruct(
    "mint" / CBytes(32),
    "owner" / CBytes(32),
    "amount" / U64,
)
TOKEN_ACCOUNT_MIN_SIZE = 165

TRANSFER_CHECKED_LAYOUT = CStruct(
    "instruction" / U8,
    "amount" / U64,
    "decimals" / U8,
)


@dataclass
class TokenAccount:
    mint: Pubkey
    owner: Pubkey
    amount: int  # u64

    @classmethod
    def from_bytes(cls, data: bytes) -> TokenAccount:
        if len(data) < TOKEN_ACCOUNT_MIN_SIZE:
            raise ValueError(
                f"token account too short: {len(data)} bytes, need {TOKEN_ACCOUNT_MIN_SIZE}"
            )
        parsed = TOKEN_ACCOUNT_LAYOUT.parse(data)
        return cls(
            mint=Pubkey.from_bytes(parsed.mint),
            owner=Pubkey.from_bytes(parsed.owner),
            amount=parsed.amount,
        )

    def to_bytes(self) -> bytes:
        head = TOKEN_ACCOUNT_LAYOUT.build(
            {"mint": bytes(self.mint), "owner": bytes(self.owner), "amount": self.amount}
        )
        # delegate option, state=initialized, is_native option, delegated amount, close authority option
        tail = bytes(36) + b"\x01" + bytes(12) + bytes(8) + bytes(36)
        return head + tail


def get_associated_token_address(
    owner: Pubkey, mint: Pubkey, token_program_id: Pubkey = TOKEN_PROGRAM_ID
) -> Pubkey:
    """Derive the associated token account address."""
    seeds = [bytes(owner), bytes(token_program_id), bytes(mint)]
    ata, _ = Pubkey.find_program_address(seeds, ASSOCIATED_TOKEN_PROGRAM_ID)
    return ata


def create_idempotent_ata_ix(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """Build a CreateIdempotent associated token account instruction."""
    ata = get_associated_token_address(owner, mint, token_program_id)
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_program_id, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, bytes([IX_CREATE_IDEMPOTENT]), accounts)


def transfer_checked_ix(
    source: Pubkey,
    mint: Pubkey,
    dest: Pubkey,
    owner: Pubkey,
    amount: int,
    decimals: int,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """Build a TransferChecked instruction."""
    data = TRANSFER_CHECKED_LAYOUT.build(
        {"instruction": IX_TRANSFER_CHECKED, "amount": amount, "decimals": decimals}
    )
    accounts = [
        AccountMeta(pubkey=source, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=dest, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=True, is_writable=False),
    ]
    return Instruction(token_program_id, data, accounts)


def decode_transfer_checked(data: bytes) -> tuple[int, int]:
    """Return (amount, decimals) from TransferChecked instruction data."""
    if len(data) != TRANSFER_CHECKED_LAYOUT.sizeof() or data[0] != IX_TRANSFER_CHECKED:
        raise ValueError("not a TransferChecked instruction")
    parsed = TRANSFER_CHECKED_LAYOUT.parse(data)
    return parsed.amount, parsed.decimals
