"""PDA derivation for airdrop tracker program accounts."""

import struct

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

SEED_STATE = b"state"
SEED_RUN = b"run"
SEED_AIRDROP_RECORD = b"airdrop_record"

EXTERNAL_ADDRESS_LEN = 42
# The program seeds records with the first 20 bytes of the padded address.
EXTERNAL_ADDRESS_SEED_LEN = 20


def external_address_bytes(eth_address: str) -> bytes:
    """Encode an external address as the program's fixed 42-byte, zero-padded field."""
    raw = eth_address.encode()
    if len(raw) > EXTERNAL_ADDRESS_LEN:
        raise ValueError(
            f"external address too long: {len(raw)} bytes, max {EXTERNAL_ADDRESS_LEN}"
        )
    return raw.ljust(EXTERNAL_ADDRESS_LEN, b"\x00")


def derive_global_state_pda(program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address([SEED_STATE], program_id)


def derive_run_pda(program_id: Pubkey, run_id: int) -> tuple[Pubkey, int]:
    run_id_bytes = struct.pack("<Q", run_id)
    return Pubkey.find_program_address([SEED_RUN, run_id_bytes], program_id)


def derive_record_pda(
    program_id: Pubkey, sol_wallet: Pubkey, eth_address: str
) -> tuple[Pubkey, int]:
    eth_seed = external_address_bytes(eth_address)[:EXTERNAL_ADDRESS_SEED_LEN]
    return Pubkey.find_program_address(
        [SEED_AIRDROP_RECORD, bytes(sol_wallet), eth_seed], program_id
    )
