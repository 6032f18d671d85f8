import hashlib

DISCRIMINATOR_SIZE = 8


def _sha256_first8(s: str) -> bytes:
    return hashlib.sha256(s.encode()).digest()[:8]


DISCRIMINATOR_GLOBAL_STATE = _sha256_first8("account:GlobalState")
DISCRIMINATOR_AIRDROP_RUN = _sha256_first8("account:AirdropRun")
DISCRIMINATOR_AIRDROP_RECORD = _sha256_first8("account:AirdropRecord")


def instruction_discriminator(name: str) -> bytes:
    """Anchor opcode tag for a snake_case instruction name."""
    return _sha256_first8(f"global:{name}")


def validate_discriminator(data: bytes, expected: bytes) -> None:
    """Validate the 8-byte discriminator prefix. Raises ValueError on mismatch."""
    if len(data) < DISCRIMINATOR_SIZE:
        raise ValueError(
            f"data too short: {len(data)} bytes, need at least {DISCRIMINATOR_SIZE}"
        )
    got = data[:DISCRIMINATOR_SIZE]
    if got != expected:
        raise ValueError(
            f"invalid discriminator: got {got.hex()}, want {expected.hex()}"
        )
