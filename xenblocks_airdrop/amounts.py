"""Exact-integer conversion of leaderboard amount strings to token base units.

The leaderboard reports 18-decimal fixed-point values as decimal strings,
often in scientific notation (``"1.351984E+25"``). Amounts are rebuilt from
their digits and shifted between scales with integer arithmetic only.
Scale reduction truncates.
"""

from __future__ import annotations

import logging
import re

from xenblocks_airdrop.errors import MalformedInput

logger = logging.getLogger(__name__)

_AMOUNT_RE = re.compile(
    r"^\+?(?P<int>\d*)(?:\.(?P<frac>\d*))?(?:[eE](?P<exp>[+-]?\d+))?$"
)

# Larger exponents are treated as malformed.
MAX_EXPONENT = 512


def _parse_strict(raw: str, source_scale: int, target_scale: int) -> int:
    text = raw.strip()
    m = _AMOUNT_RE.match(text)
    if m is None:
        raise MalformedInput(f"not a decimal amount: {raw!r}")
    int_part = m.group("int")
    frac_part = m.group("frac") or ""
    if not int_part and not frac_part:
        raise MalformedInput(f"no digits in amount: {raw!r}")
    exp = int(m.group("exp") or 0)
    if abs(exp) > MAX_EXPONENT:
        raise MalformedInput(f"exponent out of range: {raw!r}")

    digits = int((int_part or "0") + frac_part)
    shift = exp - len(frac_part) + target_scale - source_scale
    if shift >= 0:
        return digits * 10**shift
    return digits // 10**-shift


def parse_external_amount(
    raw: str | int | None, source_scale: int = 18, target_scale: int = 9
) -> int:
    """Convert an amount at ``source_scale`` decimals to base units at ``target_scale``.

    Never raises: malformed, negative or missing input yields 0.
    """
    if raw is None:
        return 0
    if isinstance(raw, int):
        raw = str(raw)
    try:
        return _parse_strict(raw, source_scale, target_scale)
    except MalformedInput as e:
        logger.debug("treating amount as 0: %s", e)
        return 0


def format_amount(value: int, scale: int = 9) -> str:
    """Render base units as a decimal string with trailing zeros stripped."""
    sign = "-" if value < 0 else ""
    value = abs(value)
    if scale == 0:
        return f"{sign}{value}"
    whole, frac = divmod(value, 10**scale)
    frac_str = str(frac).rjust(scale, "0").rstrip("0")
    if not frac_str:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac_str}"
