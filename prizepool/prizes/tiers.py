"""Pick-to-tier matching and prize fraction arithmetic.

Every function here is pure: given the same account, pick and distribution
the same tier and payout come out, which is what lets a claimant search its
picks offline before claiming.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Sequence

from ..models.types import U128_MAX
from ..settings import TIERS_NOMINAL

PICK_BYTES = 16


def user_number(account_id: str, pick: int) -> int:
    """Derive the 256-bit number a pick plays in a draw.

    ``sha256(sha256(account_id) || pick)`` where the pick is encoded as 16
    big-endian bytes; the digest is read as a little-endian integer.

    Parameters
    ----------
    account_id : str
        Account owning the pick.
    pick : int
        Pick index in ``0 .. 2**128 - 1``.

    Returns
    -------
    int
        Number in ``0 .. 2**256 - 1``.
    """

    if pick < 0:
        raise ValueError("pick must be non-negative")
    account_hash = hashlib.sha256(account_id.encode("utf-8")).digest()
    digest = hashlib.sha256(account_hash + pick.to_bytes(PICK_BYTES, "big")).digest()
    return int.from_bytes(digest, "little")


def create_masks(bit_range_size: int, cardinality: int) -> list[int]:
    """Return ``cardinality`` masks, each isolating one ``bit_range_size``-wide digit.

    Masks are ordered from the least to the most significant digit.
    """

    if cardinality <= 0:
        return []
    masks = [(1 << bit_range_size) - 1]
    for _ in range(1, cardinality):
        masks.append(masks[-1] << bit_range_size)
    return masks


def tier_match(masks: Sequence[int], number: int, winning_number: int) -> int:
    """Return the tier of ``number`` against ``winning_number``.

    Digits are compared from the least significant one upwards and the scan
    stops at the first mismatch. Tier ``0`` means every digit matched.
    """

    matched = 0
    for mask in masks:
        if mask & winning_number != mask & number:
            break
        matched += 1
    return len(masks) - matched


def prizes_at_tier(tier: int, bit_range_size: int) -> int:
    """Count of numbers landing exactly in ``tier``."""

    if tier == 0:
        return 1
    return (1 << (bit_range_size * tier)) - (1 << (bit_range_size * (tier - 1)))


@dataclass(frozen=True)
class PrizeFraction:
    """Exact share of the prize pool paid to one pick, kept as a ratio."""

    numerator: int
    denominator: int

    def __post_init__(self) -> None:
        if self.denominator <= 0:
            raise ValueError("denominator must be positive")
        if self.numerator < 0:
            raise ValueError("numerator must be non-negative")

    @property
    def is_zero(self) -> bool:
        return self.numerator == 0

    def multiply(self, amount: int) -> int:
        """Return ``amount * numerator // denominator``.

        Raises
        ------
        OverflowError
            If the result does not fit an unsigned 128-bit value.
        """

        result = self.numerator * amount // self.denominator
        if result > U128_MAX:
            raise OverflowError(f"payout {result} does not fit an unsigned 128-bit value")
        return result


ZERO_FRACTION = PrizeFraction(0, 1)


def prize_tier_fraction(tier: int, bit_range_size: int, tiers: Sequence[int]) -> PrizeFraction:
    """Share of the prize paid to a single pick in ``tier``.

    The tier weight (a percentage) is split evenly between every number
    that can land in the tier. Tiers past the end of the weight table pay
    nothing.
    """

    if tier < 0 or tier >= len(tiers):
        return ZERO_FRACTION
    weight = tiers[tier]
    if weight == 0:
        return ZERO_FRACTION
    return PrizeFraction(
        numerator=weight,
        denominator=prizes_at_tier(tier, bit_range_size) * TIERS_NOMINAL,
    )


__all__ = [
    "PrizeFraction",
    "ZERO_FRACTION",
    "create_masks",
    "prize_tier_fraction",
    "prizes_at_tier",
    "tier_match",
    "user_number",
]
