"""Helpers for deriving 256-bit winning numbers from random seeds."""

from __future__ import annotations

import secrets

SEED_LENGTH = 32


def _normalize_seed(seed: bytes) -> bytes:
    """Validate a raw randomness seed.

    Parameters
    ----------
    seed : bytes
        Bytes sampled from the environment's randomness source.
    """

    if seed is None:
        raise ValueError("seed must not be None")
    if not isinstance(seed, (bytes, bytearray)):
        raise TypeError("seed must be bytes")
    if len(seed) != SEED_LENGTH:
        raise ValueError(f"random seed of incorrect length: expected {SEED_LENGTH}, got {len(seed)}")
    return bytes(seed)


def derive_winning_number(seed: bytes) -> int:
    """Interpret a 32-byte seed as a little-endian unsigned 256-bit integer.

    Parameters
    ----------
    seed : bytes
        Exactly 32 random bytes.

    Returns
    -------
    int
        Winning number in ``0 .. 2**256 - 1``.
    """

    return int.from_bytes(_normalize_seed(seed), "little")


def random_seed() -> bytes:
    """Default randomness source: 32 bytes from :mod:`secrets`."""
    return secrets.token_bytes(SEED_LENGTH)


__all__ = ["SEED_LENGTH", "derive_winning_number", "random_seed"]
