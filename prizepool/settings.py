"""Tunable parameters of the prize pool.

Every value can be overridden through the environment (or a ``.env`` file);
the defaults reproduce the reference deployment.

Draws
-----
- A draw stays open for ``DRAW_DURATION_EPOCHS`` coarse platform epochs.
- Only the ``DRAW_BUFFER_CAPACITY`` most recent draws are retained.

Prizes
------
- ``PRIZE_BUFFER_CAPACITY`` distributions are retained.
- One pick is granted per ``MIN_PICK_COST`` units of average pool supply.
- ``TIERS`` holds sixteen percentage weights (sum <= ``TIERS_NOMINAL``).
- A distribution can be claimed between ``completed_at + OFFSET`` and
  ``completed_at + 2 * OFFSET``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

DRAW_DURATION_EPOCHS: int = 5
DRAW_BUFFER_CAPACITY: int = 3

PRIZE_BUFFER_CAPACITY: int = 32
MIN_PICK_COST: int = 1
BIT_RANGE_SIZE: int = 1
TIERS: tuple[int, ...] = (20, 30, 20, 10, 5, 5, 10, 0, 0, 0, 0, 0, 0, 0, 0, 0)
TIERS_NOMINAL: int = 100

# One week in milliseconds.
PRIZE_DISTRIBUTION_TIME_OFFSET_MS: int = 1000 * 3600 * 24 * 7


@dataclass(frozen=True)
class PoolSettings:
    draw_duration_epochs: int = DRAW_DURATION_EPOCHS
    draw_buffer_capacity: int = DRAW_BUFFER_CAPACITY
    prize_buffer_capacity: int = PRIZE_BUFFER_CAPACITY
    min_pick_cost: int = MIN_PICK_COST
    bit_range_size: int = BIT_RANGE_SIZE
    tiers: tuple[int, ...] = field(default=TIERS)
    prize_distribution_time_offset_ms: int = PRIZE_DISTRIBUTION_TIME_OFFSET_MS

    def __post_init__(self) -> None:
        if self.draw_duration_epochs < 0:
            raise ValueError("draw_duration_epochs must be non-negative")
        if self.draw_buffer_capacity < 1 or self.prize_buffer_capacity < 1:
            raise ValueError("ring buffer capacities must be at least 1")
        if self.min_pick_cost <= 0:
            raise ValueError("min_pick_cost must be positive")
        if not 0 < self.bit_range_size <= 256:
            raise ValueError("bit_range_size must be within 1..256")
        if len(self.tiers) != 16:
            raise ValueError("tiers must contain exactly 16 weights")
        if any(t < 0 for t in self.tiers) or sum(self.tiers) > TIERS_NOMINAL:
            raise ValueError(f"tier weights must be non-negative and sum to <= {TIERS_NOMINAL}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be an integer") from exc


def _env_tiers(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return tuple(int(part) for part in raw.split(","))
    except ValueError as exc:
        raise ValueError(
            f"Environment variable '{name}' must be a comma separated list of integers"
        ) from exc


def load_settings(env_file: Optional[str] = None) -> PoolSettings:
    """Build :class:`PoolSettings` from the environment.

    Parameters
    ----------
    env_file : Optional[str], default: None
        Explicit ``.env`` path. When omitted python-dotenv searches upwards
        from the working directory.
    """

    load_dotenv(env_file)
    return PoolSettings(
        draw_duration_epochs=_env_int("POOL_DRAW_DURATION_EPOCHS", DRAW_DURATION_EPOCHS),
        draw_buffer_capacity=_env_int("POOL_DRAW_BUFFER_CAPACITY", DRAW_BUFFER_CAPACITY),
        prize_buffer_capacity=_env_int("POOL_PRIZE_BUFFER_CAPACITY", PRIZE_BUFFER_CAPACITY),
        min_pick_cost=_env_int("POOL_MIN_PICK_COST", MIN_PICK_COST),
        bit_range_size=_env_int("POOL_BIT_RANGE_SIZE", BIT_RANGE_SIZE),
        tiers=_env_tiers("POOL_TIERS", TIERS),
        prize_distribution_time_offset_ms=_env_int(
            "POOL_PRIZE_DISTRIBUTION_TIME_OFFSET_MS", PRIZE_DISTRIBUTION_TIME_OFFSET_MS
        ),
    )


DEFAULT_SETTINGS = PoolSettings()

__all__ = [
    "DEFAULT_SETTINGS",
    "PoolSettings",
    "TIERS_NOMINAL",
    "load_settings",
]
