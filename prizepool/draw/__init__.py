"""Draw lifecycle and winning-number sampling."""

from .clock import DrawClock, DrawProvider, fetch_draw
from .winning_number import derive_winning_number, random_seed

__all__ = [
    "DrawClock",
    "DrawProvider",
    "fetch_draw",
    "derive_winning_number",
    "random_seed",
]
