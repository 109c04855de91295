"""Prize distributions, pick allocation and claims."""

from .builder import PrizeDistributionBuilder
from .claims import ClaimEvaluation, ClaimResolver, ClaimResult, evaluate_pick
from .picks import ClaimToken, PickAllocator, PickLedger
from .tiers import (
    PrizeFraction,
    create_masks,
    prize_tier_fraction,
    prizes_at_tier,
    tier_match,
    user_number,
)

__all__ = [
    "ClaimEvaluation",
    "ClaimResolver",
    "ClaimResult",
    "ClaimToken",
    "PickAllocator",
    "PickLedger",
    "PrizeDistributionBuilder",
    "PrizeFraction",
    "create_masks",
    "evaluate_pick",
    "prize_tier_fraction",
    "prizes_at_tier",
    "tier_match",
    "user_number",
]
