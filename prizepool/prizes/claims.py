"""Prize claims: tier evaluation and exactly-once payout."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import Session

from .picks import PickLedger
from .tiers import (
    PrizeFraction,
    create_masks,
    prize_tier_fraction,
    tier_match,
    user_number,
)
from ..errors import PrizeDistributionNotFoundError
from ..models.prize import PrizeDistribution
from ..ring_buffer import RingBuffer
from ..settings import DEFAULT_SETTINGS, PoolSettings

if TYPE_CHECKING:
    from ..yield_source.adapter import YieldSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimEvaluation:
    """Outcome of matching one pick against a draw, without side effects.

    Attributes
    ----------
    account_id : str
        Claimant.
    draw_id : int
        Draw the pick plays in.
    pick : int
        Pick index.
    user_number : int
        256-bit number derived from the account and pick.
    tier : int
        Matched tier; ``0`` is the jackpot.
    fraction : PrizeFraction
        Exact share of the prize pool paid to the pick.
    payout : int
        Amount owed for the pick.
    """

    account_id: str
    draw_id: int
    pick: int
    user_number: int
    tier: int
    fraction: PrizeFraction
    payout: int


@dataclass(frozen=True)
class ClaimResult:
    evaluation: ClaimEvaluation
    paid: bool
    """``False`` for a zero payout, which never reaches the yield source."""

    @property
    def payout(self) -> int:
        return self.evaluation.payout


def evaluate_pick(distribution: PrizeDistribution, account_id: str, pick: int) -> ClaimEvaluation:
    """Compute tier and payout of ``pick`` for ``account_id`` under ``distribution``."""

    number = user_number(account_id, pick)
    masks = create_masks(distribution.bit_range_size, distribution.cardinality)
    tier = tier_match(masks, number, distribution.winning_number)
    fraction = prize_tier_fraction(tier, distribution.bit_range_size, distribution.tiers)
    return ClaimEvaluation(
        account_id=account_id,
        draw_id=distribution.draw_id,
        pick=pick,
        user_number=number,
        tier=tier,
        fraction=fraction,
        payout=fraction.multiply(distribution.prize),
    )


class ClaimResolver:
    """Pays each winning pick at most once.

    The pick is reserved before the payout is issued. A failed payout
    releases the reservation so the claim can be retried; a successful one
    marks the pick claimed for good.
    """

    def __init__(
        self,
        session: Session,
        yield_source: "YieldSource",
        *,
        token_id: str,
        settings: Optional[PoolSettings] = None,
    ) -> None:
        """Create a claim resolver.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session.
        yield_source : YieldSource
            Venue paying the prizes.
        token_id : str
            Deposited token the prizes are paid in.
        settings : Optional[PoolSettings], default: None
            Pool settings providing the distribution buffer capacity.
        """

        self._session = session
        self._yield_source = yield_source
        self._token_id = token_id
        self._settings = settings or DEFAULT_SETTINGS
        self._picks = PickLedger(session)
        self._distributions: RingBuffer[PrizeDistribution] = RingBuffer(
            session,
            PrizeDistribution,
            self._settings.prize_buffer_capacity,
        )

    def _distribution(self, draw_id: int) -> PrizeDistribution:
        distribution = self._distributions.get_by_identifier(draw_id)
        if distribution.is_default:
            raise PrizeDistributionNotFoundError(
                f"No prize distribution has been generated for draw {draw_id}"
            )
        return distribution

    def evaluate(self, account_id: str, draw_id: int, pick: int) -> ClaimEvaluation:
        """Return what claiming ``pick`` would pay, without reserving it."""
        return evaluate_pick(self._distribution(draw_id), account_id, pick)

    def claim(self, account_id: str, draw_id: int, pick: int) -> ClaimResult:
        """Claim the prize won by ``pick`` in ``draw_id``.

        Returns
        -------
        ClaimResult
            The evaluation and whether a payout was issued.

        Raises
        ------
        PrizeDistributionNotFoundError
            If the draw has not been resolved yet.
        PicksNotGeneratedError, InvalidPickError, PickAlreadyClaimedError
            If the pick cannot be claimed.
        YieldSourceError
            If the payout failed. The pick is released for a later retry, and
            so it is for any other error raised by the yield source.
        """

        distribution = self._distribution(draw_id)
        token = self._picks.reserve(account_id, draw_id, pick)
        evaluation = evaluate_pick(distribution, account_id, pick)

        if evaluation.payout == 0:
            self._picks.finalize(token, succeeded=True, payout=0)
            logger.info(
                "Pick %d of '%s' in draw %d landed in tier %d with no prize",
                pick,
                account_id,
                draw_id,
                evaluation.tier,
            )
            return ClaimResult(evaluation=evaluation, paid=False)

        try:
            self._yield_source.claim(
                account_id, self._token_id, evaluation.payout, draw_id, pick
            )
        except Exception:
            self._picks.finalize(token, succeeded=False)
            logger.warning(
                "Payout of %d to '%s' for pick %d in draw %d failed; pick released",
                evaluation.payout,
                account_id,
                pick,
                draw_id,
            )
            raise

        self._picks.finalize(token, succeeded=True, payout=evaluation.payout)
        logger.info(
            "Paid %d %s to '%s' for pick %d in draw %d (tier %d)",
            evaluation.payout,
            self._token_id,
            account_id,
            pick,
            draw_id,
            evaluation.tier,
        )
        return ClaimResult(evaluation=evaluation, paid=True)

    def best_pick(self, account_id: str, draw_id: int, allowed_picks: int) -> Optional[ClaimEvaluation]:
        """Return the highest-paying unclaimed pick among ``0 .. allowed_picks - 1``."""

        distribution = self._distribution(draw_id)
        taken = set(self._picks.claimed_picks(account_id, draw_id))
        best: Optional[ClaimEvaluation] = None
        for pick in range(allowed_picks):
            if pick in taken:
                continue
            evaluation = evaluate_pick(distribution, account_id, pick)
            if best is None or evaluation.payout > best.payout:
                best = evaluation
        return best


__all__ = ["ClaimEvaluation", "ClaimResolver", "ClaimResult", "evaluate_pick"]
