"""Per-account pick allocation and claim bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..draw.clock import DrawProvider, fetch_draw
from ..errors import (
    InvalidPickError,
    PickAlreadyClaimedError,
    PicksAlreadyGeneratedError,
    PicksNotGeneratedError,
    PrizeDistributionNotFoundError,
)
from ..ledger import TimeWeightedLedger
from ..models.picks import (
    CLAIM_CLAIMED,
    CLAIM_RESERVED,
    CLAIM_UNCLAIMED,
    PickAllocation,
    PickClaim,
)
from ..models.prize import PrizeDistribution
from ..ring_buffer import RingBuffer
from ..settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)


class PickAllocator:
    """Computes, once, how many picks an account holds in a draw.

    The allocation is proportional to the account's share of the average
    pool supply over the draw window and is cached forever after the first
    computation.
    """

    def __init__(
        self,
        session: Session,
        draw_provider: DrawProvider,
        *,
        settings: Optional[PoolSettings] = None,
    ) -> None:
        self._session = session
        self._draw_provider = draw_provider
        self._settings = settings or DEFAULT_SETTINGS
        self._ledger = TimeWeightedLedger(session)
        self._distributions: RingBuffer[PrizeDistribution] = RingBuffer(
            session,
            PrizeDistribution,
            self._settings.prize_buffer_capacity,
        )

    def allowed_picks(self, account_id: str, draw_id: int) -> int:
        """Return the stored allocation, or 0 when picks were never generated."""

        allocation = PickAllocation.get(self._session, account_id, draw_id)
        return allocation.allowed_picks if allocation is not None else 0

    def record_picks(self, account_id: str, draw_id: int, picks: int) -> PickAllocation:
        """Write the allocation of ``account_id`` for ``draw_id``.

        Raises
        ------
        PicksAlreadyGeneratedError
            If an allocation was already written for the pair.
        """

        if picks < 0:
            raise ValueError("picks must be non-negative")
        if PickAllocation.get(self._session, account_id, draw_id) is not None:
            raise PicksAlreadyGeneratedError(
                f"Picks for '{account_id}' in draw {draw_id} were already generated"
            )

        allocation = PickAllocation(account_id=account_id, draw_id=draw_id, allowed_picks=picks)
        try:
            with self._session.begin_nested():
                self._session.add(allocation)
        except IntegrityError as e:
            raise PicksAlreadyGeneratedError(
                f"Picks for '{account_id}' in draw {draw_id} were already generated"
            ) from e
        return allocation

    def compute_picks(self, account_id: str, draw_id: int) -> int:
        """Compute the allocation without storing it.

        Raises
        ------
        PrizeDistributionNotFoundError
            If the draw has no prize distribution yet.
        DrawProviderError, DrawNotFoundError
            If the draw cannot be fetched.
        """

        distribution = self._distributions.get_by_identifier(draw_id)
        if distribution.is_default:
            raise PrizeDistributionNotFoundError(
                f"No prize distribution has been generated for draw {draw_id}"
            )

        draw = fetch_draw(self._draw_provider, draw_id)
        account_avg = self._ledger.average_balance_between_timestamps(
            account_id, draw.started_at, draw.completed_at
        )
        total_avg = self._ledger.average_total_supply_between_timestamps(
            draw.started_at, draw.completed_at
        )
        if total_avg == 0:
            return 0
        return distribution.max_picks * account_avg // total_avg

    def get_picks(self, account_id: str, draw_id: int) -> int:
        """Return the picks of ``account_id`` for ``draw_id``, computing them on first use.

        When two callers race on the first computation the first stored
        value wins and is returned to both.
        """

        cached = PickAllocation.get(self._session, account_id, draw_id)
        if cached is not None:
            return cached.allowed_picks

        picks = self.compute_picks(account_id, draw_id)
        try:
            self.record_picks(account_id, draw_id, picks)
        except PicksAlreadyGeneratedError:
            stored = self.allowed_picks(account_id, draw_id)
            logger.warning(
                "Picks for '%s' in draw %d were stored concurrently; keeping %d (computed %d)",
                account_id,
                draw_id,
                stored,
                picks,
            )
            return stored

        logger.info("Generated %d picks for '%s' in draw %d", picks, account_id, draw_id)
        return picks


@dataclass(frozen=True)
class ClaimToken:
    """Handle on a reserved pick, passed back to :meth:`PickLedger.finalize`."""

    claim_id: int
    account_id: str
    draw_id: int
    pick: int


class PickLedger:
    """Two-phase claim bookkeeping guarding against double payouts.

    A pick moves ``unclaimed -> reserved`` before any payout is attempted and
    then either ``reserved -> claimed`` on success or back to ``unclaimed``
    when the payout fails, so that the claim can be retried.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def _allocation(self, account_id: str, draw_id: int) -> PickAllocation:
        allocation = PickAllocation.get(self._session, account_id, draw_id)
        if allocation is None or allocation.allowed_picks == 0:
            raise PicksNotGeneratedError(
                f"There are no generated picks for '{account_id}' in draw {draw_id}"
            )
        return allocation

    def reserve(self, account_id: str, draw_id: int, pick: int) -> ClaimToken:
        """Mark ``pick`` as reserved by a pending claim.

        Raises
        ------
        PicksNotGeneratedError
            If the account holds no picks for the draw.
        InvalidPickError
            If ``pick`` is outside ``0 .. allowed_picks - 1``.
        PickAlreadyClaimedError
            If the pick is reserved or already paid out.
        """

        allocation = self._allocation(account_id, draw_id)
        if not 0 <= pick < allocation.allowed_picks:
            raise InvalidPickError(
                f"Pick {pick} is invalid: '{account_id}' holds {allocation.allowed_picks} picks"
            )

        now = datetime.now(timezone.utc)
        claim = allocation.claim_for(self._session, pick)
        if claim is not None and claim.is_taken:
            raise PickAlreadyClaimedError(
                f"Pick {pick} of '{account_id}' in draw {draw_id} is already claimed"
            )

        if claim is not None:
            claim.state = CLAIM_RESERVED
            claim.reserved_at = now
            self._session.flush()
        else:
            claim = PickClaim(allocation_id=allocation.id, pick=pick, reserved_at=now)
            try:
                with self._session.begin_nested():
                    self._session.add(claim)
            except IntegrityError as e:
                raise PickAlreadyClaimedError(
                    f"Pick {pick} of '{account_id}' in draw {draw_id} is already claimed"
                ) from e

        logger.debug("Reserved pick %d of '%s' in draw %d", pick, account_id, draw_id)
        return ClaimToken(
            claim_id=claim.id,
            account_id=account_id,
            draw_id=draw_id,
            pick=pick,
        )

    def finalize(self, token: ClaimToken, succeeded: bool, payout: Optional[int] = None) -> None:
        """Commit a reservation to ``claimed`` or release it back to ``unclaimed``."""

        claim = self._session.get(PickClaim, token.claim_id)
        if claim is None or claim.state != CLAIM_RESERVED:
            raise ValueError(
                f"Pick {token.pick} of '{token.account_id}' in draw {token.draw_id} "
                "has no pending reservation"
            )

        if succeeded:
            claim.state = CLAIM_CLAIMED
            claim.payout = payout
            claim.finalized_at = datetime.now(timezone.utc)
        else:
            claim.state = CLAIM_UNCLAIMED
            claim.payout = None
            claim.reserved_at = None
        self._session.flush()

    def is_claimed(self, account_id: str, draw_id: int, pick: int) -> bool:
        """``True`` when the pick is reserved by a pending claim or already paid."""

        allocation = PickAllocation.get(self._session, account_id, draw_id)
        if allocation is None:
            return False
        claim = allocation.claim_for(self._session, pick)
        return claim is not None and claim.is_taken

    def claimed_picks(self, account_id: str, draw_id: int) -> list[int]:
        """Return the taken pick indices of ``account_id`` in ``draw_id``, ascending."""

        allocation = PickAllocation.get(self._session, account_id, draw_id)
        if allocation is None:
            return []
        stmt = select(PickClaim.pick).where(
            PickClaim.allocation_id == allocation.id,
            PickClaim.state.in_((CLAIM_RESERVED, CLAIM_CLAIMED)),
        )
        return sorted(self._session.scalars(stmt))


__all__ = ["ClaimToken", "PickAllocator", "PickLedger"]
