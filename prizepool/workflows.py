from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import Session

from .draw.clock import DrawClock, DrawProvider
from .errors import YieldSourceError
from .ledger import TimeWeightedLedger
from .models.draw import Draw
from .models.prize import PrizeDistribution
from .prizes.builder import PrizeDistributionBuilder
from .prizes.claims import ClaimResolver, ClaimResult
from .prizes.picks import PickAllocator
from .settings import PoolSettings

import logging

if TYPE_CHECKING:
    from .yield_source.adapter import YieldSource

logger = logging.getLogger(__name__)


def _validate_amount(amount: int) -> None:
    if amount <= 0:
        raise ValueError("amount must be positive")


def deposit(
    session: Session,
    account_id: str,
    amount: int,
    now: int,
    yield_source: "YieldSource",
    *,
    token_id: str,
) -> int:
    """Deposit ``amount`` for ``account_id`` and mint the matching pool shares.

    The workflow performs two coordinated tasks:

    1. Forward the deposited tokens to the yield source.
    2. Mint pool shares: credit both the account and the total supply in the
       time-weighted ledger at ``now``.

    The ledger is checked before the transfer so that funds never reach the
    venue for a deposit that cannot be minted. Nothing is minted when the
    transfer fails.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    account_id : str
        Depositor.
    amount : int
        Deposited amount; must be positive.
    now : int
        Deposit time in milliseconds.
    yield_source : YieldSource
        Venue receiving the funds.
    token_id : str
        Deposited token.

    Returns
    -------
    int
        The account's balance after the deposit.
    """

    _validate_amount(amount)
    ledger = TimeWeightedLedger(session)
    ledger.check_increase(account_id, amount, now)
    yield_source.transfer(token_id, amount)

    ledger.increase_balance(account_id, amount, now)
    ledger.increase_total_supply(amount, now)
    session.flush()

    logger.info("Account '%s' deposited %d %s", account_id, amount, token_id)
    return ledger.balance_of(account_id)


def withdraw(
    session: Session,
    account_id: str,
    amount: int,
    now: int,
    yield_source: "YieldSource",
    *,
    token_id: str,
) -> int:
    """Burn ``amount`` of pool shares and return the principal to ``account_id``.

    Shares are burned before the yield source is asked for the funds. If the
    withdrawal fails the burn is compensated by re-minting at the same
    instant, which leaves the time-weighted history unchanged, and the
    :class:`~prizepool.errors.YieldSourceError` propagates.

    Returns
    -------
    int
        The account's balance after the withdrawal.

    Raises
    ------
    InsufficientBalanceError
        If the account holds less than ``amount``.
    YieldSourceError
        If the venue refused the withdrawal.
    """

    _validate_amount(amount)
    ledger = TimeWeightedLedger(session)
    ledger.decrease_balance(account_id, amount, now)
    ledger.decrease_total_supply(amount, now)
    session.flush()

    try:
        yield_source.withdraw(account_id, token_id, amount)
    except YieldSourceError:
        ledger.increase_balance(account_id, amount, now)
        ledger.increase_total_supply(amount, now)
        session.flush()
        logger.warning(
            "Withdrawal of %d %s by '%s' failed; shares re-minted",
            amount,
            token_id,
            account_id,
        )
        raise

    logger.info("Account '%s' withdrew %d %s", account_id, amount, token_id)
    return ledger.balance_of(account_id)


@dataclass(frozen=True)
class DrawCycle:
    """What a :func:`run_draw_cycle` call did."""

    completed: Optional[Draw]
    started: Optional[int]


def run_draw_cycle(session: Session, clock: DrawClock) -> DrawCycle:
    """Advance the draw clock as far as it can go right now.

    An open draw whose duration has elapsed is completed, after which a new
    draw is opened. Either step is skipped when its precondition does not
    hold.
    """

    completed = clock.complete_draw() if clock.can_complete() else None
    started = clock.start_draw() if clock.can_start() else None
    session.flush()
    return DrawCycle(completed=completed, started=started)


def add_prize_distribution(
    session: Session,
    draw_provider: DrawProvider,
    draw_id: int,
    *,
    prize: Optional[int] = None,
    yield_source: Optional["YieldSource"] = None,
    cardinality: Optional[int] = None,
    bit_range_size: Optional[int] = None,
    settings: Optional[PoolSettings] = None,
) -> PrizeDistribution:
    """Publish the prize distribution of a completed draw.

    When ``prize`` is omitted the reward accrued by ``yield_source`` is used.
    A draw that already has a distribution is returned unchanged and the
    yield source is not consulted.
    """

    builder = PrizeDistributionBuilder(session, draw_provider, settings=settings)
    existing = builder.get_prize_distribution(draw_id)
    if not existing.is_default:
        return existing

    if prize is None:
        if yield_source is None:
            raise ValueError("Either prize or yield_source must be supplied")
        prize = yield_source.get_reward()

    return builder.add_prize_distribution(
        draw_id,
        prize,
        cardinality=cardinality,
        bit_range_size=bit_range_size,
    )


def get_picks(
    session: Session,
    draw_provider: DrawProvider,
    account_id: str,
    draw_id: int,
    *,
    settings: Optional[PoolSettings] = None,
) -> int:
    """Return the picks ``account_id`` holds in ``draw_id``, generating them on first use."""

    allocator = PickAllocator(session, draw_provider, settings=settings)
    return allocator.get_picks(account_id, draw_id)


def claim_prize(
    session: Session,
    yield_source: "YieldSource",
    account_id: str,
    draw_id: int,
    pick: int,
    *,
    token_id: str,
    settings: Optional[PoolSettings] = None,
) -> ClaimResult:
    """Claim the prize won by ``pick``; see :meth:`ClaimResolver.claim`."""

    resolver = ClaimResolver(session, yield_source, token_id=token_id, settings=settings)
    return resolver.claim(account_id, draw_id, pick)
