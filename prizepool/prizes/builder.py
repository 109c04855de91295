"""Publication of per-draw prize distributions."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..draw.clock import DrawProvider, fetch_draw
from ..errors import InvalidDistributionParametersError
from ..ledger import TimeWeightedLedger
from ..models.prize import MAX_TIERS, PrizeDistribution
from ..models.types import U128_MAX
from ..ring_buffer import RingBuffer
from ..settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)

WINNING_NUMBER_BITS = 256


def number_of_picks(bit_range_size: int, cardinality: int) -> int:
    """Size of the number space spanned by ``cardinality`` digits."""
    return (1 << bit_range_size) ** cardinality


def _validate_bit_range_size(bit_range_size: int) -> None:
    if not 0 < bit_range_size <= WINNING_NUMBER_BITS:
        raise InvalidDistributionParametersError(
            f"bit_range_size must be within 1..{WINNING_NUMBER_BITS}, got {bit_range_size}"
        )


def smallest_cardinality(max_picks: int, bit_range_size: int) -> int:
    """Return the smallest cardinality (at least one) covering ``max_picks``.

    Raises
    ------
    InvalidDistributionParametersError
        If ``bit_range_size`` is outside ``1 .. 256`` or no cardinality up to
        the tier table size covers ``max_picks``.
    """

    _validate_bit_range_size(bit_range_size)
    cardinality = 1
    while number_of_picks(bit_range_size, cardinality) < max_picks:
        if cardinality >= MAX_TIERS:
            raise InvalidDistributionParametersError(
                f"no cardinality up to {MAX_TIERS} covers {max_picks} picks "
                f"with bit_range_size {bit_range_size}"
            )
        cardinality += 1
    return cardinality


def validate_parameters(cardinality: int, bit_range_size: int, max_picks: int) -> None:
    """Check that a cardinality/bit-range pair can describe a draw.

    Raises
    ------
    InvalidDistributionParametersError
        If the digits do not fit the winning number, exceed the tier table,
        or span fewer numbers than ``max_picks``.
    """

    if cardinality <= 0 or bit_range_size <= 0:
        raise InvalidDistributionParametersError(
            "cardinality and bit_range_size must be positive"
        )
    if cardinality * bit_range_size > WINNING_NUMBER_BITS:
        raise InvalidDistributionParametersError(
            f"cardinality * bit_range_size ({cardinality * bit_range_size}) "
            f"exceeds {WINNING_NUMBER_BITS} bits"
        )
    if cardinality > MAX_TIERS:
        raise InvalidDistributionParametersError(
            f"cardinality {cardinality} exceeds the {MAX_TIERS} tier table"
        )
    if number_of_picks(bit_range_size, cardinality) < max_picks:
        raise InvalidDistributionParametersError(
            f"(2**{bit_range_size})**{cardinality} numbers cannot cover {max_picks} picks"
        )


class PrizeDistributionBuilder:
    """Turns a completed draw into its immutable prize distribution.

    At most one distribution is generated per draw; repeated calls for a
    draw that already has one return the stored row untouched.
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

    def get_prize_distribution(self, draw_id: int) -> PrizeDistribution:
        """Return the distribution of ``draw_id`` or the zero-valued one."""
        return self._distributions.get_by_identifier(draw_id)

    def get_prize_distributions(
        self, from_index: int = 0, limit: Optional[int] = None
    ) -> list[PrizeDistribution]:
        return self._distributions.records(from_index, limit)

    def add_prize_distribution(
        self,
        draw_id: int,
        prize: int,
        cardinality: Optional[int] = None,
        bit_range_size: Optional[int] = None,
    ) -> PrizeDistribution:
        """Generate and store the prize distribution of a completed draw.

        Parameters
        ----------
        draw_id : int
            Completed draw to resolve.
        prize : int
            Reward pool available for the draw.
        cardinality : Optional[int], default: None
            Number of digits to match. When omitted the smallest cardinality
            whose number space covers every pick is chosen.
        bit_range_size : Optional[int], default: None
            Digit width in bits. Defaults to the configured width.

        Returns
        -------
        PrizeDistribution
            The new distribution, or the existing one for ``draw_id``.

        Raises
        ------
        DrawProviderError
            If the draw provider fails.
        DrawNotFoundError
            If the draw is unknown or has been evicted.
        InvalidDistributionParametersError
            If the digit layout cannot describe the draw.
        """

        existing = self.get_prize_distribution(draw_id)
        if not existing.is_default:
            logger.debug("Prize distribution for draw %d already exists", draw_id)
            return existing

        if not 0 <= prize <= U128_MAX:
            raise ValueError("prize must fit an unsigned 128-bit value")

        draw = fetch_draw(self._draw_provider, draw_id)
        tickets_supply = self._ledger.average_total_supply_between_timestamps(
            draw.started_at, draw.completed_at
        )
        max_picks = tickets_supply // self._settings.min_pick_cost

        if bit_range_size is None:
            bit_range_size = self._settings.bit_range_size
        if cardinality is None:
            cardinality = smallest_cardinality(max_picks, bit_range_size)
        validate_parameters(cardinality, bit_range_size, max_picks)

        offset = self._settings.prize_distribution_time_offset_ms
        distribution = PrizeDistribution(
            draw_id=draw.draw_id,
            cardinality=cardinality,
            bit_range_size=bit_range_size,
            tiers=list(self._settings.tiers),
            prize=prize,
            max_picks=max_picks,
            number_of_picks=number_of_picks(bit_range_size, cardinality),
            start_time=draw.completed_at + offset,
            end_time=draw.completed_at + 2 * offset,
            winning_number=draw.winning_number,
        )
        self._distributions.add(distribution)

        logger.info(
            "Prize distribution for draw %d: prize=%d max_picks=%d cardinality=%d bit_range_size=%d",
            draw_id,
            prize,
            max_picks,
            cardinality,
            bit_range_size,
        )
        return distribution


__all__ = [
    "PrizeDistributionBuilder",
    "number_of_picks",
    "smallest_cardinality",
    "validate_parameters",
]
