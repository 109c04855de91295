"""Database model for per-draw prize distributions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Integer, SmallInteger
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .types import U128, U256, UnsignedInt
from ..db.utils import dt_iso_from_ms

MAX_TIERS = 16


class PrizeDistribution(Base):
    """Immutable prize layout computed once for a completed draw."""

    __tablename__ = "prize_distributions"
    __identifier__ = "draw_id"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    draw_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    """Draw this distribution belongs to."""

    cardinality: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    """Number of ``bit_range_size``-wide digits compared during tier matching."""

    bit_range_size: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    """Width in bits of one digit."""

    tiers: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    """Sixteen percentage weights, indexed by tier."""

    prize: Mapped[int] = mapped_column(U128, nullable=False)
    """Total reward pool available for the draw."""

    max_picks: Mapped[int] = mapped_column(U128, nullable=False)
    """Total picks shared among depositors."""

    number_of_picks: Mapped[int] = mapped_column(UnsignedInt(257), nullable=False)
    """Size of the number space, ``(2**bit_range_size)**cardinality``."""

    start_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_time: Mapped[int] = mapped_column(BigInteger, nullable=False)

    winning_number: Mapped[int] = mapped_column(U256, nullable=False)
    """Copied from the draw."""

    slot: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    """Ring buffer position."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __init__(
        self,
        *,
        draw_id: int,
        cardinality: int,
        bit_range_size: int,
        tiers: Optional[list[int]] = None,
        prize: int = 0,
        max_picks: int = 0,
        number_of_picks: int = 0,
        start_time: int = 0,
        end_time: int = 0,
        winning_number: int = 0,
    ) -> None:
        self.draw_id = draw_id
        self.cardinality = cardinality
        self.bit_range_size = bit_range_size
        self.tiers = list(tiers) if tiers is not None else [0] * MAX_TIERS
        self.prize = prize
        self.max_picks = max_picks
        self.number_of_picks = number_of_picks
        self.start_time = start_time
        self.end_time = end_time
        self.winning_number = winning_number

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<PrizeDistribution(draw_id={self.draw_id}, cardinality={self.cardinality}, "
            f"bit_range_size={self.bit_range_size}, prize={self.prize}, "
            f"max_picks={self.max_picks})>"
        )

    @classmethod
    def default(cls) -> "PrizeDistribution":
        """Return a transient zero-valued distribution used as the "not found" sentinel."""
        return cls(draw_id=0, cardinality=0, bit_range_size=0)

    @property
    def is_default(self) -> bool:
        return not self.draw_id and not self.cardinality

    def to_json(self) -> dict[str, Any]:
        return {
            "draw_id": self.draw_id,
            "cardinality": self.cardinality,
            "bit_range_size": self.bit_range_size,
            "tiers": list(self.tiers),
            "prize": str(self.prize),
            "max_picks": str(self.max_picks),
            "number_of_picks": str(self.number_of_picks),
            "start_time": dt_iso_from_ms(self.start_time),
            "end_time": dt_iso_from_ms(self.end_time),
            "winning_number": str(self.winning_number),
        }


__all__ = ["MAX_TIERS", "PrizeDistribution"]
