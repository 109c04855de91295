"""Database models for per-account pick allocations and claims."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .types import U128

CLAIM_UNCLAIMED = "unclaimed"
CLAIM_RESERVED = "reserved"
CLAIM_CLAIMED = "claimed"


class PickAllocation(Base):
    """Write-once number of picks an account holds in a draw."""

    __tablename__ = "pick_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    draw_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    allowed_picks: Mapped[int] = mapped_column(U128, nullable=False)
    """Valid pick indices are ``0 .. allowed_picks - 1``."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    claims: Mapped[list["PickClaim"]] = relationship(
        back_populates="allocation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("account_id", "draw_id", name="uq_pick_allocation_account_draw"),
    )

    def __init__(self, *, account_id: str, draw_id: int, allowed_picks: int) -> None:
        self.account_id = account_id
        self.draw_id = draw_id
        self.allowed_picks = allowed_picks

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<PickAllocation(account_id='{self.account_id}', draw_id={self.draw_id}, "
            f"allowed_picks={self.allowed_picks})>"
        )

    @classmethod
    def get(
        cls, session: Session, account_id: str, draw_id: int
    ) -> Optional["PickAllocation"]:
        """Return the allocation of ``account_id`` for ``draw_id`` if generated."""

        return session.scalar(
            select(cls).where(cls.account_id == account_id, cls.draw_id == draw_id)
        )

    def claim_for(self, session: Session, pick: int) -> Optional["PickClaim"]:
        """Return the claim bookkeeping row of ``pick`` if one exists."""

        return session.scalar(
            select(PickClaim).where(
                PickClaim.allocation_id == self.id,
                PickClaim.pick == pick,
            )
        )


class PickClaim(Base):
    """Claim state of a single pick: ``unclaimed``, ``reserved`` or ``claimed``."""

    __tablename__ = "pick_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    allocation_id: Mapped[int] = mapped_column(
        ForeignKey("pick_allocations.id", ondelete="CASCADE"), nullable=False
    )
    pick: Mapped[int] = mapped_column(U128, nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default=CLAIM_RESERVED)
    payout: Mapped[Optional[int]] = mapped_column(U128, nullable=True)
    """Amount paid (or being paid) for the pick."""

    reserved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    allocation: Mapped["PickAllocation"] = relationship(back_populates="claims")

    __table_args__ = (
        UniqueConstraint("allocation_id", "pick", name="uq_pick_claim_allocation_pick"),
        CheckConstraint(
            "state IN ('unclaimed','reserved','claimed')", name="state_enum"
        ),
    )

    def __init__(
        self,
        *,
        allocation_id: int,
        pick: int,
        state: str = CLAIM_RESERVED,
        payout: Optional[int] = None,
        reserved_at: Optional[datetime] = None,
    ) -> None:
        self.allocation_id = allocation_id
        self.pick = pick
        self.state = state
        self.payout = payout
        self.reserved_at = reserved_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<PickClaim(allocation_id={self.allocation_id}, pick={self.pick}, "
            f"state='{self.state}')>"
        )

    @property
    def is_taken(self) -> bool:
        """``True`` while reserved by a pending claim or after a payout."""
        return self.state in (CLAIM_RESERVED, CLAIM_CLAIMED)


__all__ = [
    "CLAIM_CLAIMED",
    "CLAIM_RESERVED",
    "CLAIM_UNCLAIMED",
    "PickAllocation",
    "PickClaim",
]
