"""Database models for the time-weighted balance ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .types import U128
from ..errors import InvalidIntervalError

ACCOUNT_KIND = "account"
TOTAL_SUPPLY_KIND = "total_supply"
TOTAL_SUPPLY_ACCOUNT_ID = "*"


@dataclass(frozen=True)
class Twab:
    """Point on the cumulative balance curve.

    Attributes
    ----------
    cumulative_amount : int
        Integral of the balance over time up to ``timestamp``. This is *not*
        an instantaneous balance.
    timestamp : int
        Time of the point, in milliseconds.
    """

    cumulative_amount: int
    timestamp: int


def compute_twab_balance(
    last_cumulative_amount: int,
    balance: int,
    current_time: int,
    last_timestamp: int,
) -> int:
    """Extend a cumulative amount by ``balance`` held from ``last_timestamp`` to ``current_time``."""
    return last_cumulative_amount + balance * (current_time - last_timestamp)


class AccountBalance(Base):
    """Current balance and checkpoint history of one account or of the pool."""

    __tablename__ = "account_balances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Primary key."""

    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=ACCOUNT_KIND)
    """``"account"`` for depositors, ``"total_supply"`` for the pool singleton."""

    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    """Depositor account identifier (``"*"`` for the pool singleton)."""

    balance: Mapped[int] = mapped_column(U128, nullable=False, default=0)
    """Instantaneous balance after the latest mutation."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("kind", "account_id", name="uq_account_balance_kind_account"),
        CheckConstraint("kind IN ('account','total_supply')", name="kind_enum"),
    )

    def __init__(self, *, account_id: str, kind: str = ACCOUNT_KIND, balance: int = 0) -> None:
        self.account_id = account_id
        self.kind = kind
        self.balance = balance

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<AccountBalance(id={self.id}, kind='{self.kind}', "
            f"account_id='{self.account_id}', balance={self.balance})>"
        )

    @classmethod
    def get(cls, session: Session, account_id: str) -> Optional["AccountBalance"]:
        """Return the balance row of ``account_id`` if the account ever deposited."""

        return session.scalar(
            select(cls).where(cls.kind == ACCOUNT_KIND, cls.account_id == account_id)
        )

    @classmethod
    def get_or_create(cls, session: Session, account_id: str) -> "AccountBalance":
        """Return the balance row of ``account_id``, creating an empty one lazily."""

        row = cls.get(session, account_id)
        if row is None:
            row = cls(account_id=account_id)
            session.add(row)
            session.flush()
        return row

    @classmethod
    def total_supply(cls, session: Session) -> "AccountBalance":
        """Return the pool-wide singleton, creating it on first use."""

        row = session.scalar(select(cls).where(cls.kind == TOTAL_SUPPLY_KIND))
        if row is None:
            row = cls(account_id=TOTAL_SUPPLY_ACCOUNT_ID, kind=TOTAL_SUPPLY_KIND)
            session.add(row)
            session.flush()
        return row

    # -------- checkpoint lookups --------
    def _checkpoints_stmt(self):
        return select(TwabCheckpoint).where(
            TwabCheckpoint.account_balance_id == self.id
        )

    def oldest_checkpoint(self, session: Session) -> Optional["TwabCheckpoint"]:
        return session.scalars(
            self._checkpoints_stmt().order_by(TwabCheckpoint.timestamp.asc()).limit(1)
        ).first()

    def newest_checkpoint(self, session: Session) -> Optional["TwabCheckpoint"]:
        return session.scalars(
            self._checkpoints_stmt().order_by(TwabCheckpoint.timestamp.desc()).limit(1)
        ).first()

    def checkpoint_before_or_at(
        self, session: Session, target: int
    ) -> Optional["TwabCheckpoint"]:
        """Return the latest checkpoint with ``timestamp <= target``."""

        stmt = (
            self._checkpoints_stmt()
            .where(TwabCheckpoint.timestamp <= target)
            .order_by(TwabCheckpoint.timestamp.desc())
            .limit(1)
        )
        return session.scalars(stmt).first()

    def checkpoint_after_or_at(
        self, session: Session, target: int
    ) -> Optional["TwabCheckpoint"]:
        """Return the earliest checkpoint with ``timestamp >= target``."""

        stmt = (
            self._checkpoints_stmt()
            .where(TwabCheckpoint.timestamp >= target)
            .order_by(TwabCheckpoint.timestamp.asc())
            .limit(1)
        )
        return session.scalars(stmt).first()

    # -------- time-weighted accounting --------
    def generate_twab(self, session: Session, current_time: int) -> "TwabCheckpoint":
        """Record the pre-mutation balance integrated up to ``current_time``.

        Must be called *before* ``balance`` changes. Returns the checkpoint
        that is on top of the history afterwards.

        Notes
        -----
        1. With no history, the first checkpoint is ``(0, current_time)``.
        2. A repeat mutation at the timestamp of the newest checkpoint adds
           nothing: the zero-length interval contributes no area.
        3. Otherwise a checkpoint extending the newest one by
           ``balance * elapsed`` is appended.

        Raises
        ------
        InvalidIntervalError
            If ``current_time`` is earlier than the newest checkpoint.
        """

        last = self.newest_checkpoint(session)
        if last is None:
            checkpoint = TwabCheckpoint(
                cumulative_amount=compute_twab_balance(0, 0, current_time, current_time),
                timestamp=current_time,
            )
        elif last.timestamp == current_time:
            return last
        elif current_time < last.timestamp:
            raise InvalidIntervalError(
                f"checkpoint at {current_time} precedes the newest checkpoint "
                f"at {last.timestamp} for account '{self.account_id}'"
            )
        else:
            checkpoint = TwabCheckpoint(
                cumulative_amount=compute_twab_balance(
                    last.cumulative_amount, self.balance, current_time, last.timestamp
                ),
                timestamp=current_time,
            )

        checkpoint.account_balance_id = self.id
        session.add(checkpoint)
        session.flush()
        return checkpoint

    def calculate_twab(self, session: Session, target: int) -> Twab:
        """Return the cumulative amount at ``target``.

        Exact on checkpoints, zero before the history starts, extrapolated
        with the live balance after the newest checkpoint, and interpolated at
        the constant rate that held between the bracketing checkpoints
        otherwise. Interpolation is exact because the balance is
        piecewise-constant between checkpoints.
        """

        oldest = self.oldest_checkpoint(session)
        newest = self.newest_checkpoint(session)
        if oldest is None or newest is None:
            return Twab(cumulative_amount=0, timestamp=target)

        if oldest.timestamp == target:
            return oldest.as_twab()
        if newest.timestamp == target:
            return newest.as_twab()
        if target < oldest.timestamp:
            return Twab(cumulative_amount=0, timestamp=target)
        if target > newest.timestamp:
            return Twab(
                cumulative_amount=compute_twab_balance(
                    newest.cumulative_amount, self.balance, target, newest.timestamp
                ),
                timestamp=target,
            )

        before_or_at = self.checkpoint_before_or_at(session, target)
        after_or_at = self.checkpoint_after_or_at(session, target)
        # Both exist: oldest.timestamp < target < newest.timestamp.
        assert before_or_at is not None and after_or_at is not None
        if before_or_at.timestamp == target:
            return before_or_at.as_twab()
        if after_or_at.timestamp == target:
            return after_or_at.as_twab()

        held_balance = (after_or_at.cumulative_amount - before_or_at.cumulative_amount) // (
            after_or_at.timestamp - before_or_at.timestamp
        )
        return Twab(
            cumulative_amount=compute_twab_balance(
                before_or_at.cumulative_amount,
                held_balance,
                target,
                before_or_at.timestamp,
            ),
            timestamp=target,
        )


class TwabCheckpoint(Base):
    """Append-only cumulative balance checkpoint."""

    __tablename__ = "twab_checkpoints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_balance_id: Mapped[int] = mapped_column(
        ForeignKey("account_balances.id", ondelete="CASCADE"), nullable=False
    )
    cumulative_amount: Mapped[int] = mapped_column(U128, nullable=False)
    """Riemann-sum integral of the balance up to ``timestamp``."""

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    """Milliseconds."""

    account_balance: Mapped["AccountBalance"] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "account_balance_id", "timestamp", name="uq_twab_checkpoint_account_timestamp"
        ),
        Index("ix_twab_checkpoints_account_timestamp", "account_balance_id", "timestamp"),
    )

    def __init__(self, *, cumulative_amount: int, timestamp: int) -> None:
        self.cumulative_amount = cumulative_amount
        self.timestamp = timestamp

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<TwabCheckpoint(account_balance_id={self.account_balance_id}, "
            f"cumulative_amount={self.cumulative_amount}, timestamp={self.timestamp})>"
        )

    def as_twab(self) -> Twab:
        return Twab(cumulative_amount=self.cumulative_amount, timestamp=self.timestamp)


__all__ = [
    "ACCOUNT_KIND",
    "TOTAL_SUPPLY_KIND",
    "TOTAL_SUPPLY_ACCOUNT_ID",
    "AccountBalance",
    "Twab",
    "TwabCheckpoint",
    "compute_twab_balance",
]
