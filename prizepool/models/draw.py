"""Database models for completed draws and the draw clock."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .types import U256
from ..db.utils import dt_iso_from_ms


class Draw(Base):
    """A completed lottery draw window and its winning number.

    Rows live in a ring buffer: only the most recent draws are retained and
    ``slot`` is the buffer position currently holding the draw.
    """

    __tablename__ = "draws"
    __identifier__ = "draw_id"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    draw_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    """Monotonic draw number assigned by the draw clock (``0`` is never used)."""

    winning_number: Mapped[int] = mapped_column(U256, nullable=False)
    """256-bit winning value sampled at completion."""

    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    """Window start, in milliseconds."""

    completed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    """Window end, in milliseconds."""

    slot: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    """Ring buffer position."""

    def __init__(
        self,
        *,
        draw_id: int,
        winning_number: int,
        started_at: int,
        completed_at: int,
    ) -> None:
        self.draw_id = draw_id
        self.winning_number = winning_number
        self.started_at = started_at
        self.completed_at = completed_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Draw(draw_id={self.draw_id}, started_at={self.started_at}, "
            f"completed_at={self.completed_at}, slot={self.slot})>"
        )

    @classmethod
    def default(cls) -> "Draw":
        """Return a transient zero-valued draw used as the "not found" sentinel."""
        return cls(draw_id=0, winning_number=0, started_at=0, completed_at=0)

    @property
    def is_default(self) -> bool:
        return not self.draw_id

    def to_json(self) -> dict[str, Any]:
        return {
            "draw_id": self.draw_id,
            "winning_number": str(self.winning_number),
            "started_at": dt_iso_from_ms(self.started_at),
            "completed_at": dt_iso_from_ms(self.completed_at),
        }


class DrawClockState(Base):
    """Singleton row holding the draw clock's state machine."""

    __tablename__ = "draw_clock_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    is_started: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """``True`` while a draw is open and awaiting completion."""

    last_epoch_started: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    """Epoch height at which the open draw started."""

    current_draw_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    """Id of the open (or last completed) draw."""

    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    """Start of the open draw window, in milliseconds."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __init__(self, *, name: str = "default") -> None:
        self.name = name
        self.is_started = False
        self.last_epoch_started = 0
        self.current_draw_id = 0
        self.started_at = 0

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<DrawClockState(name='{self.name}', is_started={self.is_started}, "
            f"current_draw_id={self.current_draw_id})>"
        )

    @classmethod
    def load(cls, session: Session, name: str = "default") -> "DrawClockState":
        """Return the clock state named ``name``, creating it if missing."""

        state: Optional[DrawClockState] = session.scalar(
            select(cls).where(cls.name == name)
        )
        if state is None:
            state = cls(name=name)
            session.add(state)
            session.flush()
        return state


__all__ = ["Draw", "DrawClockState"]
