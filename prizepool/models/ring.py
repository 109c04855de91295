"""Database model for ring buffer write cursors."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base


class RingBufferCursor(Base):
    """Write position and capacity of one named ring buffer."""

    __tablename__ = "ring_buffer_cursors"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    """Buffer name, by default the buffered model's table name."""

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    """Maximum number of live records."""

    cursor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Slot that the next ``add`` overwrites."""

    def __init__(self, *, name: str, capacity: int, cursor: int = 0) -> None:
        self.name = name
        self.capacity = capacity
        self.cursor = cursor

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<RingBufferCursor(name='{self.name}', capacity={self.capacity}, "
            f"cursor={self.cursor})>"
        )

    @classmethod
    def load(cls, session: Session, name: str, capacity: int) -> "RingBufferCursor":
        """Return the cursor for ``name``, creating it with ``capacity`` if missing.

        The capacity is fixed when the buffer is first created; a later
        mismatch raises :class:`ValueError`.
        """

        cursor: Optional[RingBufferCursor] = session.scalar(
            select(cls).where(cls.name == name)
        )
        if cursor is None:
            cursor = cls(name=name, capacity=capacity)
            session.add(cursor)
            session.flush()
        elif cursor.capacity != capacity:
            raise ValueError(
                f"Ring buffer '{name}' was created with capacity {cursor.capacity}, "
                f"not {capacity}"
            )
        return cursor


__all__ = ["RingBufferCursor"]
