"""Fixed-capacity store of the most recent records, addressable by identifier."""

from __future__ import annotations

import logging
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .errors import RingBufferCollisionError
from .models.ring import RingBufferCursor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Circular buffer of ORM rows persisted through a session.

    The buffered model must provide an integer ``slot`` column, an
    ``__identifier__`` class attribute naming its unique logical id column,
    and a ``default()`` classmethod returning the zero-valued sentinel. The
    unique identifier column doubles as the id-to-slot index: removing an
    evicted row removes its mapping.
    """

    def __init__(
        self,
        session: Session,
        model: type[T],
        capacity: int,
        *,
        name: Optional[str] = None,
    ) -> None:
        """Bind a ring buffer over ``model`` rows to ``session``.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session.
        model : type
            Buffered ORM model.
        capacity : int
            Maximum number of live records. Must be at least 1.
        name : Optional[str], default: None
            Buffer name used for the persisted cursor. Defaults to the
            model's table name.
        """

        if capacity < 1:
            raise ValueError("capacity cannot be lower than 1")
        self._session = session
        self._model: Any = model
        self._capacity = capacity
        self._name = name or self._model.__tablename__
        self._identifier_name: str = self._model.__identifier__

    @property
    def capacity(self) -> int:
        return self._capacity

    def _cursor(self) -> RingBufferCursor:
        return RingBufferCursor.load(self._session, self._name, self._capacity)

    def _live_at(self, slot: int) -> Optional[T]:
        return self._session.scalar(select(self._model).where(self._model.slot == slot))

    def _live_by_identifier(self, identifier: Any) -> Optional[T]:
        column = getattr(self._model, self._identifier_name)
        return self._session.scalar(select(self._model).where(column == identifier))

    def current_index(self) -> int:
        """Return the slot that the next :meth:`add` writes to."""
        return self._cursor().cursor

    def next_index(self) -> int:
        """Return the slot following the current write position."""
        return (self._cursor().cursor + 1) % self._capacity

    def add(self, record: T) -> T:
        """Store ``record`` at the write position, evicting the oldest record.

        Raises
        ------
        RingBufferCollisionError
            If a different live record already carries the same identifier.
            Identifiers are assigned monotonically, so this signals a broken
            caller rather than a legitimate reuse.
        """

        cursor = self._cursor()
        slot = cursor.cursor
        identifier = getattr(record, self._identifier_name)

        victim = self._live_at(slot)
        holder = self._live_by_identifier(identifier)
        if holder is not None and (victim is None or getattr(holder, "id") != getattr(victim, "id")):
            raise RingBufferCollisionError(
                f"{self._identifier_name}={identifier} is already stored in slot "
                f"{getattr(holder, 'slot')} of ring buffer '{self._name}'"
            )

        if victim is not None:
            logger.debug(
                "Ring buffer '%s' evicts %s=%s from slot %d",
                self._name,
                self._identifier_name,
                getattr(victim, self._identifier_name),
                slot,
            )
            self._session.delete(victim)
            # The slot is unique: the delete must reach the database before
            # the replacement row is inserted.
            self._session.flush()

        setattr(record, "slot", slot)
        self._session.add(record)
        cursor.cursor = (slot + 1) % self._capacity
        self._session.flush()
        return record

    def get_by_index(self, index: int) -> T:
        """Return the record in slot ``index``, or the zero value if the slot is empty."""

        if not 0 <= index < self._capacity:
            raise IndexError(f"slot {index} is outside ring buffer of capacity {self._capacity}")
        record = self._live_at(index)
        return record if record is not None else self._model.default()

    def get_by_identifier(self, identifier: Any) -> T:
        """Return the live record with ``identifier``, or the zero value on a miss."""

        record = self._live_by_identifier(identifier)
        return record if record is not None else self._model.default()

    def records(self, from_index: int = 0, limit: Optional[int] = None) -> list[T]:
        """Return live records ordered by slot, skipping ``from_index`` and taking ``limit``."""

        stmt = select(self._model).order_by(self._model.slot.asc()).offset(from_index)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt).all())

    def __len__(self) -> int:
        return int(self._session.scalar(select(func.count()).select_from(self._model)) or 0)


__all__ = ["RingBuffer"]
