"""Time-weighted balance ledger for depositors and the pool total supply."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import InsufficientBalanceError, InvalidIntervalError
from .models.ledger import TOTAL_SUPPLY_KIND, AccountBalance, Twab, TwabCheckpoint
from .models.types import U128_MAX

logger = logging.getLogger(__name__)


def _validate_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError("amount must be non-negative")


class TimeWeightedLedger:
    """Ledger answering "what was the average balance between A and B".

    Each mutation first appends a checkpoint integrating the pre-mutation
    balance over the elapsed time and then applies the delta. Averages are
    differences of the cumulative curve divided by the interval length.
    """

    def __init__(self, session: Session) -> None:
        """Create a ledger bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for lookups and persistence.
        """

        self._session = session

    # -------- mutations --------
    def _increase(self, row: AccountBalance, amount: int, current_time: int) -> None:
        _validate_amount(amount)
        row.generate_twab(self._session, current_time)
        row.balance = row.balance + amount
        self._session.flush()

    def _decrease(self, row: AccountBalance, amount: int, current_time: int) -> None:
        _validate_amount(amount)
        if amount > row.balance:
            raise InsufficientBalanceError(
                f"Cannot decrease balance of '{row.account_id}' by {amount}: "
                f"only {row.balance} available"
            )
        row.generate_twab(self._session, current_time)
        row.balance = row.balance - amount
        self._session.flush()

    def check_increase(self, account_id: str, amount: int, current_time: int) -> None:
        """Raise if crediting ``amount`` to ``account_id`` at ``current_time`` would fail.

        Lets callers validate a mint before an irreversible external step.
        Nothing is written.

        Raises
        ------
        InvalidIntervalError
            If ``current_time`` precedes the newest checkpoint of the account
            or of the total supply.
        ValueError
            If ``amount`` is negative or either balance would exceed u128.
        """

        _validate_amount(amount)
        rows = (
            AccountBalance.get(self._session, account_id),
            self._session.scalar(
                select(AccountBalance).where(AccountBalance.kind == TOTAL_SUPPLY_KIND)
            ),
        )
        for row in rows:
            if row is None:
                continue
            newest = row.newest_checkpoint(self._session)
            if newest is not None and current_time < newest.timestamp:
                raise InvalidIntervalError(
                    f"checkpoint at {current_time} precedes the newest checkpoint "
                    f"at {newest.timestamp} for account '{row.account_id}'"
                )
            if row.balance + amount > U128_MAX:
                raise ValueError(f"balance of '{row.account_id}' would overflow u128")

    def increase_balance(self, account_id: str, amount: int, current_time: int) -> None:
        """Credit ``amount`` to ``account_id`` at ``current_time`` (milliseconds)."""

        row = AccountBalance.get_or_create(self._session, account_id)
        self._increase(row, amount, current_time)
        logger.debug("Increased %s by %d at %d", account_id, amount, current_time)

    def decrease_balance(self, account_id: str, amount: int, current_time: int) -> None:
        """Debit ``amount`` from ``account_id`` at ``current_time``.

        Raises
        ------
        InsufficientBalanceError
            If the account holds less than ``amount``. Nothing is written.
        """

        row = AccountBalance.get(self._session, account_id)
        if row is None:
            _validate_amount(amount)
            if amount > 0:
                raise InsufficientBalanceError(
                    f"Cannot decrease balance of '{account_id}' by {amount}: "
                    "only 0 available"
                )
            return
        self._decrease(row, amount, current_time)
        logger.debug("Decreased %s by %d at %d", account_id, amount, current_time)

    def increase_total_supply(self, amount: int, current_time: int) -> None:
        self._increase(AccountBalance.total_supply(self._session), amount, current_time)

    def decrease_total_supply(self, amount: int, current_time: int) -> None:
        self._decrease(AccountBalance.total_supply(self._session), amount, current_time)

    # -------- queries --------
    def balance_of(self, account_id: str) -> int:
        """Return the current instantaneous balance of ``account_id`` (0 if unknown)."""

        row = AccountBalance.get(self._session, account_id)
        return row.balance if row is not None else 0

    def total_supply(self) -> int:
        return AccountBalance.total_supply(self._session).balance

    def checkpoints(self, account_id: str) -> list[Twab]:
        """Return the checkpoint history of ``account_id`` in time order."""

        row = AccountBalance.get(self._session, account_id)
        if row is None:
            return []
        stmt = (
            select(TwabCheckpoint)
            .where(TwabCheckpoint.account_balance_id == row.id)
            .order_by(TwabCheckpoint.timestamp.asc())
        )
        return [cp.as_twab() for cp in self._session.scalars(stmt)]

    @staticmethod
    def _average(row: AccountBalance, session: Session, start_time: int, end_time: int) -> int:
        if start_time >= end_time:
            raise InvalidIntervalError(
                f"start_time ({start_time}) must be earlier than end_time ({end_time})"
            )
        start = row.calculate_twab(session, start_time)
        end = row.calculate_twab(session, end_time)
        return (end.cumulative_amount - start.cumulative_amount) // (
            end.timestamp - start.timestamp
        )

    def average_balance_between_timestamps(
        self, account_id: str, start_time: int, end_time: int
    ) -> int:
        """Return the time-weighted average balance of ``account_id`` over ``[start_time, end_time]``.

        Raises
        ------
        InvalidIntervalError
            If ``start_time >= end_time``.
        """

        row = AccountBalance.get(self._session, account_id)
        if row is None:
            if start_time >= end_time:
                raise InvalidIntervalError(
                    f"start_time ({start_time}) must be earlier than end_time ({end_time})"
                )
            return 0
        return self._average(row, self._session, start_time, end_time)

    def average_total_supply_between_timestamps(self, start_time: int, end_time: int) -> int:
        """Return the time-weighted average pool supply over ``[start_time, end_time]``."""

        return self._average(
            AccountBalance.total_supply(self._session), self._session, start_time, end_time
        )


__all__ = ["TimeWeightedLedger"]
