"""Yield-source adapter selected per pool at construction time."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

import requests
from sqlalchemy.orm import Session

from ..errors import YieldSourceError
from ..models.venue import YieldSourceTransaction

if TYPE_CHECKING:
    from .api import YieldSourceClient

logger = logging.getLogger(__name__)

TERA_GAS = 10**12
ONE_YOCTO = 1


class YieldSourceKind(str, Enum):
    BURROW = "burrow"
    METAPOOL = "metapool"


class YieldSourceAction(str, Enum):
    TRANSFER = "transfer"
    CLAIM = "claim"
    GET_REWARD = "get_reward"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class ActionCost:
    """Deposit and gas a venue call needs."""

    attached_deposit: int
    gas: int


_COSTS: dict[YieldSourceKind, dict[YieldSourceAction, ActionCost]] = {
    YieldSourceKind.BURROW: {
        YieldSourceAction.TRANSFER: ActionCost(ONE_YOCTO, 100 * TERA_GAS),
        YieldSourceAction.CLAIM: ActionCost(ONE_YOCTO, 20 * TERA_GAS),
        YieldSourceAction.GET_REWARD: ActionCost(0, 20 * TERA_GAS),
        YieldSourceAction.WITHDRAW: ActionCost(ONE_YOCTO, 20 * TERA_GAS),
    },
    YieldSourceKind.METAPOOL: {
        YieldSourceAction.TRANSFER: ActionCost(ONE_YOCTO, 50 * TERA_GAS),
        YieldSourceAction.CLAIM: ActionCost(ONE_YOCTO, 10 * TERA_GAS),
        YieldSourceAction.GET_REWARD: ActionCost(0, 10 * TERA_GAS),
        YieldSourceAction.WITHDRAW: ActionCost(ONE_YOCTO, 50 * TERA_GAS),
    },
}


class YieldSource:
    """The single lending venue a pool forwards deposits to.

    A yield source is a tag (:class:`YieldSourceKind`) plus the venue
    address. Every operation branches on the tag; only Burrow is wired to a
    live venue. Each call is written to ``yield_source_transactions`` and any
    failure surfaces as :class:`~prizepool.errors.YieldSourceError` after the
    transaction row has been marked ``failed``.
    """

    def __init__(
        self,
        session: Session,
        kind: YieldSourceKind,
        address: str,
        *,
        client: Optional["YieldSourceClient"] = None,
    ) -> None:
        """Create a yield source.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used to record venue calls.
        kind : YieldSourceKind
            Venue variant.
        address : str
            Venue contract address.
        client : Optional[YieldSourceClient]
            Optional pre-configured client. If not provided, a default one is
            created on first use.
        """

        if not address:
            raise ValueError("A venue address is required")
        self.session = session
        self.kind = YieldSourceKind(kind)
        self.address = address
        self._client = client

    @classmethod
    def burrow(
        cls, session: Session, address: str, *, client: Optional["YieldSourceClient"] = None
    ) -> "YieldSource":
        return cls(session, YieldSourceKind.BURROW, address, client=client)

    @classmethod
    def metapool(
        cls, session: Session, address: str, *, client: Optional["YieldSourceClient"] = None
    ) -> "YieldSource":
        return cls(session, YieldSourceKind.METAPOOL, address, client=client)

    @property
    def client(self) -> "YieldSourceClient":
        if self._client is None:
            from .api import YieldSourceClient

            self._client = YieldSourceClient()
        return self._client

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<YieldSource(kind='{self.kind.value}', address='{self.address}')>"

    def cost(self, action: YieldSourceAction) -> ActionCost:
        """Return the deposit and gas the venue needs for ``action``."""
        return _COSTS[self.kind][YieldSourceAction(action)]

    def _require_live_venue(self) -> None:
        if self.kind is YieldSourceKind.BURROW:
            return
        elif self.kind is YieldSourceKind.METAPOOL:
            raise NotImplementedError("Not implemented for Metapool")
        raise ValueError(f"Unknown yield source kind: {self.kind!r}")

    def _execute(
        self,
        action: YieldSourceAction,
        call: Callable[[ActionCost], Any],
        *,
        account_id: Optional[str] = None,
        token_id: Optional[str] = None,
        amount: Optional[int] = None,
        draw_id: Optional[int] = None,
        pick: Optional[int] = None,
    ) -> Any:
        self._require_live_venue()
        cost = self.cost(action)
        tx = YieldSourceTransaction(
            venue=self.kind.value,
            address=self.address,
            account_id=account_id,
            token_id=token_id,
            amount=amount,
            draw_id=draw_id,
            pick=pick,
            type=action.value,
            status="sent",
            request_payload_json=json.dumps(
                {
                    "account_id": account_id,
                    "token_id": token_id,
                    "amount": None if amount is None else str(amount),
                    "draw_id": draw_id,
                    "pick": None if pick is None else str(pick),
                    "attached_deposit": str(cost.attached_deposit),
                    "gas": str(cost.gas),
                }
            ),
        )
        self.session.add(tx)
        self.session.flush()

        try:
            response = call(cost)
        except (requests.RequestException, RuntimeError, ValueError) as e:
            tx.status = "failed"
            tx.error_message = str(e)
            self.session.flush()
            logger.error(
                f"Yield source {self.kind.value} {action.value} failed for {self.address}: {e}"
            )
            raise YieldSourceError(f"Yield source {action.value} failed: {e}") from e

        tx.status = "confirmed"
        tx.response_payload_json = json.dumps(response) if response is not None else None
        tx.confirmed_at = datetime.now(timezone.utc)
        self.session.flush()
        logger.debug("Yield source %s %s confirmed (tx %d)", self.kind.value, action.value, tx.id)
        return response

    # -------- operations --------
    def transfer(self, token_id: str, amount: int) -> None:
        """Forward pooled deposits into the venue."""

        self._execute(
            YieldSourceAction.TRANSFER,
            lambda cost: self.client.transfer(
                self.address,
                token_id,
                amount,
                attached_deposit=cost.attached_deposit,
                gas=cost.gas,
            ),
            token_id=token_id,
            amount=amount,
        )

    def claim(
        self, account_id: str, token_id: str, amount: int, draw_id: int, pick: int
    ) -> None:
        """Pay a prize to ``account_id`` out of the accrued yield."""

        self._execute(
            YieldSourceAction.CLAIM,
            lambda cost: self.client.claim(
                self.address,
                account_id,
                token_id,
                amount,
                draw_id,
                pick,
                attached_deposit=cost.attached_deposit,
                gas=cost.gas,
            ),
            account_id=account_id,
            token_id=token_id,
            amount=amount,
            draw_id=draw_id,
            pick=pick,
        )

    def withdraw(self, account_id: str, token_id: str, amount: int) -> None:
        """Return principal from the venue to ``account_id``."""

        self._execute(
            YieldSourceAction.WITHDRAW,
            lambda cost: self.client.withdraw(
                self.address,
                account_id,
                token_id,
                amount,
                attached_deposit=cost.attached_deposit,
                gas=cost.gas,
            ),
            account_id=account_id,
            token_id=token_id,
            amount=amount,
        )

    def get_reward(self) -> int:
        """Return the yield accrued by the pool so far."""

        response = self._execute(
            YieldSourceAction.GET_REWARD,
            lambda cost: self.client.get_reward(self.address, gas=cost.gas),
        )
        if not isinstance(response, dict) or "amount" not in response:
            raise YieldSourceError(f"Unexpected reward response: {response!r}")
        try:
            return int(response["amount"])
        except (TypeError, ValueError) as e:
            raise YieldSourceError(f"Unexpected reward amount: {response['amount']!r}") from e


__all__ = [
    "ActionCost",
    "YieldSource",
    "YieldSourceAction",
    "YieldSourceKind",
]
