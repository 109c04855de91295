from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    BigInteger,
    Integer,
    String,
    DateTime,
    Text,
    CheckConstraint,
    Index,
)
from .base import Base
from .types import U128


class YieldSourceTransaction(Base):
    """Call made to the yield source on behalf of the pool.

    Stores request and response payloads for operations such as forwarding
    deposits, paying prizes, and withdrawing principal.
    """

    __tablename__ = "yield_source_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venue: Mapped[str] = mapped_column(String(20), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    token_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[Optional[int]] = mapped_column(U128, nullable=True)
    draw_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    pick: Mapped[Optional[int]] = mapped_column(U128, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    request_payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('transfer','claim','withdraw','get_reward')", name="type_enum"
        ),
        CheckConstraint(
            "status IN ('queued','sent','confirmed','failed')", name="status_enum"
        ),
        Index("ix_yield_tx_status", "status"),
        Index("ix_yield_tx_type_status", "type", "status"),
        Index("ix_yield_tx_account", "account_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<YieldSourceTransaction(id={self.id}, venue='{self.venue}', "
            f"type='{self.type}', status='{self.status}', amount={self.amount})>"
        )
