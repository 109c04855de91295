"""initial pool schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Decimal text of an unsigned integer up to 256 bits.
DECIMAL = sa.String(length=78)


def upgrade() -> None:
    op.create_table(
        "account_balances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("balance", DECIMAL, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "kind IN ('account','total_supply')",
            name=op.f("ck_account_balances_kind_enum"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_account_balances")),
        sa.UniqueConstraint(
            "kind", "account_id", name=op.f("uq_account_balance_kind_account")
        ),
    )

    op.create_table(
        "twab_checkpoints",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account_balance_id", sa.Integer(), nullable=False),
        sa.Column("cumulative_amount", DECIMAL, nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(
            ["account_balance_id"],
            ["account_balances.id"],
            name=op.f("fk_twab_checkpoints_account_balance_id_account_balances"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_twab_checkpoints")),
        sa.UniqueConstraint(
            "account_balance_id",
            "timestamp",
            name=op.f("uq_twab_checkpoint_account_timestamp"),
        ),
    )
    op.create_index(
        "ix_twab_checkpoints_account_timestamp",
        "twab_checkpoints",
        ["account_balance_id", "timestamp"],
        unique=False,
    )

    op.create_table(
        "ring_buffer_cursors",
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("cursor", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("name", name=op.f("pk_ring_buffer_cursors")),
    )

    op.create_table(
        "draws",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("draw_id", sa.BigInteger(), nullable=False),
        sa.Column("winning_number", DECIMAL, nullable=False),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.Column("completed_at", sa.BigInteger(), nullable=False),
        sa.Column("slot", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draws")),
        sa.UniqueConstraint("draw_id", name=op.f("uq_draws_draw_id")),
        sa.UniqueConstraint("slot", name=op.f("uq_draws_slot")),
    )

    op.create_table(
        "draw_clock_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("is_started", sa.Boolean(), nullable=False),
        sa.Column("last_epoch_started", sa.BigInteger(), nullable=False),
        sa.Column("current_draw_id", sa.BigInteger(), nullable=False),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_clock_state")),
        sa.UniqueConstraint("name", name=op.f("uq_draw_clock_state_name")),
    )

    op.create_table(
        "prize_distributions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("draw_id", sa.BigInteger(), nullable=False),
        sa.Column("cardinality", sa.SmallInteger(), nullable=False),
        sa.Column("bit_range_size", sa.SmallInteger(), nullable=False),
        sa.Column("tiers", sa.JSON(), nullable=False),
        sa.Column("prize", DECIMAL, nullable=False),
        sa.Column("max_picks", DECIMAL, nullable=False),
        sa.Column("number_of_picks", DECIMAL, nullable=False),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("end_time", sa.BigInteger(), nullable=False),
        sa.Column("winning_number", DECIMAL, nullable=False),
        sa.Column("slot", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prize_distributions")),
        sa.UniqueConstraint("draw_id", name=op.f("uq_prize_distributions_draw_id")),
        sa.UniqueConstraint("slot", name=op.f("uq_prize_distributions_slot")),
    )

    op.create_table(
        "pick_allocations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("draw_id", sa.BigInteger(), nullable=False),
        sa.Column("allowed_picks", DECIMAL, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_pick_allocations")),
        sa.UniqueConstraint(
            "account_id", "draw_id", name=op.f("uq_pick_allocation_account_draw")
        ),
    )
    op.create_index(
        op.f("ix_pick_allocations_account_id"),
        "pick_allocations",
        ["account_id"],
        unique=False,
    )

    op.create_table(
        "pick_claims",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("allocation_id", sa.Integer(), nullable=False),
        sa.Column("pick", DECIMAL, nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("payout", DECIMAL, nullable=True),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "state IN ('unclaimed','reserved','claimed')",
            name=op.f("ck_pick_claims_state_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["allocation_id"],
            ["pick_allocations.id"],
            name=op.f("fk_pick_claims_allocation_id_pick_allocations"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_pick_claims")),
        sa.UniqueConstraint(
            "allocation_id", "pick", name=op.f("uq_pick_claim_allocation_pick")
        ),
    )

    op.create_table(
        "yield_source_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("venue", sa.String(length=20), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=True),
        sa.Column("token_id", sa.String(length=255), nullable=True),
        sa.Column("amount", DECIMAL, nullable=True),
        sa.Column("draw_id", sa.BigInteger(), nullable=True),
        sa.Column("pick", DECIMAL, nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("request_payload_json", sa.Text(), nullable=True),
        sa.Column("response_payload_json", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "type IN ('transfer','claim','withdraw','get_reward')",
            name=op.f("ck_yield_source_transactions_type_enum"),
        ),
        sa.CheckConstraint(
            "status IN ('queued','sent','confirmed','failed')",
            name=op.f("ck_yield_source_transactions_status_enum"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_yield_source_transactions")),
    )
    op.create_index("ix_yield_tx_status", "yield_source_transactions", ["status"])
    op.create_index(
        "ix_yield_tx_type_status", "yield_source_transactions", ["type", "status"]
    )
    op.create_index("ix_yield_tx_account", "yield_source_transactions", ["account_id"])


def downgrade() -> None:
    op.drop_index("ix_yield_tx_account", table_name="yield_source_transactions")
    op.drop_index("ix_yield_tx_type_status", table_name="yield_source_transactions")
    op.drop_index("ix_yield_tx_status", table_name="yield_source_transactions")
    op.drop_table("yield_source_transactions")
    op.drop_table("pick_claims")
    op.drop_index(op.f("ix_pick_allocations_account_id"), table_name="pick_allocations")
    op.drop_table("pick_allocations")
    op.drop_table("prize_distributions")
    op.drop_table("draw_clock_state")
    op.drop_table("draws")
    op.drop_table("ring_buffer_cursors")
    op.drop_index("ix_twab_checkpoints_account_timestamp", table_name="twab_checkpoints")
    op.drop_table("twab_checkpoints")
    op.drop_table("account_balances")
