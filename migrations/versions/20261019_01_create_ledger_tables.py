"""create wallet ledger, payout, refund, gift card and activity tables

Revision ID: 5e7c1a9d2b40
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5e7c1a9d2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "wallet_accounts",
        sa.Column("owner_id", sa.String(length=64), primary_key=True),
        sa.Column("owner_kind", sa.String(length=20), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="INR"),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_recharged", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_spent", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("withdrawable_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("pending_withdrawal", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_withdrawn", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("balance >= 0", name="ck_wallet_accounts_balance_non_negative"),
        sa.CheckConstraint("withdrawable_amount >= 0", name="ck_wallet_accounts_withdrawable_non_negative"),
        sa.CheckConstraint("pending_withdrawal >= 0", name="ck_wallet_accounts_pending_non_negative"),
    )
    op.create_index("ix_wallet_accounts_owner_kind", "wallet_accounts", ["owner_kind"])

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("entry_id", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.String(length=64), sa.ForeignKey("wallet_accounts.owner_id"), nullable=False),
        sa.Column("owner_kind", sa.String(length=20), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("direction", sa.String(length=10), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="INR"),
        sa.Column("balance_before", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("sequence", sa.Integer()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("linked_entry_id", sa.String(length=64)),
        sa.Column("reversal_of_id", sa.String(length=64), unique=True),
        sa.Column("external_reference", sa.String(length=120)),
        sa.Column("idempotency_key", sa.String(length=120), unique=True),
        sa.Column("description", sa.String(length=255)),
        sa.Column("meta", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("owner_id", "sequence", name="uq_ledger_entries_owner_sequence"),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )
    op.create_index("ix_ledger_entries_entry_id", "ledger_entries", ["entry_id"], unique=True)
    op.create_index("ix_ledger_entries_owner_id", "ledger_entries", ["owner_id"])
    op.create_index("ix_ledger_entries_type", "ledger_entries", ["type"])
    op.create_index("ix_ledger_entries_status", "ledger_entries", ["status"])
    op.create_index("ix_ledger_entries_linked_entry_id", "ledger_entries", ["linked_entry_id"])
    op.create_index("ix_ledger_entries_external_reference", "ledger_entries", ["external_reference"])
    op.create_index("ix_ledger_entries_created_at", "ledger_entries", ["created_at"])

    op.create_table(
        "payout_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("payout_id", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.String(length=64), sa.ForeignKey("wallet_accounts.owner_id"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="INR"),
        sa.Column("bank_details", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("approved_by", sa.String(length=64)),
        sa.Column("processed_by", sa.String(length=64)),
        sa.Column("completed_by", sa.String(length=64)),
        sa.Column("rejected_by", sa.String(length=64)),
        sa.Column("transaction_reference", sa.String(length=200)),
        sa.Column("admin_notes", sa.String(length=500)),
        sa.Column("rejection_reason", sa.String(length=300)),
        sa.Column("ledger_entry_id", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("rejected_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount > 0", name="ck_payout_requests_amount_positive"),
    )
    op.create_index("ix_payout_requests_payout_id", "payout_requests", ["payout_id"], unique=True)
    op.create_index("ix_payout_requests_owner_id", "payout_requests", ["owner_id"])
    op.create_index("ix_payout_requests_status", "payout_requests", ["status"])
    op.create_index("ix_payout_requests_created_at", "payout_requests", ["created_at"])

    op.create_table(
        "wallet_refund_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("refund_id", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.String(length=64), sa.ForeignKey("wallet_accounts.owner_id"), nullable=False),
        sa.Column("amount_requested", sa.BigInteger(), nullable=False),
        sa.Column("amount_approved", sa.BigInteger()),
        sa.Column("cash_balance_snapshot", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="INR"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("reason", sa.String(length=500)),
        sa.Column("admin_notes", sa.String(length=500)),
        sa.Column("rejection_reason", sa.String(length=300)),
        sa.Column("processed_by", sa.String(length=64)),
        sa.Column("payment_reference", sa.String(length=200)),
        sa.Column("ledger_entry_id", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("rejected_at", sa.DateTime(timezone=True)),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount_requested > 0", name="ck_wallet_refund_requests_amount_positive"),
        sa.CheckConstraint(
            "amount_requested <= cash_balance_snapshot",
            name="ck_wallet_refund_requests_within_snapshot",
        ),
        sa.CheckConstraint(
            "amount_approved IS NULL OR amount_approved <= amount_requested",
            name="ck_wallet_refund_requests_approved_within_requested",
        ),
    )
    op.create_index("ix_wallet_refund_requests_refund_id", "wallet_refund_requests", ["refund_id"], unique=True)
    op.create_index("ix_wallet_refund_requests_owner_id", "wallet_refund_requests", ["owner_id"])
    op.create_index("ix_wallet_refund_requests_status", "wallet_refund_requests", ["status"])
    op.create_index("ix_wallet_refund_requests_created_at", "wallet_refund_requests", ["created_at"])

    op.create_table(
        "refund_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("refund_id", sa.String(length=64), nullable=False),
        sa.Column("original_entry_id", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.String(length=64), sa.ForeignKey("wallet_accounts.owner_id"), nullable=False),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("percentage", sa.Integer()),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="INR"),
        sa.Column("reason", sa.String(length=300)),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_reference", sa.String(length=120)),
        sa.Column("gateway_refund_id", sa.String(length=120)),
        sa.Column("idempotency_key", sa.String(length=120), nullable=False, unique=True),
        sa.Column("ledger_entry_id", sa.String(length=64)),
        sa.Column("requested_by", sa.String(length=64)),
        sa.Column("failure_reason", sa.String(length=500)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("failed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount > 0", name="ck_refund_records_amount_positive"),
    )
    op.create_index("ix_refund_records_refund_id", "refund_records", ["refund_id"], unique=True)
    op.create_index("ix_refund_records_original_entry_id", "refund_records", ["original_entry_id"])
    op.create_index("ix_refund_records_owner_id", "refund_records", ["owner_id"])
    op.create_index("ix_refund_records_status", "refund_records", ["status"])
    op.create_index("ix_refund_records_gateway_refund_id", "refund_records", ["gateway_refund_id"])
    op.create_index("ix_refund_records_created_at", "refund_records", ["created_at"])

    op.create_table(
        "gift_cards",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="INR"),
        sa.Column("max_redemptions", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("redemptions_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("created_by", sa.String(length=64)),
        sa.Column("meta", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount > 0", name="ck_gift_cards_amount_positive"),
        sa.CheckConstraint("redemptions_count <= max_redemptions", name="ck_gift_cards_redemptions_within_limit"),
    )
    op.create_index("ix_gift_cards_code", "gift_cards", ["code"], unique=True)
    op.create_index("ix_gift_cards_status", "gift_cards", ["status"])
    op.create_index("ix_gift_cards_created_at", "gift_cards", ["created_at"])

    op.create_table(
        "gift_card_redemptions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("gift_card_id", sa.String(length=36), sa.ForeignKey("gift_cards.id"), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("ledger_entry_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("gift_card_id", "owner_id", name="uq_gift_card_redemptions_card_owner"),
    )
    op.create_index("ix_gift_card_redemptions_gift_card_id", "gift_card_redemptions", ["gift_card_id"])
    op.create_index("ix_gift_card_redemptions_owner_id", "gift_card_redemptions", ["owner_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("module", sa.String(length=40), nullable=False),
        sa.Column("target_id", sa.String(length=64)),
        sa.Column("target_type", sa.String(length=40)),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="success"),
        sa.Column("details", sa.Text()),
        sa.Column("error_message", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_actor_id", "activity_logs", ["actor_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_module", "activity_logs", ["module"])
    op.create_index("ix_activity_logs_target_id", "activity_logs", ["target_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("gift_card_redemptions")
    op.drop_table("gift_cards")
    op.drop_table("refund_records")
    op.drop_table("wallet_refund_requests")
    op.drop_table("payout_requests")
    op.drop_table("ledger_entries")
    op.drop_table("wallet_accounts")
