"""SQLAlchemy ORM models.

Monetary columns hold integers in the smallest currency unit (paise for INR).
"""
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from payments_server.infrastructure.database.base import Base
from payments_server.modules.common.clock import utcnow
from payments_server.modules.common.identifiers import generate_uuid


class WalletAccount(Base):
    __tablename__ = "wallet_accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_accounts_balance_non_negative"),
        CheckConstraint("withdrawable_amount >= 0", name="ck_wallet_accounts_withdrawable_non_negative"),
        CheckConstraint("pending_withdrawal >= 0", name="ck_wallet_accounts_pending_non_negative"),
    )

    owner_id = Column(String(64), primary_key=True)
    owner_kind = Column(String(20), nullable=False, index=True)  # client, provider
    currency = Column(String(10), nullable=False, default="INR")

    balance = Column(BigInteger, nullable=False, default=0)
    total_recharged = Column(BigInteger, nullable=False, default=0)
    total_spent = Column(BigInteger, nullable=False, default=0)

    withdrawable_amount = Column(BigInteger, nullable=False, default=0)
    pending_withdrawal = Column(BigInteger, nullable=False, default=0)
    total_withdrawn = Column(BigInteger, nullable=False, default=0)
    total_earned = Column(BigInteger, nullable=False, default=0)

    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    entries = relationship("LedgerEntry", back_populates="account")


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("owner_id", "sequence", name="uq_ledger_entries_owner_sequence"),
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    entry_id = Column(String(64), unique=True, nullable=False, index=True)
    owner_id = Column(String(64), ForeignKey("wallet_accounts.owner_id"), nullable=False, index=True)
    owner_kind = Column(String(20), nullable=False)
    type = Column(String(20), nullable=False, index=True)
    direction = Column(String(10), nullable=False)  # credit, debit
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(10), nullable=False, default="INR")
    balance_before = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    # position among balance-changing entries; NULL for holds
    sequence = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    linked_entry_id = Column(String(64), nullable=True, index=True)
    reversal_of_id = Column(String(64), unique=True, nullable=True)
    external_reference = Column(String(120), nullable=True, index=True)
    idempotency_key = Column(String(120), unique=True, nullable=True)
    description = Column(String(255))
    meta = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    account = relationship("WalletAccount", back_populates="entries")


class PayoutRequest(Base):
    __tablename__ = "payout_requests"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payout_requests_amount_positive"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    payout_id = Column(String(64), unique=True, nullable=False, index=True)
    owner_id = Column(String(64), ForeignKey("wallet_accounts.owner_id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(10), nullable=False, default="INR")
    bank_details = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    approved_by = Column(String(64))
    processed_by = Column(String(64))
    completed_by = Column(String(64))
    rejected_by = Column(String(64))
    transaction_reference = Column(String(200))
    admin_notes = Column(String(500))
    rejection_reason = Column(String(300))
    ledger_entry_id = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    approved_at = Column(DateTime(timezone=True))
    processed_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    rejected_at = Column(DateTime(timezone=True))


class WalletRefundRequest(Base):
    __tablename__ = "wallet_refund_requests"
    __table_args__ = (
        CheckConstraint("amount_requested > 0", name="ck_wallet_refund_requests_amount_positive"),
        CheckConstraint(
            "amount_requested <= cash_balance_snapshot",
            name="ck_wallet_refund_requests_within_snapshot",
        ),
        CheckConstraint(
            "amount_approved IS NULL OR amount_approved <= amount_requested",
            name="ck_wallet_refund_requests_approved_within_requested",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    refund_id = Column(String(64), unique=True, nullable=False, index=True)
    owner_id = Column(String(64), ForeignKey("wallet_accounts.owner_id"), nullable=False, index=True)
    amount_requested = Column(BigInteger, nullable=False)
    amount_approved = Column(BigInteger)
    cash_balance_snapshot = Column(BigInteger, nullable=False)
    currency = Column(String(10), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default="pending", index=True)
    reason = Column(String(500))
    admin_notes = Column(String(500))
    rejection_reason = Column(String(300))
    processed_by = Column(String(64))
    payment_reference = Column(String(200))
    ledger_entry_id = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    approved_at = Column(DateTime(timezone=True))
    rejected_at = Column(DateTime(timezone=True))
    processed_at = Column(DateTime(timezone=True))


class RefundRecord(Base):
    __tablename__ = "refund_records"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_refund_records_amount_positive"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    refund_id = Column(String(64), unique=True, nullable=False, index=True)
    original_entry_id = Column(String(64), nullable=False, index=True)
    owner_id = Column(String(64), ForeignKey("wallet_accounts.owner_id"), nullable=False, index=True)
    channel = Column(String(20), nullable=False)  # gateway, wallet
    amount = Column(BigInteger, nullable=False)
    percentage = Column(Integer)
    currency = Column(String(10), nullable=False, default="INR")
    reason = Column(String(300))
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_reference = Column(String(120))
    gateway_refund_id = Column(String(120), index=True)
    idempotency_key = Column(String(120), unique=True, nullable=False)
    ledger_entry_id = Column(String(64))
    requested_by = Column(String(64))
    failure_reason = Column(String(500))
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    completed_at = Column(DateTime(timezone=True))
    failed_at = Column(DateTime(timezone=True))


class GiftCard(Base):
    __tablename__ = "gift_cards"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_gift_cards_amount_positive"),
        CheckConstraint(
            "redemptions_count <= max_redemptions",
            name="ck_gift_cards_redemptions_within_limit",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(50), unique=True, nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(10), nullable=False, default="INR")
    max_redemptions = Column(Integer, nullable=False, default=1)
    redemptions_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="active", index=True)
    expires_at = Column(DateTime(timezone=True))
    created_by = Column(String(64))
    meta = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    redemptions = relationship("GiftCardRedemption", back_populates="gift_card")


class GiftCardRedemption(Base):
    __tablename__ = "gift_card_redemptions"
    __table_args__ = (UniqueConstraint("gift_card_id", "owner_id", name="uq_gift_card_redemptions_card_owner"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    gift_card_id = Column(String(36), ForeignKey("gift_cards.id"), nullable=False, index=True)
    owner_id = Column(String(64), nullable=False, index=True)
    ledger_entry_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    gift_card = relationship("GiftCard", back_populates="redemptions")


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(64), nullable=False, index=True)
    action = Column(String(80), nullable=False, index=True)
    module = Column(String(40), nullable=False, index=True)
    target_id = Column(String(64), index=True)
    target_type = Column(String(40))
    status = Column(String(20), nullable=False, default="success")
    details = Column(Text)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
