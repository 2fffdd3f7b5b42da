"""Refund records, cash-out requests and their lifecycles."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from payments_server.db import models as orm
from payments_server.modules.common.clock import as_utc
from payments_server.modules.common.exceptions import ValidationError
from payments_server.modules.common.transitions import TransitionTable


class RefundChannel(str, Enum):
    GATEWAY = "gateway"
    WALLET = "wallet"


class RefundStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


REFUND_TRANSITIONS: TransitionTable[RefundStatus] = TransitionTable(
    "refund",
    {
        "complete": (frozenset({RefundStatus.PENDING}), RefundStatus.COMPLETED),
        "fail": (frozenset({RefundStatus.PENDING}), RefundStatus.FAILED),
    },
)

# statuses that count toward the amount already refunded for an original entry
OUTSTANDING_REFUND_STATUSES = (RefundStatus.PENDING.value, RefundStatus.COMPLETED.value)


class CashOutStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"


CASH_OUT_TRANSITIONS: TransitionTable[CashOutStatus] = TransitionTable(
    "wallet refund request",
    {
        "approve": (frozenset({CashOutStatus.PENDING}), CashOutStatus.APPROVED),
        "process": (frozenset({CashOutStatus.APPROVED}), CashOutStatus.PROCESSED),
        "reject": (frozenset({CashOutStatus.PENDING, CashOutStatus.APPROVED}), CashOutStatus.REJECTED),
    },
)


def resolve_refund_amount(
    original_amount: int,
    *,
    percentage: Optional[int] = None,
    amount: Optional[int] = None,
) -> tuple[int, Optional[int]]:
    """Return ``(amount, percentage)`` for a refund of ``original_amount``.

    Exactly one of percentage and amount may be given; neither means a full
    refund. Percentages are whole numbers from 1 to 100.
    """
    if percentage is not None and amount is not None:
        raise ValidationError("give either a percentage or an amount, not both", field="percentage")
    if amount is not None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("refund amount must be a positive integer", field="amount")
        return amount, None
    if percentage is None:
        percentage = 100
    if isinstance(percentage, bool) or not isinstance(percentage, int) or not 1 <= percentage <= 100:
        raise ValidationError("refund percentage must be between 1 and 100", field="percentage")
    resolved = original_amount * percentage // 100
    if resolved <= 0:
        raise ValidationError(
            f"{percentage}% of {original_amount} rounds down to nothing",
            field="percentage",
        )
    return resolved, percentage


@dataclass(slots=True)
class Refund:
    id: str
    refund_id: str
    original_entry_id: str
    owner_id: str
    channel: RefundChannel
    amount: int
    percentage: Optional[int]
    currency: str
    reason: Optional[str]
    status: RefundStatus
    payment_reference: Optional[str]
    gateway_refund_id: Optional[str]
    idempotency_key: str
    ledger_entry_id: Optional[str]
    requested_by: Optional[str]
    failure_reason: Optional[str]
    created_at: Optional[datetime]
    completed_at: Optional[datetime]
    failed_at: Optional[datetime]

    @classmethod
    def from_orm(cls, instance: orm.RefundRecord) -> "Refund":
        return cls(
            id=instance.id,
            refund_id=instance.refund_id,
            original_entry_id=instance.original_entry_id,
            owner_id=instance.owner_id,
            channel=RefundChannel(instance.channel),
            amount=instance.amount,
            percentage=instance.percentage,
            currency=instance.currency,
            reason=instance.reason,
            status=RefundStatus(instance.status),
            payment_reference=instance.payment_reference,
            gateway_refund_id=instance.gateway_refund_id,
            idempotency_key=instance.idempotency_key,
            ledger_entry_id=instance.ledger_entry_id,
            requested_by=instance.requested_by,
            failure_reason=instance.failure_reason,
            created_at=as_utc(instance.created_at),
            completed_at=as_utc(instance.completed_at),
            failed_at=as_utc(instance.failed_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "refund_id": self.refund_id,
            "original_entry_id": self.original_entry_id,
            "owner_id": self.owner_id,
            "channel": self.channel.value,
            "amount": self.amount,
            "status": self.status.value,
            "gateway_refund_id": self.gateway_refund_id,
            "ledger_entry_id": self.ledger_entry_id,
        }


@dataclass(slots=True)
class CashOutRequest:
    id: str
    refund_id: str
    owner_id: str
    amount_requested: int
    amount_approved: Optional[int]
    cash_balance_snapshot: int
    currency: str
    status: CashOutStatus
    reason: Optional[str]
    admin_notes: Optional[str]
    rejection_reason: Optional[str]
    processed_by: Optional[str]
    payment_reference: Optional[str]
    ledger_entry_id: Optional[str]
    created_at: Optional[datetime]
    approved_at: Optional[datetime]
    rejected_at: Optional[datetime]
    processed_at: Optional[datetime]

    @classmethod
    def from_orm(cls, instance: orm.WalletRefundRequest) -> "CashOutRequest":
        return cls(
            id=instance.id,
            refund_id=instance.refund_id,
            owner_id=instance.owner_id,
            amount_requested=instance.amount_requested,
            amount_approved=instance.amount_approved,
            cash_balance_snapshot=instance.cash_balance_snapshot,
            currency=instance.currency,
            status=CashOutStatus(instance.status),
            reason=instance.reason,
            admin_notes=instance.admin_notes,
            rejection_reason=instance.rejection_reason,
            processed_by=instance.processed_by,
            payment_reference=instance.payment_reference,
            ledger_entry_id=instance.ledger_entry_id,
            created_at=as_utc(instance.created_at),
            approved_at=as_utc(instance.approved_at),
            rejected_at=as_utc(instance.rejected_at),
            processed_at=as_utc(instance.processed_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "refund_id": self.refund_id,
            "owner_id": self.owner_id,
            "amount_requested": self.amount_requested,
            "amount_approved": self.amount_approved,
            "status": self.status.value,
            "payment_reference": self.payment_reference,
        }
