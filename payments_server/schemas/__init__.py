"""Pydantic schemas used across the project.

Amounts are integers in paise. Range checks live in the services so that
every rule violation comes back in the same error body.
"""
from datetime import datetime
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from payments_server.infrastructure.gateway import GatewayRefundStatus
from payments_server.modules.activity import ActivityStatus
from payments_server.modules.gift_cards import GiftCardStatus
from payments_server.modules.ledger import Direction, EntryStatus, EntryType, OwnerKind, WalletSnapshot
from payments_server.modules.payouts import PayoutStatus
from payments_server.modules.refunds import CashOutStatus, RefundChannel, RefundStatus

ItemT = TypeVar("ItemT")


class TokenData(BaseModel):
    account_id: str
    role: str


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PageResponse(BaseModel, Generic[ItemT]):
    items: list[ItemT] = Field(default_factory=list)
    pagination: PaginationInfo


class ErrorResponse(BaseModel):
    error: str
    message: str
    field: Optional[str] = None
    current_state: Optional[str] = None
    entity: Optional[dict[str, Any]] = None


# -- wallet & ledger --------------------------------------------------


class WalletResponse(BaseModel):
    owner_id: str
    owner_kind: OwnerKind
    currency: str
    version: int
    balance: int = 0
    total_recharged: int = 0
    total_spent: int = 0
    withdrawable_amount: int = 0
    pending_withdrawal: int = 0
    total_withdrawn: int = 0
    total_earned: int = 0
    available_balance: Optional[int] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, snapshot: WalletSnapshot, available: Optional[int] = None) -> "WalletResponse":
        figures = snapshot.figures
        return cls(
            owner_id=snapshot.owner_id,
            owner_kind=snapshot.owner_kind,
            currency=snapshot.currency,
            version=snapshot.version,
            balance=figures.balance,
            total_recharged=figures.total_recharged,
            total_spent=figures.total_spent,
            withdrawable_amount=figures.withdrawable_amount,
            pending_withdrawal=figures.pending_withdrawal,
            total_withdrawn=figures.total_withdrawn,
            total_earned=figures.total_earned,
            available_balance=available,
            updated_at=snapshot.updated_at,
        )


class LedgerEntryResponse(BaseModel):
    entry_id: str
    owner_id: str
    owner_kind: OwnerKind
    type: EntryType
    direction: Direction
    amount: int
    currency: str
    balance_before: int
    balance_after: int
    sequence: Optional[int] = None
    status: EntryStatus
    linked_entry_id: Optional[str] = None
    reversal_of_id: Optional[str] = None
    external_reference: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LedgerPostRequest(BaseModel):
    owner_id: str = Field(..., min_length=1, max_length=64)
    owner_kind: OwnerKind
    type: EntryType
    amount: int
    direction: Optional[Direction] = None
    external_reference: Optional[str] = Field(None, max_length=120)
    idempotency_key: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = Field(None, max_length=255)
    metadata: Optional[dict[str, Any]] = None


class RechargeCreateRequest(BaseModel):
    amount: int
    description: Optional[str] = Field(None, max_length=255)


class RechargeConfirmRequest(BaseModel):
    payment_id: str = Field(..., max_length=120)
    status: Literal["completed", "failed"]


class ReverseRequest(BaseModel):
    description: Optional[str] = Field(None, max_length=255)


class HoldRequest(BaseModel):
    owner_id: str = Field(..., min_length=1, max_length=64)
    amount: int
    reference: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = Field(None, max_length=255)


class CaptureRequest(BaseModel):
    amount: Optional[int] = None
    description: Optional[str] = Field(None, max_length=255)


class LedgerStatsResponse(BaseModel):
    totals: dict[str, int]


class LedgerAuditResponse(BaseModel):
    owner_id: str
    replayed_balance: int
    latest_entry_balance: int
    aggregate_balance: int
    entries_replayed: int
    consistent: bool

    model_config = ConfigDict(from_attributes=True)


# -- payouts ----------------------------------------------------------


class BankDetailsPayload(BaseModel):
    account_holder_name: str = Field(..., max_length=120)
    account_number: str = Field(..., max_length=32)
    ifsc_code: str = Field(..., max_length=16)
    bank_name: Optional[str] = Field(None, max_length=120)
    upi_id: Optional[str] = Field(None, max_length=120)

    model_config = ConfigDict(from_attributes=True)


class PayoutCreateRequest(BaseModel):
    amount: int
    bank_details: BankDetailsPayload


class PayoutActionRequest(BaseModel):
    transaction_reference: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=500)


class PayoutRejectRequest(BaseModel):
    reason: str = Field(..., max_length=300)


class PayoutResponse(BaseModel):
    payout_id: str
    owner_id: str
    amount: int
    currency: str
    bank_details: BankDetailsPayload
    status: PayoutStatus
    approved_by: Optional[str] = None
    processed_by: Optional[str] = None
    completed_by: Optional[str] = None
    rejected_by: Optional[str] = None
    transaction_reference: Optional[str] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    ledger_entry_id: Optional[str] = None
    created_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PayoutStatsResponse(BaseModel):
    counts: dict[str, int]
    amounts: dict[str, int]
    completed_amount: int
    in_flight_amount: int

    model_config = ConfigDict(from_attributes=True)


# -- refunds ----------------------------------------------------------


class RefundCreateRequest(BaseModel):
    original_entry_id: str
    channel: RefundChannel = RefundChannel.GATEWAY
    percentage: Optional[int] = None
    amount: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=300)
    idempotency_key: Optional[str] = Field(None, max_length=120)


class RefundConfirmRequest(BaseModel):
    gateway_refund_id: str = Field(..., max_length=120)
    status: GatewayRefundStatus


class RefundResponse(BaseModel):
    refund_id: str
    original_entry_id: str
    owner_id: str
    channel: RefundChannel
    amount: int
    percentage: Optional[int] = None
    currency: str
    reason: Optional[str] = None
    status: RefundStatus
    payment_reference: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    ledger_entry_id: Optional[str] = None
    requested_by: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CashOutCreateRequest(BaseModel):
    amount: int
    reason: Optional[str] = Field(None, max_length=500)


class CashOutApproveRequest(BaseModel):
    amount_approved: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=500)


class CashOutRejectRequest(BaseModel):
    reason: str = Field(..., max_length=300)


class CashOutProcessRequest(BaseModel):
    payment_reference: str = Field(..., max_length=200)


class CashOutResponse(BaseModel):
    refund_id: str
    owner_id: str
    amount_requested: int
    amount_approved: Optional[int] = None
    cash_balance_snapshot: int
    currency: str
    status: CashOutStatus
    reason: Optional[str] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    processed_by: Optional[str] = None
    payment_reference: Optional[str] = None
    ledger_entry_id: Optional[str] = None
    created_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# -- gift cards -------------------------------------------------------


class GiftCardCreateRequest(BaseModel):
    code: str = Field(..., max_length=50)
    amount: int
    currency: Optional[str] = Field(None, max_length=10)
    max_redemptions: int = 1
    expires_at: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = None


class GiftCardStatusRequest(BaseModel):
    status: GiftCardStatus


class GiftCardRedeemRequest(BaseModel):
    code: str = Field(..., max_length=50)


class GiftCardResponse(BaseModel):
    code: str
    amount: int
    currency: str
    max_redemptions: int
    redemptions_count: int
    status: GiftCardStatus
    expires_at: Optional[datetime] = None
    created_by: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class GiftCardRedemptionResponse(BaseModel):
    code: str
    amount: int
    entry: LedgerEntryResponse


# -- activity ---------------------------------------------------------


class ActivityLogResponse(BaseModel):
    id: int
    actor_id: str
    action: str
    module: str
    target_id: Optional[str] = None
    target_type: Optional[str] = None
    status: ActivityStatus
    details: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
