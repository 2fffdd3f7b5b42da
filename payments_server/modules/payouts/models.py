"""Payout request domain model and lifecycle."""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from payments_server.db import models as orm
from payments_server.modules.common.clock import as_utc
from payments_server.modules.common.exceptions import ValidationError
from payments_server.modules.common.transitions import TransitionTable

ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{9,18}$")
IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")


class PayoutStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


PAYOUT_TRANSITIONS: TransitionTable[PayoutStatus] = TransitionTable(
    "payout",
    {
        "approve": (frozenset({PayoutStatus.PENDING}), PayoutStatus.APPROVED),
        "process": (frozenset({PayoutStatus.APPROVED}), PayoutStatus.PROCESSING),
        "complete": (frozenset({PayoutStatus.PROCESSING}), PayoutStatus.COMPLETED),
        "reject": (frozenset({PayoutStatus.PENDING, PayoutStatus.APPROVED}), PayoutStatus.REJECTED),
    },
)

IN_FLIGHT_STATUSES = frozenset({PayoutStatus.PENDING, PayoutStatus.APPROVED, PayoutStatus.PROCESSING})


@dataclass(slots=True, frozen=True)
class BankDetails:
    account_holder_name: str
    account_number: str
    ifsc_code: str
    bank_name: Optional[str] = None
    upi_id: Optional[str] = None

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "BankDetails":
        holder = str(data.get("account_holder_name") or "").strip()
        if not holder:
            raise ValidationError("account holder name is required", field="bank_details.account_holder_name")
        account_number = str(data.get("account_number") or "").strip()
        if not ACCOUNT_NUMBER_PATTERN.match(account_number):
            raise ValidationError(
                "account number must be 9 to 18 digits",
                field="bank_details.account_number",
            )
        ifsc = str(data.get("ifsc_code") or "").strip().upper()
        if not IFSC_PATTERN.match(ifsc):
            raise ValidationError("invalid IFSC code", field="bank_details.ifsc_code")
        bank_name = (data.get("bank_name") or "").strip() or None
        upi_id = (data.get("upi_id") or "").strip() or None
        return cls(holder, account_number, ifsc, bank_name, upi_id)

    def masked(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["account_number"] = "X" * (len(self.account_number) - 4) + self.account_number[-4:]
        return payload

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Payout:
    id: str
    payout_id: str
    owner_id: str
    amount: int
    currency: str
    bank_details: BankDetails
    status: PayoutStatus
    approved_by: Optional[str]
    processed_by: Optional[str]
    completed_by: Optional[str]
    rejected_by: Optional[str]
    transaction_reference: Optional[str]
    admin_notes: Optional[str]
    rejection_reason: Optional[str]
    ledger_entry_id: Optional[str]
    created_at: Optional[datetime]
    approved_at: Optional[datetime]
    processed_at: Optional[datetime]
    completed_at: Optional[datetime]
    rejected_at: Optional[datetime]

    @classmethod
    def from_orm(cls, instance: orm.PayoutRequest) -> "Payout":
        return cls(
            id=instance.id,
            payout_id=instance.payout_id,
            owner_id=instance.owner_id,
            amount=instance.amount,
            currency=instance.currency,
            bank_details=BankDetails(**json.loads(instance.bank_details)),
            status=PayoutStatus(instance.status),
            approved_by=instance.approved_by,
            processed_by=instance.processed_by,
            completed_by=instance.completed_by,
            rejected_by=instance.rejected_by,
            transaction_reference=instance.transaction_reference,
            admin_notes=instance.admin_notes,
            rejection_reason=instance.rejection_reason,
            ledger_entry_id=instance.ledger_entry_id,
            created_at=as_utc(instance.created_at),
            approved_at=as_utc(instance.approved_at),
            processed_at=as_utc(instance.processed_at),
            completed_at=as_utc(instance.completed_at),
            rejected_at=as_utc(instance.rejected_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "payout_id": self.payout_id,
            "owner_id": self.owner_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "transaction_reference": self.transaction_reference,
            "ledger_entry_id": self.ledger_entry_id,
        }


@dataclass(slots=True)
class PayoutStats:
    counts: dict[str, int]
    amounts: dict[str, int]

    @property
    def completed_amount(self) -> int:
        return self.amounts.get(PayoutStatus.COMPLETED.value, 0)

    @property
    def in_flight_amount(self) -> int:
        return sum(self.amounts.get(status.value, 0) for status in IN_FLIGHT_STATUSES)
