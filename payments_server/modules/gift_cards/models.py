"""Gift card domain model."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from payments_server.db import models as orm
from payments_server.modules.common.clock import as_utc
from payments_server.modules.common.exceptions import ValidationError
from payments_server.modules.common.transitions import TransitionTable
from payments_server.modules.ledger.models import LedgerEntry

MAX_CODE_LENGTH = 50
MAX_GIFT_CARD_AMOUNT = 1_00_000_00


class GiftCardStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


# admin overrides; exhausted cards are never a source
GIFT_CARD_TRANSITIONS: TransitionTable[GiftCardStatus] = TransitionTable(
    "gift card",
    {
        "activate": (frozenset({GiftCardStatus.DISABLED, GiftCardStatus.EXPIRED}), GiftCardStatus.ACTIVE),
        "disable": (frozenset({GiftCardStatus.ACTIVE, GiftCardStatus.EXPIRED}), GiftCardStatus.DISABLED),
        "expire": (frozenset({GiftCardStatus.ACTIVE, GiftCardStatus.DISABLED}), GiftCardStatus.EXPIRED),
    },
)

STATUS_ACTIONS = {
    GiftCardStatus.ACTIVE: "activate",
    GiftCardStatus.DISABLED: "disable",
    GiftCardStatus.EXPIRED: "expire",
}


def normalize_code(code: Optional[str]) -> str:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError("gift card code is required", field="code")
    if len(normalized) > MAX_CODE_LENGTH:
        raise ValidationError(f"gift card code is limited to {MAX_CODE_LENGTH} characters", field="code")
    return normalized


@dataclass(slots=True)
class GiftCard:
    id: str
    code: str
    amount: int
    currency: str
    max_redemptions: int
    redemptions_count: int
    status: GiftCardStatus
    expires_at: Optional[datetime]
    created_by: Optional[str]
    metadata: Optional[dict[str, Any]]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @property
    def remaining_redemptions(self) -> int:
        return max(0, self.max_redemptions - self.redemptions_count)

    def is_expired_at(self, moment: datetime) -> bool:
        return self.status is GiftCardStatus.EXPIRED or (self.expires_at is not None and moment >= self.expires_at)

    @classmethod
    def from_orm(cls, instance: orm.GiftCard) -> "GiftCard":
        return cls(
            id=instance.id,
            code=instance.code,
            amount=instance.amount,
            currency=instance.currency,
            max_redemptions=instance.max_redemptions,
            redemptions_count=instance.redemptions_count,
            status=GiftCardStatus(instance.status),
            expires_at=as_utc(instance.expires_at),
            created_by=instance.created_by,
            metadata=json.loads(instance.meta) if instance.meta else None,
            created_at=as_utc(instance.created_at),
            updated_at=as_utc(instance.updated_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "max_redemptions": self.max_redemptions,
            "redemptions_count": self.redemptions_count,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(slots=True)
class Redemption:
    gift_card: GiftCard
    entry: LedgerEntry
