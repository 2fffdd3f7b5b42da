"""Domain model for ledger entries and wallet aggregates."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from payments_server.db import models as orm
from payments_server.modules.common.clock import as_utc
from payments_server.modules.common.transitions import TransitionTable


class OwnerKind(str, Enum):
    CLIENT = "client"
    PROVIDER = "provider"


class EntryType(str, Enum):
    RECHARGE = "recharge"
    DEDUCTION = "deduction"
    REFUND = "refund"
    HOLD = "hold"
    CHARGE = "charge"
    BONUS = "bonus"
    REWARD = "reward"
    WITHDRAWAL = "withdrawal"
    GIFTCARD = "giftcard"
    EARNING = "earning"


class Direction(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"

    def opposite(self) -> "Direction":
        return Direction.DEBIT if self is Direction.CREDIT else Direction.CREDIT


class EntryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TYPE_DIRECTIONS: dict[EntryType, Direction] = {
    EntryType.RECHARGE: Direction.CREDIT,
    EntryType.DEDUCTION: Direction.DEBIT,
    EntryType.REFUND: Direction.CREDIT,
    EntryType.HOLD: Direction.DEBIT,
    EntryType.CHARGE: Direction.DEBIT,
    EntryType.BONUS: Direction.CREDIT,
    EntryType.REWARD: Direction.CREDIT,
    EntryType.WITHDRAWAL: Direction.DEBIT,
    EntryType.GIFTCARD: Direction.CREDIT,
    EntryType.EARNING: Direction.CREDIT,
}

ALLOWED_TYPES: dict[OwnerKind, frozenset[EntryType]] = {
    OwnerKind.CLIENT: frozenset(
        {
            EntryType.RECHARGE,
            EntryType.DEDUCTION,
            EntryType.REFUND,
            EntryType.HOLD,
            EntryType.CHARGE,
            EntryType.BONUS,
            EntryType.REWARD,
            EntryType.WITHDRAWAL,
            EntryType.GIFTCARD,
        }
    ),
    OwnerKind.PROVIDER: frozenset(
        {
            EntryType.EARNING,
            EntryType.BONUS,
            EntryType.REWARD,
            EntryType.DEDUCTION,
            EntryType.WITHDRAWAL,
        }
    ),
}

ENTRY_PREFIXES: dict[EntryType, str] = {
    EntryType.RECHARGE: "TXN",
    EntryType.DEDUCTION: "TXN",
    EntryType.REFUND: "REFUND",
    EntryType.HOLD: "HOLD",
    EntryType.CHARGE: "CHARGE",
    EntryType.BONUS: "BONUS",
    EntryType.REWARD: "REWARD",
    EntryType.WITHDRAWAL: "WDL",
    EntryType.GIFTCARD: "GIFT",
    EntryType.EARNING: "EARN",
}

HOLD_TRANSITIONS: TransitionTable[EntryStatus] = TransitionTable(
    "hold",
    {
        "capture": (frozenset({EntryStatus.PENDING}), EntryStatus.COMPLETED),
        "release": (frozenset({EntryStatus.PENDING}), EntryStatus.CANCELLED),
    },
)

RECHARGE_TRANSITIONS: TransitionTable[EntryStatus] = TransitionTable(
    "recharge",
    {
        "confirm": (frozenset({EntryStatus.PENDING}), EntryStatus.COMPLETED),
        "fail": (frozenset({EntryStatus.PENDING}), EntryStatus.FAILED),
    },
)

_EARNING_TYPES =frozenset({EntryType.EARNING, EntryType.BONUS, EntryType.REWARD})
_SPEND_TYPES = frozenset({EntryType.DEDUCTION, EntryType.CHARGE})


@dataclass(slots=True, frozen=True)
class AccountFigures:
    """The balance-bearing columns of a wallet account."""

    balance: int = 0
    total_recharged: int = 0
    total_spent: int = 0
    withdrawable_amount: int = 0
    pending_withdrawal: int = 0
    total_withdrawn: int = 0
    total_earned: int = 0

    @classmethod
    def from_orm(cls, instance: orm.WalletAccount) -> "AccountFigures":
        return cls(
            balance=instance.balance or 0,
            total_recharged=instance.total_recharged or 0,
            total_spent=instance.total_spent or 0,
            withdrawable_amount=instance.withdrawable_amount or 0,
            pending_withdrawal=instance.pending_withdrawal or 0,
            total_withdrawn=instance.total_withdrawn or 0,
            total_earned=instance.total_earned or 0,
        )

    def current_balance(self, kind: OwnerKind) -> int:
        return self.balance if kind is OwnerKind.CLIENT else self.withdrawable_amount

    def apply(
        self,
        kind: OwnerKind,
        entry_type: EntryType,
        direction: Direction,
        amount: int,
        *,
        reversal: bool = False,
    ) -> "AccountFigures":
        """Return the figures after one balance-changing entry.

        Reversals undo the counter the original entry moved; the balance simply
        follows the reversal's own direction.
        """
        delta = amount if direction is Direction.CREDIT else -amount
        step = -amount if reversal else amount

        if kind is OwnerKind.CLIENT:
            figures = replace(self, balance=self.balance + delta)
            if entry_type is EntryType.RECHARGE:
                figures = replace(figures, total_recharged=max(0, self.total_recharged + step))
            elif entry_type in _SPEND_TYPES:
                figures = replace(figures, total_spent=max(0, self.total_spent + step))
            return figures

        figures = replace(self, withdrawable_amount=self.withdrawable_amount + delta)
        if entry_type in _EARNING_TYPES:
            figures = replace(figures, total_earned=max(0, self.total_earned + step))
        elif entry_type is EntryType.WITHDRAWAL:
            figures = replace(figures, total_withdrawn=max(0, self.total_withdrawn + step))
            if not reversal:
                figures = replace(figures, pending_withdrawal=max(0, self.pending_withdrawal - amount))
        return figures

    def violation(self, kind: OwnerKind) -> Optional[str]:
        for name in (
            "balance",
            "total_recharged",
            "total_spent",
            "withdrawable_amount",
            "pending_withdrawal",
            "total_withdrawn",
            "total_earned",
        ):
            if getattr(self, name) < 0:
                return f"{name} would become negative"
        if kind is OwnerKind.PROVIDER:
            ceiling = self.total_earned - self.total_withdrawn
            if self.withdrawable_amount + self.pending_withdrawal > ceiling:
                return (
                    "withdrawable plus pending withdrawal would exceed earned minus withdrawn "
                    f"({self.withdrawable_amount} + {self.pending_withdrawal} > {ceiling})"
                )
        return None

    def as_columns(self) -> dict[str, int]:
        return {
            "balance": self.balance,
            "total_recharged": self.total_recharged,
            "total_spent": self.total_spent,
            "withdrawable_amount": self.withdrawable_amount,
            "pending_withdrawal": self.pending_withdrawal,
            "total_withdrawn": self.total_withdrawn,
            "total_earned": self.total_earned,
        }


@dataclass(slots=True)
class WalletSnapshot:
    owner_id: str
    owner_kind: OwnerKind
    currency: str
    figures: AccountFigures
    version: int
    updated_at: Optional[datetime]

    @property
    def current_balance(self) -> int:
        return self.figures.current_balance(self.owner_kind)

    @classmethod
    def from_orm(cls, instance: orm.WalletAccount) -> "WalletSnapshot":
        return cls(
            owner_id=instance.owner_id,
            owner_kind=OwnerKind(instance.owner_kind),
            currency=instance.currency,
            figures=AccountFigures.from_orm(instance),
            version=instance.version or 0,
            updated_at=as_utc(instance.updated_at),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "owner_id": self.owner_id,
            "owner_kind": self.owner_kind.value,
            "currency": self.currency,
            "version": self.version,
        }
        if self.owner_kind is OwnerKind.CLIENT:
            payload.update(
                balance=self.figures.balance,
                total_recharged=self.figures.total_recharged,
                total_spent=self.figures.total_spent,
            )
        else:
            payload.update(
                withdrawable_amount=self.figures.withdrawable_amount,
                pending_withdrawal=self.figures.pending_withdrawal,
                total_withdrawn=self.figures.total_withdrawn,
                total_earned=self.figures.total_earned,
            )
        return payload


@dataclass(slots=True)
class LedgerEntry:
    id: str
    entry_id: str
    owner_id: str
    owner_kind: OwnerKind
    type: EntryType
    direction: Direction
    amount: int
    currency: str
    balance_before: int
    balance_after: int
    sequence: Optional[int]
    status: EntryStatus
    linked_entry_id: Optional[str]
    reversal_of_id: Optional[str]
    external_reference: Optional[str]
    idempotency_key: Optional[str]
    description: Optional[str]
    metadata: Optional[dict[str, Any]]
    created_at: Optional[datetime]

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction is Direction.CREDIT else -self.amount

    @classmethod
    def from_orm(cls, instance: orm.LedgerEntry) -> "LedgerEntry":
        return cls(
            id=instance.id,
            entry_id=instance.entry_id,
            owner_id=instance.owner_id,
            owner_kind=OwnerKind(instance.owner_kind),
            type=EntryType(instance.type),
            direction=Direction(instance.direction),
            amount=instance.amount,
            currency=instance.currency,
            balance_before=instance.balance_before,
            balance_after=instance.balance_after,
            sequence=instance.sequence,
            status=EntryStatus(instance.status),
            linked_entry_id=instance.linked_entry_id,
            reversal_of_id=instance.reversal_of_id,
            external_reference=instance.external_reference,
            idempotency_key=instance.idempotency_key,
            description=instance.description,
            metadata=json.loads(instance.meta) if instance.meta else None,
            created_at=as_utc(instance.created_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "owner_id": self.owner_id,
            "type": self.type.value,
            "direction": self.direction.value,
            "amount": self.amount,
            "status": self.status.value,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
        }


@dataclass(slots=True)
class LedgerAudit:
    owner_id: str
    replayed_balance: int
    latest_entry_balance: int
    aggregate_balance: int
    entries_replayed: int

    @property
    def consistent(self) -> bool:
        return self.replayed_balance == self.latest_entry_balance == self.aggregate_balance
