"""Wallet ledger: append-only entries and the aggregates kept in lockstep with them."""

from .models import (
    AccountFigures,
    Direction,
    EntryStatus,
    EntryType,
    LedgerAudit,
    LedgerEntry,
    OwnerKind,
    WalletSnapshot,
)
from .service import LedgerService, validate_amount

__all__ = [
    "AccountFigures",
    "Direction",
    "EntryStatus",
    "EntryType",
    "LedgerAudit",
    "LedgerEntry",
    "LedgerService",
    "OwnerKind",
    "WalletSnapshot",
    "validate_amount",
]
