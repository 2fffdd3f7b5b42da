"""SQLAlchemy repository implementations."""

from .activity_repository import SqlActivityRepository
from .gift_card_repository import SqlGiftCardRepository
from .ledger_repository import SqlLedgerRepository
from .payout_repository import SqlPayoutRepository
from .refund_repository import SqlRefundRepository

__all__ = [
    "SqlActivityRepository",
    "SqlGiftCardRepository",
    "SqlLedgerRepository",
    "SqlPayoutRepository",
    "SqlRefundRepository",
]
