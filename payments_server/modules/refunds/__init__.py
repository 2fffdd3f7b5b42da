"""Refund reconciliation and wallet cash-out requests."""

from .models import (
    CASH_OUT_TRANSITIONS,
    REFUND_TRANSITIONS,
    CashOutRequest,
    CashOutStatus,
    Refund,
    RefundChannel,
    RefundStatus,
    resolve_refund_amount,
)
from .service import CashOutService, RefundService

__all__ = [
    "CASH_OUT_TRANSITIONS",
    "REFUND_TRANSITIONS",
    "CashOutRequest",
    "CashOutService",
    "CashOutStatus",
    "Refund",
    "RefundChannel",
    "RefundService",
    "RefundStatus",
    "resolve_refund_amount",
]
