"""Provider payout requests."""

from .models import PAYOUT_TRANSITIONS, BankDetails, Payout, PayoutStats, PayoutStatus
from .service import PayoutService

__all__ = ["PAYOUT_TRANSITIONS", "BankDetails", "Payout", "PayoutService", "PayoutStats", "PayoutStatus"]
