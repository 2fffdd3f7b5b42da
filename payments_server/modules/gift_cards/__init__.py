"""Bounded-use prepaid gift cards."""

from .models import GIFT_CARD_TRANSITIONS, GiftCard, GiftCardStatus, Redemption, normalize_code
from .service import GiftCardService

__all__ = ["GIFT_CARD_TRANSITIONS", "GiftCard", "GiftCardService", "GiftCardStatus", "Redemption", "normalize_code"]
