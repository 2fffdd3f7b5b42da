"""Repository protocol for gift cards and their redemptions."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from payments_server.db.models import GiftCard as GiftCardModel
from payments_server.db.models import GiftCardRedemption as GiftCardRedemptionModel


class GiftCardRepository(Protocol):
    async def create(self, **fields: Any) -> GiftCardModel:
        ...

    async def get_by_code(self, code: str, *, fresh: bool = False) -> GiftCardModel | None:
        ...

    async def has_redeemed(self, gift_card_id: str, owner_id: str) -> bool:
        ...

    async def claim_redemption(self, gift_card_id: str) -> GiftCardModel | None:
        ...

    async def add_redemption(self, *, gift_card_id: str, owner_id: str, ledger_entry_id: str) -> GiftCardRedemptionModel:
        ...

    async def set_status(self, gift_card_id: str, *, from_statuses: Sequence[str], to_status: str) -> GiftCardModel | None:
        ...

    async def list_cards(
        self,
        *,
        status: str | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[GiftCardModel]:
        ...

    async def count_cards(self, *, status: str | None, search: str | None) -> int:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...
