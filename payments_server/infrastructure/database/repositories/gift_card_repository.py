"""SQLAlchemy implementation for gift cards."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import case, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.db.models import GiftCard, GiftCardRedemption
from payments_server.modules.common.clock import utcnow


class SqlGiftCardRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, **fields: Any) -> GiftCard:
        card = GiftCard(**fields)
        self.session.add(card)
        await self.session.flush()
        return card

    async def get_by_code(self, code: str, *, fresh: bool = False) -> GiftCard | None:
        stmt = select(GiftCard).where(GiftCard.code == code)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def has_redeemed(self, gift_card_id: str, owner_id: str) -> bool:
        stmt = select(func.count()).select_from(GiftCardRedemption).where(
            GiftCardRedemption.gift_card_id == gift_card_id,
            GiftCardRedemption.owner_id == owner_id,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one()) > 0

    async def claim_redemption(self, gift_card_id: str) -> GiftCard | None:
        """Take one redemption slot; flips the card to exhausted on the last one."""
        stmt = (
            update(GiftCard)
            .where(
                GiftCard.id == gift_card_id,
                GiftCard.status == "active",
                GiftCard.redemptions_count < GiftCard.max_redemptions,
            )
            .values(
                redemptions_count=GiftCard.redemptions_count + 1,
                status=case(
                    (GiftCard.redemptions_count + 1 >= GiftCard.max_redemptions, "exhausted"),
                    else_=GiftCard.status,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="fetch")
            .returning(GiftCard)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def add_redemption(self, *, gift_card_id: str, owner_id: str, ledger_entry_id: str) -> GiftCardRedemption:
        redemption = GiftCardRedemption(gift_card_id=gift_card_id, owner_id=owner_id, ledger_entry_id=ledger_entry_id)
        self.session.add(redemption)
        await self.session.flush()
        return redemption

    async def set_status(self, gift_card_id: str, *, from_statuses: Sequence[str], to_status: str) -> GiftCard | None:
        stmt = (
            update(GiftCard)
            .where(GiftCard.id == gift_card_id, GiftCard.status.in_(list(from_statuses)))
            .values(status=to_status, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
            .returning(GiftCard)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def _filtered(self, stmt, *, status: str | None, search: str | None):
        if status and status != "all":
            stmt = stmt.where(GiftCard.status == status)
        if search:
            stmt = stmt.where(GiftCard.code.ilike(f"%{search.strip().upper()}%"))
        return stmt

    async def list_cards(
        self,
        *,
        status: str | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[GiftCard]:
        stmt = self._filtered(select(GiftCard), status=status, search=search)
        stmt = stmt.order_by(desc(GiftCard.created_at)).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_cards(self, *, status: str | None, search: str | None) -> int:
        stmt = self._filtered(select(func.count()).select_from(GiftCard), status=status, search=search)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
