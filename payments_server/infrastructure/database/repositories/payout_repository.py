"""SQLAlchemy implementation for payout requests."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.db.models import PayoutRequest


class SqlPayoutRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, **fields: Any) -> PayoutRequest:
        payout = PayoutRequest(**fields)
        self.session.add(payout)
        await self.session.flush()
        return payout

    async def get(self, payout_id: str, *, fresh: bool = False) -> PayoutRequest | None:
        stmt = select(PayoutRequest).where(PayoutRequest.payout_id == payout_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def transition(
        self,
        payout_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any],
    ) -> PayoutRequest | None:
        stmt = (
            update(PayoutRequest)
            .where(PayoutRequest.payout_id == payout_id, PayoutRequest.status.in_(list(from_statuses)))
            .values(status=to_status, **values)
            .execution_options(synchronize_session="fetch")
            .returning(PayoutRequest)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def _filtered(self, stmt, *, status: str | None, owner_id: str | None):
        if status and status != "all":
            stmt = stmt.where(PayoutRequest.status == status)
        if owner_id:
            stmt = stmt.where(PayoutRequest.owner_id == owner_id)
        return stmt

    async def list_payouts(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[PayoutRequest]:
        stmt = self._filtered(select(PayoutRequest), status=status, owner_id=owner_id)
        stmt = stmt.order_by(desc(PayoutRequest.created_at)).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_payouts(self, *, status: str | None, owner_id: str | None) -> int:
        stmt = self._filtered(select(func.count()).select_from(PayoutRequest), status=status, owner_id=owner_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def totals_by_status(self) -> dict[str, tuple[int, int]]:
        stmt = select(
            PayoutRequest.status,
            func.count(),
            func.coalesce(func.sum(PayoutRequest.amount), 0),
        ).group_by(PayoutRequest.status)
        result = await self.session.execute(stmt)
        return {row[0]: (int(row[1]), int(row[2])) for row in result.all()}

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
