"""SQLAlchemy implementation for refund records and cash-out requests."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.db.models import RefundRecord, WalletRefundRequest


class SqlRefundRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # refund records

    async def create_record(self, **fields: Any) -> RefundRecord:
        record = RefundRecord(**fields)
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_record(self, refund_id: str, *, fresh: bool = False) -> RefundRecord | None:
        stmt = select(RefundRecord).where(RefundRecord.refund_id == refund_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_record_by_key(self, idempotency_key: str) -> RefundRecord | None:
        stmt = select(RefundRecord).where(RefundRecord.idempotency_key == idempotency_key)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def refunded_total(self, original_entry_id: str, statuses: Sequence[str]) -> int:
        stmt = select(func.coalesce(func.sum(RefundRecord.amount), 0)).where(
            RefundRecord.original_entry_id == original_entry_id,
            RefundRecord.status.in_(list(statuses)),
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def transition_record(
        self,
        refund_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any],
    ) -> RefundRecord | None:
        stmt = (
            update(RefundRecord)
            .where(RefundRecord.refund_id == refund_id, RefundRecord.status.in_(list(from_statuses)))
            .values(status=to_status, **values)
            .execution_options(synchronize_session="fetch")
            .returning(RefundRecord)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def _filtered_records(self, stmt, *, status, owner_id, channel, original_entry_id):
        if status and status != "all":
            stmt = stmt.where(RefundRecord.status == status)
        if owner_id:
            stmt = stmt.where(RefundRecord.owner_id == owner_id)
        if channel:
            stmt = stmt.where(RefundRecord.channel == channel)
        if original_entry_id:
            stmt = stmt.where(RefundRecord.original_entry_id == original_entry_id)
        return stmt

    async def list_records(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        channel: str | None,
        original_entry_id: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[RefundRecord]:
        stmt = self._filtered_records(
            select(RefundRecord),
            status=status,
            owner_id=owner_id,
            channel=channel,
            original_entry_id=original_entry_id,
        )
        stmt = stmt.order_by(desc(RefundRecord.created_at)).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_records(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        channel: str | None,
        original_entry_id: str | None,
    ) -> int:
        stmt = self._filtered_records(
            select(func.count()).select_from(RefundRecord),
            status=status,
            owner_id=owner_id,
            channel=channel,
            original_entry_id=original_entry_id,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    # cash-out requests

    async def create_request(self, **fields: Any) -> WalletRefundRequest:
        request = WalletRefundRequest(**fields)
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_request(self, refund_id: str, *, fresh: bool = False) -> WalletRefundRequest | None:
        stmt = select(WalletRefundRequest).where(WalletRefundRequest.refund_id == refund_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def transition_request(
        self,
        refund_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any],
    ) -> WalletRefundRequest | None:
        stmt = (
            update(WalletRefundRequest)
            .where(
                WalletRefundRequest.refund_id == refund_id,
                WalletRefundRequest.status.in_(list(from_statuses)),
            )
            .values(status=to_status, **values)
            .execution_options(synchronize_session="fetch")
            .returning(WalletRefundRequest)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def _filtered_requests(self, stmt, *, status, owner_id):
        if status and status != "all":
            stmt = stmt.where(WalletRefundRequest.status == status)
        if owner_id:
            stmt = stmt.where(WalletRefundRequest.owner_id == owner_id)
        return stmt

    async def list_requests(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[WalletRefundRequest]:
        stmt = self._filtered_requests(select(WalletRefundRequest), status=status, owner_id=owner_id)
        stmt = stmt.order_by(desc(WalletRefundRequest.created_at)).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_requests(self, *, status: str | None, owner_id: str | None) -> int:
        stmt = self._filtered_requests(
            select(func.count()).select_from(WalletRefundRequest),
            status=status,
            owner_id=owner_id,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
