"""SQLAlchemy implementation for the ledger store."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.db.models import LedgerEntry, RefundRecord, WalletAccount
from payments_server.modules.common.clock import utcnow


class SqlLedgerRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_account(self, owner_id: str, *, fresh: bool = False) -> WalletAccount | None:
        stmt = select(WalletAccount).where(WalletAccount.owner_id == owner_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_account(self, owner_id: str, owner_kind: str, currency: str) -> WalletAccount:
        account = WalletAccount(owner_id=owner_id, owner_kind=owner_kind, currency=currency, version=0)
        self.session.add(account)
        await self.session.flush()
        return account

    async def update_account_figures(
        self,
        owner_id: str,
        *,
        expected_version: int,
        figures: dict[str, int],
    ) -> WalletAccount | None:
        stmt = (
            update(WalletAccount)
            .where(WalletAccount.owner_id == owner_id, WalletAccount.version == expected_version)
            .values(**figures, version=expected_version + 1, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
            .returning(WalletAccount)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def latest_balance(self, owner_id: str) -> int | None:
        stmt = (
            select(LedgerEntry.balance_after)
            .where(
                LedgerEntry.owner_id == owner_id,
                LedgerEntry.status == "completed",
                LedgerEntry.sequence.is_not(None),
            )
            .order_by(desc(LedgerEntry.sequence))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def active_holds_total(self, owner_id: str) -> int:
        stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.owner_id == owner_id,
            LedgerEntry.type == "hold",
            LedgerEntry.status == "pending",
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def add_entry(self, **fields: Any) -> LedgerEntry:
        entry = LedgerEntry(**fields)
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_entry(self, entry_id: str, *, fresh: bool = False) -> LedgerEntry | None:
        stmt = select(LedgerEntry).where(LedgerEntry.entry_id == entry_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_entry_by_idempotency_key(self, key: str) -> LedgerEntry | None:
        stmt = select(LedgerEntry).where(LedgerEntry.idempotency_key == key)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_reversal_of(self, entry_id: str) -> LedgerEntry | None:
        stmt = select(LedgerEntry).where(LedgerEntry.reversal_of_id == entry_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def refund_claims_total(self, entry_id: str) -> int:
        """Amount refunded or still being refunded against an original entry."""
        stmt = select(func.coalesce(func.sum(RefundRecord.amount), 0)).where(
            RefundRecord.original_entry_id == entry_id,
            RefundRecord.status.in_(["pending", "completed"]),
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def refund_record_for_credit(self, entry_id: str) -> RefundRecord | None:
        stmt = select(RefundRecord).where(RefundRecord.ledger_entry_id == entry_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def transition_entry(
        self,
        entry_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any] | None = None,
    ) -> LedgerEntry | None:
        stmt = (
            update(LedgerEntry)
            .where(LedgerEntry.entry_id == entry_id, LedgerEntry.status.in_(list(from_statuses)))
            .values(status=to_status, updated_at=utcnow(), **(values or {}))
            .execution_options(synchronize_session="fetch")
            .returning(LedgerEntry)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def _filtered(self, stmt, *, owner_id: str | None, entry_type: str | None, status: str | None):
        if owner_id:
            stmt = stmt.where(LedgerEntry.owner_id == owner_id)
        if entry_type and entry_type != "all":
            stmt = stmt.where(LedgerEntry.type == entry_type)
        if status and status != "all":
            stmt = stmt.where(LedgerEntry.status == status)
        return stmt

    async def list_entries(
        self,
        *,
        owner_id: str | None,
        entry_type: str | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[LedgerEntry]:
        stmt = self._filtered(select(LedgerEntry), owner_id=owner_id, entry_type=entry_type, status=status)
        stmt = stmt.order_by(desc(LedgerEntry.created_at)).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_entries(self, *, owner_id: str | None, entry_type: str | None, status: str | None) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(LedgerEntry),
            owner_id=owner_id,
            entry_type=entry_type,
            status=status,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def completed_totals_by_type(self) -> dict[str, int]:
        stmt = (
            select(LedgerEntry.type, func.coalesce(func.sum(LedgerEntry.amount), 0))
            .where(LedgerEntry.status == "completed", LedgerEntry.reversal_of_id.is_(None))
            .group_by(LedgerEntry.type)
        )
        result = await self.session.execute(stmt)
        return {row[0]: int(row[1]) for row in result.all()}

    async def completed_movements(self, owner_id: str) -> Sequence[tuple[str, int]]:
        stmt = (
            select(LedgerEntry.direction, LedgerEntry.amount)
            .where(
                LedgerEntry.owner_id == owner_id,
                LedgerEntry.status == "completed",
                LedgerEntry.sequence.is_not(None),
            )
            .order_by(LedgerEntry.sequence)
        )
        result = await self.session.execute(stmt)
        return [(row[0], int(row[1])) for row in result.all()]

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
