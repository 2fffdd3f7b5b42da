"""Repository protocol for ledger persistence."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from payments_server.db.models import (
    LedgerEntry as LedgerEntryModel,
    RefundRecord as RefundRecordModel,
    WalletAccount as WalletAccountModel,
)


class LedgerRepository(Protocol):
    async def get_account(self, owner_id: str, *, fresh: bool = False) -> WalletAccountModel | None:
        ...

    async def create_account(self, owner_id: str, owner_kind: str, currency: str) -> WalletAccountModel:
        ...

    async def update_account_figures(
        self,
        owner_id: str,
        *,
        expected_version: int,
        figures: dict[str, int],
    ) -> WalletAccountModel | None:
        ...

    async def latest_balance(self, owner_id: str) -> int | None:
        ...

    async def active_holds_total(self, owner_id: str) -> int:
        ...

    async def add_entry(self, **fields: Any) -> LedgerEntryModel:
        ...

    async def get_entry(self, entry_id: str, *, fresh: bool = False) -> LedgerEntryModel | None:
        ...

    async def get_entry_by_idempotency_key(self, key: str) -> LedgerEntryModel | None:
        ...

    async def get_reversal_of(self, entry_id: str) -> LedgerEntryModel | None:
        ...

    async def refund_claims_total(self, entry_id: str) -> int:
        ...

    async def refund_record_for_credit(self, entry_id: str) -> RefundRecordModel | None:
        ...

    async def transition_entry(
        self,
        entry_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any] | None = None,
    ) -> LedgerEntryModel | None:
        ...

    async def list_entries(
        self,
        *,
        owner_id: str | None,
        entry_type: str | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[LedgerEntryModel]:
        ...

    async def count_entries(self, *, owner_id: str | None, entry_type: str | None, status: str | None) -> int:
        ...

    async def completed_totals_by_type(self) -> dict[str, int]:
        ...

    async def completed_movements(self, owner_id: str) -> Sequence[tuple[str, int]]:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...
