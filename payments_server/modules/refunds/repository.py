"""Repository protocol for refund records and cash-out requests."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from payments_server.db.models import RefundRecord as RefundRecordModel
from payments_server.db.models import WalletRefundRequest as WalletRefundRequestModel


class RefundRepository(Protocol):
    async def create_record(self, **fields: Any) -> RefundRecordModel:
        ...

    async def get_record(self, refund_id: str, *, fresh: bool = False) -> RefundRecordModel | None:
        ...

    async def get_record_by_key(self, idempotency_key: str) -> RefundRecordModel | None:
        ...

    async def refunded_total(self, original_entry_id: str, statuses: Sequence[str]) -> int:
        ...

    async def transition_record(
        self,
        refund_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any],
    ) -> RefundRecordModel | None:
        ...

    async def list_records(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        channel: str | None,
        original_entry_id: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[RefundRecordModel]:
        ...

    async def count_records(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        channel: str | None,
        original_entry_id: str | None,
    ) -> int:
        ...

    async def create_request(self, **fields: Any) -> WalletRefundRequestModel:
        ...

    async def get_request(self, refund_id: str, *, fresh: bool = False) -> WalletRefundRequestModel | None:
        ...

    async def transition_request(
        self,
        refund_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any],
    ) -> WalletRefundRequestModel | None:
        ...

    async def list_requests(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[WalletRefundRequestModel]:
        ...

    async def count_requests(self, *, status: str | None, owner_id: str | None) -> int:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...
