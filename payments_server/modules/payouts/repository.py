"""Repository protocol for payout requests."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from payments_server.db.models import PayoutRequest as PayoutRequestModel


class PayoutRepository(Protocol):
    async def create(self, **fields: Any) -> PayoutRequestModel:
        ...

    async def get(self, payout_id: str, *, fresh: bool = False) -> PayoutRequestModel | None:
        ...

    async def transition(
        self,
        payout_id: str,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, Any],
    ) -> PayoutRequestModel | None:
        ...

    async def list_payouts(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[PayoutRequestModel]:
        ...

    async def count_payouts(self, *, status: str | None, owner_id: str | None) -> int:
        ...

    async def totals_by_status(self) -> dict[str, tuple[int, int]]:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...
