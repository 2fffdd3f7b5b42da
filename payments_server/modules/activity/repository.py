"""Repository protocol for persisting activity logs."""

from __future__ import annotations

from typing import Protocol, Sequence

from payments_server.db.models import ActivityLog as ActivityLogModel


class ActivityRepository(Protocol):
    async def add(
        self,
        *,
        actor_id: str,
        action: str,
        module: str,
        target_id: str | None,
        target_type: str | None,
        status: str,
        details: dict | None,
        error_message: str | None,
    ) -> ActivityLogModel:
        ...

    async def list_logs(
        self,
        *,
        actor_id: str | None,
        action: str | None,
        target_type: str | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[ActivityLogModel]:
        ...

    async def count_logs(
        self,
        *,
        actor_id: str | None,
        action: str | None,
        target_type: str | None,
        status: str | None,
    ) -> int:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...
