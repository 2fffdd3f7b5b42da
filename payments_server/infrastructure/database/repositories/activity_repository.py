"""SQLAlchemy implementation for the activity log."""

from __future__ import annotations

import json
from typing import Sequence

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.db.models import ActivityLog


class SqlActivityRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> ActivityLog:
        log = ActivityLog(
            actor_id=actor_id,
            action=action,
            module=module,
            target_id=target_id,
            target_type=target_type,
            status=status,
            details=json.dumps(details, ensure_ascii=False, default=str) if details else None,
            error_message=error_message,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    def _filtered(self, stmt, *, actor_id, action, target_type, status):
        if actor_id:
            stmt = stmt.where(ActivityLog.actor_id == actor_id)
        if action:
            stmt = stmt.where(ActivityLog.action.ilike(f"%{action}%"))
        if target_type:
            stmt = stmt.where(ActivityLog.target_type == target_type)
        if status and status != "all":
            stmt = stmt.where(ActivityLog.status == status)
        return stmt

    async def list_logs(
        self,
        *,
        actor_id: str | None,
        action: str | None,
        target_type: str | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[ActivityLog]:
        stmt = self._filtered(
            select(ActivityLog), actor_id=actor_id, action=action, target_type=target_type, status=status
        )
        stmt = stmt.order_by(desc(ActivityLog.created_at), desc(ActivityLog.id)).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_logs(
        self,
        *,
        actor_id: str | None,
        action: str | None,
        target_type: str | None,
        status: str | None,
    ) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(ActivityLog),
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            status=status,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
