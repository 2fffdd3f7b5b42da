"""Best-effort audit recording; a failed write never breaks the caller."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.infrastructure.database.repositories.activity_repository import SqlActivityRepository
from payments_server.modules.common.pagination import Page, PageRequest

from .models import ActivityRecord, ActivityStatus
from .repository import ActivityRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActivityService:
    repository: ActivityRepository

    @classmethod
    def with_session(cls, session: AsyncSession) -> "ActivityService":
        return cls(SqlActivityRepository(session))

    async def record(
        self,
        *,
        actor_id: Optional[str],
        action: str,
        target_id: Optional[str],
        target_type: Optional[str],
        status: ActivityStatus = ActivityStatus.SUCCESS,
        details: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
        module: str = "payments",
    ) -> Optional[ActivityRecord]:
        if not actor_id:
            logger.warning("Skipping activity log without actor for action %s", action)
            return None
        try:
            model = await self.repository.add(
                actor_id=actor_id,
                action=action,
                module=module,
                target_id=target_id,
                target_type=target_type,
                status=status.value,
                details=details,
                error_message=error_message,
            )
            await self.repository.commit()
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Failed to record activity %s on %s: %s", action, target_id, exc)
            try:
                await self.repository.rollback()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Rollback after failed activity write also failed")
            return None
        logger.debug("Activity logged: %s by %s (%s)", action, actor_id, status.value)
        return ActivityRecord.from_orm(model)

    async def list_logs(
        self,
        request: PageRequest,
        *,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        target_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Page[ActivityRecord]:
        filters = {"actor_id": actor_id, "action": action, "target_type": target_type, "status": status}
        rows = await self.repository.list_logs(**filters, limit=request.limit, offset=request.offset)
        total = await self.repository.count_logs(**filters)
        return Page.build([ActivityRecord.from_orm(row) for row in rows], request, total)
