"""Activity log domain model."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from payments_server.db import models as orm
from payments_server.modules.common.clock import as_utc


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class ActivityRecord:
    id: int
    actor_id: str
    action: str
    module: str
    target_id: Optional[str]
    target_type: Optional[str]
    status: ActivityStatus
    details: Optional[dict[str, Any]]
    error_message: Optional[str]
    created_at: Optional[datetime]

    @classmethod
    def from_orm(cls, instance: orm.ActivityLog) -> "ActivityRecord":
        payload = None
        if instance.details:
            try:
                payload = json.loads(instance.details)
            except json.JSONDecodeError:
                payload = None
        return cls(
            id=int(instance.id),
            actor_id=instance.actor_id,
            action=instance.action,
            module=instance.module,
            target_id=instance.target_id,
            target_type=instance.target_type,
            status=ActivityStatus(instance.status),
            details=payload,
            error_message=instance.error_message,
            created_at=as_utc(instance.created_at),
        )
