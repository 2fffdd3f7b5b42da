"""Audit trail of privileged mutations."""

from .models import ActivityRecord, ActivityStatus
from .service import ActivityService

__all__ = ["ActivityRecord", "ActivityService", "ActivityStatus"]
