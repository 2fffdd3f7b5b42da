"""Notification dispatch that never feeds failures back into money movement."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx

from payments_server.core.config import NotificationSettings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, owner_id: str, kind: str, payload: dict[str, Any]) -> None:
        ...

    async def drain(self) -> None:
        ...


class NotificationDispatcher:
    """Posts ``{owner_id, kind, payload}`` to the notification service webhook.

    ``notify`` returns immediately; delivery runs as a background task and
    errors are logged. Without a webhook URL notifications are only logged.
    """

    def __init__(self, settings: NotificationSettings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._webhook_url = settings.webhook_url
        self._timeout = settings.timeout_seconds
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()

    def notify(self, owner_id: str, kind: str, payload: dict[str, Any]) -> None:
        if not self._webhook_url:
            logger.info("Notification %s for %s: %s", kind, owner_id, payload)
            return
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(owner_id, kind, payload))
        except RuntimeError:
            logger.warning("No running loop, dropping notification %s for %s", kind, owner_id)
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, owner_id: str, kind: str, payload: dict[str, Any]) -> None:
        body = {"owner_id": owner_id, "kind": kind, "payload": payload}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._webhook_url, json=body)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Notification %s for %s failed: %s", kind, owner_id, exc)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
