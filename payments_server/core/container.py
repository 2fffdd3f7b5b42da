"""Simple dependency container for wiring core services."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from payments_server.core.config import Settings, get_settings
from payments_server.infrastructure.database.session import get_engine
from payments_server.infrastructure.gateway import PaymentGateway, RazorpayGateway
from payments_server.infrastructure.notifications import NotificationDispatcher, Notifier
from payments_server.modules.common.locks import OwnerLockRegistry


@dataclass(slots=True)
class ApplicationContainer:
    settings: Settings
    locks: OwnerLockRegistry = field(default_factory=OwnerLockRegistry)
    gateway: Optional[PaymentGateway] = None
    notifier: Optional[Notifier] = None

    def init_infrastructure(self) -> None:
        """Ensure infrastructure singletons (database engine, collaborators) are initialised."""
        get_engine()
        if self.gateway is None:
            self.gateway = RazorpayGateway(self.settings.gateway)
        if self.notifier is None:
            self.notifier = NotificationDispatcher(self.settings.notifications)

    async def aclose(self) -> None:
        if self.notifier is not None:
            await self.notifier.drain()
        if self.gateway is not None:
            await self.gateway.aclose()


@lru_cache()
def get_container() -> ApplicationContainer:
    container = ApplicationContainer(settings=get_settings())
    container.init_infrastructure()
    return container


__all__ = ["ApplicationContainer", "get_container"]
