"""
Pytest configuration and fixtures for the payments service tests.

Every test gets its own SQLite file so separate sessions use separate
connections, the same way concurrent requests do in production.
"""

from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payments_server.core.config import DatabaseSettings, SecuritySettings, Settings
from payments_server.core.container import ApplicationContainer
from payments_server.db import models  # noqa: F401
from payments_server.infrastructure.database.base import Base
from payments_server.infrastructure.gateway import GatewayRefundResult, GatewayRefundStatus
from payments_server.modules.gift_cards import GiftCardService
from payments_server.modules.ledger import EntryType, LedgerService, OwnerKind
from payments_server.modules.payouts import PayoutService
from payments_server.modules.refunds import CashOutService, RefundService

BANK_DETAILS = {
    "account_holder_name": "Asha Verma",
    "account_number": "123456789012",
    "ifsc_code": "HDFC0001234",
    "bank_name": "HDFC Bank",
}


class FakeGateway:
    """Stands in for the payment gateway; answers with ``next_status`` or raises ``error``."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.next_status = GatewayRefundStatus.PROCESSED
        self.error: Optional[Exception] = None

    async def refund(self, payment_reference, amount, reason, *, idempotency_key=None):
        self.calls.append(
            {
                "payment_reference": payment_reference,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )
        if self.error is not None:
            raise self.error
        return GatewayRefundResult(refund_id=f"rfnd_{len(self.calls)}", status=self.next_status, amount=amount)

    async def aclose(self) -> None:
        return None


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []

    def notify(self, owner_id, kind, payload) -> None:
        self.sent.append((owner_id, kind, payload))

    async def drain(self) -> None:
        return None

    def kinds(self) -> list[str]:
        return [kind for _, kind, _ in self.sent]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}"),
        security=SecuritySettings(secret_key="test-secret-key"),
    )


@pytest.fixture
async def engine(settings):
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def container(settings, gateway, notifier) -> ApplicationContainer:
    return ApplicationContainer(settings=settings, gateway=gateway, notifier=notifier)


@pytest.fixture
def ledger(session, container) -> LedgerService:
    return LedgerService.with_session(session, container)


@pytest.fixture
def payouts(session, container) -> PayoutService:
    return PayoutService.with_session(session, container)


@pytest.fixture
def refunds(session, container) -> RefundService:
    return RefundService.with_session(session, container)


@pytest.fixture
def cash_out(session, container) -> CashOutService:
    return CashOutService.with_session(session, container)


@pytest.fixture
def gift_cards(session, container) -> GiftCardService:
    return GiftCardService.with_session(session, container)


async def credit_provider(ledger: LedgerService, owner_id: str, amount: int):
    return await ledger.append(owner_id, amount=amount, entry_type=EntryType.EARNING, owner_kind=OwnerKind.PROVIDER)


async def charge_client(ledger: LedgerService, owner_id: str, amount: int, payment_reference: str = "pay_123"):
    """Top up a client wallet and spend it on a gateway-paid charge."""
    await ledger.append(
        owner_id,
        amount=amount,
        entry_type=EntryType.RECHARGE,
        owner_kind=OwnerKind.CLIENT,
        external_reference=payment_reference,
    )
    return await ledger.append(
        owner_id,
        amount=amount,
        entry_type=EntryType.CHARGE,
        external_reference=payment_reference,
    )
