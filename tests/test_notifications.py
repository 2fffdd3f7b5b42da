import json

import httpx

from payments_server.core.config import NotificationSettings
from payments_server.infrastructure.notifications import NotificationDispatcher


async def test_notifications_are_posted_to_webhook():
    received: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(202)

    dispatcher = NotificationDispatcher(
        NotificationSettings(webhook_url="https://notify.test/hooks/payments"),
        transport=httpx.MockTransport(handler),
    )
    dispatcher.notify("provider-1", "payout.completed", {"payout_id": "PAYOUT1", "amount": 700_00})
    await dispatcher.drain()

    assert received == [
        {
            "owner_id": "provider-1",
            "kind": "payout.completed",
            "payload": {"payout_id": "PAYOUT1", "amount": 700_00},
        }
    ]


async def test_delivery_failures_are_logged_not_raised(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    dispatcher = NotificationDispatcher(
        NotificationSettings(webhook_url="https://notify.test/hooks/payments"),
        transport=httpx.MockTransport(handler),
    )
    dispatcher.notify("client-1", "refund.completed", {"refund_id": "RFND1"})
    await dispatcher.drain()

    assert "refund.completed" in caplog.text


async def test_without_webhook_notifications_are_only_logged(caplog):
    caplog.set_level("INFO", logger="payments_server.infrastructure.notifications.dispatcher")
    dispatcher = NotificationDispatcher(NotificationSettings())

    dispatcher.notify("client-1", "giftcard.redeemed", {"code": "WELCOME"})
    await dispatcher.drain()

    assert "giftcard.redeemed" in caplog.text
