import json

import httpx
import pytest

from payments_server.core.config import GatewaySettings
from payments_server.infrastructure.gateway import GatewayRefundStatus, RazorpayGateway
from payments_server.modules.common.exceptions import ExternalGatewayFailure


def make_gateway(handler) -> RazorpayGateway:
    settings = GatewaySettings(base_url="https://gateway.test/v1", key_id="key", key_secret="secret")
    return RazorpayGateway(settings, transport=httpx.MockTransport(handler))


async def test_refund_posts_amount_and_parses_result():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "rfnd_abc", "status": "processed", "amount": 5_000})

    gateway = make_gateway(handler)
    result = await gateway.refund("pay_123", 5_000, "Session cancelled", idempotency_key="gateway:RFND1")
    await gateway.aclose()

    assert result.refund_id == "rfnd_abc"
    assert result.status is GatewayRefundStatus.PROCESSED
    assert result.confirmed
    [request] = seen
    assert request.method == "POST"
    assert request.url.path == "/v1/payments/pay_123/refund"
    assert request.headers["authorization"].startswith("Basic ")
    assert json.loads(request.content) == {
        "amount": 5_000,
        "notes": {"reason": "Session cancelled"},
        "receipt": "gateway:RFND1",
    }


async def test_pending_status_is_passed_through():
    gateway = make_gateway(lambda request: httpx.Response(200, json={"id": "rfnd_1", "status": "pending"}))
    result = await gateway.refund("pay_1", 100, "Refund")
    assert result.status is GatewayRefundStatus.PENDING
    assert not result.confirmed


async def test_error_response_raises_gateway_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"description": "The amount is invalid"}})

    with pytest.raises(ExternalGatewayFailure) as exc_info:
        await make_gateway(handler).refund("pay_1", 100, "Refund")
    assert "The amount is invalid" in exc_info.value.message


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"status": "processed"}),
        httpx.Response(200, json={"id": "rfnd_1", "status": "settled"}),
        httpx.Response(502, text="bad gateway"),
    ],
)
async def test_malformed_answers_fail_closed(response):
    with pytest.raises(ExternalGatewayFailure):
        await make_gateway(lambda request: response).refund("pay_1", 100, "Refund")


async def test_transport_errors_raise_gateway_failure():
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalGatewayFailure) as exc_info:
        await make_gateway(timeout).refund("pay_1", 100, "Refund")
    assert "timed out" in exc_info.value.message

    with pytest.raises(ExternalGatewayFailure):
        await make_gateway(refused).refund("pay_1", 100, "Refund")
