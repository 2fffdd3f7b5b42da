"""HTTP surface: auth, error bodies and admin auditing."""

import httpx
import pytest

from payments_server.api.deps import get_app_container, get_db_session
from payments_server.core.security import create_access_token
from payments_server.main import create_app
from payments_server.modules.common.exceptions import ExternalGatewayFailure

from .conftest import BANK_DETAILS


def auth(account_id: str, role: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(account_id, role)}"}


ADMIN = auth("admin-1", "admin")
PROVIDER = auth("provider-1", "provider")
CLIENT = auth("client-1", "client")
OTHER_CLIENT = auth("client-2", "client")


@pytest.fixture
async def client(session_factory, container):
    app = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_app_container] = lambda: container
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


async def post_entry(client, **body):
    response = await client.post("/api/admin/ledger/entries", json=body, headers=ADMIN)
    assert response.status_code == 201, response.text
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_payout_flow_over_http(client):
    await post_entry(client, owner_id="provider-1", owner_kind="provider", type="earning", amount=1000_00)

    response = await client.post(
        "/api/provider/payouts",
        json={"amount": 700_00, "bank_details": BANK_DETAILS},
        headers=PROVIDER,
    )
    assert response.status_code == 201, response.text
    payout_id = response.json()["payout_id"]
    assert response.json()["status"] == "pending"

    response = await client.post(
        f"/api/admin/payouts/{payout_id}/complete",
        json={"transaction_reference": "UTR1"},
        headers=ADMIN,
    )
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "invalid_state_transition"
    assert body["current_state"] == "pending"
    assert body["entity"]["payout_id"] == payout_id

    for action in ("approve", "process"):
        response = await client.post(f"/api/admin/payouts/{payout_id}/{action}", json={}, headers=ADMIN)
        assert response.status_code == 200, response.text
    response = await client.post(
        f"/api/admin/payouts/{payout_id}/complete",
        json={"transaction_reference": "UTR1"},
        headers=ADMIN,
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "completed"
    assert response.json()["completed_by"] == "admin-1"

    earnings = (await client.get("/api/provider/earnings", headers=PROVIDER)).json()
    assert earnings["withdrawable_amount"] == 300_00
    assert earnings["total_withdrawn"] == 700_00

    mine = (await client.get("/api/provider/payouts", headers=PROVIDER)).json()
    assert mine["pagination"]["total"] == 1

    stats = (await client.get("/api/admin/payouts/stats", headers=ADMIN)).json()
    assert stats["completed_amount"] == 700_00


async def test_activity_log_records_failures_and_successes(client):
    await post_entry(client, owner_id="provider-1", owner_kind="provider", type="earning", amount=1000_00)
    payout_id = (
        await client.post(
            "/api/provider/payouts",
            json={"amount": 600_00, "bank_details": BANK_DETAILS},
            headers=PROVIDER,
        )
    ).json()["payout_id"]
    await client.post(f"/api/admin/payouts/{payout_id}/process", json={}, headers=ADMIN)
    await client.post(f"/api/admin/payouts/{payout_id}/approve", json={"notes": "ok"}, headers=ADMIN)

    response = await client.get("/api/admin/activity-logs", params={"target_type": "payout"}, headers=ADMIN)
    assert response.status_code == 200
    logs = {item["action"]: item for item in response.json()["items"]}
    assert logs["payout.process"]["status"] == "failed"
    assert "cannot process payout" in logs["payout.process"]["error_message"]
    assert logs["payout.approve"]["status"] == "success"
    assert logs["payout.approve"]["actor_id"] == "admin-1"

    failed = await client.get("/api/admin/activity-logs", params={"status": "failed"}, headers=ADMIN)
    assert failed.json()["pagination"]["total"] == 1


async def test_roles_are_enforced(client):
    response = await client.get("/api/provider/earnings", headers=CLIENT)
    assert response.status_code == 403
    response = await client.get("/api/admin/payouts", headers=PROVIDER)
    assert response.status_code == 403
    response = await client.get("/api/wallet")
    assert response.status_code in (401, 403)
    response = await client.get("/api/wallet", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


async def test_wallet_balance_and_entry_visibility(client):
    entry = await post_entry(client, owner_id="client-1", owner_kind="client", type="recharge", amount=5_000)

    wallet = (await client.get("/api/wallet", headers=CLIENT)).json()
    assert wallet["balance"] == 5_000
    assert wallet["available_balance"] == 5_000

    own = await client.get(f"/api/wallet/entries/{entry['entry_id']}", headers=CLIENT)
    assert own.status_code == 200
    foreign = await client.get(f"/api/wallet/entries/{entry['entry_id']}", headers=OTHER_CLIENT)
    assert foreign.status_code == 404
    assert foreign.json()["error"] == "not_found"

    listed = (await client.get("/api/wallet/entries", params={"type": "recharge"}, headers=CLIENT)).json()
    assert [item["entry_id"] for item in listed["items"]] == [entry["entry_id"]]


async def test_insufficient_balance_is_a_conflict(client):
    await post_entry(client, owner_id="client-1", owner_kind="client", type="recharge", amount=1_000)
    response = await client.post(
        "/api/admin/ledger/entries",
        json={"owner_id": "client-1", "owner_kind": "client", "type": "deduction", "amount": 1_500},
        headers=ADMIN,
    )
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "insufficient_balance"
    assert (body["required"], body["available"]) == (1_500, 1_000)


async def test_refund_percentage_out_of_range_is_unprocessable(client, gateway):
    await post_entry(
        client,
        owner_id="client-1",
        owner_kind="client",
        type="recharge",
        amount=50_000,
        external_reference="pay_9",
    )
    charge = await post_entry(
        client,
        owner_id="client-1",
        owner_kind="client",
        type="charge",
        amount=50_000,
        external_reference="pay_9",
    )

    response = await client.post(
        "/api/admin/refunds",
        json={"original_entry_id": charge["entry_id"], "percentage": 0},
        headers=ADMIN,
    )
    assert response.status_code == 422
    assert response.json()["field"] == "percentage"
    assert gateway.calls == []

    response = await client.post(
        "/api/admin/refunds",
        json={"original_entry_id": charge["entry_id"], "percentage": 100},
        headers=ADMIN,
    )
    assert response.status_code == 201, response.text
    assert response.json()["status"] == "completed"
    wallet = (await client.get("/api/admin/wallets/client-1", headers=ADMIN)).json()
    assert wallet["balance"] == 50_000


async def test_gateway_failure_maps_to_bad_gateway(client, gateway):
    paid = {"owner_id": "client-1", "owner_kind": "client", "amount": 900, "external_reference": "pay_1"}
    await post_entry(client, type="recharge", **paid)
    charge = await post_entry(client, type="charge", **paid)
    gateway.error = ExternalGatewayFailure("gateway unreachable")

    response = await client.post("/api/admin/refunds", json={"original_entry_id": charge["entry_id"]}, headers=ADMIN)

    assert response.status_code == 502
    assert response.json()["error"] == "gateway_failure"


async def test_gift_card_redemption_over_http(client):
    response = await client.post(
        "/api/admin/gift-cards",
        json={"code": "launch-100", "amount": 10_000},
        headers=ADMIN,
    )
    assert response.status_code == 201, response.text
    assert response.json()["code"] == "LAUNCH-100"

    duplicate = await client.post("/api/admin/gift-cards", json={"code": "LAUNCH-100", "amount": 1}, headers=ADMIN)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "duplicate_code"

    response = await client.post("/api/wallet/gift-cards/redeem", json={"code": "launch-100"}, headers=CLIENT)
    assert response.status_code == 200, response.text
    assert response.json()["entry"]["type"] == "giftcard"

    response = await client.post("/api/wallet/gift-cards/redeem", json={"code": "LAUNCH-100"}, headers=OTHER_CLIENT)
    assert response.status_code == 409
    assert response.json()["error"] == "gift_card_exhausted"

    response = await client.post("/api/wallet/gift-cards/redeem", json={"code": "MISSING"}, headers=CLIENT)
    assert response.status_code == 404


async def test_cash_out_request_over_http(client):
    await post_entry(client, owner_id="client-1", owner_kind="client", type="recharge", amount=8_000)

    response = await client.post("/api/wallet/refund-requests", json={"amount": 3_000}, headers=CLIENT)
    assert response.status_code == 201, response.text
    refund_id = response.json()["refund_id"]

    response = await client.post(f"/api/admin/refund-requests/{refund_id}/approve", json={}, headers=ADMIN)
    assert response.json()["amount_approved"] == 3_000
    response = await client.post(
        f"/api/admin/refund-requests/{refund_id}/process",
        json={"payment_reference": "NEFT-22"},
        headers=ADMIN,
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "processed"

    wallet = (await client.get("/api/wallet", headers=CLIENT)).json()
    assert wallet["balance"] == 5_000


async def test_recharge_over_http(client):
    response = await client.post("/api/wallet/recharges", json={"amount": 250_00}, headers=CLIENT)
    assert response.status_code == 201, response.text
    entry = response.json()
    assert (entry["type"], entry["status"]) == ("recharge", "pending")
    assert (await client.get("/api/wallet", headers=CLIENT)).json()["balance"] == 0

    confirm_url = f"/api/admin/ledger/recharges/{entry['entry_id']}/confirm"
    forbidden = await client.post(confirm_url, json={"payment_id": "pay_77", "status": "completed"}, headers=CLIENT)
    assert forbidden.status_code == 403

    response = await client.post(confirm_url, json={"payment_id": "pay_77", "status": "completed"}, headers=ADMIN)
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "completed"
    assert (await client.get("/api/wallet", headers=CLIENT)).json()["balance"] == 250_00

    response = await client.post(confirm_url, json={"payment_id": "pay_78", "status": "failed"}, headers=ADMIN)
    assert response.status_code == 409
    assert response.json()["current_state"] == "completed"

    too_small = await client.post("/api/wallet/recharges", json={"amount": 50_00}, headers=CLIENT)
    assert too_small.status_code == 422
    assert too_small.json()["field"] == "amount"
