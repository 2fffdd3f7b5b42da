"""Gateway and wallet refunds, plus client cash-out requests."""

import asyncio

import pytest

from payments_server.infrastructure.gateway import GatewayRefundStatus
from payments_server.modules.common.exceptions import (
    ConflictError,
    ExternalGatewayFailure,
    InsufficientBalance,
    InvalidStateTransition,
    ValidationError,
)
from payments_server.modules.common.pagination import PageRequest
from payments_server.modules.ledger import Direction, EntryType
from payments_server.modules.refunds import CashOutStatus, RefundChannel, RefundStatus

from .conftest import charge_client

CLIENT = "client-42"


async def test_full_gateway_refund_credits_once(ledger, refunds, gateway):
    charge = await charge_client(ledger, CLIENT, 50_000)

    refund = await refunds.refund_via_gateway(charge.entry_id, percentage=100, requested_by="admin-1")

    assert refund.status is RefundStatus.COMPLETED
    assert refund.channel is RefundChannel.GATEWAY
    assert refund.amount == 50_000
    assert refund.gateway_refund_id == "rfnd_1"
    assert gateway.calls == [
        {
            "payment_reference": "pay_123",
            "amount": 50_000,
            "reason": "Refund",
            "idempotency_key": f"gateway:{refund.refund_id}",
        }
    ]
    credit = await ledger.get_entry(refund.ledger_entry_id)
    assert credit.type is EntryType.REFUND
    assert credit.direction is Direction.CREDIT
    assert credit.amount == 50_000
    assert credit.linked_entry_id == charge.entry_id
    assert await ledger.get_balance(CLIENT) == 50_000

    with pytest.raises(ValidationError) as exc_info:
        await refunds.refund_via_gateway(charge.entry_id, percentage=100)
    assert exc_info.value.field == "amount"
    assert len(gateway.calls) == 1
    assert await ledger.get_balance(CLIENT) == 50_000


@pytest.mark.parametrize("percentage", [0, 101, -10])
async def test_percentage_out_of_range_never_reaches_gateway(ledger, refunds, gateway, percentage):
    charge = await charge_client(ledger, CLIENT, 50_000)

    with pytest.raises(ValidationError) as exc_info:
        await refunds.refund_via_gateway(charge.entry_id, percentage=percentage)

    assert exc_info.value.field == "percentage"
    assert gateway.calls == []
    assert (await refunds.list(PageRequest())).total == 0


async def test_partial_refunds_accumulate_up_to_original(ledger, refunds):
    charge = await charge_client(ledger, CLIENT, 10_000)

    first = await refunds.refund_to_wallet(charge.entry_id, percentage=60)
    second = await refunds.refund_to_wallet(charge.entry_id, amount=4_000)

    assert (first.amount, first.percentage) == (6_000, 60)
    assert (second.amount, second.percentage) == (4_000, None)
    assert await ledger.get_balance(CLIENT) == 10_000
    with pytest.raises(ValidationError):
        await refunds.refund_to_wallet(charge.entry_id, amount=1)

    listed = await refunds.list(PageRequest(), original_entry_id=charge.entry_id)
    assert listed.total == 2
    assert all(record.channel is RefundChannel.WALLET for record in listed.items)


async def test_percentage_and_amount_are_exclusive(ledger, refunds):
    charge = await charge_client(ledger, CLIENT, 10_000)
    with pytest.raises(ValidationError):
        await refunds.refund_to_wallet(charge.entry_id, percentage=50, amount=100)


async def test_gateway_error_marks_record_failed(ledger, refunds, gateway):
    charge = await charge_client(ledger, CLIENT, 20_000)
    gateway.error = ExternalGatewayFailure("payment gateway timed out")

    with pytest.raises(ExternalGatewayFailure):
        await refunds.refund_via_gateway(charge.entry_id)

    [record] = (await refunds.list(PageRequest())).items
    assert record.status is RefundStatus.FAILED
    assert "timed out" in record.failure_reason
    assert await ledger.get_balance(CLIENT) == 0

    # a failed attempt does not use up the refundable amount
    gateway.error = None
    retried = await refunds.refund_via_gateway(charge.entry_id)
    assert retried.status is RefundStatus.COMPLETED
    assert await ledger.get_balance(CLIENT) == 20_000


async def test_gateway_decline_is_reported_as_gateway_failure(ledger, refunds, gateway, notifier):
    charge = await charge_client(ledger, CLIENT, 20_000)
    gateway.next_status = GatewayRefundStatus.FAILED

    with pytest.raises(ExternalGatewayFailure):
        await refunds.refund_via_gateway(charge.entry_id)

    [record] = (await refunds.list(PageRequest(), status="failed")).items
    assert "refund.failed" in notifier.kinds()
    with pytest.raises(InvalidStateTransition) as exc_info:
        await refunds.confirm_gateway_refund(record.refund_id, "rfnd_late", "processed")
    assert exc_info.value.current_state == "failed"


async def test_pending_gateway_refund_is_credited_on_confirmation(ledger, refunds, gateway):
    charge = await charge_client(ledger, CLIENT, 30_000)
    gateway.next_status = GatewayRefundStatus.PENDING

    pending = await refunds.refund_via_gateway(charge.entry_id, percentage=50)

    assert pending.status is RefundStatus.PENDING
    assert pending.gateway_refund_id == "rfnd_1"
    assert pending.ledger_entry_id is None
    assert await ledger.get_balance(CLIENT) == 0
    # the pending record already counts against the remainder
    with pytest.raises(ValidationError):
        await refunds.refund_via_gateway(charge.entry_id, amount=15_001)

    confirmed = await refunds.confirm_gateway_refund(pending.refund_id, "rfnd_1", "processed")
    assert confirmed.status is RefundStatus.COMPLETED
    assert await ledger.get_balance(CLIENT) == 15_000

    replayed = await refunds.confirm_gateway_refund(pending.refund_id, "rfnd_1", "processed")
    assert replayed.ledger_entry_id == confirmed.ledger_entry_id
    assert await ledger.get_balance(CLIENT) == 15_000


async def test_caller_idempotency_key_replays_refund(ledger, refunds, gateway):
    charge = await charge_client(ledger, CLIENT, 8_000)

    first = await refunds.refund_via_gateway(charge.entry_id, idempotency_key="support-ticket-9")
    again = await refunds.refund_via_gateway(charge.entry_id, idempotency_key="support-ticket-9")

    assert again.refund_id == first.refund_id
    assert len(gateway.calls) == 1
    assert gateway.calls[0]["idempotency_key"] == "support-ticket-9"


async def test_only_completed_client_spend_is_refundable(ledger, refunds):
    recharge = await ledger.append(CLIENT, amount=5_000, entry_type="recharge", owner_kind="client")
    with pytest.raises(ValidationError):
        await refunds.refund_to_wallet(recharge.entry_id)

    spend = await ledger.append(CLIENT, amount=1_000, entry_type="deduction")
    with pytest.raises(ValidationError) as exc_info:
        await refunds.refund_via_gateway(spend.entry_id)
    assert exc_info.value.field == "original_entry_id"

    await ledger.reverse(spend.entry_id)
    with pytest.raises(ConflictError):
        await refunds.refund_to_wallet(spend.entry_id)


async def test_refunded_charge_cannot_also_be_reversed(ledger, refunds):
    charge = await charge_client(ledger, CLIENT, 50_000)
    refund = await refunds.refund_to_wallet(charge.entry_id, percentage=100)
    assert await ledger.get_balance(CLIENT) == 50_000

    with pytest.raises(ConflictError) as exc_info:
        await ledger.reverse(charge.entry_id)
    assert exc_info.value.entity["refunded_amount"] == 50_000
    with pytest.raises(ConflictError):
        await ledger.reverse(refund.ledger_entry_id)

    assert await ledger.get_balance(CLIENT) == 50_000
    assert (await ledger.replay(CLIENT)).consistent


async def test_pending_gateway_refund_blocks_reversal(ledger, refunds, gateway):
    charge = await charge_client(ledger, CLIENT, 12_000)
    gateway.next_status = GatewayRefundStatus.PENDING
    await refunds.refund_via_gateway(charge.entry_id, percentage=25)

    with pytest.raises(ConflictError):
        await ledger.reverse(charge.entry_id)
    assert await ledger.get_balance(CLIENT) == 0


async def test_charge_with_only_failed_refunds_can_be_reversed(ledger, refunds, gateway):
    charge = await charge_client(ledger, CLIENT, 7_000)
    gateway.next_status = GatewayRefundStatus.FAILED
    with pytest.raises(ExternalGatewayFailure):
        await refunds.refund_via_gateway(charge.entry_id)

    reversal = await ledger.reverse(charge.entry_id)

    assert reversal.reversal_of_id == charge.entry_id
    assert await ledger.get_balance(CLIENT) == 7_000


@pytest.mark.parametrize(
    "error",
    [RuntimeError("connection reset by peer"), asyncio.CancelledError()],
    ids=["runtime-error", "cancelled"],
)
async def test_any_gateway_exception_closes_the_record(ledger, refunds, gateway, error):
    charge = await charge_client(ledger, CLIENT, 9_000)
    gateway.error = error

    with pytest.raises(type(error)):
        await refunds.refund_via_gateway(charge.entry_id)

    [record] = (await refunds.list(PageRequest())).items
    assert record.status is RefundStatus.FAILED
    assert record.failure_reason

    gateway.error = None
    retried = await refunds.refund_via_gateway(charge.entry_id)
    assert retried.amount == 9_000
    assert await ledger.get_balance(CLIENT) == 9_000


async def test_failed_confirmation_returns_the_failed_record(ledger, refunds, gateway, notifier):
    charge = await charge_client(ledger, CLIENT, 30_000)
    gateway.next_status = GatewayRefundStatus.PENDING
    pending = await refunds.refund_via_gateway(charge.entry_id)

    failed = await refunds.confirm_gateway_refund(pending.refund_id, "rfnd_1", "failed")
    assert failed.status is RefundStatus.FAILED
    assert "refund.failed" in notifier.kinds()

    again = await refunds.confirm_gateway_refund(pending.refund_id, "rfnd_1", "failed")
    assert again.refund_id == failed.refund_id
    assert again.status is RefundStatus.FAILED
    assert await ledger.get_balance(CLIENT) == 0

    with pytest.raises(InvalidStateTransition):
        await refunds.confirm_gateway_refund(pending.refund_id, "rfnd_1", "processed")


async def test_cash_out_request_flow(ledger, cash_out, notifier):
    await ledger.append(CLIENT, amount=9_000, entry_type="recharge", owner_kind="client")

    request = await cash_out.request(CLIENT, 5_000, reason="moving abroad")
    assert request.status is CashOutStatus.PENDING
    assert request.cash_balance_snapshot == 9_000

    with pytest.raises(InvalidStateTransition):
        await cash_out.process(request.refund_id, "admin-1", "NEFT-1")
    with pytest.raises(ValidationError):
        await cash_out.approve(request.refund_id, "admin-1", amount_approved=6_000)

    approved = await cash_out.approve(request.refund_id, "admin-1", amount_approved=4_000, notes="partial")
    assert approved.status is CashOutStatus.APPROVED
    assert approved.amount_approved == 4_000
    assert approved.processed_by == "admin-1"

    processed = await cash_out.process(request.refund_id, "admin-2", "NEFT-1")
    assert processed.status is CashOutStatus.PROCESSED
    entry = await ledger.get_entry(processed.ledger_entry_id)
    assert entry.type is EntryType.WITHDRAWAL
    assert entry.amount == 4_000
    assert await ledger.get_balance(CLIENT) == 5_000
    assert notifier.kinds()[-3:] == [
        "wallet_refund.requested",
        "wallet_refund.approved",
        "wallet_refund.processed",
    ]

    with pytest.raises(InvalidStateTransition):
        await cash_out.reject(request.refund_id, "admin-1", "late")


async def test_cash_out_rejection_and_limits(ledger, cash_out):
    await ledger.append(CLIENT, amount=2_000, entry_type="recharge", owner_kind="client")

    with pytest.raises(InsufficientBalance):
        await cash_out.request(CLIENT, 2_001)

    request = await cash_out.request(CLIENT, 1_500)
    with pytest.raises(ValidationError):
        await cash_out.reject(request.refund_id, "admin-1", " ")
    rejected = await cash_out.reject(request.refund_id, "admin-1", "not eligible")
    assert rejected.status is CashOutStatus.REJECTED
    assert rejected.rejection_reason == "not eligible"
    assert await ledger.get_balance(CLIENT) == 2_000

    listed = await cash_out.list(PageRequest(), owner_id=CLIENT, status="rejected")
    assert listed.total == 1
