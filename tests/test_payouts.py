"""Payout lifecycle and its effect on provider balances."""

import pytest

from payments_server.modules.common.exceptions import (
    InsufficientBalance,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payments_server.modules.common.pagination import PageRequest
from payments_server.modules.ledger import EntryType
from payments_server.modules.payouts import PayoutStatus

from .conftest import BANK_DETAILS, credit_provider

PROVIDER = "provider-7"


async def test_payout_runs_through_to_completion(ledger, payouts, notifier):
    await credit_provider(ledger, PROVIDER, 1000_00)

    payout = await payouts.submit(PROVIDER, 700_00, BANK_DETAILS)
    assert payout.status is PayoutStatus.PENDING
    assert payout.payout_id.startswith("PAYOUT")
    # nothing is reserved at submission
    assert (await ledger.get_account(PROVIDER)).figures.withdrawable_amount == 1000_00

    payout = await payouts.approve(payout.payout_id, "admin-1", notes="looks fine")
    assert payout.status is PayoutStatus.APPROVED
    assert payout.approved_by == "admin-1"
    payout = await payouts.process(payout.payout_id, "admin-1")
    assert payout.status is PayoutStatus.PROCESSING

    payout = await payouts.complete(payout.payout_id, "admin-2", "UTR12345")

    assert payout.status is PayoutStatus.COMPLETED
    assert payout.completed_by == "admin-2"
    assert payout.transaction_reference == "UTR12345"
    entry = await ledger.get_entry(payout.ledger_entry_id)
    assert entry.type is EntryType.WITHDRAWAL
    assert entry.amount == 700_00
    assert entry.idempotency_key == f"payout:{payout.payout_id}"

    wallet = await ledger.get_account(PROVIDER)
    assert wallet.figures.withdrawable_amount == 300_00
    assert wallet.figures.total_withdrawn == 700_00
    assert wallet.figures.total_earned == 1000_00
    assert notifier.kinds() == [
        "payout.submitted",
        "payout.approved",
        "payout.processing",
        "payout.completed",
    ]


async def test_complete_requires_processing_state(ledger, payouts):
    await credit_provider(ledger, PROVIDER, 1000_00)
    payout = await payouts.submit(PROVIDER, 600_00, BANK_DETAILS)

    with pytest.raises(InvalidStateTransition) as exc_info:
        await payouts.complete(payout.payout_id, "admin-1", "UTR1")

    assert exc_info.value.current_state == "pending"
    assert exc_info.value.entity["status"] == "pending"
    assert (await ledger.get_account(PROVIDER)).figures.withdrawable_amount == 1000_00


async def test_complete_requires_transaction_reference(ledger, payouts):
    await credit_provider(ledger, PROVIDER, 1000_00)
    payout = await payouts.submit(PROVIDER, 600_00, BANK_DETAILS)
    await payouts.approve(payout.payout_id, "admin-1")
    await payouts.process(payout.payout_id, "admin-1")

    with pytest.raises(ValidationError) as exc_info:
        await payouts.complete(payout.payout_id, "admin-1", "  ")
    assert exc_info.value.field == "transaction_reference"


async def test_complete_rechecks_withdrawable_amount(ledger, payouts):
    await credit_provider(ledger, PROVIDER, 1000_00)
    payout = await payouts.submit(PROVIDER, 800_00, BANK_DETAILS)
    await payouts.approve(payout.payout_id, "admin-1")
    await payouts.process(payout.payout_id, "admin-1")
    await ledger.append(PROVIDER, amount=300_00, entry_type="deduction")

    with pytest.raises(InsufficientBalance):
        await payouts.complete(payout.payout_id, "admin-1", "UTR9")

    assert (await payouts.get(payout.payout_id)).status is PayoutStatus.PROCESSING
    assert (await ledger.get_account(PROVIDER)).figures.withdrawable_amount == 700_00


async def test_reject_needs_reason_and_open_payout(ledger, payouts, notifier):
    await credit_provider(ledger, PROVIDER, 1000_00)
    payout = await payouts.submit(PROVIDER, 600_00, BANK_DETAILS)

    with pytest.raises(ValidationError):
        await payouts.reject(payout.payout_id, "admin-1", "")

    await payouts.approve(payout.payout_id, "admin-1")
    rejected = await payouts.reject(payout.payout_id, "admin-1", "bank details mismatch")
    assert rejected.status is PayoutStatus.REJECTED
    assert rejected.rejection_reason == "bank details mismatch"
    assert notifier.sent[-1][2]["rejection_reason"] == "bank details mismatch"

    with pytest.raises(InvalidStateTransition):
        await payouts.reject(payout.payout_id, "admin-1", "again")
    with pytest.raises(InvalidStateTransition):
        await payouts.approve(payout.payout_id, "admin-1")


async def test_processing_payouts_cannot_be_rejected(ledger, payouts):
    await credit_provider(ledger, PROVIDER, 1000_00)
    payout = await payouts.submit(PROVIDER, 600_00, BANK_DETAILS)
    await payouts.approve(payout.payout_id, "admin-1")
    await payouts.process(payout.payout_id, "admin-1")

    with pytest.raises(InvalidStateTransition) as exc_info:
        await payouts.reject(payout.payout_id, "admin-1", "too late")
    assert exc_info.value.current_state == "processing"


@pytest.mark.parametrize("amount", [499_99, 1_00_000_01, 0])
async def test_submit_enforces_amount_range(ledger, payouts, amount):
    await credit_provider(ledger, PROVIDER, 2_00_000_00)
    with pytest.raises(ValidationError) as exc_info:
        await payouts.submit(PROVIDER, amount, BANK_DETAILS)
    assert exc_info.value.field == "amount"


async def test_submit_checks_withdrawable_and_bank_details(ledger, payouts):
    await credit_provider(ledger, PROVIDER, 600_00)

    with pytest.raises(InsufficientBalance):
        await payouts.submit(PROVIDER, 700_00, BANK_DETAILS)

    with pytest.raises(ValidationError) as exc_info:
        await payouts.submit(PROVIDER, 500_00, {**BANK_DETAILS, "ifsc_code": "HDFC1234"})
    assert exc_info.value.field == "bank_details.ifsc_code"

    with pytest.raises(ValidationError) as exc_info:
        await payouts.submit(PROVIDER, 500_00, {**BANK_DETAILS, "account_number": "12AB"})
    assert exc_info.value.field == "bank_details.account_number"

    payout = await payouts.submit(PROVIDER, 500_00, {**BANK_DETAILS, "ifsc_code": "hdfc0001234"})
    assert payout.bank_details.ifsc_code == "HDFC0001234"


async def test_submit_is_provider_only(ledger, payouts):
    await ledger.append("client-1", amount=1000_00, entry_type="recharge", owner_kind="client")
    with pytest.raises(ValidationError):
        await payouts.submit("client-1", 600_00, BANK_DETAILS)
    with pytest.raises(NotFoundError):
        await payouts.submit("nobody", 600_00, BANK_DETAILS)


async def test_listing_and_stats(ledger, payouts):
    await credit_provider(ledger, PROVIDER, 5000_00)
    await credit_provider(ledger, "provider-8", 5000_00)
    first = await payouts.submit(PROVIDER, 1000_00, BANK_DETAILS)
    second = await payouts.submit(PROVIDER, 900_00, BANK_DETAILS)
    await payouts.submit("provider-8", 800_00, BANK_DETAILS)
    await payouts.reject(second.payout_id, "admin-1", "duplicate")
    await payouts.approve(first.payout_id, "admin-1")
    await payouts.process(first.payout_id, "admin-1")
    await payouts.complete(first.payout_id, "admin-1", "UTR77")

    mine = await payouts.list_for_owner(PROVIDER, PageRequest())
    assert mine.total == 2
    pending = await payouts.list(PageRequest(), status="pending")
    assert [payout.owner_id for payout in pending.items] == ["provider-8"]

    stats = await payouts.stats()
    assert stats.counts == {"pending": 1, "approved": 0, "processing": 0, "completed": 1, "rejected": 1}
    assert stats.completed_amount == 1000_00
    assert stats.in_flight_amount == 800_00


async def test_full_withdrawal_scenario(ledger, payouts):
    await credit_provider(ledger, PROVIDER, 1000_00)
    payout = await payouts.submit(PROVIDER, 1000_00, BANK_DETAILS)
    await payouts.approve(payout.payout_id, "admin-1")
    await payouts.process(payout.payout_id, "admin-1")
    assert (await ledger.get_account(PROVIDER)).figures.withdrawable_amount == 1000_00

    await payouts.complete(payout.payout_id, "admin-1", "UTR-FULL")

    wallet = await ledger.get_account(PROVIDER)
    assert wallet.figures.withdrawable_amount == 0
    assert wallet.figures.total_withdrawn == 1000_00
    [entry] = (await ledger.list_entries(PageRequest(), owner_id=PROVIDER, entry_type="withdrawal")).items
    assert entry.signed_amount == -1000_00
    assert entry.balance_after == 0
