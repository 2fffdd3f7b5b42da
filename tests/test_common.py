import asyncio

import pytest

from payments_server.modules.common import (
    InvalidStateTransition,
    OwnerLockRegistry,
    Page,
    PageRequest,
    ValidationError,
)
from payments_server.modules.gift_cards.models import GIFT_CARD_TRANSITIONS, GiftCardStatus
from payments_server.modules.payouts.models import PAYOUT_TRANSITIONS, PayoutStatus
from payments_server.modules.refunds.models import resolve_refund_amount


def test_transition_table_reports_current_state():
    assert PAYOUT_TRANSITIONS.check("approve", PayoutStatus.PENDING) is PayoutStatus.APPROVED

    with pytest.raises(InvalidStateTransition) as exc_info:
        PAYOUT_TRANSITIONS.check("complete", PayoutStatus.APPROVED, entity={"payout_id": "P1"})

    assert exc_info.value.action == "complete"
    assert exc_info.value.current_state == "approved"
    assert exc_info.value.to_dict()["entity"] == {"payout_id": "P1"}


def test_exhausted_gift_cards_have_no_way_out():
    for action in ("activate", "disable", "expire"):
        assert GiftCardStatus.EXHAUSTED not in GIFT_CARD_TRANSITIONS.sources(action)


def test_page_request_bounds_and_page_math():
    with pytest.raises(ValidationError):
        PageRequest(page=0)
    with pytest.raises(ValidationError):
        PageRequest(limit=201)

    request = PageRequest(page=3, limit=20)
    assert request.offset == 40
    page = Page.build(["a"], request, total=41)
    assert page.pagination() == {"page": 3, "limit": 20, "total": 41, "pages": 3}


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({}, (10_001, 100)),
        ({"percentage": 50}, (5_000, 50)),
        ({"percentage": 1}, (100, 1)),
        ({"amount": 2_500}, (2_500, None)),
    ],
)
def test_refund_amount_resolution(kwargs, expected):
    assert resolve_refund_amount(10_001, **kwargs) == expected


def test_refund_percentage_rounding_to_zero_is_rejected():
    with pytest.raises(ValidationError):
        resolve_refund_amount(50, percentage=1)


async def test_owner_locks_serialize_and_clean_up():
    registry = OwnerLockRegistry()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with registry.hold("owner-1"):
            order.append(f"{name}:in")
            await asyncio.sleep(0)
            order.append(f"{name}:out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a:in", "a:out", "b:in", "b:out"]
    assert len(registry) == 0
