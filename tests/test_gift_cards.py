"""Gift card issuance, redemption rules and admin status changes."""

from datetime import datetime, timedelta, timezone

import pytest

from payments_server.modules.common.exceptions import (
    ConflictError,
    DuplicateCodeError,
    GiftCardDisabled,
    GiftCardExhausted,
    GiftCardExpired,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payments_server.modules.common.pagination import PageRequest
from payments_server.modules.gift_cards import GiftCardStatus
from payments_server.modules.ledger import EntryType

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def clock(gift_cards) -> FrozenClock:
    frozen = FrozenClock(NOW)
    gift_cards.clock = frozen
    return frozen


async def test_codes_are_normalized_and_unique(gift_cards):
    card = await gift_cards.create(code="  summer-50 ", amount=5_000, created_by="admin-1")

    assert card.code == "SUMMER-50"
    assert card.status is GiftCardStatus.ACTIVE
    assert card.max_redemptions == 1
    assert card.currency == "INR"

    with pytest.raises(DuplicateCodeError) as exc_info:
        await gift_cards.create(code="Summer-50", amount=100, created_by="admin-1")
    assert exc_info.value.field == "code"


async def test_create_validates_input(gift_cards, clock):
    with pytest.raises(ValidationError):
        await gift_cards.create(code="   ", amount=100, created_by="admin-1")
    with pytest.raises(ValidationError):
        await gift_cards.create(code="ZERO", amount=0, created_by="admin-1")
    with pytest.raises(ValidationError):
        await gift_cards.create(code="MANY", amount=100, max_redemptions=0, created_by="admin-1")
    with pytest.raises(ValidationError) as exc_info:
        await gift_cards.create(code="OLD", amount=100, expires_at=NOW, created_by="admin-1")
    assert exc_info.value.field == "expires_at"


async def test_redeem_credits_client_wallet(gift_cards, ledger, notifier):
    await gift_cards.create(code="WELCOME", amount=2_500, created_by="admin-1")

    redemption = await gift_cards.redeem("welcome", "client-1")

    assert redemption.entry.type is EntryType.GIFTCARD
    assert redemption.entry.amount == 2_500
    assert redemption.entry.external_reference == "WELCOME"
    assert redemption.gift_card.redemptions_count == 1
    assert redemption.gift_card.status is GiftCardStatus.EXHAUSTED
    assert await ledger.get_balance("client-1") == 2_500
    assert notifier.sent[-1] == ("client-1", "giftcard.redeemed", {"code": "WELCOME", "amount": 2_500})


async def test_single_use_card_is_exhausted_after_first_redemption(gift_cards, ledger):
    await gift_cards.create(code="ONCE", amount=1_000, created_by="admin-1")
    await gift_cards.redeem("ONCE", "client-1")

    with pytest.raises(GiftCardExhausted):
        await gift_cards.redeem("ONCE", "client-2")

    assert (await gift_cards.get("ONCE")).redemptions_count == 1
    with pytest.raises(NotFoundError):
        await ledger.get_account("client-2")


async def test_single_use_card_twice_by_same_owner_is_exhausted(gift_cards, ledger):
    await gift_cards.create(code="SOLO", amount=1_000, created_by="admin-1")
    await gift_cards.redeem("SOLO", "client-1")

    with pytest.raises(GiftCardExhausted):
        await gift_cards.redeem("SOLO", "client-1")
    assert await ledger.get_balance("client-1") == 1_000


async def test_same_owner_cannot_redeem_twice(gift_cards, ledger):
    await gift_cards.create(code="TWICE", amount=1_000, max_redemptions=2, created_by="admin-1")
    await gift_cards.redeem("TWICE", "client-1")

    with pytest.raises(ConflictError):
        await gift_cards.redeem("TWICE", "client-1")

    second = await gift_cards.redeem("TWICE", "client-2")
    assert second.gift_card.status is GiftCardStatus.EXHAUSTED
    assert await ledger.get_balance("client-1") == 1_000


async def test_card_expires_exactly_at_expiry_time(gift_cards, clock):
    await gift_cards.create(
        code="TIMED",
        amount=1_000,
        max_redemptions=5,
        expires_at=NOW + timedelta(hours=1),
        created_by="admin-1",
    )

    clock.moment = NOW + timedelta(minutes=59)
    await gift_cards.redeem("TIMED", "client-1")

    clock.moment = NOW + timedelta(hours=1)
    with pytest.raises(GiftCardExpired):
        await gift_cards.redeem("TIMED", "client-2")


async def test_disabled_and_expired_cards_are_refused(gift_cards):
    await gift_cards.create(code="PAUSED", amount=1_000, max_redemptions=3, created_by="admin-1")

    disabled = await gift_cards.set_status("paused", "disabled", "admin-1")
    assert disabled.status is GiftCardStatus.DISABLED
    with pytest.raises(GiftCardDisabled):
        await gift_cards.redeem("PAUSED", "client-1")

    await gift_cards.set_status("PAUSED", GiftCardStatus.EXPIRED, "admin-1")
    with pytest.raises(GiftCardExpired):
        await gift_cards.redeem("PAUSED", "client-1")

    await gift_cards.set_status("PAUSED", GiftCardStatus.ACTIVE, "admin-1")
    redemption = await gift_cards.redeem("PAUSED", "client-1")
    assert redemption.gift_card.redemptions_count == 1


async def test_status_changes_follow_transition_rules(gift_cards):
    await gift_cards.create(code="USED", amount=1_000, created_by="admin-1")
    await gift_cards.redeem("USED", "client-1")

    with pytest.raises(InvalidStateTransition) as exc_info:
        await gift_cards.set_status("USED", "active", "admin-1")
    assert exc_info.value.current_state == "exhausted"

    with pytest.raises(ValidationError):
        await gift_cards.set_status("USED", "exhausted", "admin-1")
    with pytest.raises(ValidationError):
        await gift_cards.set_status("USED", "bogus", "admin-1")

    await gift_cards.create(code="FRESH", amount=1_000, created_by="admin-1")
    with pytest.raises(InvalidStateTransition):
        await gift_cards.set_status("FRESH", "active", "admin-1")


async def test_unknown_code_is_not_found(gift_cards):
    with pytest.raises(NotFoundError):
        await gift_cards.redeem("NOPE", "client-1")
    with pytest.raises(NotFoundError):
        await gift_cards.set_status("NOPE", "disabled", "admin-1")


async def test_listing_filters_by_status_and_search(gift_cards):
    await gift_cards.create(code="DIWALI-1", amount=1_000, created_by="admin-1")
    await gift_cards.create(code="DIWALI-2", amount=1_000, created_by="admin-1")
    await gift_cards.create(code="HOLI-1", amount=1_000, created_by="admin-1")
    await gift_cards.set_status("DIWALI-2", "disabled", "admin-1")

    diwali = await gift_cards.list(PageRequest(), search="diwali")
    assert sorted(card.code for card in diwali.items) == ["DIWALI-1", "DIWALI-2"]
    active = await gift_cards.list(PageRequest(), status="active")
    assert active.total == 2
