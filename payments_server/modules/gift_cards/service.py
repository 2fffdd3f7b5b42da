"""Gift card issuance and redemption."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.infrastructure.database.repositories.gift_card_repository import SqlGiftCardRepository
from payments_server.infrastructure.notifications import Notifier
from payments_server.modules.common.clock import as_utc, utcnow
from payments_server.modules.common.exceptions import (
    ConflictError,
    DuplicateCodeError,
    GiftCardDisabled,
    GiftCardExhausted,
    GiftCardExpired,
    NotFoundError,
    ValidationError,
)
from payments_server.modules.common.pagination import Page, PageRequest
from payments_server.modules.ledger import EntryType, LedgerService, OwnerKind, validate_amount

from .models import (
    GIFT_CARD_TRANSITIONS,
    MAX_GIFT_CARD_AMOUNT,
    STATUS_ACTIONS,
    GiftCard,
    GiftCardStatus,
    Redemption,
    normalize_code,
)
from .repository import GiftCardRepository

if TYPE_CHECKING:
    from payments_server.core.container import ApplicationContainer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GiftCardService:
    repository: GiftCardRepository
    ledger: LedgerService
    notifier: Notifier
    clock: Callable[[], datetime] = field(default=utcnow)

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        container: Optional["ApplicationContainer"] = None,
    ) -> "GiftCardService":
        if container is None:
            from payments_server.core.container import get_container

            container = get_container()
        return cls(
            SqlGiftCardRepository(session),
            LedgerService.with_session(session, container),
            container.notifier,
        )

    async def create(
        self,
        *,
        code: str,
        amount: int,
        created_by: str,
        currency: Optional[str] = None,
        max_redemptions: int = 1,
        expires_at: Optional[datetime] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> GiftCard:
        code = normalize_code(code)
        validate_amount(amount)
        if amount > MAX_GIFT_CARD_AMOUNT:
            raise ValidationError(f"gift card amount is limited to {MAX_GIFT_CARD_AMOUNT}", field="amount")
        if isinstance(max_redemptions, bool) or not isinstance(max_redemptions, int) or max_redemptions < 1:
            raise ValidationError("max_redemptions must be at least 1", field="max_redemptions")
        if expires_at is not None:
            expires_at = as_utc(expires_at)
            if expires_at <= self.clock():
                raise ValidationError("expiry must be in the future", field="expires_at")

        if await self.repository.get_by_code(code) is not None:
            raise DuplicateCodeError(f"gift card code {code} already exists", field="code")
        try:
            model = await self.repository.create(
                code=code,
                amount=amount,
                currency=currency or self.ledger.default_currency,
                max_redemptions=max_redemptions,
                redemptions_count=0,
                status=GiftCardStatus.ACTIVE.value,
                expires_at=expires_at,
                created_by=created_by,
                meta=json.dumps(metadata, ensure_ascii=False, default=str) if metadata else None,
            )
            await self.repository.commit()
        except IntegrityError as exc:
            await self.repository.rollback()
            raise DuplicateCodeError(f"gift card code {code} already exists", field="code") from exc
        except Exception:
            await self.repository.rollback()
            raise
        card = GiftCard.from_orm(model)
        logger.info("Gift card %s worth %s created by %s", card.code, card.amount, created_by)
        return card

    async def redeem(self, code: str, owner_id: str) -> Redemption:
        """Credit a client wallet with the card's amount, once per owner."""
        code = normalize_code(code)
        if await self.repository.get_by_code(code) is None:
            raise NotFoundError(f"gift card {code} not found", field="code")

        async with self.ledger.owner_guard(owner_id):
            model = await self.repository.get_by_code(code, fresh=True)
            card = GiftCard.from_orm(model)
            self._check_redeemable(card)
            if await self.repository.has_redeemed(card.id, owner_id):
                raise ConflictError(f"gift card {code} was already redeemed by this account", entity=card.to_dict())

            claimed = await self.repository.claim_redemption(card.id)
            if claimed is None:
                # lost the race for the last slot, or the card changed status meanwhile
                latest = GiftCard.from_orm(await self.repository.get_by_code(code, fresh=True))
                self._check_redeemable(latest)
                raise GiftCardExhausted(f"gift card {code} has no redemptions left", entity=latest.to_dict())
            card = GiftCard.from_orm(claimed)

            entry = await self.ledger.append_in_transaction(
                owner_id,
                amount=card.amount,
                entry_type=EntryType.GIFTCARD,
                owner_kind=OwnerKind.CLIENT,
                external_reference=card.code,
                idempotency_key=f"giftcard:{card.id}:{owner_id}",
                description=f"Gift card {card.code}",
            )
            try:
                await self.repository.add_redemption(
                    gift_card_id=card.id,
                    owner_id=owner_id,
                    ledger_entry_id=entry.entry_id,
                )
            except IntegrityError as exc:
                raise ConflictError(
                    f"gift card {code} was already redeemed by this account",
                    entity=card.to_dict(),
                ) from exc

        logger.info(
            "Gift card %s redeemed by %s (%s/%s) as %s",
            card.code,
            owner_id,
            card.redemptions_count,
            card.max_redemptions,
            entry.entry_id,
        )
        try:
            self.notifier.notify(owner_id, "giftcard.redeemed", {"code": card.code, "amount": card.amount})
        except Exception:  # pylint: disable=broad-except
            logger.exception("Failed to queue gift card notification for %s", owner_id)
        return Redemption(gift_card=card, entry=entry)

    def _check_redeemable(self, card: GiftCard) -> None:
        if card.is_expired_at(self.clock()):
            raise GiftCardExpired(f"gift card {card.code} has expired", entity=card.to_dict())
        if card.status is GiftCardStatus.DISABLED:
            raise GiftCardDisabled(f"gift card {card.code} is disabled", entity=card.to_dict())
        if card.status is GiftCardStatus.EXHAUSTED or card.remaining_redemptions == 0:
            raise GiftCardExhausted(f"gift card {card.code} has no redemptions left", entity=card.to_dict())

    async def set_status(self, code: str, status: GiftCardStatus | str, admin_id: str) -> GiftCard:
        code = normalize_code(code)
        try:
            status = GiftCardStatus(status)
        except ValueError as exc:
            raise ValidationError(f"unknown gift card status: {status}", field="status") from exc
        if status not in STATUS_ACTIONS:
            raise ValidationError("cards become exhausted only through redemption", field="status")
        action = STATUS_ACTIONS[status]
        card = await self.get(code)
        GIFT_CARD_TRANSITIONS.check(action, card.status, entity=card.to_dict())
        try:
            model = await self.repository.set_status(
                card.id,
                from_statuses=[state.value for state in GIFT_CARD_TRANSITIONS.sources(action)],
                to_status=status.value,
            )
            if model is None:
                latest = await self.get(code)
                GIFT_CARD_TRANSITIONS.check(action, latest.status, entity=latest.to_dict())
                raise ConflictError(f"gift card {code} changed while updating", entity=latest.to_dict())
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise
        updated = GiftCard.from_orm(model)
        logger.info("Gift card %s set to %s by %s", code, status.value, admin_id)
        return updated

    async def get(self, code: str) -> GiftCard:
        code = normalize_code(code)
        model = await self.repository.get_by_code(code, fresh=True)
        if model is None:
            raise NotFoundError(f"gift card {code} not found", field="code")
        return GiftCard.from_orm(model)

    async def list(
        self,
        request: PageRequest,
        *,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Page[GiftCard]:
        rows = await self.repository.list_cards(
            status=status,
            search=search,
            limit=request.limit,
            offset=request.offset,
        )
        total = await self.repository.count_cards(status=status, search=search)
        return Page.build([GiftCard.from_orm(row) for row in rows], request, total)
