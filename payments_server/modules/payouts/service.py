"""Provider payout lifecycle: submission, admin review and bank settlement."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.core.config import PayoutSettings
from payments_server.infrastructure.database.repositories.payout_repository import SqlPayoutRepository
from payments_server.infrastructure.notifications import Notifier
from payments_server.modules.common.clock import utcnow
from payments_server.modules.common.exceptions import (
    ConflictError,
    InsufficientBalance,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payments_server.modules.common.identifiers import business_id
from payments_server.modules.common.pagination import Page, PageRequest
from payments_server.modules.ledger import EntryType, LedgerService, OwnerKind, validate_amount

from .models import PAYOUT_TRANSITIONS, BankDetails, Payout, PayoutStats, PayoutStatus
from .repository import PayoutRepository

if TYPE_CHECKING:
    from payments_server.core.container import ApplicationContainer

logger = logging.getLogger(__name__)


def _required_text(value: Optional[str], field: str, message: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(message, field=field)
    return text


@dataclass(slots=True)
class PayoutService:
    repository: PayoutRepository
    ledger: LedgerService
    settings: PayoutSettings
    notifier: Notifier

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        container: Optional["ApplicationContainer"] = None,
    ) -> "PayoutService":
        if container is None:
            from payments_server.core.container import get_container

            container = get_container()
        return cls(
            SqlPayoutRepository(session),
            LedgerService.with_session(session, container),
            container.settings.payouts,
            container.notifier,
        )

    async def submit(self, owner_id: str, amount: int, bank_details: Mapping[str, Any]) -> Payout:
        """Create a pending payout; nothing is reserved until completion."""
        validate_amount(amount)
        if amount < self.settings.min_amount or amount > self.settings.max_amount:
            raise ValidationError(
                f"payout amount must be between {self.settings.min_amount} and {self.settings.max_amount}",
                field="amount",
            )
        details = BankDetails.parse(bank_details)
        wallet = await self.ledger.get_account(owner_id)
        if wallet.owner_kind is not OwnerKind.PROVIDER:
            raise ValidationError("only providers can request payouts", field="owner_id")
        withdrawable = wallet.figures.withdrawable_amount
        if amount > withdrawable:
            raise InsufficientBalance(
                f"requested {amount} exceeds withdrawable amount {withdrawable}",
                required=amount,
                available=withdrawable,
                entity=wallet.to_dict(),
            )
        try:
            model = await self.repository.create(
                payout_id=business_id("PAYOUT"),
                owner_id=owner_id,
                amount=amount,
                currency=wallet.currency,
                bank_details=json.dumps(details.to_dict()),
                status=PayoutStatus.PENDING.value,
            )
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise
        payout = Payout.from_orm(model)
        logger.info("Payout %s of %s submitted by %s", payout.payout_id, amount, owner_id)
        self._notify(payout, "payout.submitted")
        return payout

    async def approve(
        self,
        payout_id: str,
        admin_id: str,
        *,
        transaction_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payout:
        values: dict[str, Any] = {"approved_by": admin_id, "approved_at": utcnow()}
        if transaction_reference:
            values["transaction_reference"] = transaction_reference
        if notes:
            values["admin_notes"] = notes
        return await self._advance(payout_id, "approve", values)

    async def process(
        self,
        payout_id: str,
        admin_id: str,
        *,
        transaction_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payout:
        values: dict[str, Any] = {"processed_by": admin_id, "processed_at": utcnow()}
        if transaction_reference:
            values["transaction_reference"] = transaction_reference
        if notes:
            values["admin_notes"] = notes
        return await self._advance(payout_id, "process", values)

    async def reject(self, payout_id: str, admin_id: str, reason: Optional[str]) -> Payout:
        reason = _required_text(reason, "reason", "a rejection reason is required")
        values = {"rejected_by": admin_id, "rejected_at": utcnow(), "rejection_reason": reason}
        return await self._advance(payout_id, "reject", values)

    async def complete(
        self,
        payout_id: str,
        admin_id: str,
        transaction_reference: Optional[str],
        *,
        notes: Optional[str] = None,
    ) -> Payout:
        """processing -> completed; debits the provider in the same transaction."""
        transaction_reference = _required_text(
            transaction_reference,
            "transaction_reference",
            "a bank transaction reference is required to complete a payout",
        )
        payout = await self._require(payout_id)
        async with self.ledger.owner_guard(payout.owner_id):
            payout = await self._require(payout_id, fresh=True)
            PAYOUT_TRANSITIONS.check("complete", payout.status, entity=payout.to_dict())
            wallet = await self.ledger.get_account(payout.owner_id)
            withdrawable = wallet.figures.withdrawable_amount
            if payout.amount > withdrawable:
                raise InsufficientBalance(
                    f"payout {payout_id} needs {payout.amount} but only {withdrawable} is withdrawable",
                    required=payout.amount,
                    available=withdrawable,
                    entity=payout.to_dict(),
                )
            entry = await self.ledger.append_in_transaction(
                payout.owner_id,
                amount=payout.amount,
                entry_type=EntryType.WITHDRAWAL,
                external_reference=transaction_reference,
                idempotency_key=f"payout:{payout_id}",
                description=f"Payout {payout_id}",
            )
            values: dict[str, Any] = {
                "completed_by": admin_id,
                "completed_at": utcnow(),
                "transaction_reference": transaction_reference,
                "ledger_entry_id": entry.entry_id,
            }
            if notes:
                values["admin_notes"] = notes
            model = await self.repository.transition(
                payout_id,
                from_statuses=[PayoutStatus.PROCESSING.value],
                to_status=PayoutStatus.COMPLETED.value,
                values=values,
            )
            if model is None:
                raise ConflictError(f"payout {payout_id} changed while completing", entity=payout.to_dict())
            payout = Payout.from_orm(model)
        logger.info(
            "Payout %s completed by %s: %s debited from %s (%s)",
            payout_id,
            admin_id,
            payout.amount,
            payout.owner_id,
            entry.entry_id,
        )
        self._notify(payout, "payout.completed")
        return payout

    async def _advance(self, payout_id: str, action: str, values: dict[str, Any]) -> Payout:
        """Status-only transitions; no money moves."""
        payout = await self._require(payout_id, fresh=True)
        target = PAYOUT_TRANSITIONS.check(action, payout.status, entity=payout.to_dict())
        try:
            model = await self.repository.transition(
                payout_id,
                from_statuses=[state.value for state in PAYOUT_TRANSITIONS.sources(action)],
                to_status=target.value,
                values=values,
            )
            if model is None:
                current = await self._require(payout_id, fresh=True)
                raise InvalidStateTransition(
                    f"cannot {action} payout in state '{current.status.value}'",
                    action=action,
                    current_state=current.status.value,
                    entity=current.to_dict(),
                )
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise
        payout = Payout.from_orm(model)
        logger.info("Payout %s moved to %s", payout_id, payout.status.value)
        self._notify(payout, f"payout.{payout.status.value}")
        return payout

    def _notify(self, payout: Payout, kind: str) -> None:
        payload = payout.to_dict()
        if payout.rejection_reason:
            payload["rejection_reason"] = payout.rejection_reason
        try:
            self.notifier.notify(payout.owner_id, kind, payload)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Failed to queue %s notification for %s", kind, payout.payout_id)

    async def _require(self, payout_id: str, *, fresh: bool = False) -> Payout:
        model = await self.repository.get(payout_id, fresh=fresh)
        if model is None:
            raise NotFoundError(f"payout {payout_id} not found")
        return Payout.from_orm(model)

    async def get(self, payout_id: str) -> Payout:
        return await self._require(payout_id, fresh=True)

    async def list(
        self,
        request: PageRequest,
        *,
        status: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Page[Payout]:
        rows = await self.repository.list_payouts(
            status=status,
            owner_id=owner_id,
            limit=request.limit,
            offset=request.offset,
        )
        total = await self.repository.count_payouts(status=status, owner_id=owner_id)
        return Page.build([Payout.from_orm(row) for row in rows], request, total)

    async def list_for_owner(
        self,
        owner_id: str,
        request: PageRequest,
        *,
        status: Optional[str] = None,
    ) -> Page[Payout]:
        return await self.list(request, status=status, owner_id=owner_id)

    async def stats(self) -> PayoutStats:
        totals = await self.repository.totals_by_status()
        counts = {status.value: totals.get(status.value, (0, 0))[0] for status in PayoutStatus}
        amounts = {status.value: totals.get(status.value, (0, 0))[1] for status in PayoutStatus}
        return PayoutStats(counts=counts, amounts=amounts)
