"""Refund reconciliation: gateway refunds, wallet refunds and cash-out requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.infrastructure.database.repositories.refund_repository import SqlRefundRepository
from payments_server.infrastructure.gateway import GatewayRefundResult, GatewayRefundStatus, PaymentGateway
from payments_server.infrastructure.notifications import Notifier
from payments_server.modules.common.clock import utcnow
from payments_server.modules.common.exceptions import (
    ConflictError,
    ExternalGatewayFailure,
    InsufficientBalance,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payments_server.modules.common.identifiers import business_id
from payments_server.modules.common.pagination import Page, PageRequest
from payments_server.modules.ledger import (
    EntryStatus,
    EntryType,
    LedgerEntry,
    LedgerService,
    OwnerKind,
    validate_amount,
)

from .models import (
    CASH_OUT_TRANSITIONS,
    OUTSTANDING_REFUND_STATUSES,
    REFUND_TRANSITIONS,
    CashOutRequest,
    CashOutStatus,
    Refund,
    RefundChannel,
    RefundStatus,
    resolve_refund_amount,
)
from .repository import RefundRepository

if TYPE_CHECKING:
    from payments_server.core.container import ApplicationContainer

logger = logging.getLogger(__name__)

REFUNDABLE_TYPES = frozenset({EntryType.CHARGE, EntryType.DEDUCTION})


def _required_text(value: Optional[str], field: str, message: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(message, field=field)
    return text


def _notify(notifier: Notifier, owner_id: str, kind: str, payload: dict[str, Any]) -> None:
    try:
        notifier.notify(owner_id, kind, payload)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Failed to queue %s notification for %s", kind, owner_id)


@dataclass(slots=True)
class RefundService:
    """Refunds of completed client charges, tracked per original entry."""

    repository: RefundRepository
    ledger: LedgerService
    gateway: PaymentGateway
    notifier: Notifier

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        container: Optional["ApplicationContainer"] = None,
    ) -> "RefundService":
        if container is None:
            from payments_server.core.container import get_container

            container = get_container()
        return cls(
            SqlRefundRepository(session),
            LedgerService.with_session(session, container),
            container.gateway,
            container.notifier,
        )

    async def refund_via_gateway(
        self,
        original_entry_id: str,
        *,
        percentage: Optional[int] = None,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Refund:
        """Refund to the original payment instrument.

        The record is committed as pending before the gateway is called and
        the wallet credit is only written once the gateway reports the refund
        as processed. Gateway errors mark the record failed and re-raise.
        """
        if idempotency_key:
            replayed = await self._replay(idempotency_key, original_entry_id)
            if replayed is not None:
                return replayed

        original = await self.ledger.get_entry(original_entry_id)
        self._check_refundable(original)
        if not original.external_reference:
            raise ValidationError(
                f"{original_entry_id} has no gateway payment reference, refund it to the wallet instead",
                field="original_entry_id",
                entity=original.to_dict(),
            )
        refund_amount, pct = resolve_refund_amount(original.amount, percentage=percentage, amount=amount)
        reason = (reason or "").strip() or "Refund"

        async with self.ledger.owner_guard(original.owner_id):
            await self._check_refundable_amount(original, refund_amount)
            refund_id = business_id("RFND")
            model = await self.repository.create_record(
                refund_id=refund_id,
                original_entry_id=original.entry_id,
                owner_id=original.owner_id,
                channel=RefundChannel.GATEWAY.value,
                amount=refund_amount,
                percentage=pct,
                currency=original.currency,
                reason=reason,
                status=RefundStatus.PENDING.value,
                payment_reference=original.external_reference,
                idempotency_key=idempotency_key or f"gateway:{refund_id}",
                requested_by=requested_by,
            )
            record = Refund.from_orm(model)
        logger.info(
            "Gateway refund %s of %s requested for %s (%s)",
            record.refund_id,
            refund_amount,
            original.entry_id,
            original.external_reference,
        )

        try:
            result = await self.gateway.refund(
                original.external_reference,
                refund_amount,
                reason,
                idempotency_key=record.idempotency_key,
            )
        except BaseException as exc:
            # any failure closes the record so it stops counting toward the refunded total
            await self._fail(record, str(exc) or exc.__class__.__name__)
            raise

        return await self._apply_gateway_result(record, result)

    async def confirm_gateway_refund(
        self,
        refund_id: str,
        gateway_refund_id: str,
        status: GatewayRefundStatus | str,
    ) -> Refund:
        """Apply a later gateway answer to a pending refund; replays are no-ops.

        A ``failed`` answer closes the record and returns it, so a webhook
        retry of the same answer gets the same failed record back.
        """
        try:
            status = GatewayRefundStatus(status)
        except ValueError as exc:
            raise ValidationError(f"unknown gateway refund status: {status}", field="status") from exc
        record = await self._require_record(refund_id, fresh=True)
        if record.channel is not RefundChannel.GATEWAY:
            raise ValidationError(f"{refund_id} is not a gateway refund", field="refund_id", entity=record.to_dict())
        if record.status is RefundStatus.COMPLETED:
            logger.info("Gateway confirmation replay for completed refund %s", refund_id)
            return record
        if record.status is RefundStatus.FAILED:
            if status is GatewayRefundStatus.FAILED:
                logger.info("Gateway failure replay for refund %s", refund_id)
                return record
            raise InvalidStateTransition(
                f"refund {refund_id} already failed",
                action="confirm",
                current_state=record.status.value,
                entity=record.to_dict(),
            )
        result = GatewayRefundResult(refund_id=gateway_refund_id, status=status)
        return await self._apply_gateway_result(record, result, raise_on_decline=False)

    async def refund_to_wallet(
        self,
        original_entry_id: str,
        *,
        percentage: Optional[int] = None,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> Refund:
        """Credit the client's wallet directly; no gateway involved."""
        original = await self.ledger.get_entry(original_entry_id)
        self._check_refundable(original)
        refund_amount, pct = resolve_refund_amount(original.amount, percentage=percentage, amount=amount)
        reason = (reason or "").strip() or "Refund"

        async with self.ledger.owner_guard(original.owner_id):
            await self._check_refundable_amount(original, refund_amount)
            refund_id = business_id("RFND")
            await self.repository.create_record(
                refund_id=refund_id,
                original_entry_id=original.entry_id,
                owner_id=original.owner_id,
                channel=RefundChannel.WALLET.value,
                amount=refund_amount,
                percentage=pct,
                currency=original.currency,
                reason=reason,
                status=RefundStatus.PENDING.value,
                idempotency_key=f"wallet:{refund_id}",
                requested_by=requested_by,
            )
            record = await self._credit_in_transaction(refund_id, original)
        logger.info("Wallet refund %s of %s credited to %s", refund_id, refund_amount, record.owner_id)
        _notify(self.notifier, record.owner_id, "refund.completed", record.to_dict())
        return record

    async def _apply_gateway_result(
        self,
        record: Refund,
        result: GatewayRefundResult,
        *,
        raise_on_decline: bool = True,
    ) -> Refund:
        if result.status is GatewayRefundStatus.FAILED:
            failed = await self._fail(record, f"gateway declined refund {result.refund_id}")
            if not raise_on_decline:
                return failed
            raise ExternalGatewayFailure(
                f"gateway declined refund {record.refund_id}",
                entity=record.to_dict(),
            )
        if result.status is GatewayRefundStatus.PENDING:
            try:
                model = await self.repository.transition_record(
                    record.refund_id,
                    from_statuses=[RefundStatus.PENDING.value],
                    to_status=RefundStatus.PENDING.value,
                    values={"gateway_refund_id": result.refund_id},
                )
                await self.repository.commit()
            except Exception:
                await self.repository.rollback()
                raise
            pending = Refund.from_orm(model) if model is not None else await self._require_record(record.refund_id)
            logger.info("Gateway refund %s pending as %s", record.refund_id, result.refund_id)
            _notify(self.notifier, pending.owner_id, "refund.pending", pending.to_dict())
            return pending

        original = await self.ledger.get_entry(record.original_entry_id)
        async with self.ledger.owner_guard(record.owner_id):
            current = await self._require_record(record.refund_id, fresh=True)
            if current.status is RefundStatus.COMPLETED:
                return current
            completed = await self._credit_in_transaction(
                record.refund_id,
                original,
                gateway_refund_id=result.refund_id,
            )
        logger.info("Gateway refund %s confirmed as %s", completed.refund_id, result.refund_id)
        _notify(self.notifier, completed.owner_id, "refund.completed", completed.to_dict())
        return completed

    async def _credit_in_transaction(
        self,
        refund_id: str,
        original: LedgerEntry,
        *,
        gateway_refund_id: Optional[str] = None,
    ) -> Refund:
        record = await self._require_record(refund_id, fresh=True)
        target = REFUND_TRANSITIONS.check("complete", record.status, entity=record.to_dict())
        credit = await self.ledger.append_in_transaction(
            record.owner_id,
            amount=record.amount,
            entry_type=EntryType.REFUND,
            linked_entry_id=original.entry_id,
            external_reference=gateway_refund_id or original.external_reference,
            idempotency_key=f"refund:{refund_id}",
            description=f"Refund of {original.entry_id}: {record.reason}",
        )
        values: dict[str, Any] = {"ledger_entry_id": credit.entry_id, "completed_at": utcnow()}
        if gateway_refund_id:
            values["gateway_refund_id"] = gateway_refund_id
        model = await self.repository.transition_record(
            refund_id,
            from_statuses=[state.value for state in REFUND_TRANSITIONS.sources("complete")],
            to_status=target.value,
            values=values,
        )
        if model is None:
            raise ConflictError(f"refund {refund_id} changed while being credited", entity=record.to_dict())
        return Refund.from_orm(model)

    async def _fail(self, record: Refund, reason: str) -> Refund:
        try:
            model = await self.repository.transition_record(
                record.refund_id,
                from_statuses=[state.value for state in REFUND_TRANSITIONS.sources("fail")],
                to_status=REFUND_TRANSITIONS.target("fail").value,
                values={"failure_reason": reason[:500], "failed_at": utcnow()},
            )
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise
        failed = Refund.from_orm(model) if model is not None else await self._require_record(record.refund_id)
        logger.warning("Gateway refund %s failed: %s", record.refund_id, reason)
        _notify(self.notifier, failed.owner_id, "refund.failed", failed.to_dict())
        return failed

    def _check_refundable(self, original: LedgerEntry) -> None:
        if original.owner_kind is not OwnerKind.CLIENT or original.type not in REFUNDABLE_TYPES:
            raise ValidationError(
                "only client charges and deductions can be refunded",
                field="original_entry_id",
                entity=original.to_dict(),
            )
        if original.reversal_of_id is not None:
            raise ValidationError(
                f"{original.entry_id} is a reversal and cannot be refunded",
                field="original_entry_id",
                entity=original.to_dict(),
            )
        if original.status is not EntryStatus.COMPLETED:
            raise InvalidStateTransition(
                f"only completed entries can be refunded, {original.entry_id} is {original.status.value}",
                action="refund",
                current_state=original.status.value,
                entity=original.to_dict(),
            )

    async def _check_refundable_amount(self, original: LedgerEntry, refund_amount: int) -> None:
        if await self.ledger.repository.get_reversal_of(original.entry_id) is not None:
            raise ConflictError(f"{original.entry_id} was reversed and cannot be refunded", entity=original.to_dict())
        refunded = await self.repository.refunded_total(original.entry_id, OUTSTANDING_REFUND_STATUSES)
        remaining = original.amount - refunded
        if refund_amount > remaining:
            raise ValidationError(
                f"refund of {refund_amount} exceeds the refundable remainder {remaining} of {original.entry_id}",
                field="amount",
                entity={**original.to_dict(), "refunded_amount": refunded},
            )

    async def _replay(self, idempotency_key: str, original_entry_id: str) -> Optional[Refund]:
        model = await self.repository.get_record_by_key(idempotency_key)
        if model is None:
            return None
        record = Refund.from_orm(model)
        if record.original_entry_id != original_entry_id:
            raise ConflictError(
                f"idempotency key {idempotency_key} was already used for another refund",
                entity=record.to_dict(),
            )
        return record

    async def _require_record(self, refund_id: str, *, fresh: bool = False) -> Refund:
        model = await self.repository.get_record(refund_id, fresh=fresh)
        if model is None:
            raise NotFoundError(f"refund {refund_id} not found")
        return Refund.from_orm(model)

    async def get(self, refund_id: str) -> Refund:
        return await self._require_record(refund_id, fresh=True)

    async def list(
        self,
        request: PageRequest,
        *,
        status: Optional[str] = None,
        owner_id: Optional[str] = None,
        channel: Optional[str] = None,
        original_entry_id: Optional[str] = None,
    ) -> Page[Refund]:
        filters = {
            "status": status,
            "owner_id": owner_id,
            "channel": channel,
            "original_entry_id": original_entry_id,
        }
        rows = await self.repository.list_records(**filters, limit=request.limit, offset=request.offset)
        total = await self.repository.count_records(**filters)
        return Page.build([Refund.from_orm(row) for row in rows], request, total)


@dataclass(slots=True)
class CashOutService:
    """Client requests to withdraw prepaid balance back to a bank account."""

    repository: RefundRepository
    ledger: LedgerService
    notifier: Notifier

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        container: Optional["ApplicationContainer"] = None,
    ) -> "CashOutService":
        if container is None:
            from payments_server.core.container import get_container

            container = get_container()
        return cls(
            SqlRefundRepository(session),
            LedgerService.with_session(session, container),
            container.notifier,
        )

    async def request(self, owner_id: str, amount: int, reason: Optional[str] = None) -> CashOutRequest:
        validate_amount(amount)
        wallet = await self.ledger.get_account(owner_id)
        if wallet.owner_kind is not OwnerKind.CLIENT:
            raise ValidationError("only clients can request a wallet refund", field="owner_id")
        available = await self.ledger.available_balance(owner_id)
        if amount > available:
            raise InsufficientBalance(
                f"requested {amount} exceeds wallet balance {available}",
                required=amount,
                available=available,
                entity=wallet.to_dict(),
            )
        try:
            model = await self.repository.create_request(
                refund_id=business_id("WREF"),
                owner_id=owner_id,
                amount_requested=amount,
                cash_balance_snapshot=available,
                currency=wallet.currency,
                status=CashOutStatus.PENDING.value,
                reason=(reason or "").strip() or None,
            )
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise
        request = CashOutRequest.from_orm(model)
        logger.info("Wallet refund request %s of %s from %s", request.refund_id, amount, owner_id)
        _notify(self.notifier, owner_id, "wallet_refund.requested", request.to_dict())
        return request

    async def approve(
        self,
        refund_id: str,
        admin_id: str,
        amount_approved: Optional[int] = None,
        *,
        notes: Optional[str] = None,
    ) -> CashOutRequest:
        current = await self._require(refund_id, fresh=True)
        approved = current.amount_requested if amount_approved is None else validate_amount(
            amount_approved, "amount_approved"
        )
        if approved > current.amount_requested:
            raise ValidationError(
                f"approved amount {approved} exceeds requested {current.amount_requested}",
                field="amount_approved",
                entity=current.to_dict(),
            )
        values: dict[str, Any] = {
            "amount_approved": approved,
            "approved_at": utcnow(),
            "processed_by": admin_id,
        }
        if notes:
            values["admin_notes"] = notes
        return await self._advance(current, "approve", values)

    async def reject(self, refund_id: str, admin_id: str, reason: Optional[str]) -> CashOutRequest:
        reason = _required_text(reason, "reason", "a rejection reason is required")
        current = await self._require(refund_id, fresh=True)
        values = {"rejection_reason": reason, "rejected_at": utcnow(), "processed_by": admin_id}
        return await self._advance(current, "reject", values)

    async def process(self, refund_id: str, admin_id: str, payment_reference: Optional[str]) -> CashOutRequest:
        """approved -> processed; debits the approved amount from the wallet."""
        payment_reference = _required_text(
            payment_reference,
            "payment_reference",
            "a payment reference is required to process a wallet refund",
        )
        current = await self._require(refund_id)
        async with self.ledger.owner_guard(current.owner_id):
            current = await self._require(refund_id, fresh=True)
            target = CASH_OUT_TRANSITIONS.check("process", current.status, entity=current.to_dict())
            entry = await self.ledger.append_in_transaction(
                current.owner_id,
                amount=current.amount_approved,
                entry_type=EntryType.WITHDRAWAL,
                external_reference=payment_reference,
                idempotency_key=f"cashout:{refund_id}",
                description=f"Wallet refund {refund_id}",
            )
            model = await self.repository.transition_request(
                refund_id,
                from_statuses=[state.value for state in CASH_OUT_TRANSITIONS.sources("process")],
                to_status=target.value,
                values={
                    "processed_by": admin_id,
                    "processed_at": utcnow(),
                    "payment_reference": payment_reference,
                    "ledger_entry_id": entry.entry_id,
                },
            )
            if model is None:
                raise ConflictError(f"wallet refund {refund_id} changed while processing", entity=current.to_dict())
            processed = CashOutRequest.from_orm(model)
        logger.info("Wallet refund %s processed: %s paid out to %s", refund_id, entry.amount, processed.owner_id)
        _notify(self.notifier, processed.owner_id, "wallet_refund.processed", processed.to_dict())
        return processed

    async def _advance(self, current: CashOutRequest, action: str, values: dict[str, Any]) -> CashOutRequest:
        target = CASH_OUT_TRANSITIONS.check(action, current.status, entity=current.to_dict())
        try:
            model = await self.repository.transition_request(
                current.refund_id,
                from_statuses=[state.value for state in CASH_OUT_TRANSITIONS.sources(action)],
                to_status=target.value,
                values=values,
            )
            if model is None:
                latest = await self._require(current.refund_id, fresh=True)
                raise InvalidStateTransition(
                    f"cannot {action} wallet refund request in state '{latest.status.value}'",
                    action=action,
                    current_state=latest.status.value,
                    entity=latest.to_dict(),
                )
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise
        updated = CashOutRequest.from_orm(model)
        logger.info("Wallet refund request %s moved to %s", updated.refund_id, updated.status.value)
        _notify(self.notifier, updated.owner_id, f"wallet_refund.{updated.status.value}", updated.to_dict())
        return updated

    async def _require(self, refund_id: str, *, fresh: bool = False) -> CashOutRequest:
        model = await self.repository.get_request(refund_id, fresh=fresh)
        if model is None:
            raise NotFoundError(f"wallet refund request {refund_id} not found")
        return CashOutRequest.from_orm(model)

    async def get(self, refund_id: str) -> CashOutRequest:
        return await self._require(refund_id, fresh=True)

    async def list(
        self,
        request: PageRequest,
        *,
        status: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Page[CashOutRequest]:
        rows = await self.repository.list_requests(
            status=status,
            owner_id=owner_id,
            limit=request.limit,
            offset=request.offset,
        )
        total = await self.repository.count_requests(status=status, owner_id=owner_id)
        return Page.build([CashOutRequest.from_orm(row) for row in rows], request, total)
