"""Ledger service: the only writer of wallet balances."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.db.models import LedgerEntry as LedgerEntryModel
from payments_server.infrastructure.database.repositories.ledger_repository import SqlLedgerRepository
from payments_server.modules.common.exceptions import (
    ConflictError,
    InsufficientBalance,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payments_server.modules.common.identifiers import business_id
from payments_server.modules.common.locks import OwnerLockRegistry
from payments_server.modules.common.pagination import Page, PageRequest

from .models import (
    ALLOWED_TYPES,
    ENTRY_PREFIXES,
    HOLD_TRANSITIONS,
    RECHARGE_TRANSITIONS,
    TYPE_DIRECTIONS,
    AccountFigures,
    Direction,
    EntryStatus,
    EntryType,
    LedgerAudit,
    LedgerEntry,
    OwnerKind,
    WalletSnapshot,
)
from .repository import LedgerRepository

if TYPE_CHECKING:
    from payments_server.core.container import ApplicationContainer

logger = logging.getLogger(__name__)


def validate_amount(amount: Any, field: str = "amount") -> int:
    """Amounts are positive integers in the smallest currency unit."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field} must be an integer number of paise", field=field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    return amount


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"unknown {field}: {value}", field=field) from exc


@dataclass(slots=True, frozen=True)
class _Posting:
    """A checked balance change waiting to be written."""

    kind: OwnerKind
    snapshot: WalletSnapshot
    balance_before: int
    figures: AccountFigures

    @property
    def balance_after(self) -> int:
        return self.figures.current_balance(self.kind)

    @property
    def sequence(self) -> int:
        return self.snapshot.version + 1


@dataclass(slots=True)
class LedgerService:
    repository: LedgerRepository
    locks: OwnerLockRegistry
    default_currency: str = "INR"
    min_recharge_amount: int = 100_00

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        container: Optional["ApplicationContainer"] = None,
    ) -> "LedgerService":
        if container is None:
            from payments_server.core.container import get_container

            container = get_container()
        return cls(
            SqlLedgerRepository(session),
            container.locks,
            container.settings.default_currency,
            container.settings.ledger.min_recharge_amount,
        )

    # -- units of work -------------------------------------------------

    @asynccontextmanager
    async def owner_guard(self, owner_id: str) -> AsyncIterator[None]:
        """Serialize work for one owner and commit it as a single unit.

        Everything written through the shared session inside the block is
        committed on exit, or rolled back if the block raises.
        """
        async with self.locks.hold(owner_id):
            try:
                yield
                await self.repository.commit()
            except BaseException:
                await self.repository.rollback()
                raise

    # -- accounts ------------------------------------------------------

    async def ensure_account(
        self,
        owner_id: str,
        owner_kind: OwnerKind | str,
        currency: Optional[str] = None,
    ) -> WalletSnapshot:
        kind = _coerce(OwnerKind, owner_kind, "owner_kind")
        account = await self.repository.get_account(owner_id)
        if account is None:
            account = await self.repository.create_account(owner_id, kind.value, currency or self.default_currency)
            logger.info("Created %s wallet for %s", kind.value, owner_id)
        elif account.owner_kind != kind.value:
            raise ValidationError(
                f"owner {owner_id} already has a {account.owner_kind} wallet",
                field="owner_kind",
                entity=WalletSnapshot.from_orm(account).to_dict(),
            )
        return WalletSnapshot.from_orm(account)

    async def get_account(self, owner_id: str) -> WalletSnapshot:
        account = await self.repository.get_account(owner_id, fresh=True)
        if account is None:
            raise NotFoundError(f"wallet not found for owner {owner_id}")
        return WalletSnapshot.from_orm(account)

    async def get_balance(self, owner_id: str) -> int:
        """Current balance as recorded by the latest completed entry."""
        snapshot = await self.get_account(owner_id)
        latest = await self.repository.latest_balance(owner_id)
        balance = latest if latest is not None else 0
        if balance != snapshot.current_balance:
            logger.error(
                "Wallet aggregate for %s (%s) disagrees with latest entry (%s)",
                owner_id,
                snapshot.current_balance,
                balance,
            )
        return balance

    async def available_balance(self, owner_id: str) -> int:
        balance = await self.get_balance(owner_id)
        return balance - await self.repository.active_holds_total(owner_id)

    # -- appends -------------------------------------------------------

    async def append(
        self,
        owner_id: str,
        *,
        amount: int,
        entry_type: EntryType | str,
        direction: Direction | str | None = None,
        owner_kind: OwnerKind | str | None = None,
        external_reference: Optional[str] = None,
        linked_entry_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> LedgerEntry:
        """Append one completed balance-changing entry and commit it."""
        async with self.owner_guard(owner_id):
            entry = await self.append_in_transaction(
                owner_id,
                amount=amount,
                entry_type=entry_type,
                direction=direction,
                owner_kind=owner_kind,
                external_reference=external_reference,
                linked_entry_id=linked_entry_id,
                idempotency_key=idempotency_key,
                description=description,
                metadata=metadata,
            )
        return entry

    async def append_in_transaction(
        self,
        owner_id: str,
        *,
        amount: int,
        entry_type: EntryType | str,
        direction: Direction | str | None = None,
        owner_kind: OwnerKind | str | None = None,
        external_reference: Optional[str] = None,
        linked_entry_id: Optional[str] = None,
        reversal_of_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> LedgerEntry:
        """Write an entry and the matching aggregate update without committing.

        The caller must hold the owner's lock (see ``owner_guard``) and owns
        the commit, so the entry lands together with its own status changes.
        """
        validate_amount(amount)
        entry_type = _coerce(EntryType, entry_type, "type")
        if entry_type is EntryType.HOLD:
            raise ValidationError("holds are placed with hold(), not appended", field="type")
        expected = TYPE_DIRECTIONS[entry_type]
        if reversal_of_id is not None:
            expected = expected.opposite()
        if direction is not None and _coerce(Direction, direction, "direction") is not expected:
            raise ValidationError(
                f"{entry_type.value} entries must be {expected.value}s",
                field="direction",
            )
        direction = expected

        if idempotency_key:
            replayed = await self._replay_idempotent(idempotency_key, owner_id, entry_type, amount)
            if replayed is not None:
                return replayed

        posting = await self._prepare_posting(
            owner_id,
            owner_kind=owner_kind,
            entry_type=entry_type,
            direction=direction,
            amount=amount,
            reversal=reversal_of_id is not None,
        )
        try:
            model = await self.repository.add_entry(
                entry_id=business_id(ENTRY_PREFIXES[entry_type]),
                owner_id=owner_id,
                owner_kind=posting.kind.value,
                type=entry_type.value,
                direction=direction.value,
                amount=amount,
                currency=posting.snapshot.currency,
                balance_before=posting.balance_before,
                balance_after=posting.balance_after,
                sequence=posting.sequence,
                status=EntryStatus.COMPLETED.value,
                linked_entry_id=linked_entry_id,
                reversal_of_id=reversal_of_id,
                external_reference=external_reference,
                idempotency_key=idempotency_key,
                description=description,
                meta=json.dumps(metadata, ensure_ascii=False, default=str) if metadata else None,
            )
        except IntegrityError as exc:
            raise ConflictError(
                f"ledger entry for {owner_id} collides with an existing entry",
                entity=posting.snapshot.to_dict(),
            ) from exc

        await self._store_figures(posting)
        logger.info(
            "Ledger %s %s %s %s for %s: %s -> %s",
            model.entry_id,
            entry_type.value,
            direction.value,
            amount,
            owner_id,
            posting.balance_before,
            posting.balance_after,
        )
        return LedgerEntry.from_orm(model)

    async def _prepare_posting(
        self,
        owner_id: str,
        *,
        owner_kind: OwnerKind | str | None,
        entry_type: EntryType,
        direction: Direction,
        amount: int,
        reversal: bool = False,
    ) -> _Posting:
        """Check one balance change against the wallet and work out its figures."""
        account = await self.repository.get_account(owner_id, fresh=True)
        if account is None:
            if owner_kind is None:
                raise NotFoundError(f"wallet not found for owner {owner_id}")
            account = await self.repository.create_account(
                owner_id, _coerce(OwnerKind, owner_kind, "owner_kind").value, self.default_currency
            )
        kind = OwnerKind(account.owner_kind)
        snapshot = WalletSnapshot.from_orm(account)
        if owner_kind is not None and _coerce(OwnerKind, owner_kind, "owner_kind") is not kind:
            raise ValidationError(
                f"owner {owner_id} has a {kind.value} wallet",
                field="owner_kind",
                entity=snapshot.to_dict(),
            )
        if entry_type not in ALLOWED_TYPES[kind]:
            raise ValidationError(
                f"{entry_type.value} entries are not allowed on {kind.value} wallets",
                field="type",
                entity=snapshot.to_dict(),
            )

        figures = AccountFigures.from_orm(account)
        current = figures.current_balance(kind)
        latest = await self.repository.latest_balance(owner_id)
        if (latest if latest is not None else 0) != current:
            raise ConflictError(
                f"wallet {owner_id} is out of step with its ledger ({current} != {latest})",
                entity=snapshot.to_dict(),
            )

        if direction is Direction.DEBIT:
            available = current - await self.repository.active_holds_total(owner_id)
            if amount > available:
                raise InsufficientBalance(
                    f"insufficient balance: required {amount}, available {available}",
                    required=amount,
                    available=available,
                    entity=snapshot.to_dict(),
                )

        updated = figures.apply(kind, entry_type, direction, amount, reversal=reversal)
        problem = updated.violation(kind)
        if problem is not None:
            raise ValidationError(problem, field="amount", entity=snapshot.to_dict())
        return _Posting(kind=kind, snapshot=snapshot, balance_before=current, figures=updated)

    async def _store_figures(self, posting: _Posting) -> None:
        account = await self.repository.update_account_figures(
            posting.snapshot.owner_id,
            expected_version=posting.snapshot.version,
            figures=posting.figures.as_columns(),
        )
        if account is None:
            raise ConflictError(f"wallet {posting.snapshot.owner_id} was modified concurrently, retry the command")

    async def _replay_idempotent(
        self,
        key: str,
        owner_id: str,
        entry_type: EntryType,
        amount: int,
    ) -> Optional[LedgerEntry]:
        existing = await self.repository.get_entry_by_idempotency_key(key)
        if existing is None:
            return None
        entry = LedgerEntry.from_orm(existing)
        if entry.owner_id != owner_id or entry.type is not entry_type or entry.amount != amount:
            raise ConflictError(
                f"idempotency key {key} was already used for a different entry",
                entity=entry.to_dict(),
            )
        logger.info("Idempotent replay of %s for key %s", entry.entry_id, key)
        return entry

    # -- reversals -----------------------------------------------------

    async def reverse(self, entry_id: str, *, description: Optional[str] = None) -> LedgerEntry:
        original = await self._require_entry(entry_id)
        async with self.owner_guard(original.owner_id):
            reversal = await self.reverse_in_transaction(entry_id, description=description)
        return reversal

    async def reverse_in_transaction(self, entry_id: str, *, description: Optional[str] = None) -> LedgerEntry:
        original = await self._require_entry(entry_id, fresh=True)
        if original.type is EntryType.HOLD:
            raise InvalidStateTransition(
                "holds are released, not reversed",
                action="reverse",
                current_state=original.status.value,
                entity=original.to_dict(),
            )
        if original.reversal_of_id is not None:
            raise InvalidStateTransition(
                f"{entry_id} is itself a reversal",
                action="reverse",
                current_state=original.status.value,
                entity=original.to_dict(),
            )
        if original.status is not EntryStatus.COMPLETED:
            raise InvalidStateTransition(
                f"only completed entries can be reversed, {entry_id} is {original.status.value}",
                action="reverse",
                current_state=original.status.value,
                entity=original.to_dict(),
            )
        existing = await self.repository.get_reversal_of(entry_id)
        if existing is not None:
            raise ConflictError(
                f"{entry_id} was already reversed by {existing.entry_id}",
                entity=LedgerEntry.from_orm(existing).to_dict(),
            )
        # refunds and reversals must not both give the same money back
        refunded = await self.repository.refund_claims_total(entry_id)
        if refunded:
            raise ConflictError(
                f"{entry_id} has {refunded} refunded or being refunded and cannot be reversed",
                entity={**original.to_dict(), "refunded_amount": refunded},
            )
        if original.type is EntryType.REFUND:
            record = await self.repository.refund_record_for_credit(entry_id)
            if record is not None:
                raise ConflictError(
                    f"{entry_id} settles refund {record.refund_id} and cannot be reversed",
                    entity=original.to_dict(),
                )
        return await self.append_in_transaction(
            original.owner_id,
            amount=original.amount,
            entry_type=original.type,
            direction=original.direction.opposite(),
            linked_entry_id=original.entry_id,
            reversal_of_id=original.entry_id,
            external_reference=original.external_reference,
            description=description or f"Reversal of {original.entry_id}",
        )

    # -- recharges -----------------------------------------------------

    async def begin_recharge(
        self,
        owner_id: str,
        amount: int,
        *,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        """Record a pending top-up; the wallet is credited by ``confirm_recharge``."""
        validate_amount(amount)
        if amount < self.min_recharge_amount:
            raise ValidationError(f"minimum recharge amount is {self.min_recharge_amount}", field="amount")
        async with self.owner_guard(owner_id):
            snapshot = await self.ensure_account(owner_id, OwnerKind.CLIENT)
            current = snapshot.current_balance
            model = await self.repository.add_entry(
                entry_id=business_id(ENTRY_PREFIXES[EntryType.RECHARGE]),
                owner_id=owner_id,
                owner_kind=OwnerKind.CLIENT.value,
                type=EntryType.RECHARGE.value,
                direction=Direction.CREDIT.value,
                amount=amount,
                currency=snapshot.currency,
                balance_before=current,
                balance_after=current,
                sequence=None,
                status=EntryStatus.PENDING.value,
                description=description or f"Wallet recharge of {amount}",
            )
            entry = LedgerEntry.from_orm(model)
        logger.info("Recharge %s of %s started for %s", entry.entry_id, amount, owner_id)
        return entry

    async def confirm_recharge(
        self,
        entry_id: str,
        payment_id: str,
        status: EntryStatus | str,
    ) -> LedgerEntry:
        """Settle a pending recharge with the payment outcome.

        ``completed`` credits the wallet and ``failed`` only closes the entry.
        A payment id settles at most one recharge; repeating the answer that
        settled an entry returns it unchanged.
        """
        payment_id = (payment_id or "").strip()
        if not payment_id:
            raise ValidationError("a payment id is required", field="payment_id")
        outcome = _coerce(EntryStatus, status, "status")
        if outcome not in (EntryStatus.COMPLETED, EntryStatus.FAILED):
            raise ValidationError("a recharge is settled as completed or failed", field="status")
        action = "confirm" if outcome is EntryStatus.COMPLETED else "fail"
        key = f"recharge:{payment_id}"

        pending = await self._require_entry(entry_id)
        if pending.type is not EntryType.RECHARGE:
            raise ValidationError(f"{entry_id} is not a recharge", field="entry_id", entity=pending.to_dict())

        async with self.owner_guard(pending.owner_id):
            current = await self._require_entry(entry_id, fresh=True)
            if current.status is outcome and current.idempotency_key == key:
                logger.info("Recharge %s already settled by payment %s", entry_id, payment_id)
                return current
            target = RECHARGE_TRANSITIONS.check(action, current.status, entity=current.to_dict())
            used = await self.repository.get_entry_by_idempotency_key(key)
            if used is not None:
                raise ConflictError(
                    f"payment {payment_id} already settled {used.entry_id}",
                    entity=LedgerEntry.from_orm(used).to_dict(),
                )

            values: dict[str, Any] = {"external_reference": payment_id, "idempotency_key": key}
            posting: Optional[_Posting] = None
            if outcome is EntryStatus.COMPLETED:
                posting = await self._prepare_posting(
                    current.owner_id,
                    owner_kind=None,
                    entry_type=EntryType.RECHARGE,
                    direction=Direction.CREDIT,
                    amount=current.amount,
                )
                values.update(
                    balance_before=posting.balance_before,
                    balance_after=posting.balance_after,
                    sequence=posting.sequence,
                    description=f"Wallet recharged with {current.amount}",
                )
            else:
                values["description"] = "Payment failed or cancelled"
            model = await self.repository.transition_entry(
                entry_id,
                from_statuses=[state.value for state in RECHARGE_TRANSITIONS.sources(action)],
                to_status=target.value,
                values=values,
            )
            if model is None:
                raise ConflictError(f"recharge {entry_id} changed while being settled", entity=current.to_dict())
            if posting is not None:
                await self._store_figures(posting)
            settled = LedgerEntry.from_orm(model)

        if settled.status is EntryStatus.COMPLETED:
            logger.info(
                "Recharge %s confirmed by %s: %s -> %s",
                entry_id,
                payment_id,
                settled.balance_before,
                settled.balance_after,
            )
        else:
            logger.warning("Recharge %s failed (payment %s)", entry_id, payment_id)
        return settled

    # -- holds ---------------------------------------------------------

    async def hold(
        self,
        owner_id: str,
        amount: int,
        *,
        reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        """Reserve part of a client balance; balance itself is untouched."""
        validate_amount(amount)
        async with self.owner_guard(owner_id):
            account = await self.repository.get_account(owner_id, fresh=True)
            if account is None:
                raise NotFoundError(f"wallet not found for owner {owner_id}")
            snapshot = WalletSnapshot.from_orm(account)
            if snapshot.owner_kind is not OwnerKind.CLIENT:
                raise ValidationError("holds are only placed on client wallets", field="owner_id")
            current = snapshot.current_balance
            available = current - await self.repository.active_holds_total(owner_id)
            if amount > available:
                raise InsufficientBalance(
                    f"insufficient balance to hold {amount}, available {available}",
                    required=amount,
                    available=available,
                    entity=snapshot.to_dict(),
                )
            model = await self.repository.add_entry(
                entry_id=business_id(ENTRY_PREFIXES[EntryType.HOLD]),
                owner_id=owner_id,
                owner_kind=snapshot.owner_kind.value,
                type=EntryType.HOLD.value,
                direction=Direction.DEBIT.value,
                amount=amount,
                currency=snapshot.currency,
                balance_before=current,
                balance_after=current,
                sequence=None,
                status=EntryStatus.PENDING.value,
                external_reference=reference,
                description=description,
            )
            entry = LedgerEntry.from_orm(model)
        logger.info("Placed hold %s of %s on %s", entry.entry_id, amount, owner_id)
        return entry

    async def capture_hold(
        self,
        hold_entry_id: str,
        amount: Optional[int] = None,
        *,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        """Turn a hold into a ``charge`` of at most the held amount."""
        held = await self._require_entry(hold_entry_id)
        async with self.owner_guard(held.owner_id):
            held = await self._transition_hold(hold_entry_id, "capture")
            charge_amount = held.amount if amount is None else validate_amount(amount)
            if charge_amount > held.amount:
                raise ValidationError(
                    f"cannot capture {charge_amount}, hold is only {held.amount}",
                    field="amount",
                    entity=held.to_dict(),
                )
            charge = await self.append_in_transaction(
                held.owner_id,
                amount=charge_amount,
                entry_type=EntryType.CHARGE,
                linked_entry_id=held.entry_id,
                external_reference=held.external_reference,
                description=description or f"Capture of {held.entry_id}",
            )
        return charge

    async def release_hold(self, hold_entry_id: str) -> LedgerEntry:
        held = await self._require_entry(hold_entry_id)
        async with self.owner_guard(held.owner_id):
            released = await self._transition_hold(hold_entry_id, "release")
        logger.info("Released hold %s for %s", released.entry_id, released.owner_id)
        return released

    async def _transition_hold(self, hold_entry_id: str, action: str) -> LedgerEntry:
        held = await self._require_entry(hold_entry_id, fresh=True)
        if held.type is not EntryType.HOLD:
            raise ValidationError(f"{hold_entry_id} is not a hold", field="entry_id", entity=held.to_dict())
        target = HOLD_TRANSITIONS.check(action, held.status, entity=held.to_dict())
        model = await self.repository.transition_entry(
            hold_entry_id,
            from_statuses=[state.value for state in HOLD_TRANSITIONS.sources(action)],
            to_status=target.value,
        )
        if model is None:
            raise ConflictError(f"hold {hold_entry_id} changed while being updated")
        return LedgerEntry.from_orm(model)

    # -- reads ---------------------------------------------------------

    async def _require_entry(self, entry_id: str, *, fresh: bool = False) -> LedgerEntry:
        model: Optional[LedgerEntryModel] = await self.repository.get_entry(entry_id, fresh=fresh)
        if model is None:
            raise NotFoundError(f"ledger entry {entry_id} not found")
        return LedgerEntry.from_orm(model)

    async def get_entry(self, entry_id: str) -> LedgerEntry:
        return await self._require_entry(entry_id, fresh=True)

    async def list_entries(
        self,
        request: PageRequest,
        *,
        owner_id: Optional[str] = None,
        entry_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Page[LedgerEntry]:
        rows = await self.repository.list_entries(
            owner_id=owner_id,
            entry_type=entry_type,
            status=status,
            limit=request.limit,
            offset=request.offset,
        )
        total = await self.repository.count_entries(owner_id=owner_id, entry_type=entry_type, status=status)
        return Page.build([LedgerEntry.from_orm(row) for row in rows], request, total)

    async def transaction_stats(self) -> dict[str, int]:
        totals = await self.repository.completed_totals_by_type()
        return {entry_type.value: totals.get(entry_type.value, 0) for entry_type in EntryType}

    async def replay(self, owner_id: str) -> LedgerAudit:
        """Re-sum an owner's history; for audits, never for balance reads."""
        snapshot = await self.get_account(owner_id)
        movements = await self.repository.completed_movements(owner_id)
        replayed = sum(amount if direction == Direction.CREDIT.value else -amount for direction, amount in movements)
        latest = await self.repository.latest_balance(owner_id)
        audit = LedgerAudit(
            owner_id=owner_id,
            replayed_balance=replayed,
            latest_entry_balance=latest if latest is not None else 0,
            aggregate_balance=snapshot.current_balance,
            entries_replayed=len(movements),
        )
        if not audit.consistent:
            logger.error("Ledger audit mismatch for %s: %s", owner_id, audit)
        return audit
