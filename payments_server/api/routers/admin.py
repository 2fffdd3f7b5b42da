"""Administrative endpoints for ledger, payouts, refunds, gift cards and audit logs."""
from collections.abc import Awaitable
from typing import Any, Optional, TypeVar

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.api.deps import get_app_container, get_db_session, get_page_request, page_response
from payments_server.core.container import ApplicationContainer
from payments_server.core.security import require_admin
from payments_server.modules.activity import ActivityService, ActivityStatus
from payments_server.modules.common import DomainError, PageRequest
from payments_server.modules.gift_cards import GiftCardService
from payments_server.modules.ledger import LedgerService
from payments_server.modules.payouts import PayoutService
from payments_server.modules.refunds import CashOutService, RefundChannel, RefundService
from payments_server.schemas import (
    ActivityLogResponse,
    CaptureRequest,
    CashOutApproveRequest,
    CashOutProcessRequest,
    CashOutRejectRequest,
    CashOutResponse,
    GiftCardCreateRequest,
    GiftCardResponse,
    GiftCardStatusRequest,
    HoldRequest,
    LedgerAuditResponse,
    LedgerEntryResponse,
    LedgerPostRequest,
    LedgerStatsResponse,
    PageResponse,
    PayoutActionRequest,
    PayoutRejectRequest,
    PayoutResponse,
    PayoutStatsResponse,
    RechargeConfirmRequest,
    RefundConfirmRequest,
    RefundCreateRequest,
    RefundResponse,
    ReverseRequest,
    TokenData,
    WalletResponse,
)

router = APIRouter()

ResultT = TypeVar("ResultT")


async def audited(
    db: AsyncSession,
    admin: TokenData,
    *,
    action: str,
    module: str,
    target_type: str,
    target_id: Optional[str],
    operation: Awaitable[ResultT],
    details: Optional[dict[str, Any]] = None,
) -> ResultT:
    """Run an admin command and record the outcome in the activity log."""
    activity = ActivityService.with_session(db)
    try:
        result = await operation
    except DomainError as exc:
        await activity.record(
            actor_id=admin.account_id,
            action=action,
            module=module,
            target_id=target_id,
            target_type=target_type,
            status=ActivityStatus.FAILED,
            details=details,
            error_message=exc.message,
        )
        raise
    await activity.record(
        actor_id=admin.account_id,
        action=action,
        module=module,
        target_id=target_id,
        target_type=target_type,
        details=details,
    )
    return result


# -- ledger -----------------------------------------------------------


@router.get("/wallets/{owner_id}", response_model=WalletResponse)
async def admin_get_wallet(
    owner_id: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    snapshot = await ledger.get_account(owner_id)
    return WalletResponse.from_snapshot(snapshot, await ledger.available_balance(owner_id))


@router.get("/wallets/{owner_id}/audit", response_model=LedgerAuditResponse)
async def admin_audit_wallet(
    owner_id: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    audit = await LedgerService.with_session(db, container).replay(owner_id)
    return LedgerAuditResponse.model_validate(audit)


@router.get("/ledger/entries", response_model=PageResponse[LedgerEntryResponse])
async def admin_list_entries(
    owner_id: Optional[str] = None,
    entry_type: Optional[str] = Query(None, alias="type"),
    status: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    result = await ledger.list_entries(page, owner_id=owner_id, entry_type=entry_type, status=status)
    return page_response(result, LedgerEntryResponse)


@router.get("/ledger/stats", response_model=LedgerStatsResponse)
async def admin_ledger_stats(
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    totals = await LedgerService.with_session(db, container).transaction_stats()
    return LedgerStatsResponse(totals=totals)


@router.get("/ledger/entries/{entry_id}", response_model=LedgerEntryResponse)
async def admin_get_entry(
    entry_id: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    entry = await LedgerService.with_session(db, container).get_entry(entry_id)
    return LedgerEntryResponse.model_validate(entry)


@router.post("/ledger/entries", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def admin_post_entry(
    payload: LedgerPostRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    entry = await audited(
        db,
        admin,
        action="ledger.post",
        module="ledger",
        target_type="wallet",
        target_id=payload.owner_id,
        details={"type": payload.type.value, "amount": payload.amount},
        operation=ledger.append(
            payload.owner_id,
            amount=payload.amount,
            entry_type=payload.type,
            direction=payload.direction,
            owner_kind=payload.owner_kind,
            external_reference=payload.external_reference,
            idempotency_key=payload.idempotency_key,
            description=payload.description,
            metadata=payload.metadata,
        ),
    )
    return LedgerEntryResponse.model_validate(entry)


@router.post("/ledger/entries/{entry_id}/reverse", response_model=LedgerEntryResponse)
async def admin_reverse_entry(
    entry_id: str,
    payload: ReverseRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    entry = await audited(
        db,
        admin,
        action="ledger.reverse",
        module="ledger",
        target_type="ledger_entry",
        target_id=entry_id,
        operation=ledger.reverse(entry_id, description=payload.description),
    )
    return LedgerEntryResponse.model_validate(entry)


@router.post("/ledger/recharges/{entry_id}/confirm", response_model=LedgerEntryResponse)
async def admin_confirm_recharge(
    entry_id: str,
    payload: RechargeConfirmRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    entry = await audited(
        db,
        admin,
        action="ledger.recharge_confirm",
        module="ledger",
        target_type="ledger_entry",
        target_id=entry_id,
        operation=ledger.confirm_recharge(entry_id, payload.payment_id, payload.status),
        details={"payment_id": payload.payment_id, "status": payload.status},
    )
    return LedgerEntryResponse.model_validate(entry)


@router.post("/ledger/holds", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def admin_place_hold(
    payload: HoldRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    entry = await audited(
        db,
        admin,
        action="ledger.hold",
        module="ledger",
        target_type="wallet",
        target_id=payload.owner_id,
        details={"amount": payload.amount},
        operation=ledger.hold(
            payload.owner_id,
            payload.amount,
            reference=payload.reference,
            description=payload.description,
        ),
    )
    return LedgerEntryResponse.model_validate(entry)


@router.post("/ledger/holds/{entry_id}/capture", response_model=LedgerEntryResponse)
async def admin_capture_hold(
    entry_id: str,
    payload: CaptureRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    entry = await audited(
        db,
        admin,
        action="ledger.capture_hold",
        module="ledger",
        target_type="ledger_entry",
        target_id=entry_id,
        details={"amount": payload.amount},
        operation=ledger.capture_hold(entry_id, payload.amount, description=payload.description),
    )
    return LedgerEntryResponse.model_validate(entry)


@router.post("/ledger/holds/{entry_id}/release", response_model=LedgerEntryResponse)
async def admin_release_hold(
    entry_id: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    entry = await audited(
        db,
        admin,
        action="ledger.release_hold",
        module="ledger",
        target_type="ledger_entry",
        target_id=entry_id,
        operation=ledger.release_hold(entry_id),
    )
    return LedgerEntryResponse.model_validate(entry)


# -- payouts ----------------------------------------------------------


@router.get("/payouts", response_model=PageResponse[PayoutResponse])
async def admin_list_payouts(
    status: Optional[str] = None,
    owner_id: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    result = await PayoutService.with_session(db, container).list(page, status=status, owner_id=owner_id)
    return page_response(result, PayoutResponse)


@router.get("/payouts/stats", response_model=PayoutStatsResponse)
async def admin_payout_stats(
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    stats = await PayoutService.with_session(db, container).stats()
    return PayoutStatsResponse.model_validate(stats)


@router.get("/payouts/{payout_id}", response_model=PayoutResponse)
async def admin_get_payout(
    payout_id: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    payout = await PayoutService.with_session(db, container).get(payout_id)
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/approve", response_model=PayoutResponse)
async def admin_approve_payout(
    payout_id: str,
    payload: PayoutActionRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = PayoutService.with_session(db, container)
    payout = await audited(
        db,
        admin,
        action="payout.approve",
        module="payouts",
        target_type="payout",
        target_id=payout_id,
        operation=service.approve(
            payout_id,
            admin.account_id,
            transaction_reference=payload.transaction_reference,
            notes=payload.notes,
        ),
    )
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/process", response_model=PayoutResponse)
async def admin_process_payout(
    payout_id: str,
    payload: PayoutActionRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = PayoutService.with_session(db, container)
    payout = await audited(
        db,
        admin,
        action="payout.process",
        module="payouts",
        target_type="payout",
        target_id=payout_id,
        operation=service.process(
            payout_id,
            admin.account_id,
            transaction_reference=payload.transaction_reference,
            notes=payload.notes,
        ),
    )
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/complete", response_model=PayoutResponse)
async def admin_complete_payout(
    payout_id: str,
    payload: PayoutActionRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = PayoutService.with_session(db, container)
    payout = await audited(
        db,
        admin,
        action="payout.complete",
        module="payouts",
        target_type="payout",
        target_id=payout_id,
        details={"transaction_reference": payload.transaction_reference},
        operation=service.complete(
            payout_id,
            admin.account_id,
            payload.transaction_reference,
            notes=payload.notes,
        ),
    )
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/reject", response_model=PayoutResponse)
async def admin_reject_payout(
    payout_id: str,
    payload: PayoutRejectRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = PayoutService.with_session(db, container)
    payout = await audited(
        db,
        admin,
        action="payout.reject",
        module="payouts",
        target_type="payout",
        target_id=payout_id,
        details={"reason": payload.reason},
        operation=service.reject(payout_id, admin.account_id, payload.reason),
    )
    return PayoutResponse.model_validate(payout)


# -- refunds ----------------------------------------------------------


@router.post("/refunds", response_model=RefundResponse, status_code=status.HTTP_201_CREATED)
async def admin_create_refund(
    payload: RefundCreateRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = RefundService.with_session(db, container)
    if payload.channel is RefundChannel.GATEWAY:
        operation = service.refund_via_gateway(
            payload.original_entry_id,
            percentage=payload.percentage,
            amount=payload.amount,
            reason=payload.reason,
            requested_by=admin.account_id,
            idempotency_key=payload.idempotency_key,
        )
    else:
        operation = service.refund_to_wallet(
            payload.original_entry_id,
            percentage=payload.percentage,
            amount=payload.amount,
            reason=payload.reason,
            requested_by=admin.account_id,
        )
    refund = await audited(
        db,
        admin,
        action=f"refund.{payload.channel.value}",
        module="refunds",
        target_type="ledger_entry",
        target_id=payload.original_entry_id,
        details={"percentage": payload.percentage, "amount": payload.amount, "reason": payload.reason},
        operation=operation,
    )
    return RefundResponse.model_validate(refund)


@router.get("/refunds", response_model=PageResponse[RefundResponse])
async def admin_list_refunds(
    status: Optional[str] = None,
    owner_id: Optional[str] = None,
    channel: Optional[str] = None,
    original_entry_id: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    result = await RefundService.with_session(db, container).list(
        page,
        status=status,
        owner_id=owner_id,
        channel=channel,
        original_entry_id=original_entry_id,
    )
    return page_response(result, RefundResponse)


@router.get("/refunds/{refund_id}", response_model=RefundResponse)
async def admin_get_refund(
    refund_id: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    refund = await RefundService.with_session(db, container).get(refund_id)
    return RefundResponse.model_validate(refund)


@router.post("/refunds/{refund_id}/confirm", response_model=RefundResponse)
async def admin_confirm_refund(
    refund_id: str,
    payload: RefundConfirmRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = RefundService.with_session(db, container)
    refund = await audited(
        db,
        admin,
        action="refund.confirm",
        module="refunds",
        target_type="refund",
        target_id=refund_id,
        details={"gateway_refund_id": payload.gateway_refund_id, "status": payload.status.value},
        operation=service.confirm_gateway_refund(refund_id, payload.gateway_refund_id, payload.status),
    )
    return RefundResponse.model_validate(refund)


# -- wallet refund (cash-out) requests --------------------------------


@router.get("/refund-requests", response_model=PageResponse[CashOutResponse])
async def admin_list_refund_requests(
    status: Optional[str] = None,
    owner_id: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    result = await CashOutService.with_session(db, container).list(page, status=status, owner_id=owner_id)
    return page_response(result, CashOutResponse)


@router.get("/refund-requests/{refund_id}", response_model=CashOutResponse)
async def admin_get_refund_request(
    refund_id: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    request = await CashOutService.with_session(db, container).get(refund_id)
    return CashOutResponse.model_validate(request)


@router.post("/refund-requests/{refund_id}/approve", response_model=CashOutResponse)
async def admin_approve_refund_request(
    refund_id: str,
    payload: CashOutApproveRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = CashOutService.with_session(db, container)
    request = await audited(
        db,
        admin,
        action="wallet_refund.approve",
        module="refunds",
        target_type="wallet_refund_request",
        target_id=refund_id,
        details={"amount_approved": payload.amount_approved},
        operation=service.approve(refund_id, admin.account_id, payload.amount_approved, notes=payload.notes),
    )
    return CashOutResponse.model_validate(request)


@router.post("/refund-requests/{refund_id}/reject", response_model=CashOutResponse)
async def admin_reject_refund_request(
    refund_id: str,
    payload: CashOutRejectRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = CashOutService.with_session(db, container)
    request = await audited(
        db,
        admin,
        action="wallet_refund.reject",
        module="refunds",
        target_type="wallet_refund_request",
        target_id=refund_id,
        details={"reason": payload.reason},
        operation=service.reject(refund_id, admin.account_id, payload.reason),
    )
    return CashOutResponse.model_validate(request)


@router.post("/refund-requests/{refund_id}/process", response_model=CashOutResponse)
async def admin_process_refund_request(
    refund_id: str,
    payload: CashOutProcessRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = CashOutService.with_session(db, container)
    request = await audited(
        db,
        admin,
        action="wallet_refund.process",
        module="refunds",
        target_type="wallet_refund_request",
        target_id=refund_id,
        details={"payment_reference": payload.payment_reference},
        operation=service.process(refund_id, admin.account_id, payload.payment_reference),
    )
    return CashOutResponse.model_validate(request)


# -- gift cards -------------------------------------------------------


@router.post("/gift-cards", response_model=GiftCardResponse, status_code=status.HTTP_201_CREATED)
async def admin_create_gift_card(
    payload: GiftCardCreateRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = GiftCardService.with_session(db, container)
    card = await audited(
        db,
        admin,
        action="giftcard.create",
        module="gift_cards",
        target_type="gift_card",
        target_id=payload.code.strip().upper(),
        details={"amount": payload.amount, "max_redemptions": payload.max_redemptions},
        operation=service.create(
            code=payload.code,
            amount=payload.amount,
            created_by=admin.account_id,
            currency=payload.currency,
            max_redemptions=payload.max_redemptions,
            expires_at=payload.expires_at,
            metadata=payload.metadata,
        ),
    )
    return GiftCardResponse.model_validate(card)


@router.get("/gift-cards", response_model=PageResponse[GiftCardResponse])
async def admin_list_gift_cards(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    result = await GiftCardService.with_session(db, container).list(page, status=status, search=search)
    return page_response(result, GiftCardResponse)


@router.get("/gift-cards/{code}", response_model=GiftCardResponse)
async def admin_get_gift_card(
    code: str,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    card = await GiftCardService.with_session(db, container).get(code)
    return GiftCardResponse.model_validate(card)


@router.post("/gift-cards/{code}/status", response_model=GiftCardResponse)
async def admin_set_gift_card_status(
    code: str,
    payload: GiftCardStatusRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = GiftCardService.with_session(db, container)
    card = await audited(
        db,
        admin,
        action="giftcard.set_status",
        module="gift_cards",
        target_type="gift_card",
        target_id=code.strip().upper(),
        details={"status": payload.status.value},
        operation=service.set_status(code, payload.status, admin.account_id),
    )
    return GiftCardResponse.model_validate(card)


# -- activity ---------------------------------------------------------


@router.get("/activity-logs", response_model=PageResponse[ActivityLogResponse])
async def admin_list_activity_logs(
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    status: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    result = await ActivityService.with_session(db).list_logs(
        page,
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        status=status,
    )
    return page_response(result, ActivityLogResponse)
