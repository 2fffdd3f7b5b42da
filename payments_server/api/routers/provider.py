"""Provider endpoints: earnings snapshot and payout requests."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.api.deps import get_app_container, get_db_session, get_page_request, page_response
from payments_server.core.container import ApplicationContainer
from payments_server.core.security import require_provider
from payments_server.modules.common import NotFoundError, PageRequest
from payments_server.modules.ledger import LedgerService, OwnerKind
from payments_server.modules.payouts import PayoutService
from payments_server.schemas import (
    LedgerEntryResponse,
    PageResponse,
    PayoutCreateRequest,
    PayoutResponse,
    TokenData,
    WalletResponse,
)

router = APIRouter()


@router.get("/earnings", response_model=WalletResponse)
async def get_earnings(
    provider: TokenData = Depends(require_provider),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    snapshot = await LedgerService.with_session(db, container).ensure_account(provider.account_id, OwnerKind.PROVIDER)
    return WalletResponse.from_snapshot(snapshot, snapshot.figures.withdrawable_amount)


@router.get("/entries", response_model=PageResponse[LedgerEntryResponse])
async def list_earning_entries(
    entry_type: Optional[str] = Query(None, alias="type"),
    status: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    provider: TokenData = Depends(require_provider),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    result = await ledger.list_entries(page, owner_id=provider.account_id, entry_type=entry_type, status=status)
    return page_response(result, LedgerEntryResponse)


@router.post("/payouts", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def submit_payout(
    payload: PayoutCreateRequest,
    provider: TokenData = Depends(require_provider),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = PayoutService.with_session(db, container)
    payout = await service.submit(provider.account_id, payload.amount, payload.bank_details.model_dump())
    return PayoutResponse.model_validate(payout)


@router.get("/payouts", response_model=PageResponse[PayoutResponse])
async def list_payouts(
    status: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    provider: TokenData = Depends(require_provider),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = PayoutService.with_session(db, container)
    result = await service.list_for_owner(provider.account_id, page, status=status)
    return page_response(result, PayoutResponse)


@router.get("/payouts/{payout_id}", response_model=PayoutResponse)
async def get_payout(
    payout_id: str,
    provider: TokenData = Depends(require_provider),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    payout = await PayoutService.with_session(db, container).get(payout_id)
    if payout.owner_id != provider.account_id:
        raise NotFoundError(f"payout {payout_id} not found")
    return PayoutResponse.model_validate(payout)
