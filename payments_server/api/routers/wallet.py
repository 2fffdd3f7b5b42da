"""Client wallet endpoints: balance, history, recharges, gift cards and cash-out requests."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.api.deps import get_app_container, get_db_session, get_page_request, page_response
from payments_server.core.container import ApplicationContainer
from payments_server.core.security import require_client
from payments_server.modules.common import NotFoundError, PageRequest
from payments_server.modules.gift_cards import GiftCardService
from payments_server.modules.ledger import LedgerService, OwnerKind
from payments_server.modules.refunds import CashOutService
from payments_server.schemas import (
    CashOutCreateRequest,
    CashOutResponse,
    GiftCardRedeemRequest,
    GiftCardRedemptionResponse,
    LedgerEntryResponse,
    PageResponse,
    RechargeCreateRequest,
    TokenData,
    WalletResponse,
)

router = APIRouter()


@router.get("", response_model=WalletResponse)
async def get_wallet(
    client: TokenData = Depends(require_client),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    snapshot = await ledger.ensure_account(client.account_id, OwnerKind.CLIENT)
    available = await ledger.available_balance(client.account_id)
    return WalletResponse.from_snapshot(snapshot, available)


@router.get("/entries", response_model=PageResponse[LedgerEntryResponse])
async def list_wallet_entries(
    entry_type: Optional[str] = Query(None, alias="type"),
    status: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    client: TokenData = Depends(require_client),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    result = await ledger.list_entries(page, owner_id=client.account_id, entry_type=entry_type, status=status)
    return page_response(result, LedgerEntryResponse)


@router.get("/entries/{entry_id}", response_model=LedgerEntryResponse)
async def get_wallet_entry(
    entry_id: str,
    client: TokenData = Depends(require_client),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    entry = await LedgerService.with_session(db, container).get_entry(entry_id)
    if entry.owner_id != client.account_id:
        raise NotFoundError(f"ledger entry {entry_id} not found")
    return LedgerEntryResponse.model_validate(entry)


@router.post("/recharges", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def start_recharge(
    payload: RechargeCreateRequest,
    client: TokenData = Depends(require_client),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    ledger = LedgerService.with_session(db, container)
    entry = await ledger.begin_recharge(client.account_id, payload.amount, description=payload.description)
    return LedgerEntryResponse.model_validate(entry)


@router.post("/gift-cards/redeem", response_model=GiftCardRedemptionResponse)
async def redeem_gift_card(
    payload: GiftCardRedeemRequest,
    client: TokenData = Depends(require_client),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    redemption = await GiftCardService.with_session(db, container).redeem(payload.code, client.account_id)
    return GiftCardRedemptionResponse(
        code=redemption.gift_card.code,
        amount=redemption.gift_card.amount,
        entry=LedgerEntryResponse.model_validate(redemption.entry),
    )


@router.post("/refund-requests", response_model=CashOutResponse, status_code=status.HTTP_201_CREATED)
async def create_refund_request(
    payload: CashOutCreateRequest,
    client: TokenData = Depends(require_client),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    service = CashOutService.with_session(db, container)
    request = await service.request(client.account_id, payload.amount, payload.reason)
    return CashOutResponse.model_validate(request)


@router.get("/refund-requests", response_model=PageResponse[CashOutResponse])
async def list_refund_requests(
    status: Optional[str] = None,
    page: PageRequest = Depends(get_page_request),
    client: TokenData = Depends(require_client),
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
):
    result = await CashOutService.with_session(db, container).list(page, status=status, owner_id=client.account_id)
    return page_response(result, CashOutResponse)
