"""
ShipLedger - Ledger Router

API endpoints for courier and company ledgers:
- current ledger and account statement
- manual payments
- settlement, full or driven by a company sheet
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_current_actor, get_notifier
from app.models.payment import PartyRole
from app.schemas.ledger import (
    LedgerResponse,
    PaymentCreateRequest,
    PaymentListResponse,
    PaymentResponse,
    SettleRequest,
    SettlementResponse,
    SheetSettlementPreviewResponse,
    SheetSettlementRequest,
    StatementResponse,
)
from app.services.ledger_service import LedgerService
from app.services.notification_service import NotificationDispatcher
from app.services.settlement_service import SettlementCoordinator
from app.utils.permissions import Actor, Permission, ensure_can_view_ledger, require_permission


router = APIRouter()


# ===========================================
# LEDGER
# ===========================================

@router.get(
    "/{role}/{entity_id}",
    response_model=LedgerResponse,
    summary="Get ledger",
    description="Current ledger computed from active shipments and payments.",
)
async def get_ledger(
    role: PartyRole,
    entity_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    ensure_can_view_ledger(actor, role, entity_id)
    ledger = await LedgerService(db).compute_ledger(entity_id, role)
    return LedgerResponse.from_ledger(ledger)


@router.get(
    "/{role}/{entity_id}/statement",
    response_model=StatementResponse,
    summary="Get account statement",
)
async def get_statement(
    role: PartyRole,
    entity_id: UUID,
    include_archived: bool = Query(False, description="Include settled records"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    ensure_can_view_ledger(actor, role, entity_id)
    statement = await LedgerService(db).account_statement(
        entity_id, role, include_archived=include_archived,
    )
    return StatementResponse.from_statement(statement)


# ===========================================
# PAYMENTS
# ===========================================

@router.get(
    "/{role}/{entity_id}/payments",
    response_model=PaymentListResponse,
    summary="List payments",
)
async def list_payments(
    role: PartyRole,
    entity_id: UUID,
    include_archived: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    ensure_can_view_ledger(actor, role, entity_id)
    service = LedgerService(db)
    await service.get_party(entity_id, role)
    payments = await service.get_payments(entity_id, role, include_archived=include_archived)
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )


@router.post(
    "/{role}/{entity_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a payment",
)
async def record_payment(
    role: PartyRole,
    entity_id: UUID,
    request: PaymentCreateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    payment = await LedgerService(db).record_payment(
        entity_id, role, request.amount, actor, notes=request.notes,
    )
    return PaymentResponse.model_validate(payment)


# ===========================================
# SETTLEMENT
# ===========================================

@router.post(
    "/{role}/{entity_id}/settle",
    response_model=SettlementResponse,
    summary="Settle account",
    description="Record the closing payment and archive the ledger's records in one atomic batch.",
)
async def settle_account(
    role: PartyRole,
    entity_id: UUID,
    request: Optional[SettleRequest] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    coordinator = SettlementCoordinator(db, notifier=notifier)
    receipt = await coordinator.settle(
        entity_id, role, actor,
        expected_net_due=request.expected_net_due if request else None,
    )
    return SettlementResponse.from_receipt(receipt)


@router.post(
    "/company/{company_id}/sheet-settlement/preview",
    response_model=SheetSettlementPreviewResponse,
    summary="Preview a sheet settlement",
)
async def preview_sheet_settlement(
    company_id: UUID,
    request: SheetSettlementRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    require_permission(actor, Permission.SETTLE_ACCOUNTS)
    preview = await SettlementCoordinator(db).preview_sheet_settlement(company_id, request.rows)
    return SheetSettlementPreviewResponse.from_preview(preview)


@router.post(
    "/company/{company_id}/sheet-settlement",
    response_model=SettlementResponse,
    summary="Settle a company from a sheet",
)
async def execute_sheet_settlement(
    company_id: UUID,
    request: SheetSettlementRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    receipt = await SettlementCoordinator(db).execute_sheet_settlement(
        company_id, request.rows, actor, notes=request.notes,
    )
    return SettlementResponse.from_receipt(receipt)
