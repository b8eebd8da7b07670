"""
ShipLedger - Reconciliation Router

API endpoints for reconciling company settlement sheets against tracked
shipments, and for acting on the result.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_current_actor
from app.schemas.reconciliation import (
    ReconciliationRequest,
    ReconciliationResponse,
    SheetOnlyCreateRequest,
    SheetOnlyCreateResponse,
    ShipmentBriefResponse,
    ShipmentDeleteRequest,
    ShipmentDeleteResponse,
)
from app.services.reconciliation_service import ReconciliationService
from app.utils.permissions import Actor


router = APIRouter()


@router.post(
    "/companies/{company_id}",
    response_model=ReconciliationResponse,
    summary="Reconcile a settlement sheet",
    description="Match a company's sheet for one business day against the system's shipments.",
)
async def reconcile_sheet(
    company_id: UUID,
    request: ReconciliationRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    """Reconcile an uploaded sheet."""
    service = ReconciliationService(db)
    result = await service.reconcile(company_id, request.date, request.rows, actor)
    return ReconciliationResponse.from_result(result)


@router.post(
    "/companies/{company_id}/sheet-only",
    response_model=SheetOnlyCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add sheet-only records",
    description="Create Pending shipments for sheet records the system did not know.",
)
async def add_sheet_only(
    company_id: UUID,
    request: SheetOnlyCreateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    service = ReconciliationService(db)
    shipments = await service.add_sheet_only_shipments(
        company_id,
        request.date,
        [record.to_record() for record in request.records],
        actor,
    )
    return SheetOnlyCreateResponse(
        created=[ShipmentBriefResponse.model_validate(s) for s in shipments],
        total=len(shipments),
    )


@router.delete(
    "/companies/{company_id}/shipments",
    response_model=ShipmentDeleteResponse,
    summary="Delete system-only shipments",
)
async def delete_system_only(
    company_id: UUID,
    request: ShipmentDeleteRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    service = ReconciliationService(db)
    deleted = await service.delete_shipments(company_id, request.shipment_ids, actor)
    return ShipmentDeleteResponse(deleted=deleted)
