"""
ShipLedger - Shipments Router

API endpoints for shipment status transitions, courier assignment,
change history and manifest import.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_current_actor, get_notifier
from app.schemas.shipment import (
    BulkTransitionRequest,
    BulkTransitionResponse,
    CourierAssignRequest,
    ShipmentHistoryListResponse,
    ShipmentHistoryResponse,
    ShipmentImportRequest,
    ShipmentImportResponse,
    ShipmentResponse,
    StatusTransitionRequest,
)
from app.services.notification_service import NotificationDispatcher
from app.services.shipment_import_service import ShipmentImportService
from app.services.shipment_service import ShipmentService
from app.utils.permissions import Actor


router = APIRouter()


@router.post(
    "/bulk-transition",
    response_model=BulkTransitionResponse,
    summary="Bulk status update",
    description="Apply one status to many shipments; each shipment succeeds or fails on its own.",
)
async def bulk_transition(
    request: BulkTransitionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    report = await ShipmentService(db).bulk_apply_transition(
        request.shipment_ids,
        request.status,
        actor,
        collected_amount=request.collected_amount,
    )
    return BulkTransitionResponse.model_validate(report)


@router.post(
    "/import/{company_id}",
    response_model=ShipmentImportResponse,
    summary="Import a shipment manifest",
)
async def import_shipments(
    company_id: UUID,
    request: ShipmentImportRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    report = await ShipmentImportService(db).import_shipments(company_id, request.rows, actor)
    return ShipmentImportResponse.model_validate(report)


@router.get(
    "/{shipment_id}",
    response_model=ShipmentResponse,
    summary="Get shipment",
)
async def get_shipment(
    shipment_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    shipment = await ShipmentService(db).get_shipment(shipment_id)
    return ShipmentResponse.model_validate(shipment)


@router.get(
    "/{shipment_id}/history",
    response_model=ShipmentHistoryListResponse,
    summary="Get shipment change history",
)
async def get_shipment_history(
    shipment_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    history = await ShipmentService(db).get_history(shipment_id)
    return ShipmentHistoryListResponse(
        history=[ShipmentHistoryResponse.model_validate(h) for h in history],
        total=len(history),
    )


@router.post(
    "/{shipment_id}/transition",
    response_model=ShipmentResponse,
    summary="Change shipment status",
)
async def transition_shipment(
    shipment_id: UUID,
    request: StatusTransitionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    shipment = await ShipmentService(db).apply_transition(
        shipment_id,
        request.status,
        actor,
        collected_amount=request.collected_amount,
        reason=request.reason,
        is_custom_return=request.is_custom_return,
    )
    return ShipmentResponse.model_validate(shipment)


@router.post(
    "/{shipment_id}/assign",
    response_model=ShipmentResponse,
    summary="Assign shipment to a courier",
)
async def assign_courier(
    shipment_id: UUID,
    request: CourierAssignRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    shipment = await ShipmentService(db, notifier=notifier).assign_courier(
        shipment_id, request.courier_id, actor,
    )
    return ShipmentResponse.model_validate(shipment)
