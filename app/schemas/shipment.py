"""
ShipLedger - Shipment Schemas

Pydantic schemas for shipment transitions, assignment, history and import.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class StatusTransitionRequest(BaseModel):
    """Schema for moving a shipment to a new status."""
    status: str = Field(..., min_length=1, max_length=50)
    collected_amount: Optional[Decimal] = Field(None, description="Used by partial-collection statuses")
    reason: Optional[str] = Field(None, max_length=500)
    is_custom_return: Optional[bool] = Field(None, description="Mark or unmark the shipment as a custom return")


class BulkTransitionRequest(BaseModel):
    """Schema for applying one status to many shipments."""
    shipment_ids: List[UUID] = Field(..., min_length=1)
    status: str = Field(..., min_length=1, max_length=50)
    collected_amount: Optional[Decimal] = None


class CourierAssignRequest(BaseModel):
    courier_id: UUID


class ShipmentImportRequest(BaseModel):
    """Schema for importing a shipment manifest."""
    rows: List[Optional[List[Any]]] = Field(..., description="Raw manifest rows, header included")


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class ShipmentResponse(BaseModel):
    """Schema for shipment response."""
    id: UUID
    shipment_code: str
    order_number: Optional[str] = None
    company_id: UUID
    courier_id: Optional[UUID] = None
    governorate_id: Optional[UUID] = None

    # Recipient
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    address: Optional[str] = None

    # Financials
    total_amount: Decimal
    paid_amount: Decimal
    collected_amount: Decimal
    courier_commission: Decimal
    company_commission: Decimal

    # Lifecycle
    status: str
    reason: Optional[str] = None
    is_custom_return: bool = False
    delivered_to_courier_at: Optional[datetime] = None

    # Archival
    is_archived_for_courier: bool
    is_archived_for_company: bool
    courier_archived_at: Optional[datetime] = None
    company_archived_at: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ShipmentHistoryResponse(BaseModel):
    id: UUID
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ShipmentHistoryListResponse(BaseModel):
    history: List[ShipmentHistoryResponse]
    total: int


class BulkItemFailureResponse(BaseModel):
    shipment_id: UUID
    reason: str

    class Config:
        from_attributes = True


class BulkTransitionResponse(BaseModel):
    """Per-item outcome of a bulk status update."""
    status: str
    succeeded: List[UUID]
    failed: List[BulkItemFailureResponse]

    class Config:
        from_attributes = True


class ImportFailureResponse(BaseModel):
    row_number: int
    reason: str

    class Config:
        from_attributes = True


class ShipmentImportResponse(BaseModel):
    """Schema for a manifest import report."""
    total: int
    added: int
    updated: int
    failed: int
    failures: List[ImportFailureResponse]

    class Config:
        from_attributes = True
