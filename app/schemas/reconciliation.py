"""
ShipLedger - Reconciliation Schemas

Pydantic schemas for sheet reconciliation and its follow-up actions.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.services.reconciliation_matcher import ReconciliationItem, ReconciliationResult
from app.services.sheet_parser import RowRejection, SheetRecord


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class ReconciliationRequest(BaseModel):
    """Schema for reconciling an uploaded sheet."""
    date: dt.date = Field(..., description="Business day the sheet covers")
    rows: List[Optional[List[Any]]] = Field(..., description="Raw sheet rows, header included")


class SheetRecordInput(BaseModel):
    """A sheet record carried back for creation as a shipment."""
    code: str = Field(..., min_length=1)
    amount: Decimal = Field(Decimal("0"))
    row_number: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> SheetRecord:
        return SheetRecord(
            code=self.code.strip(),
            amount=self.amount,
            row_number=self.row_number,
            metadata=dict(self.metadata),
        )


class SheetOnlyCreateRequest(BaseModel):
    """Schema for adding sheet-only records as shipments."""
    date: dt.date
    records: List[SheetRecordInput] = Field(..., min_length=1)


class ShipmentDeleteRequest(BaseModel):
    """Schema for deleting system-only shipments."""
    shipment_ids: List[UUID] = Field(..., min_length=1)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class SheetRecordResponse(BaseModel):
    code: str
    amount: Decimal
    row_number: int
    metadata: Dict[str, Any] = {}

    @classmethod
    def from_record(cls, record: SheetRecord) -> "SheetRecordResponse":
        return cls(
            code=record.code,
            amount=record.amount,
            row_number=record.row_number,
            metadata=record.metadata,
        )


class ShipmentBriefResponse(BaseModel):
    """Compact shipment view used inside reconciliation results."""
    id: UUID
    shipment_code: str
    order_number: Optional[str] = None
    recipient_name: Optional[str] = None
    status: str
    total_amount: Decimal
    paid_amount: Decimal
    created_at: dt.datetime

    class Config:
        from_attributes = True


class ReconciliationItemResponse(BaseModel):
    record: SheetRecordResponse
    shipment: ShipmentBriefResponse
    system_amount: Decimal
    difference: Decimal

    @classmethod
    def from_item(cls, item: ReconciliationItem) -> "ReconciliationItemResponse":
        return cls(
            record=SheetRecordResponse.from_record(item.record),
            shipment=ShipmentBriefResponse.model_validate(item.shipment),
            system_amount=item.system_amount,
            difference=item.difference,
        )


class RowRejectionResponse(BaseModel):
    row_number: int
    reason: str

    @classmethod
    def from_rejection(cls, rejection: RowRejection) -> "RowRejectionResponse":
        return cls(row_number=rejection.row_number, reason=rejection.reason)


class ReconciliationResponse(BaseModel):
    """Schema for a reconciliation result."""
    company_id: UUID
    date: dt.date
    matched: List[ReconciliationItemResponse]
    discrepancies: List[ReconciliationItemResponse]
    date_mismatch: List[ReconciliationItemResponse]
    sheet_only: List[SheetRecordResponse]
    system_only: List[ShipmentBriefResponse]
    rejected_rows: List[RowRejectionResponse]
    summary: Dict[str, int]

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> "ReconciliationResponse":
        return cls(
            company_id=result.company_id,
            date=result.target_date,
            matched=[ReconciliationItemResponse.from_item(i) for i in result.matched],
            discrepancies=[ReconciliationItemResponse.from_item(i) for i in result.discrepancies],
            date_mismatch=[ReconciliationItemResponse.from_item(i) for i in result.date_mismatch],
            sheet_only=[SheetRecordResponse.from_record(r) for r in result.sheet_only],
            system_only=[ShipmentBriefResponse.model_validate(s) for s in result.system_only],
            rejected_rows=[RowRejectionResponse.from_rejection(r) for r in result.rejected_rows],
            summary=result.summary(),
        )


class SheetOnlyCreateResponse(BaseModel):
    created: List[ShipmentBriefResponse]
    total: int


class ShipmentDeleteResponse(BaseModel):
    deleted: int
