"""
ShipLedger - Ledger Schemas

Pydantic schemas for ledgers, payments, statements and settlement.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.payment import PartyRole
from app.services.ledger_calculator import AccountStatement, EntityLedger
from app.services.settlement_service import SettlementReceipt, SheetSettlementPreview


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class PaymentCreateRequest(BaseModel):
    """Schema for recording a manual payment."""
    amount: Decimal = Field(..., description="Payment amount, must be positive")
    notes: Optional[str] = Field(None, max_length=500)


class SettleRequest(BaseModel):
    """Schema for settling an account."""
    expected_net_due: Optional[Decimal] = Field(
        None,
        description="Net due shown to the operator; settlement aborts if the ledger no longer agrees",
    )


class SheetSettlementRequest(BaseModel):
    """Schema for a sheet-driven company settlement."""
    rows: List[Optional[List[Any]]] = Field(..., description="Raw sheet rows, header included")
    notes: Optional[str] = Field(None, max_length=500)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class LedgerResponse(BaseModel):
    """Schema for an entity's current ledger."""
    entity_id: UUID
    role: PartyRole
    total_collected: Decimal
    total_commission: Decimal
    total_paid: Decimal
    net_due: Decimal
    shipment_count: int
    payment_count: int

    @classmethod
    def from_ledger(cls, ledger: EntityLedger) -> "LedgerResponse":
        return cls(
            entity_id=ledger.entity_id,
            role=ledger.role,
            total_collected=ledger.total_collected,
            total_commission=ledger.total_commission,
            total_paid=ledger.total_paid,
            net_due=ledger.net_due,
            shipment_count=len(ledger.shipment_ids),
            payment_count=len(ledger.payment_ids),
        )


class PaymentResponse(BaseModel):
    """Schema for a ledger payment."""
    id: UUID
    entity_id: UUID
    role: PartyRole
    amount: Decimal
    notes: Optional[str] = None
    payment_date: datetime
    is_archived: bool
    recorded_by_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int


class StatementEntryResponse(BaseModel):
    occurred_at: Optional[datetime] = None
    kind: str
    reference: str
    description: str
    credit: Decimal
    debit: Decimal
    balance: Decimal

    class Config:
        from_attributes = True


class StatementResponse(BaseModel):
    """Schema for an account statement."""
    entity_id: UUID
    role: PartyRole
    entries: List[StatementEntryResponse]
    total_credit: Decimal
    total_debit: Decimal
    closing_balance: Decimal

    @classmethod
    def from_statement(cls, statement: AccountStatement) -> "StatementResponse":
        return cls(
            entity_id=statement.entity_id,
            role=statement.role,
            entries=[StatementEntryResponse.model_validate(e) for e in statement.entries],
            total_credit=statement.total_credit,
            total_debit=statement.total_debit,
            closing_balance=statement.closing_balance,
        )


class SettlementResponse(BaseModel):
    """Schema for a settlement receipt."""
    entity_id: UUID
    role: PartyRole
    net_due: Decimal
    no_op: bool
    closing_payment_id: Optional[UUID] = None
    closing_amount: Decimal
    archived_payment_ids: List[UUID]
    archived_shipment_ids: List[UUID]
    settled_at: datetime

    @classmethod
    def from_receipt(cls, receipt: SettlementReceipt) -> "SettlementResponse":
        return cls(
            entity_id=receipt.entity_id,
            role=receipt.role,
            net_due=receipt.net_due,
            no_op=receipt.no_op,
            closing_payment_id=receipt.closing_payment_id,
            closing_amount=receipt.closing_amount,
            archived_payment_ids=receipt.archived_payment_ids,
            archived_shipment_ids=receipt.archived_shipment_ids,
            settled_at=receipt.settled_at,
        )


class ExcludedCodeResponse(BaseModel):
    code: str
    reason: str
    shipment_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class SettledShipmentResponse(BaseModel):
    id: UUID
    shipment_code: str
    status: str
    paid_amount: Decimal
    company_commission: Decimal

    class Config:
        from_attributes = True


class SheetSettlementPreviewResponse(BaseModel):
    """Schema for a sheet settlement preview."""
    company_id: UUID
    total_codes: int
    net_due: Decimal
    to_settle: List[SettledShipmentResponse]
    excluded: List[ExcludedCodeResponse]

    @classmethod
    def from_preview(cls, preview: SheetSettlementPreview) -> "SheetSettlementPreviewResponse":
        return cls(
            company_id=preview.company_id,
            total_codes=preview.total_codes,
            net_due=preview.net_due,
            to_settle=[SettledShipmentResponse.model_validate(s) for s in preview.to_settle],
            excluded=[ExcludedCodeResponse.model_validate(e) for e in preview.excluded],
        )
