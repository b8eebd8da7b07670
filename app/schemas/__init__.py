"""
ShipLedger - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.reconciliation import (
    ReconciliationRequest,
    ReconciliationResponse,
    SheetOnlyCreateRequest,
    SheetOnlyCreateResponse,
    ShipmentDeleteRequest,
    ShipmentDeleteResponse,
)
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
from app.schemas.shipment import (
    BulkTransitionRequest,
    BulkTransitionResponse,
    CourierAssignRequest,
    ShipmentHistoryListResponse,
    ShipmentImportRequest,
    ShipmentImportResponse,
    ShipmentResponse,
    StatusTransitionRequest,
)

__all__ = [
    # Reconciliation
    "ReconciliationRequest",
    "ReconciliationResponse",
    "SheetOnlyCreateRequest",
    "SheetOnlyCreateResponse",
    "ShipmentDeleteRequest",
    "ShipmentDeleteResponse",
    # Ledger
    "LedgerResponse",
    "PaymentCreateRequest",
    "PaymentListResponse",
    "PaymentResponse",
    "SettleRequest",
    "SettlementResponse",
    "SheetSettlementPreviewResponse",
    "SheetSettlementRequest",
    "StatementResponse",
    # Shipments
    "BulkTransitionRequest",
    "BulkTransitionResponse",
    "CourierAssignRequest",
    "ShipmentHistoryListResponse",
    "ShipmentImportRequest",
    "ShipmentImportResponse",
    "ShipmentResponse",
    "StatusTransitionRequest",
]
