"""
ShipLedger - Services Package

Business logic services.
"""

from app.services.ledger_service import LedgerService, get_ledger_service
from app.services.notification_service import NotificationDispatcher, get_notification_dispatcher
from app.services.reconciliation_service import ReconciliationService, get_reconciliation_service
from app.services.settlement_service import SettlementCoordinator, get_settlement_coordinator
from app.services.shipment_import_service import ShipmentImportService
from app.services.shipment_service import ShipmentService, get_shipment_service

__all__ = [
    "LedgerService",
    "get_ledger_service",
    "NotificationDispatcher",
    "get_notification_dispatcher",
    "ReconciliationService",
    "get_reconciliation_service",
    "SettlementCoordinator",
    "get_settlement_coordinator",
    "ShipmentImportService",
    "ShipmentService",
    "get_shipment_service",
]
