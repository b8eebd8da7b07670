"""
ShipLedger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, AuditMixin
from app.models.shipment_status import StatusConfig, PENDING_STATUS, index_status_configs
from app.models.party import Governorate, Company, Courier
from app.models.shipment import Shipment, ShipmentHistory
from app.models.payment import LedgerPayment, PartyRole

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    # Reference data
    "StatusConfig",
    "PENDING_STATUS",
    "index_status_configs",
    "Governorate",
    # Parties
    "Company",
    "Courier",
    "PartyRole",
    # Shipments
    "Shipment",
    "ShipmentHistory",
    # Ledger
    "LedgerPayment",
]
