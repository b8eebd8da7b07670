"""
ShipLedger - Shipment Models

Shipment records and their field-level change history.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, AuditMixin
from app.models.shipment_status import PENDING_STATUS


class Shipment(BaseModel, AuditMixin):
    """
    A single delivery unit.
    
    Financial fields are written by status transitions; the archive flags are
    written by settlement. ``shipment_code`` is the primary reconciliation key,
    ``order_number`` an alternate external key.
    """
    
    __tablename__ = "shipments"
    
    shipment_code: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    courier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("couriers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    governorate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("governorates.id", ondelete="SET NULL"),
        nullable=True,
    )
    
    # Recipient
    recipient_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    recipient_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    # Money
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    collected_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    courier_commission: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    company_commission: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    
    # Lifecycle
    status: Mapped[str] = mapped_column(String(64), default=PENDING_STATUS, nullable=False, index=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_custom_return: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_to_courier_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    # Archival (independent per role)
    is_archived_for_company: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_archived_for_courier: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    company_archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    courier_archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    @property
    def is_fully_archived(self) -> bool:
        return bool(self.is_archived_for_company and self.is_archived_for_courier)


class ShipmentHistory(BaseModel):
    """Append-only record of one field change on a shipment."""
    
    __tablename__ = "shipment_history"
    
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_name: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
