"""
ShipLedger - Ledger Payment Model

Payments made to couriers or received from companies. A payment is active
until a settlement archives it; archival is never reversed.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Numeric, Text, Uuid, Enum as SQLEnum, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class PartyRole(str, Enum):
    """Which side of the business a ledger belongs to."""
    COURIER = "courier"
    COMPANY = "company"


class LedgerPayment(BaseModel):
    """Payment record against a courier or company ledger."""
    
    __tablename__ = "ledger_payments"
    
    # Courier or company id depending on role
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    role: Mapped[PartyRole] = mapped_column(
        SQLEnum(PartyRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recorded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
