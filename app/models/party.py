"""
ShipLedger - Party Models

Couriers, partner companies and the governorates shipments are delivered to.
"""

import uuid
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import JSON, Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class Governorate(BaseModel):
    """Delivery region. Company commissions are priced per governorate."""
    
    __tablename__ = "governorates"
    
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)


class Company(BaseModel):
    """Shipping client on whose behalf shipments are sent."""
    
    __tablename__ = "companies"
    
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    
    # {governorate_id: commission}; keys are stringified UUIDs
    governorate_commissions: Mapped[Dict[str, float]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def commission_for(self, governorate_id: Optional[uuid.UUID]) -> Decimal:
        """Commission charged to this company for a delivery to the governorate."""
        if governorate_id is None:
            return Decimal("0")
        value = (self.governorate_commissions or {}).get(str(governorate_id))
        if value is None:
            return Decimal("0")
        return Decimal(str(value))


class Courier(BaseModel):
    """Delivery agent that carries shipments and collects cash on delivery."""
    
    __tablename__ = "couriers"
    
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    push_token: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
