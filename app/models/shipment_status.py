"""
ShipLedger - Shipment Status Model

Administrator-managed status rules. Each status carries the flags that
decide how a shipment in that status contributes to courier and company
balances.
"""

from typing import Dict, Iterable

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import TimestampMixin


PENDING_STATUS = "Pending"


class StatusConfig(Base, TimestampMixin):
    """
    Status configuration row.
    
    The primary key is the status name stored on shipments (e.g. "Delivered"),
    so statuses can be referenced without a lookup.
    """
    
    __tablename__ = "shipment_statuses"
    
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    label: Mapped[str] = mapped_column(String(120), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    visible_to_courier: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    affects_courier_balance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    affects_company_balance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_full_collection: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_partial_collection: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_delivered_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_returned_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    def __repr__(self) -> str:
        return f"<StatusConfig(id={self.id!r})>"


def index_status_configs(configs: Iterable[StatusConfig]) -> Dict[str, StatusConfig]:
    """Key a status snapshot by status id."""
    return {config.id: config for config in configs}
