"""
ShipLedger - Ledger Service

Database-backed ledger operations:
- Ledger computation for couriers and companies
- Account statements with running balance
- Manual payment entry and listing
"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.party import Company, Courier
from app.models.payment import LedgerPayment, PartyRole
from app.models.shipment import Shipment
from app.models.shipment_status import StatusConfig, index_status_configs
from app.services.ledger_calculator import (
    AccountStatement,
    EntityLedger,
    build_statement,
    calculate_ledger,
    projection_for,
)
from app.services.status_transition import to_money
from app.utils.error_handling import (
    EntityNotFoundError,
    InvalidAmountException,
    translate_store_error,
)
from app.utils.permissions import Actor, Permission, require_permission

logger = logging.getLogger(__name__)


async def load_status_configs(db: AsyncSession) -> Dict[str, StatusConfig]:
    """Read a fresh status snapshot; callers never keep one across operations."""
    result = await db.execute(select(StatusConfig).order_by(StatusConfig.sort_order, StatusConfig.id))
    return index_status_configs(result.scalars().all())


class LedgerService:
    """Service for courier and company ledgers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # PARTIES
    # ===========================================

    async def get_party(self, entity_id: uuid.UUID, role: PartyRole) -> Union[Courier, Company]:
        """
        Load the courier or company behind a ledger.

        Raises:
            EntityNotFoundError: If no such party exists
        """
        role = PartyRole(role)
        model = Courier if role == PartyRole.COURIER else Company
        party = await self.db.get(model, entity_id)
        if party is None:
            raise EntityNotFoundError(role.value, entity_id)
        return party

    # ===========================================
    # SOURCE RECORDS
    # ===========================================

    async def get_shipments(
        self,
        entity_id: uuid.UUID,
        role: PartyRole,
        include_archived: bool = False,
    ) -> List[Shipment]:
        """Shipments owned by the entity, optionally including archived ones."""
        projection = projection_for(role)
        query = select(Shipment).where(projection.owner_attribute() == entity_id)
        if not include_archived:
            query = query.where(projection.archived_attribute().is_(False))
        query = query.order_by(Shipment.created_at)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_payments(
        self,
        entity_id: uuid.UUID,
        role: PartyRole,
        include_archived: bool = False,
    ) -> List[LedgerPayment]:
        """Payments against the entity, newest first."""
        query = select(LedgerPayment).where(
            LedgerPayment.entity_id == entity_id,
            LedgerPayment.role == PartyRole(role),
        )
        if not include_archived:
            query = query.where(LedgerPayment.is_archived.is_(False))
        query = query.order_by(LedgerPayment.payment_date.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ===========================================
    # LEDGER
    # ===========================================

    async def compute_ledger(self, entity_id: uuid.UUID, role: PartyRole) -> EntityLedger:
        """
        Compute the current ledger of a courier or company.

        Args:
            entity_id: Courier or company id
            role: Which ledger to compute

        Returns:
            EntityLedger recomputed from active shipments and payments

        Raises:
            EntityNotFoundError: If the party does not exist
        """
        role = PartyRole(role)
        await self.get_party(entity_id, role)
        shipments = await self.get_shipments(entity_id, role)
        payments = await self.get_payments(entity_id, role)
        return calculate_ledger(entity_id, role, shipments, payments)

    async def account_statement(
        self,
        entity_id: uuid.UUID,
        role: PartyRole,
        include_archived: bool = False,
    ) -> AccountStatement:
        """Chronological statement of the entity's shipments and payments."""
        role = PartyRole(role)
        await self.get_party(entity_id, role)
        shipments = await self.get_shipments(entity_id, role, include_archived=include_archived)
        payments = await self.get_payments(entity_id, role, include_archived=include_archived)
        configs = await load_status_configs(self.db)
        return build_statement(entity_id, role, shipments, payments, configs)

    # ===========================================
    # PAYMENTS
    # ===========================================

    async def record_payment(
        self,
        entity_id: uuid.UUID,
        role: PartyRole,
        amount: Decimal,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> LedgerPayment:
        """
        Record a manual payment against a ledger.

        Raises:
            PermissionDeniedError: If the actor may not record payments
            EntityNotFoundError: If the party does not exist
            InvalidAmountException: If amount is not positive
        """
        require_permission(actor, Permission.RECORD_PAYMENTS)
        role = PartyRole(role)
        await self.get_party(entity_id, role)

        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountException(amount)

        payment = LedgerPayment(
            entity_id=entity_id,
            role=role,
            amount=amount,
            notes=notes,
            recorded_by_id=actor.id,
            is_archived=False,
        )
        self.db.add(payment)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise translate_store_error(e)
        await self.db.refresh(payment)

        logger.info(f"Recorded payment of {amount} for {role.value} {entity_id}")
        return payment


def get_ledger_service(db: AsyncSession) -> LedgerService:
    """Factory function for LedgerService."""
    return LedgerService(db)
