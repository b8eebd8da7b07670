"""
ShipLedger - Shipment Service

Shipment lifecycle operations:
- Status transitions (financial fields from the transition engine)
- Bulk status updates with per-item results
- Courier assignment with push notification
- Field-level change history
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.party import Company, Courier
from app.models.shipment import Shipment, ShipmentHistory
from app.services.ledger_service import load_status_configs
from app.services.notification_service import NotificationDispatcher
from app.services.status_transition import ZERO, transition
from app.utils.error_handling import (
    AppException,
    EntityNotFoundError,
    PermissionDeniedError,
    ShipmentNotFoundError,
    translate_store_error,
)
from app.utils.permissions import (
    Actor,
    ActorRole,
    Permission,
    ensure_can_modify_shipment,
    require_permission,
)

logger = logging.getLogger(__name__)


def _history_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def record_changes(
    db: AsyncSession,
    shipment: Shipment,
    changes: Dict[str, Any],
    actor: Optional[Actor],
) -> List[str]:
    """
    Apply field changes to a shipment and append a history row per change.

    Returns:
        Names of the fields whose value actually changed
    """
    changed: List[str] = []
    actor_id = actor.id if actor else None
    for name, new_value in changes.items():
        old_value = getattr(shipment, name)
        if old_value == new_value:
            continue
        setattr(shipment, name, new_value)
        changed.append(name)
        if shipment.id is not None:
            db.add(ShipmentHistory(
                shipment_id=shipment.id,
                field_name=name,
                old_value=_history_value(old_value),
                new_value=_history_value(new_value),
                changed_by_id=actor_id,
            ))
    if changed:
        shipment.updated_by_id = actor_id
    return changed


@dataclass(frozen=True)
class BulkItemFailure:
    shipment_id: uuid.UUID
    reason: str


@dataclass
class BulkUpdateReport:
    """Per-item outcome of a bulk status update. Not atomic as a set."""
    status: str
    succeeded: List[uuid.UUID] = field(default_factory=list)
    failed: List[BulkItemFailure] = field(default_factory=list)


class ShipmentService:
    """Service for shipment lifecycle operations."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifier = notifier

    # ===========================================
    # READS
    # ===========================================

    async def get_shipment(self, shipment_id: uuid.UUID) -> Shipment:
        """
        Get a shipment by ID.

        Raises:
            ShipmentNotFoundError: If the shipment does not exist
        """
        shipment = await self.db.get(Shipment, shipment_id)
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    async def get_history(self, shipment_id: uuid.UUID) -> List[ShipmentHistory]:
        """Change history of a shipment, oldest first."""
        await self.get_shipment(shipment_id)
        result = await self.db.execute(
            select(ShipmentHistory)
            .where(ShipmentHistory.shipment_id == shipment_id)
            .order_by(ShipmentHistory.created_at, ShipmentHistory.field_name)
        )
        return list(result.scalars().all())

    # ===========================================
    # STATUS TRANSITIONS
    # ===========================================

    async def apply_transition(
        self,
        shipment_id: uuid.UUID,
        status: str,
        actor: Actor,
        collected_amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        is_custom_return: Optional[bool] = None,
    ) -> Shipment:
        """
        Move a shipment to a new status and persist its financial fields.

        A status without configuration only changes the status field; the
        financial fields keep their values. A shipment marked as a custom return is refunded when it reaches a
        delivered status.

        Args:
            shipment_id: Shipment to update
            status: Target status id
            actor: User performing the change
            collected_amount: Amount collected, used by partial-collection statuses
            reason: Optional free-text reason stored on the shipment
            is_custom_return: New custom-return mark; None keeps the stored one

        Returns:
            The updated shipment

        Raises:
            ShipmentNotFoundError: If the shipment does not exist
            PermissionDeniedError: If the actor may not modify the shipment
        """
        shipment = await self.get_shipment(shipment_id)
        ensure_can_modify_shipment(actor, shipment)

        configs = await load_status_configs(self.db)
        config = configs.get(status)
        if config is not None and actor.role == ActorRole.COURIER and not config.visible_to_courier:
            raise PermissionDeniedError(message=f"Couriers may not set status '{status}'")

        changes: Dict[str, Any] = {"status": status}
        if is_custom_return is not None:
            changes["is_custom_return"] = is_custom_return
        custom_return = shipment.is_custom_return if is_custom_return is None else is_custom_return

        if config is None:
            logger.warning(f"Status '{status}' has no configuration; financial fields of {shipment.shipment_code} unchanged")
        else:
            courier_rate = ZERO
            if shipment.courier_id is not None:
                courier = await self.db.get(Courier, shipment.courier_id)
                if courier is not None:
                    courier_rate = courier.commission_rate
            company = await self.db.get(Company, shipment.company_id)
            company_rate = company.commission_for(shipment.governorate_id) if company else ZERO

            result = transition(
                status,
                shipment.total_amount,
                collected_amount,
                courier_rate,
                configs,
                company_commission_rate=company_rate,
                is_custom_return=custom_return,
            )
            changes.update(
                paid_amount=result.paid_amount,
                collected_amount=result.collected_amount,
                courier_commission=result.courier_commission,
                company_commission=result.company_commission,
            )
        if reason is not None:
            changes["reason"] = reason

        record_changes(self.db, shipment, changes, actor)
        await self._commit()
        await self.db.refresh(shipment)
        return shipment

    async def bulk_apply_transition(
        self,
        shipment_ids: List[uuid.UUID],
        status: str,
        actor: Actor,
        collected_amount: Optional[Decimal] = None,
    ) -> BulkUpdateReport:
        """
        Apply the same status to many shipments, each committed on its own.

        A failure on one shipment is reported and never stops the others.
        """
        report = BulkUpdateReport(status=status)
        for shipment_id in shipment_ids:
            try:
                await self.apply_transition(shipment_id, status, actor, collected_amount=collected_amount)
            except AppException as e:
                logger.warning(f"Bulk status update skipped shipment {shipment_id}: {e.message}")
                report.failed.append(BulkItemFailure(shipment_id, e.message))
                continue
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.warning(f"Bulk status update skipped shipment {shipment_id}: {e}")
                report.failed.append(BulkItemFailure(shipment_id, translate_store_error(e).message))
                continue
            report.succeeded.append(shipment_id)

        logger.info(
            f"Bulk status update to '{status}': {len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report

    # ===========================================
    # ASSIGNMENT
    # ===========================================

    async def assign_courier(
        self,
        shipment_id: uuid.UUID,
        courier_id: uuid.UUID,
        actor: Actor,
    ) -> Shipment:
        """
        Assign a shipment to a courier and notify the courier.

        Raises:
            PermissionDeniedError: If the actor may not assign couriers
            ShipmentNotFoundError: If the shipment does not exist
            EntityNotFoundError: If the courier does not exist
        """
        require_permission(actor, Permission.ASSIGN_COURIERS)
        shipment = await self.get_shipment(shipment_id)
        courier = await self.db.get(Courier, courier_id)
        if courier is None:
            raise EntityNotFoundError("courier", courier_id)

        if shipment.courier_id == courier_id:
            return shipment

        record_changes(
            self.db,
            shipment,
            {
                "courier_id": courier_id,
                "delivered_to_courier_at": datetime.now(timezone.utc),
            },
            actor,
        )
        await self._commit()
        await self.db.refresh(shipment)

        logger.info(f"Assigned shipment {shipment.shipment_code} to courier {courier_id}")
        if self.notifier is not None:
            self.notifier.dispatch(
                recipient_id=courier_id,
                title="New shipment",
                body=f"A new shipment was assigned to you: {shipment.recipient_name or shipment.shipment_code}",
                url=f"/shipments/{shipment.id}",
            )
        return shipment

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise translate_store_error(e)


def get_shipment_service(
    db: AsyncSession,
    notifier: Optional[NotificationDispatcher] = None,
) -> ShipmentService:
    """Factory function for ShipmentService."""
    return ShipmentService(db, notifier=notifier)
