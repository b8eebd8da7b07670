"""
ShipLedger - Settlement Service

Closes out a courier's or company's account in one atomic unit of work:

1. compute the current ledger
2. record an archived closing payment equal to net due (when positive)
3. archive every active payment
4. archive every shipment in a finished status for the role, and any other
   active shipment that still carries a balance for it

Either every write lands or none does. Concurrent settlements of the same
entity are guarded optimistically: archive updates are restricted to the
records that produced the ledger and must touch exactly those rows, so a
second settler that raced the first aborts instead of recording a second
closing payment.

Also provides company settlement driven by a sheet of shipment codes.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.config.sheet_config import SETTLEMENT_SHEET_KEYWORDS, SETTLEMENT_SHEET_REQUIRED_FIELDS
from app.models.payment import LedgerPayment, PartyRole
from app.models.shipment import Shipment
from app.services.ledger_calculator import (
    COMPANY_PROJECTION,
    EntityLedger,
    RoleProjection,
    calculate_ledger,
    projection_for,
)
from app.services.ledger_service import LedgerService, load_status_configs
from app.services.notification_service import NotificationDispatcher
from app.services.sheet_parser import Row, extract_codes, resolve_headers
from app.services.status_transition import ZERO, to_money
from app.utils.error_handling import (
    PermissionDeniedError,
    SettlementConflictError,
    SettlementFailedError,
    is_permission_error,
)
from app.utils.permissions import Actor, Permission, require_permission

logger = logging.getLogger(__name__)


# ===========================================
# DATA CLASSES
# ===========================================

@dataclass
class SettlementReceipt:
    """Outcome of a settlement."""
    entity_id: uuid.UUID
    role: PartyRole
    ledger: EntityLedger
    closing_payment_id: Optional[uuid.UUID] = None
    closing_amount: Decimal = ZERO
    archived_payment_ids: List[uuid.UUID] = field(default_factory=list)
    archived_shipment_ids: List[uuid.UUID] = field(default_factory=list)
    no_op: bool = False
    settled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def net_due(self) -> Decimal:
        return self.ledger.net_due


@dataclass(frozen=True)
class ExcludedCode:
    """A sheet code left out of a sheet settlement, with the reason."""
    code: str
    reason: str
    shipment_id: Optional[uuid.UUID] = None


@dataclass
class SheetSettlementPreview:
    company_id: uuid.UUID
    total_codes: int
    to_settle: List[Shipment] = field(default_factory=list)
    excluded: List[ExcludedCode] = field(default_factory=list)

    @property
    def net_due(self) -> Decimal:
        return sum(
            (to_money(s.paid_amount) - to_money(s.company_commission) for s in self.to_settle),
            ZERO,
        )


# ===========================================
# SETTLEMENT COORDINATOR
# ===========================================

class SettlementCoordinator:
    """Atomic account settlement for couriers and companies."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.ledger_service = LedgerService(db)

    async def settle(
        self,
        entity_id: uuid.UUID,
        role: PartyRole,
        actor: Actor,
        expected_net_due: Optional[Decimal] = None,
    ) -> SettlementReceipt:
        """
        Settle an entity's account.

        Args:
            entity_id: Courier or company id
            role: Which ledger to settle
            actor: User performing the settlement
            expected_net_due: Net due the operator confirmed; the settlement
                aborts if the ledger no longer agrees

        Returns:
            SettlementReceipt describing what was written

        Raises:
            PermissionDeniedError: If the actor may not settle, or the store refused the batch
            EntityNotFoundError: If the party does not exist
            SettlementConflictError: If the ledger changed under the settlement
            SettlementFailedError: If the batch was rejected; nothing was written
        """
        require_permission(actor, Permission.SETTLE_ACCOUNTS)
        role = PartyRole(role)
        projection = projection_for(role)
        await self.ledger_service.get_party(entity_id, role)

        shipments = await self.ledger_service.get_shipments(entity_id, role)
        payments = await self.ledger_service.get_payments(entity_id, role)
        ledger = calculate_ledger(entity_id, role, shipments, payments)
        net_due = ledger.net_due

        if expected_net_due is not None and abs(to_money(expected_net_due) - net_due) >= self.settings.amount_tolerance:
            logger.warning(
                f"Settlement of {role.value} {entity_id} aborted: expected {expected_net_due}, ledger shows {net_due}"
            )
            raise SettlementConflictError(
                entity_id, role.value,
                expected_net_due=to_money(expected_net_due),
                actual_net_due=net_due,
                reason="net due differs from the confirmed amount",
            )

        configs = await load_status_configs(self.db)
        finished = set(projection.finished_statuses(configs))
        shipment_ids = [s.id for s in shipments if s.status in finished]
        # a shipment moved out of a finished status keeps its financial fields
        carried = [
            s for s in shipments
            if s.status not in finished and projection.carries_balance(s)
        ]
        if carried:
            logger.info(
                f"Settlement of {role.value} {entity_id} includes {len(carried)} shipments "
                f"outside finished statuses: {', '.join(s.shipment_code for s in carried)}"
            )
            shipment_ids.extend(s.id for s in carried)
        payment_ids = [p.id for p in payments]

        if not shipment_ids and not payment_ids:
            logger.info(f"Settlement of {role.value} {entity_id} is a no-op")
            return SettlementReceipt(entity_id=entity_id, role=role, ledger=ledger, no_op=True)

        receipt = SettlementReceipt(
            entity_id=entity_id,
            role=role,
            ledger=ledger,
            archived_payment_ids=payment_ids,
            archived_shipment_ids=shipment_ids,
        )

        try:
            if net_due > ZERO:
                closing = LedgerPayment(
                    entity_id=entity_id,
                    role=role,
                    amount=net_due,
                    notes=self.settings.settlement_note,
                    recorded_by_id=actor.id,
                    is_archived=True,
                )
                self.db.add(closing)
                await self.db.flush()
                receipt.closing_payment_id = closing.id
                receipt.closing_amount = net_due

            await self._archive_payments(entity_id, role, payment_ids)
            await self._archive_shipments(entity_id, projection, shipment_ids)
            await self.db.commit()
        except SettlementConflictError:
            await self.db.rollback()
            logger.warning(f"Settlement of {role.value} {entity_id} aborted: records changed during settlement")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Settlement of {role.value} {entity_id} failed and was rolled back: {e}", exc_info=True)
            if is_permission_error(e):
                raise PermissionDeniedError(
                    message="The data store refused the settlement",
                    original_error=e,
                )
            raise SettlementFailedError(entity_id, role.value, original_error=e)

        self._expire(shipments, payments)

        logger.info(
            f"Settled {role.value} {entity_id}: net due {net_due}, "
            f"archived {len(payment_ids)} payments and {len(shipment_ids)} shipments"
        )
        self._notify_settled(receipt)
        return receipt

    # ===========================================
    # BATCH WRITES
    # ===========================================

    async def _archive_payments(
        self,
        entity_id: uuid.UUID,
        role: PartyRole,
        payment_ids: Sequence[uuid.UUID],
    ) -> None:
        if not payment_ids:
            return
        result = await self.db.execute(
            update(LedgerPayment)
            .where(
                LedgerPayment.id.in_(payment_ids),
                LedgerPayment.is_archived.is_(False),
            )
            .values(is_archived=True, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(payment_ids):
            raise SettlementConflictError(entity_id, role.value, reason="payments were archived concurrently")

    async def _archive_shipments(
        self,
        entity_id: uuid.UUID,
        projection: RoleProjection,
        shipment_ids: Sequence[uuid.UUID],
    ) -> None:
        if not shipment_ids:
            return
        result = await self.db.execute(
            update(Shipment)
            .where(
                Shipment.id.in_(shipment_ids),
                projection.archived_attribute().is_(False),
            )
            .values({
                projection.archived_column: True,
                projection.archived_at_column: func.now(),
                "updated_at": func.now(),
            })
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(shipment_ids):
            raise SettlementConflictError(
                entity_id, projection.role.value,
                reason="shipments were archived concurrently",
            )

    def _expire(self, *collections) -> None:
        """Drop stale in-session state for rows the batch rewrote."""
        for collection in collections:
            for obj in collection:
                self.db.expire(obj)

    def _notify_settled(self, receipt: SettlementReceipt) -> None:
        if self.notifier is None:
            return
        if receipt.role != PartyRole.COURIER:
            logger.info(f"Company {receipt.entity_id} settled; companies receive no push notifications")
            return
        self.notifier.dispatch(
            recipient_id=receipt.entity_id,
            title="Account settled",
            body=f"Your account has been settled. Amount: {receipt.net_due}",
        )

    # ===========================================
    # SHEET-BASED COMPANY SETTLEMENT
    # ===========================================

    async def preview_sheet_settlement(
        self,
        company_id: uuid.UUID,
        rows: Sequence[Optional[Row]],
    ) -> SheetSettlementPreview:
        """
        Decide which of a sheet's codes can be settled for a company.

        A code is settled when the company has a shipment with that code that
        is not yet archived for the company and sits in a status that affects
        the company balance.

        Raises:
            EntityNotFoundError: If the company does not exist
            HeaderNotFoundError: If the sheet has no code column
        """
        await self.ledger_service.get_party(company_id, PartyRole.COMPANY)
        header = resolve_headers(
            rows,
            keywords=SETTLEMENT_SHEET_KEYWORDS,
            required=SETTLEMENT_SHEET_REQUIRED_FIELDS,
        )
        codes = extract_codes(rows, header)
        configs = await load_status_configs(self.db)

        by_code: Dict[str, List[Shipment]] = {}
        if codes:
            result = await self.db.execute(
                select(Shipment)
                .where(Shipment.company_id == company_id, Shipment.shipment_code.in_(codes))
                .order_by(Shipment.created_at)
            )
            for shipment in result.scalars().all():
                by_code.setdefault(shipment.shipment_code, []).append(shipment)

        preview = SheetSettlementPreview(company_id=company_id, total_codes=len(codes))
        for code in codes:
            candidates = by_code.get(code)
            if not candidates:
                preview.excluded.append(ExcludedCode(code, "not in system"))
                continue
            active = [s for s in candidates if not s.is_archived_for_company]
            if not active:
                preview.excluded.append(ExcludedCode(code, "already archived for company", candidates[0].id))
                continue
            shipment = active[0]
            config = configs.get(shipment.status)
            if config is None or not COMPANY_PROJECTION.is_finished(config):
                label = config.label if config else shipment.status
                preview.excluded.append(ExcludedCode(code, f"non-final status ({label})", shipment.id))
                continue
            preview.to_settle.append(shipment)

        return preview

    async def execute_sheet_settlement(
        self,
        company_id: uuid.UUID,
        rows: Sequence[Optional[Row]],
        actor: Actor,
        notes: Optional[str] = None,
    ) -> SettlementReceipt:
        """
        Settle exactly the shipments a sheet names, in one atomic batch.

        Records an archived payment for the sheet's net due (when positive)
        and archives the settled shipments for the company. Active payments
        are left untouched.
        """
        require_permission(actor, Permission.SETTLE_ACCOUNTS)
        preview = await self.preview_sheet_settlement(company_id, rows)
        net_due = preview.net_due
        shipment_ids = [s.id for s in preview.to_settle]
        ledger = EntityLedger(
            entity_id=company_id,
            role=PartyRole.COMPANY,
            total_collected=sum((to_money(s.paid_amount) for s in preview.to_settle), ZERO),
            total_commission=sum((to_money(s.company_commission) for s in preview.to_settle), ZERO),
            shipment_ids=tuple(shipment_ids),
        )

        if not shipment_ids:
            logger.info(f"Sheet settlement for company {company_id} has nothing to settle")
            return SettlementReceipt(entity_id=company_id, role=PartyRole.COMPANY, ledger=ledger, no_op=True)

        receipt = SettlementReceipt(
            entity_id=company_id,
            role=PartyRole.COMPANY,
            ledger=ledger,
            archived_shipment_ids=shipment_ids,
        )
        try:
            if net_due > ZERO:
                closing = LedgerPayment(
                    entity_id=company_id,
                    role=PartyRole.COMPANY,
                    amount=net_due,
                    notes=notes or f"Sheet settlement ({len(shipment_ids)} shipments)",
                    recorded_by_id=actor.id,
                    is_archived=True,
                )
                self.db.add(closing)
                await self.db.flush()
                receipt.closing_payment_id = closing.id
                receipt.closing_amount = net_due

            await self._archive_shipments(company_id, COMPANY_PROJECTION, shipment_ids)
            await self.db.commit()
        except SettlementConflictError:
            await self.db.rollback()
            logger.warning(f"Sheet settlement for company {company_id} aborted: records changed during settlement")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Sheet settlement for company {company_id} failed and was rolled back: {e}", exc_info=True)
            if is_permission_error(e):
                raise PermissionDeniedError(
                    message="The data store refused the settlement",
                    original_error=e,
                )
            raise SettlementFailedError(company_id, PartyRole.COMPANY.value, original_error=e)

        self._expire(preview.to_settle)
        logger.info(f"Sheet settlement for company {company_id}: {len(shipment_ids)} shipments, net due {net_due}")
        return receipt


def get_settlement_coordinator(
    db: AsyncSession,
    notifier: Optional[NotificationDispatcher] = None,
) -> SettlementCoordinator:
    """Factory function for SettlementCoordinator."""
    return SettlementCoordinator(db, notifier=notifier)
