"""
ShipLedger - Reconciliation Service

Reconciles an uploaded company settlement sheet against tracked shipments
for one business day, and carries out the follow-up actions an operator
takes on the result:
- adding sheet-only records as new shipments
- deleting system-only shipments
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.models.party import Company, Governorate
from app.models.shipment import Shipment, ShipmentHistory
from app.models.shipment_status import PENDING_STATUS
from app.services.reconciliation_matcher import ReconciliationResult, match_records
from app.services.sheet_parser import Row, SheetRecord, parse_sheet
from app.utils.error_handling import EntityNotFoundError, translate_store_error
from app.utils.permissions import Actor, Permission, require_permission

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well under driver parameter limits
_CODE_CHUNK = 500


class ReconciliationService:
    """Service for sheet reconciliation."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def get_company(self, company_id: uuid.UUID) -> Company:
        company = await self.db.get(Company, company_id)
        if company is None:
            raise EntityNotFoundError("company", company_id)
        return company

    def day_bounds(self, target_date: date) -> tuple:
        """UTC start and end of a business day."""
        tz = self.settings.tzinfo
        start = datetime.combine(target_date, time.min, tzinfo=tz)
        end = datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    # ===========================================
    # RECONCILE
    # ===========================================

    async def load_candidates(
        self,
        company_id: uuid.UUID,
        target_date: date,
        codes: Sequence[str],
    ) -> List[Shipment]:
        """
        The company's shipments that can take part in a reconciliation.

        That is every shipment created on the business day plus any shipment
        whose code or order number appears in the sheet, ordered by creation.
        """
        start, end = self.day_bounds(target_date)
        found: Dict[uuid.UUID, Shipment] = {}

        result = await self.db.execute(
            select(Shipment).where(
                Shipment.company_id == company_id,
                Shipment.created_at >= start,
                Shipment.created_at < end,
            )
        )
        for shipment in result.scalars().all():
            found[shipment.id] = shipment

        codes = list(codes)
        for offset in range(0, len(codes), _CODE_CHUNK):
            chunk = codes[offset:offset + _CODE_CHUNK]
            result = await self.db.execute(
                select(Shipment).where(
                    Shipment.company_id == company_id,
                    or_(Shipment.shipment_code.in_(chunk), Shipment.order_number.in_(chunk)),
                )
            )
            for shipment in result.scalars().all():
                found[shipment.id] = shipment

        return sorted(found.values(), key=lambda s: (s.created_at, str(s.id)))

    async def reconcile(
        self,
        company_id: uuid.UUID,
        target_date: date,
        rows: Sequence[Optional[Row]],
        actor: Actor,
    ) -> ReconciliationResult:
        """
        Reconcile a company's settlement sheet for one business day.

        Args:
            company_id: Company the sheet came from
            target_date: Business day the sheet covers
            rows: Raw sheet rows, header included
            actor: User running the reconciliation

        Returns:
            ReconciliationResult with the five buckets and rejected rows

        Raises:
            PermissionDeniedError: If the actor may not reconcile
            EntityNotFoundError: If the company does not exist
            HeaderNotFoundError: If the sheet lacks a code or amount column
        """
        require_permission(actor, Permission.RECONCILE)
        await self.get_company(company_id)

        sheet = parse_sheet(rows)
        shipments = await self.load_candidates(company_id, target_date, list(sheet.records))

        result = match_records(
            company_id,
            target_date,
            shipments,
            sheet.record_list,
            tolerance=self.settings.amount_tolerance,
            tz=self.settings.tzinfo,
        )
        result.rejected_rows = sheet.rejections

        logger.info(f"Reconciled company {company_id} for {target_date}: {result.summary()}")
        return result

    # ===========================================
    # FOLLOW-UP ACTIONS
    # ===========================================

    async def _governorates_by_name(self) -> Dict[str, uuid.UUID]:
        result = await self.db.execute(select(Governorate))
        return {g.name.strip(): g.id for g in result.scalars().all()}

    async def add_sheet_only_shipments(
        self,
        company_id: uuid.UUID,
        target_date: date,
        records: Sequence[SheetRecord],
        actor: Actor,
    ) -> List[Shipment]:
        """
        Create Pending shipments for sheet records the system did not know.

        The new shipments are dated at the start of the business day so a
        re-run of the same reconciliation matches them.
        """
        require_permission(actor, Permission.RECONCILE)
        await self.get_company(company_id)
        governorates = await self._governorates_by_name()
        created_at, _ = self.day_bounds(target_date)

        shipments = []
        for record in records:
            governorate_id = governorates.get(record.governorate) if record.governorate else None
            shipment = Shipment(
                shipment_code=record.code,
                company_id=company_id,
                governorate_id=governorate_id,
                recipient_name=record.recipient_name,
                recipient_phone=record.recipient_phone,
                address=record.address,
                total_amount=record.amount,
                status=PENDING_STATUS,
                created_at=created_at,
                created_by_id=actor.id,
            )
            self.db.add(shipment)
            shipments.append(shipment)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise translate_store_error(e)

        for shipment in shipments:
            await self.db.refresh(shipment)
        logger.info(f"Added {len(shipments)} sheet-only shipments for company {company_id} on {target_date}")
        return shipments

    async def delete_shipments(
        self,
        company_id: uuid.UUID,
        shipment_ids: Sequence[uuid.UUID],
        actor: Actor,
    ) -> int:
        """
        Delete shipments of a company, typically the system-only bucket.

        Shipments of other companies in the id list are ignored.

        Returns:
            Number of shipments deleted
        """
        require_permission(actor, Permission.DELETE_SHIPMENTS)
        await self.get_company(company_id)
        if not shipment_ids:
            return 0

        result = await self.db.execute(
            select(Shipment).where(Shipment.company_id == company_id, Shipment.id.in_(list(shipment_ids)))
        )
        doomed = list(result.scalars().all())
        if not doomed:
            return 0
        owned = [s.id for s in doomed]

        try:
            await self.db.execute(
                delete(ShipmentHistory)
                .where(ShipmentHistory.shipment_id.in_(owned))
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Shipment)
                .where(Shipment.id.in_(owned))
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise translate_store_error(e)

        for shipment in doomed:
            self.db.expunge(shipment)
        logger.info(f"Deleted {len(owned)} shipments of company {company_id}")
        return len(owned)


def get_reconciliation_service(db: AsyncSession) -> ReconciliationService:
    """Factory function for ReconciliationService."""
    return ReconciliationService(db)
