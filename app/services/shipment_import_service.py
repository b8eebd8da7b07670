"""
ShipLedger - Shipment Import Service

Sequential intake of a company's shipment manifest.

Rows are processed strictly in order with one lookup per row so progress
can be reported as the import runs. Each row is committed on its own; a bad
row is reported and the import moves on.
"""

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.sheet_config import (
    DEFAULT_ADDRESS,
    DEFAULT_RECIPIENT_NAME,
    FIELD_ADDRESS,
    FIELD_AMOUNT,
    FIELD_CODE,
    FIELD_GOVERNORATE,
    FIELD_RECIPIENT_NAME,
    FIELD_RECIPIENT_PHONE,
    INTAKE_KEYWORDS,
    INTAKE_REQUIRED_FIELDS,
)
from app.models.party import Company, Governorate
from app.models.shipment import Shipment
from app.models.shipment_status import PENDING_STATUS
from app.services.sheet_parser import HeaderMap, Row, RowRejection, cell_text, parse_amount, resolve_headers
from app.services.shipment_service import record_changes
from app.utils.error_handling import EntityNotFoundError, RowValidationError, translate_store_error
from app.utils.permissions import Actor, Permission, require_permission

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Union[None, Awaitable[None]]]


@dataclass
class ImportReport:
    """Outcome of a manifest import."""
    total: int = 0
    added: int = 0
    updated: int = 0
    failures: List[RowRejection] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


class ShipmentImportService:
    """Service for importing shipment manifests."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _governorates_by_name(self) -> Dict[str, uuid.UUID]:
        result = await self.db.execute(select(Governorate))
        return {g.name.strip(): g.id for g in result.scalars().all()}

    async def _find_existing(self, company_id: uuid.UUID, code: str) -> Optional[Shipment]:
        """Most recent shipment of the company carrying the code."""
        result = await self.db.execute(
            select(Shipment)
            .where(Shipment.company_id == company_id, Shipment.shipment_code == code)
            .order_by(Shipment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _read_row(
        self,
        row: Row,
        row_number: int,
        header: HeaderMap,
        governorates: Dict[str, uuid.UUID],
    ) -> Dict[str, Any]:
        def cell(name: str) -> Any:
            index = header.columns.get(name)
            if index is None or index >= len(row):
                return None
            return row[index]

        code = cell_text(cell(FIELD_CODE))
        if not code:
            raise RowValidationError(row_number, "missing shipment code")

        governorate_name = cell_text(cell(FIELD_GOVERNORATE))
        governorate_id = governorates.get(governorate_name)
        if governorate_id is None:
            raise RowValidationError(row_number, f"unknown governorate '{governorate_name}'")

        try:
            total_amount = parse_amount(cell(FIELD_AMOUNT))
        except ValueError:
            total_amount = Decimal("0")

        return {
            "shipment_code": code,
            "governorate_id": governorate_id,
            "recipient_name": cell_text(cell(FIELD_RECIPIENT_NAME)) or DEFAULT_RECIPIENT_NAME,
            "recipient_phone": cell_text(cell(FIELD_RECIPIENT_PHONE)) or None,
            "address": cell_text(cell(FIELD_ADDRESS)) or DEFAULT_ADDRESS,
            "total_amount": total_amount,
        }

    async def import_shipments(
        self,
        company_id: uuid.UUID,
        rows: Sequence[Optional[Row]],
        actor: Actor,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ImportReport:
        """
        Import a shipment manifest for a company.

        A code with no shipment, or whose shipment is archived for both the
        courier and the company, becomes a new Pending shipment. Otherwise the
        existing shipment's intake fields are updated; its status is reset to
        Pending unless it is already with a courier and past Pending.

        Args:
            company_id: Company the manifest belongs to
            rows: Raw manifest rows, header included
            actor: User running the import
            on_progress: Called with (processed, total) after every row

        Returns:
            ImportReport with counts and per-row failures

        Raises:
            PermissionDeniedError: If the actor may not import shipments
            EntityNotFoundError: If the company does not exist
            HeaderNotFoundError: If the manifest lacks a code or governorate column
        """
        require_permission(actor, Permission.IMPORT_SHIPMENTS)
        if await self.db.get(Company, company_id) is None:
            raise EntityNotFoundError("company", company_id)

        header = resolve_headers(rows, keywords=INTAKE_KEYWORDS, required=INTAKE_REQUIRED_FIELDS)
        governorates = await self._governorates_by_name()

        data_rows = [
            (index + 1, row)
            for index, row in enumerate(rows)
            if index > header.header_row and row and any(cell_text(c) for c in row)
        ]
        report = ImportReport(total=len(data_rows))

        for processed, (row_number, row) in enumerate(data_rows, start=1):
            try:
                await self._import_row(company_id, row, row_number, header, governorates, actor, report)
            except RowValidationError as e:
                logger.warning(f"Import row {row_number} rejected: {e.reason}")
                report.failures.append(RowRejection.from_error(e))
            except SQLAlchemyError as e:
                await self.db.rollback()
                error = translate_store_error(e)
                logger.warning(f"Import row {row_number} failed: {error.message}")
                report.failures.append(RowRejection(row_number, error.message))

            if on_progress is not None:
                outcome = on_progress(processed, report.total)
                if inspect.isawaitable(outcome):
                    await outcome

        logger.info(
            f"Imported manifest for company {company_id}: "
            f"{report.added} added, {report.updated} updated, {report.failed} failed"
        )
        return report

    async def _import_row(
        self,
        company_id: uuid.UUID,
        row: Row,
        row_number: int,
        header: HeaderMap,
        governorates: Dict[str, uuid.UUID],
        actor: Actor,
        report: ImportReport,
    ) -> None:
        values = self._read_row(row, row_number, header, governorates)
        existing = await self._find_existing(company_id, values["shipment_code"])

        if existing is None or existing.is_fully_archived:
            self.db.add(Shipment(
                company_id=company_id,
                status=PENDING_STATUS,
                created_by_id=actor.id,
                **values,
            ))
            await self.db.commit()
            report.added += 1
            return

        keeps_status = existing.courier_id is not None and existing.status != PENDING_STATUS
        if not keeps_status:
            values["status"] = PENDING_STATUS
        record_changes(self.db, existing, values, actor)
        await self.db.commit()
        report.updated += 1
