"""
ShipLedger - Reconciliation Matcher

Matches normalized sheet records against a company's shipments for one
business day and classifies every record into exactly one bucket:

- matched: same-day shipment found, amounts agree within tolerance
- discrepancies: same-day shipment found, amounts differ
- date_mismatch: shipment found, but created on another day
- sheet_only: no shipment carries the code
- system_only: same-day shipments no sheet row claimed

Shipments are matched on ``shipment_code`` or ``order_number``. Within the
same-day pool the first unclaimed shipment in pool order wins and is
claimed, so two sheet rows never match the same shipment. Claims are
tracked by index over the immutable pool.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import uuid

from app.models.shipment import Shipment
from app.services.sheet_parser import RowRejection, SheetRecord
from app.services.status_transition import to_money

DEFAULT_TOLERANCE = Decimal("0.01")


# ===========================================
# DATA CLASSES
# ===========================================

@dataclass(frozen=True)
class ReconciliationItem:
    """A sheet record paired with the shipment it resolved to."""
    record: SheetRecord
    shipment: Shipment
    system_amount: Decimal
    difference: Decimal  # sheet amount - system amount


@dataclass
class ReconciliationResult:
    """Five disjoint buckets covering every sheet record and same-day shipment."""
    company_id: uuid.UUID
    target_date: date
    matched: List[ReconciliationItem] = field(default_factory=list)
    discrepancies: List[ReconciliationItem] = field(default_factory=list)
    date_mismatch: List[ReconciliationItem] = field(default_factory=list)
    sheet_only: List[SheetRecord] = field(default_factory=list)
    system_only: List[Shipment] = field(default_factory=list)
    rejected_rows: List[RowRejection] = field(default_factory=list)

    @property
    def consumed_shipments(self) -> List[Shipment]:
        """Same-day shipments claimed by a sheet record."""
        return [item.shipment for item in self.matched + self.discrepancies]

    def summary(self) -> Dict[str, int]:
        return {
            "matched": len(self.matched),
            "discrepancies": len(self.discrepancies),
            "date_mismatch": len(self.date_mismatch),
            "sheet_only": len(self.sheet_only),
            "system_only": len(self.system_only),
            "rejected_rows": len(self.rejected_rows),
        }


# ===========================================
# HELPERS
# ===========================================

def business_date(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    """
    Calendar day of a timestamp in the business timezone.

    Naive timestamps are taken as UTC, which is how the store hands them back.
    Without a timezone the timestamp's own date is used.
    """
    if tz is None:
        return moment.date()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def shipment_amount(shipment: Shipment) -> Decimal:
    return to_money(shipment.total_amount)


def _shipment_keys(shipment: Shipment) -> Set[str]:
    keys = set()
    if shipment.shipment_code:
        keys.add(str(shipment.shipment_code))
    if shipment.order_number:
        keys.add(str(shipment.order_number))
    return keys


def _index_by_key(pool: Sequence[Shipment]) -> Dict[str, List[int]]:
    """Key -> pool indices in ascending order."""
    index: Dict[str, List[int]] = {}
    for position, shipment in enumerate(pool):
        for key in _shipment_keys(shipment):
            index.setdefault(key, []).append(position)
    return index


def _first_unclaimed(candidates: Iterable[int], claimed: Set[int]) -> Optional[int]:
    for position in candidates:
        if position not in claimed:
            return position
    return None


def partition_by_date(
    shipments: Iterable[Shipment],
    target_date: date,
    tz: Optional[tzinfo] = None,
) -> Tuple[List[Shipment], List[Shipment]]:
    """Split shipments into (created on target_date, created another day)."""
    same_day: List[Shipment] = []
    other_day: List[Shipment] = []
    for shipment in shipments:
        if shipment.created_at is None:
            continue
        if business_date(shipment.created_at, tz) == target_date:
            same_day.append(shipment)
        else:
            other_day.append(shipment)
    return same_day, other_day


# ===========================================
# MATCHER
# ===========================================

def match_records(
    company_id: uuid.UUID,
    target_date: date,
    shipments: Iterable[Shipment],
    records: Iterable[SheetRecord],
    tolerance: Decimal = DEFAULT_TOLERANCE,
    tz: Optional[tzinfo] = None,
) -> ReconciliationResult:
    """
    Classify sheet records against the company's shipments for one day.

    Args:
        company_id: Company the sheet belongs to; other companies' shipments are ignored
        target_date: Business day the sheet covers
        shipments: The company's shipment records
        records: Normalized sheet records, in sheet order
        tolerance: Amounts closer than this are equal
        tz: Business timezone used to date shipments

    Returns:
        ReconciliationResult with the five buckets filled
    """
    company_shipments = [s for s in shipments if s.company_id == company_id]
    same_day, other_day = partition_by_date(company_shipments, target_date, tz)

    same_day_index = _index_by_key(same_day)
    other_day_index = _index_by_key(other_day)
    claimed: Set[int] = set()

    result = ReconciliationResult(company_id=company_id, target_date=target_date)

    for record in records:
        position = _first_unclaimed(same_day_index.get(record.code, ()), claimed)
        if position is not None:
            claimed.add(position)
            shipment = same_day[position]
            system_amount = shipment_amount(shipment)
            difference = record.amount - system_amount
            item = ReconciliationItem(record, shipment, system_amount, difference)
            if abs(difference) < tolerance:
                result.matched.append(item)
            else:
                result.discrepancies.append(item)
            continue

        other_positions = other_day_index.get(record.code)
        if other_positions:
            shipment = other_day[other_positions[0]]
            system_amount = shipment_amount(shipment)
            result.date_mismatch.append(
                ReconciliationItem(record, shipment, system_amount, record.amount - system_amount)
            )
            continue

        result.sheet_only.append(record)

    result.system_only = [s for position, s in enumerate(same_day) if position not in claimed]
    return result
