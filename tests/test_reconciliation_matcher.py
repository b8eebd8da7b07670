"""
ShipLedger - Reconciliation Matcher Tests

Tests for classifying sheet records against a company's shipments.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from app.models.shipment import Shipment
from app.services.reconciliation_matcher import business_date, match_records, partition_by_date
from app.services.sheet_parser import SheetRecord


COMPANY_ID = uuid4()
TARGET = date(2024, 1, 5)
SAME_DAY = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)
DAY_BEFORE = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)


def shipment(code, amount, created_at=SAME_DAY, order_number=None, company_id=COMPANY_ID):
    return Shipment(
        id=uuid4(),
        shipment_code=code,
        order_number=order_number,
        company_id=company_id,
        total_amount=Decimal(str(amount)),
        created_at=created_at,
    )


def record(code, amount, row_number=2):
    return SheetRecord(code=code, amount=Decimal(str(amount)), row_number=row_number)


def codes(items):
    return [item.record.code for item in items]


class TestMatchRecords:
    """Tests for match_records()."""

    def test_reference_scenario(self):
        shipments = [
            shipment("SH-001", 100),
            shipment("SH-003", 40),
            shipment("SH-004", 60, created_at=DAY_BEFORE),
        ]
        records = [record("SH-001", 100), record("SH-002", 10), record("SH-004", 60)]

        result = match_records(COMPANY_ID, TARGET, shipments, records)

        assert codes(result.matched) == ["SH-001"]
        assert result.discrepancies == []
        assert [r.code for r in result.sheet_only] == ["SH-002"]
        assert [s.shipment_code for s in result.system_only] == ["SH-003"]
        assert codes(result.date_mismatch) == ["SH-004"]
        assert result.date_mismatch[0].difference == Decimal("0")

    def test_discrepancy_difference_is_sheet_minus_system(self):
        result = match_records(COMPANY_ID, TARGET, [shipment("SH-001", 100)], [record("SH-001", 95)])

        assert result.matched == []
        assert codes(result.discrepancies) == ["SH-001"]
        assert result.discrepancies[0].difference == Decimal("-5")
        assert result.discrepancies[0].system_amount == Decimal("100")

    def test_date_mismatch_difference_sign(self):
        result = match_records(
            COMPANY_ID, TARGET,
            [shipment("SH-004", 60, created_at=DAY_BEFORE)],
            [record("SH-004", 75)],
        )

        assert result.date_mismatch[0].difference == Decimal("15")

    @pytest.mark.parametrize(
        "sheet_amount, bucket",
        [
            ("100.00", "matched"),
            ("100.009", "matched"),
            ("99.991", "matched"),
            ("100.01", "discrepancies"),
            ("99.99", "discrepancies"),
        ],
    )
    def test_tolerance_boundary(self, sheet_amount, bucket):
        result = match_records(COMPANY_ID, TARGET, [shipment("SH-001", "100.00")], [record("SH-001", sheet_amount)])

        assert len(getattr(result, bucket)) == 1

    def test_order_number_matches(self):
        result = match_records(
            COMPANY_ID, TARGET,
            [shipment("SH-001", 100, order_number="ORD-77")],
            [record("ORD-77", 100)],
        )

        assert codes(result.matched) == ["ORD-77"]
        assert result.system_only == []

    def test_stored_keys_compared_exactly(self):
        result = match_records(
            COMPANY_ID, TARGET,
            [shipment("SH-001 ", 100), shipment("SH-002", 50, order_number=" ORD-9")],
            [record("SH-001", 100), record("ORD-9", 50)],
        )

        assert result.matched == []
        assert [r.code for r in result.sheet_only] == ["SH-001", "ORD-9"]
        assert [s.shipment_code for s in result.system_only] == ["SH-001 ", "SH-002"]

    def test_first_match_wins_and_consumes(self):
        first = shipment("DUP", 100)
        second = shipment("DUP", 50)
        result = match_records(COMPANY_ID, TARGET, [first, second], [record("DUP", 50)])

        # the first shipment in pool order is claimed even though the second agrees on amount
        assert result.discrepancies[0].shipment is first
        assert result.system_only == [second]

    def test_shipment_claimed_only_once(self):
        target = shipment("SH-001", 100, order_number="ORD-1")
        result = match_records(
            COMPANY_ID, TARGET,
            [target],
            [record("SH-001", 100), record("ORD-1", 100)],
        )

        assert codes(result.matched) == ["SH-001"]
        assert [r.code for r in result.sheet_only] == ["ORD-1"]

    def test_other_companies_ignored(self):
        foreign = shipment("SH-001", 100, company_id=uuid4())
        result = match_records(COMPANY_ID, TARGET, [foreign], [record("SH-001", 100)])

        assert [r.code for r in result.sheet_only] == ["SH-001"]
        assert result.system_only == []

    def test_partition_law(self):
        same_day = [shipment(f"S-{i}", 10 * i) for i in range(1, 6)]
        other_day = [shipment("OLD-1", 5, created_at=DAY_BEFORE)]
        records = [
            record("S-1", 10),
            record("S-2", 21),
            record("OLD-1", 5),
            record("NEW-1", 7),
            record("S-5", 50),
        ]

        result = match_records(COMPANY_ID, TARGET, same_day + other_day, records)

        sheet_side = (
            codes(result.matched) + codes(result.discrepancies)
            + codes(result.date_mismatch) + [r.code for r in result.sheet_only]
        )
        assert sorted(sheet_side) == sorted(r.code for r in records)

        system_side = [i.shipment.id for i in result.matched + result.discrepancies] + [
            s.id for s in result.system_only
        ]
        assert sorted(map(str, system_side)) == sorted(str(s.id) for s in same_day)
        assert len(set(system_side)) == len(system_side)

    def test_deterministic(self):
        shipments = [shipment("A", 10), shipment("A", 20), shipment("B", 30, created_at=DAY_BEFORE)]
        records = [record("A", 20), record("B", 30), record("C", 1)]

        first = match_records(COMPANY_ID, TARGET, shipments, records)
        second = match_records(COMPANY_ID, TARGET, shipments, records)

        assert first.summary() == second.summary()
        assert [i.shipment.id for i in first.discrepancies] == [i.shipment.id for i in second.discrepancies]
        assert [s.id for s in first.system_only] == [s.id for s in second.system_only]

    def test_inputs_not_mutated(self):
        shipments = [shipment("A", 10)]
        records = [record("A", 10)]
        match_records(COMPANY_ID, TARGET, shipments, records)

        assert len(shipments) == 1
        assert len(records) == 1


class TestBusinessDate:
    """Tests for dating shipments in the business timezone."""

    def test_late_utc_evening_is_next_local_day(self):
        cairo = ZoneInfo("Africa/Cairo")
        moment = datetime(2024, 1, 4, 23, 30, tzinfo=timezone.utc)

        assert business_date(moment, cairo) == date(2024, 1, 5)
        assert business_date(moment) == date(2024, 1, 4)

    def test_naive_timestamps_are_utc(self):
        cairo = ZoneInfo("Africa/Cairo")

        assert business_date(datetime(2024, 1, 4, 23, 30), cairo) == date(2024, 1, 5)

    def test_partition_skips_undated_shipments(self):
        undated = shipment("X", 1)
        undated.created_at = None
        same, other = partition_by_date([undated, shipment("Y", 1)], TARGET)

        assert [s.shipment_code for s in same] == ["Y"]
        assert other == []
