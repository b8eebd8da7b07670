"""
ShipLedger - Shipment Service Tests

Tests for status transitions, bulk updates, courier assignment and history.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.models.shipment import Shipment
from app.services.shipment_service import ShipmentService
from app.utils.error_handling import EntityNotFoundError, PermissionDeniedError, ShipmentNotFoundError
from app.utils.permissions import Actor, ActorRole


class TestApplyTransition:
    """Tests for ShipmentService.apply_transition()."""

    @pytest.mark.asyncio
    async def test_delivered_sets_financial_fields(
        self, db_session, statuses, cairo, test_courier, make_shipment, admin_actor,
    ):
        shipment = await make_shipment(
            "SH-1", total_amount="200", courier_id=test_courier.id, governorate_id=cairo.id,
        )

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Delivered", admin_actor)

        assert updated.status == "Delivered"
        assert updated.paid_amount == Decimal("200")
        assert updated.collected_amount == Decimal("200")
        assert updated.courier_commission == Decimal("20")
        assert updated.company_commission == Decimal("15")
        assert updated.updated_by_id == admin_actor.id

    @pytest.mark.asyncio
    async def test_partial_collection(self, db_session, statuses, test_courier, make_shipment, admin_actor):
        shipment = await make_shipment("SH-1", total_amount="200", courier_id=test_courier.id)

        updated = await ShipmentService(db_session).apply_transition(
            shipment.id, "Partial", admin_actor, collected_amount=Decimal("80"),
        )

        assert updated.paid_amount == Decimal("80")
        assert updated.collected_amount == Decimal("80")
        # no governorate, so no company commission
        assert updated.company_commission == Decimal("0")

    @pytest.mark.asyncio
    async def test_custom_return_refunds(self, db_session, statuses, test_courier, make_shipment, admin_actor):
        shipment = await make_shipment("SH-1", total_amount="150", courier_id=test_courier.id, is_custom_return=True)

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Delivered", admin_actor)

        assert updated.paid_amount == Decimal("-150")
        assert updated.collected_amount == Decimal("-150")

    @pytest.mark.asyncio
    async def test_custom_return_mark_set_with_transition(
        self, db_session, statuses, test_courier, make_shipment, admin_actor,
    ):
        shipment = await make_shipment("SH-1", total_amount="150", courier_id=test_courier.id)
        service = ShipmentService(db_session)

        updated = await service.apply_transition(shipment.id, "Delivered", admin_actor, is_custom_return=True)

        assert updated.is_custom_return is True
        assert updated.paid_amount == Decimal("-150")
        history = await service.get_history(shipment.id)
        assert "is_custom_return" in [entry.field_name for entry in history]

    @pytest.mark.asyncio
    async def test_returned_and_delivered_status_is_not_a_refund(
        self, db_session, statuses, test_courier, make_shipment, admin_actor,
    ):
        shipment = await make_shipment("SH-1", total_amount="200", courier_id=test_courier.id)

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Exchanged", admin_actor)

        assert updated.paid_amount == Decimal("200")
        assert updated.courier_commission == Decimal("20")

    @pytest.mark.asyncio
    async def test_unassigned_shipment_has_no_courier_commission(
        self, db_session, statuses, make_shipment, admin_actor,
    ):
        shipment = await make_shipment("SH-1", total_amount="100")

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Delivered", admin_actor)

        assert updated.courier_commission == Decimal("0")

    @pytest.mark.asyncio
    async def test_unconfigured_status_only_changes_status(
        self, db_session, statuses, test_courier, make_shipment, admin_actor,
    ):
        shipment = await make_shipment(
            "SH-1",
            total_amount="100",
            courier_id=test_courier.id,
            status="Delivered",
            paid_amount=Decimal("100"),
            courier_commission=Decimal("20"),
        )

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Teleported", admin_actor)

        assert updated.status == "Teleported"
        assert updated.paid_amount == Decimal("100")
        assert updated.courier_commission == Decimal("20")

    @pytest.mark.asyncio
    async def test_history_records_each_changed_field(
        self, db_session, statuses, test_courier, make_shipment, admin_actor,
    ):
        shipment = await make_shipment("SH-1", total_amount="200", courier_id=test_courier.id)
        service = ShipmentService(db_session)

        await service.apply_transition(shipment.id, "Delivered", admin_actor, reason="Handed to recipient")
        history = await service.get_history(shipment.id)

        changes = {h.field_name: (h.old_value, h.new_value) for h in history}
        assert changes["status"] == ("Pending", "Delivered")
        assert changes["reason"] == (None, "Handed to recipient")
        assert changes["paid_amount"][1] == "200.00"
        assert "company_commission" not in changes
        assert all(h.changed_by_id == admin_actor.id for h in history)

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, db_session, admin_actor):
        with pytest.raises(ShipmentNotFoundError):
            await ShipmentService(db_session).apply_transition(uuid4(), "Delivered", admin_actor)


class TestTransitionPermissions:
    """Tests for who may change a shipment."""

    @pytest.mark.asyncio
    async def test_courier_updates_own_shipment(
        self, db_session, statuses, test_courier, make_shipment, courier_actor,
    ):
        shipment = await make_shipment("SH-1", courier_id=test_courier.id)

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Delivered", courier_actor)

        assert updated.status == "Delivered"

    @pytest.mark.asyncio
    async def test_courier_cannot_touch_other_shipments(self, db_session, statuses, make_shipment, courier_actor):
        shipment = await make_shipment("SH-1")

        with pytest.raises(PermissionDeniedError):
            await ShipmentService(db_session).apply_transition(shipment.id, "Delivered", courier_actor)

    @pytest.mark.asyncio
    async def test_courier_cannot_set_hidden_status(
        self, db_session, statuses, test_courier, make_shipment, courier_actor,
    ):
        shipment = await make_shipment("SH-1", courier_id=test_courier.id)

        with pytest.raises(PermissionDeniedError):
            await ShipmentService(db_session).apply_transition(shipment.id, "Lost", courier_actor)

    @pytest.mark.asyncio
    async def test_back_office_may_set_hidden_status(self, db_session, statuses, make_shipment):
        shipment = await make_shipment("SH-1")
        agent = Actor(id=uuid4(), role=ActorRole.CUSTOMER_SERVICE)

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Lost", agent)

        assert updated.status == "Lost"

    @pytest.mark.asyncio
    async def test_company_updates_own_shipment(self, db_session, statuses, make_shipment, company_actor):
        shipment = await make_shipment("SH-1")

        updated = await ShipmentService(db_session).apply_transition(shipment.id, "Pending", company_actor)

        assert updated.status == "Pending"


class TestBulkTransition:
    """Tests for per-item bulk status updates."""

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported_per_item(
        self, db_session, statuses, test_courier, make_shipment, courier_actor,
    ):
        own = await make_shipment("SH-1", courier_id=test_courier.id)
        foreign = await make_shipment("SH-2")
        missing = uuid4()

        report = await ShipmentService(db_session).bulk_apply_transition(
            [own.id, foreign.id, missing], "Delivered", courier_actor,
        )

        assert report.succeeded == [own.id]
        assert [f.shipment_id for f in report.failed] == [foreign.id, missing]

        result = await db_session.execute(select(Shipment.status).where(Shipment.id == own.id))
        assert result.scalar_one() == "Delivered"
        result = await db_session.execute(select(Shipment.status).where(Shipment.id == foreign.id))
        assert result.scalar_one() == "Pending"


class TestAssignCourier:
    """Tests for courier assignment."""

    @pytest.mark.asyncio
    async def test_assign_notifies_courier(self, db_session, test_courier, make_shipment, admin_actor, notifier):
        shipment = await make_shipment("SH-1", recipient_name="Mona")

        updated = await ShipmentService(db_session, notifier=notifier).assign_courier(
            shipment.id, test_courier.id, admin_actor,
        )

        assert updated.courier_id == test_courier.id
        assert updated.delivered_to_courier_at is not None
        assert len(notifier.sent) == 1
        assert notifier.sent[0]["recipient_id"] == test_courier.id
        assert notifier.sent[0]["title"] == "New shipment"
        assert "Mona" in notifier.sent[0]["body"]

    @pytest.mark.asyncio
    async def test_reassigning_same_courier_is_quiet(
        self, db_session, test_courier, make_shipment, admin_actor, notifier,
    ):
        shipment = await make_shipment("SH-1", courier_id=test_courier.id)

        await ShipmentService(db_session, notifier=notifier).assign_courier(shipment.id, test_courier.id, admin_actor)

        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_unknown_courier(self, db_session, make_shipment, admin_actor):
        shipment = await make_shipment("SH-1")

        with pytest.raises(EntityNotFoundError):
            await ShipmentService(db_session).assign_courier(shipment.id, uuid4(), admin_actor)

    @pytest.mark.asyncio
    async def test_courier_may_not_assign(self, db_session, test_courier, make_shipment, courier_actor):
        shipment = await make_shipment("SH-1")

        with pytest.raises(PermissionDeniedError):
            await ShipmentService(db_session).assign_courier(shipment.id, test_courier.id, courier_actor)
