"""
ShipLedger - API Integration Tests

Integration tests for REST API endpoints.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.models.payment import PartyRole


SHEET_HEADER = ["Shipment Code", "Amount", "Recipient Name"]


class TestHealthEndpoint:
    """Test health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test health check returns 200."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["app"] == "ShipLedger"

    @pytest.mark.asyncio
    async def test_api_root(self, client: AsyncClient):
        response = await client.get("/api/v1")

        assert response.status_code == 200
        assert "reconciliation" in response.json()["endpoints"]


class TestActorIdentity:
    """Test forwarded identity handling."""

    @pytest.mark.asyncio
    async def test_missing_identity_is_unauthorized(self, client: AsyncClient, test_courier):
        """Requests without actor headers are rejected."""
        response = await client.get(f"/api/v1/ledger/courier/{test_courier.id}")

        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["code"] == "UNAUTHORIZED"
        assert detail["message"] == "Not authenticated"
        assert "timestamp" in detail

    @pytest.mark.asyncio
    async def test_malformed_identity(self, client: AsyncClient, test_courier):
        response = await client.get(
            f"/api/v1/ledger/courier/{test_courier.id}",
            headers={"X-Actor-Id": "not-a-uuid", "X-Actor-Role": "admin"},
        )

        assert response.status_code == 401
        assert response.json()["detail"]["message"] == "Invalid actor identity"

    @pytest.mark.asyncio
    async def test_party_role_requires_party(self, client: AsyncClient, test_courier):
        response = await client.get(
            f"/api/v1/ledger/courier/{test_courier.id}",
            headers={"X-Actor-Id": str(uuid4()), "X-Actor-Role": "courier"},
        )

        assert response.status_code == 401


class TestReconciliationAPI:
    """Test reconciliation endpoints."""

    @pytest.mark.asyncio
    async def test_reconcile_sheet(self, client: AsyncClient, test_company, make_shipment, admin_actor, headers_for):
        """Test reconciling a sheet returns every bucket."""
        await make_shipment("SH-001", total_amount="100")
        await make_shipment("SH-003", total_amount="40")

        response = await client.post(
            f"/api/v1/reconciliation/companies/{test_company.id}",
            json={
                "date": "2024-01-05",
                "rows": [SHEET_HEADER, ["SH-001", "100", "Mona"], ["SH-002", "10", "Ali"], None],
            },
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == "2024-01-05"
        assert data["summary"] == {
            "matched": 1,
            "discrepancies": 0,
            "date_mismatch": 0,
            "sheet_only": 1,
            "system_only": 1,
            "rejected_rows": 0,
        }
        assert data["matched"][0]["shipment"]["shipment_code"] == "SH-001"
        assert Decimal(data["matched"][0]["difference"]) == Decimal("0")
        assert data["sheet_only"][0]["metadata"]["recipient_name"] == "Ali"

    @pytest.mark.asyncio
    async def test_reconcile_without_header(self, client: AsyncClient, test_company, admin_actor, headers_for):
        """A sheet with no amount column is rejected as a whole."""
        response = await client.post(
            f"/api/v1/reconciliation/companies/{test_company.id}",
            json={"date": "2024-01-05", "rows": [["Shipment Code"], ["SH-1"]]},
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "HEADER_NOT_FOUND"
        assert detail["details"]["missing_fields"] == ["amount"]

    @pytest.mark.asyncio
    async def test_reconcile_forbidden_for_company(
        self, client: AsyncClient, test_company, company_actor, headers_for,
    ):
        response = await client.post(
            f"/api/v1/reconciliation/companies/{test_company.id}",
            json={"date": "2024-01-05", "rows": [SHEET_HEADER]},
            headers=headers_for(company_actor),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "PERMISSION_DENIED"

    @pytest.mark.asyncio
    async def test_request_validation_error(self, client: AsyncClient, test_company, admin_actor, headers_for):
        response = await client.post(
            f"/api/v1/reconciliation/companies/{test_company.id}",
            json={"rows": []},
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert any(e["field"].endswith("date") for e in detail["details"]["errors"])

    @pytest.mark.asyncio
    async def test_add_sheet_only_records(self, client: AsyncClient, test_company, admin_actor, headers_for):
        response = await client.post(
            f"/api/v1/reconciliation/companies/{test_company.id}/sheet-only",
            json={
                "date": "2024-01-05",
                "records": [{"code": "SH-NEW", "amount": "55", "metadata": {"recipient_name": "Mona"}}],
            },
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["total"] == 1
        assert data["created"][0]["shipment_code"] == "SH-NEW"
        assert data["created"][0]["status"] == "Pending"
        assert data["created"][0]["recipient_name"] == "Mona"

    @pytest.mark.asyncio
    async def test_delete_system_only(self, client: AsyncClient, test_company, make_shipment, admin_actor, headers_for):
        shipment = await make_shipment("SH-003")

        response = await client.request(
            "DELETE",
            f"/api/v1/reconciliation/companies/{test_company.id}/shipments",
            json={"shipment_ids": [str(shipment.id)]},
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 200
        assert response.json() == {"deleted": 1}


class TestLedgerAPI:
    """Test ledger, payment and settlement endpoints."""

    @pytest.mark.asyncio
    async def test_courier_reads_own_ledger(
        self, client: AsyncClient, statuses, test_courier, make_shipment, courier_actor, headers_for,
    ):
        await make_shipment(
            "SH-1", courier_id=test_courier.id, status="Delivered",
            paid_amount=Decimal("100"), courier_commission=Decimal("20"),
        )

        response = await client.get(f"/api/v1/ledger/courier/{test_courier.id}", headers=headers_for(courier_actor))

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "courier"
        assert Decimal(data["net_due"]) == Decimal("80")
        assert data["shipment_count"] == 1

    @pytest.mark.asyncio
    async def test_courier_cannot_read_other_ledger(self, client: AsyncClient, courier_actor, headers_for):
        response = await client.get(f"/api/v1/ledger/courier/{uuid4()}", headers=headers_for(courier_actor))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_entity_returns_404(self, client: AsyncClient, admin_actor, headers_for):
        response = await client.get(f"/api/v1/ledger/company/{uuid4()}", headers=headers_for(admin_actor))

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ENTITY_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_role_in_path(self, client: AsyncClient, admin_actor, headers_for):
        response = await client.get(f"/api/v1/ledger/customer/{uuid4()}", headers=headers_for(admin_actor))

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_record_and_list_payments(self, client: AsyncClient, test_courier, admin_actor, headers_for):
        url = f"/api/v1/ledger/courier/{test_courier.id}/payments"

        created = await client.post(url, json={"amount": "40", "notes": "Cash"}, headers=headers_for(admin_actor))
        listed = await client.get(url, headers=headers_for(admin_actor))

        assert created.status_code == 201
        assert Decimal(created.json()["amount"]) == Decimal("40")
        assert created.json()["is_archived"] is False
        assert listed.status_code == 200
        assert listed.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_non_positive_payment_rejected(self, client: AsyncClient, test_courier, admin_actor, headers_for):
        response = await client.post(
            f"/api/v1/ledger/courier/{test_courier.id}/payments",
            json={"amount": "-5"},
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_AMOUNT"

    @pytest.mark.asyncio
    async def test_statement(
        self, client: AsyncClient, statuses, test_courier, make_shipment, make_payment, admin_actor, headers_for,
    ):
        await make_shipment(
            "SH-1", courier_id=test_courier.id, status="Delivered",
            paid_amount=Decimal("100"), courier_commission=Decimal("20"),
        )
        await make_payment(test_courier.id, PartyRole.COURIER, "30")

        response = await client.get(
            f"/api/v1/ledger/courier/{test_courier.id}/statement", headers=headers_for(admin_actor),
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["entries"]) == 2
        assert Decimal(data["closing_balance"]) == Decimal("50")

    @pytest.mark.asyncio
    async def test_settle_account(
        self, client: AsyncClient, statuses, test_courier, make_shipment, admin_actor, headers_for, notifier,
    ):
        """Settlement records the closing payment and empties the ledger."""
        await make_shipment(
            "SH-1", courier_id=test_courier.id, status="Delivered",
            paid_amount=Decimal("100"), courier_commission=Decimal("20"),
        )
        base = f"/api/v1/ledger/courier/{test_courier.id}"

        response = await client.post(f"{base}/settle", headers=headers_for(admin_actor))

        assert response.status_code == 200
        data = response.json()
        assert data["no_op"] is False
        assert Decimal(data["closing_amount"]) == Decimal("80")
        assert len(data["archived_shipment_ids"]) == 1
        assert [n["title"] for n in notifier.sent] == ["Account settled"]

        after = await client.get(base, headers=headers_for(admin_actor))
        assert Decimal(after.json()["net_due"]) == Decimal("0")

    @pytest.mark.asyncio
    async def test_settle_with_stale_expectation(
        self, client: AsyncClient, statuses, test_courier, make_shipment, admin_actor, headers_for,
    ):
        await make_shipment(
            "SH-1", courier_id=test_courier.id, status="Delivered",
            paid_amount=Decimal("100"), courier_commission=Decimal("20"),
        )

        response = await client.post(
            f"/api/v1/ledger/courier/{test_courier.id}/settle",
            json={"expected_net_due": "50"},
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "SETTLEMENT_CONFLICT"

    @pytest.mark.asyncio
    async def test_sheet_settlement_preview(
        self, client: AsyncClient, statuses, test_company, make_shipment, admin_actor, headers_for,
    ):
        await make_shipment(
            "SH-1", status="Delivered", paid_amount=Decimal("100"), company_commission=Decimal("15"),
        )

        response = await client.post(
            f"/api/v1/ledger/company/{test_company.id}/sheet-settlement/preview",
            json={"rows": [["Shipment Code"], ["SH-1"], ["SH-404"]]},
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_codes"] == 2
        assert [s["shipment_code"] for s in data["to_settle"]] == ["SH-1"]
        assert [e["code"] for e in data["excluded"]] == ["SH-404"]
        assert Decimal(data["net_due"]) == Decimal("85")


class TestShipmentsAPI:
    """Test shipment endpoints."""

    @pytest.mark.asyncio
    async def test_transition(
        self, client: AsyncClient, statuses, test_courier, make_shipment, courier_actor, headers_for,
    ):
        shipment = await make_shipment("SH-1", total_amount="200", courier_id=test_courier.id)

        response = await client.post(
            f"/api/v1/shipments/{shipment.id}/transition",
            json={"status": "Partial", "collected_amount": "80", "reason": "Recipient short of cash"},
            headers=headers_for(courier_actor),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Partial"
        assert Decimal(data["paid_amount"]) == Decimal("80")
        assert Decimal(data["courier_commission"]) == Decimal("20")

        history = await client.get(f"/api/v1/shipments/{shipment.id}/history", headers=headers_for(courier_actor))
        assert history.status_code == 200
        assert "status" in [h["field_name"] for h in history.json()["history"]]

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, client: AsyncClient, admin_actor, headers_for):
        response = await client.get(f"/api/v1/shipments/{uuid4()}", headers=headers_for(admin_actor))

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "SHIPMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_bulk_transition(
        self, client: AsyncClient, statuses, test_courier, make_shipment, courier_actor, headers_for,
    ):
        own = await make_shipment("SH-1", courier_id=test_courier.id)
        missing = uuid4()

        response = await client.post(
            "/api/v1/shipments/bulk-transition",
            json={"shipment_ids": [str(own.id), str(missing)], "status": "Delivered"},
            headers=headers_for(courier_actor),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] == [str(own.id)]
        assert data["failed"][0]["shipment_id"] == str(missing)

    @pytest.mark.asyncio
    async def test_assign_courier(
        self, client: AsyncClient, test_courier, make_shipment, admin_actor, headers_for, notifier,
    ):
        shipment = await make_shipment("SH-1")

        response = await client.post(
            f"/api/v1/shipments/{shipment.id}/assign",
            json={"courier_id": str(test_courier.id)},
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 200
        assert response.json()["courier_id"] == str(test_courier.id)
        assert notifier.sent[0]["recipient_id"] == test_courier.id

    @pytest.mark.asyncio
    async def test_import_manifest(self, client: AsyncClient, test_company, cairo, admin_actor, headers_for):
        response = await client.post(
            f"/api/v1/shipments/import/{test_company.id}",
            json={
                "rows": [
                    ["Shipment Code", "Governorate", "Total"],
                    ["SH-1", "Cairo", "100"],
                    ["SH-2", "Atlantis", "100"],
                ],
            },
            headers=headers_for(admin_actor),
        )

        assert response.status_code == 200
        data = response.json()
        assert (data["total"], data["added"], data["failed"]) == (2, 1, 1)
        assert data["failures"][0]["row_number"] == 3
