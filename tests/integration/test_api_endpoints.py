"""API endpoint integration tests.

Tests the FastAPI endpoints for the period lifecycle: catalog, detection,
ordinary edits, validation, liquidation, repair and reliquidation.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

BASE = "/api/v1/periods"


async def create_first_period(client: AsyncClient, headers: dict[str, str]) -> str:
    response = await client.post(BASE, headers=headers, json={"year": 2025, "sequence_number": 1})
    assert response.status_code == 201, response.text
    return response.json()["period_id"]


async def load(client: AsyncClient, headers: dict[str, str], period_id: str) -> dict:
    response = await client.post(f"{BASE}/{period_id}/employees/load", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
async def open_period(client, headers, test_employees) -> str:
    """Period 1 of 2025 with every employee loaded, through the API."""
    period_id = await create_first_period(client, headers)
    await load(client, headers, period_id)
    return period_id


@pytest.fixture
async def closed_period(client, headers, open_period) -> str:
    response = await client.post(f"{BASE}/{open_period}/liquidate", headers=headers)
    assert response.json()["status"] == "completed", response.text
    return open_period


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert "engine_version" in data
        assert data["statutory_year"] >= 2025
        assert data["periods_in_progress"] == 0

    async def test_health_counts_busy_periods(self, client: AsyncClient, api_lock_manager):
        async with api_lock_manager.try_hold("period-a"):
            response = await client.get("/health")

        assert response.json()["periods_in_progress"] == 1

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestCompanyHeader:
    async def test_missing_header(self, client: AsyncClient):
        response = await client.get(f"{BASE}/catalog", params={"year": 2025})
        assert response.status_code == 400

    async def test_malformed_header(self, client: AsyncClient):
        response = await client.get(
            f"{BASE}/catalog", params={"year": 2025}, headers={"X-Company-ID": "not-a-uuid"}
        )
        assert response.status_code == 400

    async def test_unknown_company(self, client: AsyncClient):
        response = await client.get(
            f"{BASE}/catalog", params={"year": 2025}, headers={"X-Company-ID": str(uuid4())}
        )
        assert response.status_code == 404


class TestCatalog:
    async def test_list_year(self, client, headers):
        response = await client.get(f"{BASE}/catalog", params={"year": 2025}, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["periodicity"] == "biweekly"
        assert len(data["slots"]) == 24
        assert data["slots"][0]["status"] == "to_create"
        assert data["slots"][3]["label"] == "Quincena 4 - 16 al 28 de Febrero 2025"

    async def test_ensure_year(self, client, headers):
        response = await client.post(f"{BASE}/catalog/ensure", params={"year": 2025}, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["generated"] == 24
        assert data["success"] is True

    async def test_next_available(self, client, headers):
        await create_first_period(client, headers)

        response = await client.get(f"{BASE}/catalog/next", params={"year": 2025}, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["sequence_number"] == 1
        assert data["status"] == "available"

    async def test_next_after_closing(self, client, headers, closed_period):
        response = await client.get(f"{BASE}/catalog/next", params={"year": 2025}, headers=headers)
        assert response.json()["sequence_number"] == 2


class TestDetectionAndCreation:
    async def test_detect_canonical_range(self, client, headers):
        response = await client.post(
            f"{BASE}/detect",
            headers=headers,
            json={"start_date": "2025-03-16", "end_date": "2025-03-31"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "create"
        assert data["sequence_number"] == 6
        assert data["is_coherent"] is True

    async def test_create_from_range(self, client, headers):
        response = await client.post(
            BASE, headers=headers, json={"start_date": "2025-03-03", "end_date": "2025-03-14"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["start_date"] == "2025-03-03"
        assert data["sequence_number"] == 5
        assert data["state"] == "draft"

    async def test_same_range_continues(self, client, headers):
        period_id = await create_first_period(client, headers)

        response = await client.post(
            BASE, headers=headers, json={"start_date": "2025-01-01", "end_date": "2025-01-15"}
        )

        assert response.status_code == 200
        assert response.json()["period_id"] == period_id

    async def test_overlap_conflicts(self, client, headers):
        await create_first_period(client, headers)

        response = await client.post(
            BASE, headers=headers, json={"start_date": "2025-01-10", "end_date": "2025-01-20"}
        )
        assert response.status_code == 409

    async def test_slot_held_by_closed_period(self, client, headers, closed_period):
        detect = await client.post(
            f"{BASE}/detect",
            headers=headers,
            json={"start_date": "2025-01-02", "end_date": "2025-01-15"},
        )
        assert detect.json()["action"] == "conflict"
        assert detect.json()["period_id"] == closed_period

        response = await client.post(
            BASE, headers=headers, json={"start_date": "2025-01-02", "end_date": "2025-01-15"}
        )
        assert response.status_code == 409
        assert "Ya existe" in response.json()["detail"]

    async def test_invalid_range(self, client, headers):
        response = await client.post(
            BASE, headers=headers, json={"start_date": "2025-01-20", "end_date": "2025-01-10"}
        )
        assert response.status_code == 422

    async def test_neither_slot_nor_range(self, client, headers):
        response = await client.post(BASE, headers=headers, json={"year": 2025})
        assert response.status_code == 422


class TestOrdinaryEdits:
    async def test_load_employees(self, client, headers, test_employees):
        period_id = await create_first_period(client, headers)

        data = await load(client, headers, period_id)

        assert data["created"] == 3
        assert all(r["worked_days"] == 15 for r in data["records"])

    async def test_add_event(self, client, headers, test_employees, open_period):
        response = await client.post(
            f"{BASE}/{open_period}/events",
            headers=headers,
            json={
                "employee_id": str(test_employees[1].employee_id),
                "event_type": "horas_extra",
                "subtype": "nocturna",
                "hours": "4",
            },
        )

        assert response.status_code == 201, response.text
        assert response.json()["event_type"] == "horas_extra"

    async def test_unknown_event_type_is_rejected(self, client, headers, test_employees, open_period):
        response = await client.post(
            f"{BASE}/{open_period}/events",
            headers=headers,
            json={"employee_id": str(test_employees[1].employee_id), "event_type": "propina"},
        )
        assert response.status_code == 422

    async def test_update_record(self, client, headers, test_employees, open_period):
        response = await client.patch(
            f"{BASE}/{open_period}/records/{test_employees[0].employee_id}",
            headers=headers,
            json={"worked_days": 10},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["worked_days"] == 10
        assert data["is_stale"] is True

    async def test_update_record_without_changes(self, client, headers, test_employees, open_period):
        response = await client.patch(
            f"{BASE}/{open_period}/records/{test_employees[0].employee_id}",
            headers=headers,
            json={},
        )
        assert response.status_code == 422

    async def test_update_unknown_record(self, client, headers, open_period):
        response = await client.patch(
            f"{BASE}/{open_period}/records/{uuid4()}", headers=headers, json={"worked_days": 5}
        )
        assert response.status_code == 404

    async def test_closed_period_rejects_edits(self, client, headers, test_employees, closed_period):
        response = await client.post(
            f"{BASE}/{closed_period}/events",
            headers=headers,
            json={
                "employee_id": str(test_employees[0].employee_id),
                "event_type": "bonificacion",
                "value": "1000",
            },
        )

        assert response.status_code == 409
        assert response.json()["code"] == "PERIOD_CLOSED"


class TestValidationEndpoint:
    async def test_validate(self, client, headers, open_period):
        response = await client.post(f"{BASE}/{open_period}/validate", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 100
        assert data["can_proceed"] is True
        assert len(data["checks"]) == 15

    async def test_validate_with_repair(self, client, headers, test_employees):
        period_id = await create_first_period(client, headers)

        response = await client.post(
            f"{BASE}/{period_id}/validate", params={"repair": True}, headers=headers
        )

        data = response.json()
        assert data["can_proceed"] is True
        assert data["repair"]["repaired_count"] == 1


class TestLiquidationFlow:
    async def test_liquidate(self, client, headers, test_employees, open_period):
        await client.post(
            f"{BASE}/{open_period}/events",
            headers=headers,
            json={
                "employee_id": str(test_employees[1].employee_id),
                "event_type": "bonificacion",
                "value": "200000",
            },
        )

        response = await client.post(f"{BASE}/{open_period}/liquidate", headers=headers)

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "completed"
        assert data["employees_processed"] == 3
        assert data["vouchers_generated"] == 3
        assert Decimal(data["totals"]["total_gross"]) == Decimal("22511750")

        period = (await client.get(f"{BASE}/{open_period}", headers=headers)).json()
        assert period["state"] == "closed"
        assert Decimal(period["total_gross"]) == Decimal("22511750")

    async def test_empty_period_is_rejected(self, client, headers):
        period_id = await create_first_period(client, headers)

        response = await client.post(f"{BASE}/{period_id}/liquidate", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "rejected"
        assert "employees_loaded" in data["validation"]["must_repair"]

    async def test_busy_period(self, client, headers, api_lock_manager, open_period):
        async with api_lock_manager.try_hold(open_period):
            response = await client.post(f"{BASE}/{open_period}/liquidate", headers=headers)

        assert response.status_code == 409
        assert response.json()["code"] == "PERIOD_LOCKED"

    async def test_unknown_period(self, client, headers):
        response = await client.get(f"{BASE}/{uuid4()}", headers=headers)

        assert response.status_code == 404
        assert response.json()["code"] == "PERIOD_NOT_FOUND"

    async def test_audit_trail(self, client, headers, closed_period):
        response = await client.get(f"{BASE}/{closed_period}/audit", headers=headers)

        assert response.status_code == 200
        steps = [e["step"] for e in response.json()]
        assert steps[0] == "start"
        assert steps[-1] == "completed"
        assert all(e["actor_id"] == "api-tester" for e in response.json())


class TestRepairEndpoint:
    async def test_repair_open_period(self, client, headers, open_period):
        response = await client.post(f"{BASE}/{open_period}/repair", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["employees_count"] == 3
        assert Decimal(data["totals"]["total_net"]) == Decimal("17342952")

    async def test_repair_closed_period(self, client, headers, closed_period):
        response = await client.post(f"{BASE}/{closed_period}/repair", headers=headers)

        assert response.status_code == 409
        assert response.json()["code"] == "PERIOD_CLOSED"


class TestReliquidationEndpoints:
    async def test_reliquidate_all(self, client, headers, closed_period):
        response = await client.post(
            f"{BASE}/{closed_period}/reliquidate",
            headers=headers,
            json={"justification": "Revisión de cierre", "scope": "all", "regenerate_vouchers": False},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is True
        assert data["period_reopened"] is True
        assert data["period_reclosed"] is True
        assert data["employees_affected"] == 3

    async def test_affected_scope_without_ids(self, client, headers, closed_period):
        response = await client.post(
            f"{BASE}/{closed_period}/reliquidate",
            headers=headers,
            json={"justification": "Revisión"},
        )
        assert response.status_code == 422

    async def test_corrective_adjustment(self, client, headers, test_employees, closed_period):
        response = await client.post(
            f"{BASE}/{closed_period}/adjustments",
            headers=headers,
            json={
                "kind": "corrective",
                "employee_id": str(test_employees[1].employee_id),
                "amount": "200000",
                "concept": "Auxilio omitido",
                "justification": "Error en la quincena",
            },
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["reliquidation"]["corrections_applied"] == 1

        corrections = (await client.get(f"{BASE}/{closed_period}/corrections", headers=headers)).json()
        assert sorted(c["correction_type"] for c in corrections) == [
            "corrective_adjustment",
            "reliquidation",
        ]

    async def test_compensatory_adjustment_without_open_period(
        self, client, headers, test_employees, closed_period
    ):
        response = await client.post(
            f"{BASE}/{closed_period}/adjustments",
            headers=headers,
            json={
                "kind": "compensatory",
                "employee_id": str(test_employees[1].employee_id),
                "amount": "50000",
                "concept": "Ajuste",
            },
        )
        assert response.status_code == 404
