"""
API tests using FastAPI's TestClient.

The lesson store is swapped for the in-memory repository through
dependency overrides, so requests run end to end without Snowflake.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_lesson_store
from src.api.routes import health
from src.config.settings import Settings, get_settings
from src.core.billing.errors import Messages, StoreError
from src.core.billing.models import Client
from src.infrastructure.snowflake.client import SnowflakeConnectionError
from src.main import create_app

API_KEY = "test-key"


@pytest.fixture
def settings() -> Settings:
    return Settings(api_keys=API_KEY, snowflake_mock_mode=True)


@pytest.fixture
def client(repo, settings) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_lesson_store] = lambda: repo
    return TestClient(app)


@pytest.fixture
def headers(coach_id) -> dict[str, str]:
    return {"X-API-Key": API_KEY, "X-Coach-Id": str(coach_id)}


def _booking(client_ids, **overrides):
    body = {
        "client_ids": [str(c) for c in client_ids],
        "start_time": "2024-03-04T10:00:00Z",
        "end_time": "2024-03-04T11:30:00Z",
        "custom_hourly_rate": "90",
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Health and Authentication
# ---------------------------------------------------------------------------

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["details"]["mock_mode"]["snowflake"] is True

    def test_ready_in_mock_mode(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_snowflake_config(self, repo):
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: Settings(
            api_keys=API_KEY, snowflake_mock_mode=False, snowflake_account="",
        )
        response = TestClient(app).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_not_ready_when_warehouse_unreachable(self, monkeypatch):
        def unreachable(config):
            raise SnowflakeConnectionError("Failed to connect to Snowflake: timeout")

        monkeypatch.setattr(health, "get_snowflake_connection", unreachable)
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: Settings(
            api_keys=API_KEY,
            snowflake_mock_mode=False,
            snowflake_account="acct",
            snowflake_user="coach",
            snowflake_password="secret",
        )
        response = TestClient(app).get("/health/ready")

        assert response.status_code == 503
        database = response.json()["checks"][1]
        assert database["name"] == "database"
        assert database["ok"] is False
        assert "timeout" in database["detail"]


class TestAuthentication:

    def test_missing_api_key(self, client, clients):
        response = client.post("/api/v1/lessons", json=_booking([clients[0].id]))
        assert response.status_code == 403

    def test_wrong_api_key(self, client, clients, coach_id):
        response = client.post(
            "/api/v1/lessons",
            json=_booking([clients[0].id]),
            headers={"X-API-Key": "nope", "X-Coach-Id": str(coach_id)},
        )
        assert response.status_code == 403

    def test_missing_coach_id(self, client, clients):
        response = client.post(
            "/api/v1/lessons",
            json=_booking([clients[0].id]),
            headers={"X-API-Key": API_KEY},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == Messages.NOT_LOGGED_IN

    def test_malformed_coach_id(self, client, clients):
        response = client.post(
            "/api/v1/lessons",
            json=_booking([clients[0].id]),
            headers={"X-API-Key": API_KEY, "X-Coach-Id": "not-a-uuid"},
        )
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------

class TestBookingEndpoints:

    def test_book_three_way_split(self, client, headers, repo, clients):
        response = client.post(
            "/api/v1/lessons", json=_booking([c.id for c in clients]), headers=headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == Messages.LESSON_CREATED
        assert Decimal(data["total"]) == Decimal("135.00")
        assert [Decimal(e["amount_owed"]) for e in data["owed_entries"]] == [Decimal("45.00")] * 3
        assert data["lesson"]["status"] == "Scheduled"
        assert repo.lesson_count == 1

    def test_missing_rate_is_unprocessable(self, client, headers, repo, clients):
        body = _booking([clients[0].id])
        del body["custom_hourly_rate"]

        response = client.post("/api/v1/lessons", json=body, headers=headers)

        assert response.status_code == 422
        assert response.json()["detail"] == Messages.INVALID_RATE
        assert repo.lesson_count == 0

    def test_foreign_client_is_not_found(self, client, headers, repo):
        stranger = repo.add_client(Client(coach_id=uuid4(), first_name="Zed"))

        response = client.post("/api/v1/lessons", json=_booking([stranger.id]), headers=headers)

        assert response.status_code == 404
        assert response.json()["detail"] == Messages.CLIENT_NOT_FOUND

    def test_partial_failure_reports_lesson(self, client, headers, repo, clients, monkeypatch):
        def fail(entries):
            raise StoreError("disk full")

        monkeypatch.setattr(repo, "insert_owed_entries", fail)
        response = client.post("/api/v1/lessons", json=_booking([clients[0].id]), headers=headers)

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["message"] == Messages.PARTICIPANTS_CREATE_FAILED
        assert detail["lesson_created"] is True
        assert detail["entries_created"] is False
        assert detail["lesson_id"]

    def test_client_lookup_failure_is_a_server_error(self, client, headers, repo, clients,
                                                     monkeypatch):
        def fail(coach, ids=None):
            raise StoreError("warehouse down")

        monkeypatch.setattr(repo, "list_clients", fail)
        response = client.post("/api/v1/lessons", json=_booking([clients[0].id]), headers=headers)

        assert response.status_code == 500
        assert response.json()["detail"] == Messages.LOAD_FAILED
        assert repo.lesson_count == 0

    def test_single_client_booking(self, client, headers, clients):
        response = client.post(
            "/api/v1/lessons/single",
            json={
                "client_id": str(clients[1].id),
                "start_time": "2024-03-04T10:00:00Z",
                "end_time": "2024-03-04T11:00:00Z",
            },
            headers=headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["total"]) == Decimal("75.00")
        assert data["invoice"]["invoice_number"].startswith("INV-")
        assert data["invoice"]["due_date"] == "2024-03-18"
        assert data["lesson"]["client_id"] == str(clients[1].id)


# ---------------------------------------------------------------------------
# Lifecycle and Payments
# ---------------------------------------------------------------------------

class TestLifecycleEndpoints:

    def _book(self, client, headers, client_ids):
        response = client.post("/api/v1/lessons", json=_booking(client_ids), headers=headers)
        assert response.status_code == 201
        return response.json()["lesson"]["id"]

    def test_complete_and_pay(self, client, headers, clients):
        lesson_id = self._book(client, headers, [clients[0].id, clients[1].id])

        completed = client.post(f"/api/v1/lessons/{lesson_id}/complete", headers=headers)
        assert completed.status_code == 200
        assert completed.json()["lesson"]["status"] == "Completed"

        paid = client.post(
            f"/api/v1/lessons/{lesson_id}/participants/{clients[0].id}/paid", headers=headers
        )
        assert paid.status_code == 200
        assert paid.json()["entry"]["payment_status"] == "Paid"
        assert paid.json()["entry"]["paid_at"] is not None

        unpaid = client.post(
            f"/api/v1/lessons/{lesson_id}/participants/{clients[0].id}/unpaid", headers=headers
        )
        assert unpaid.json()["entry"]["payment_status"] == "Pending"

    def test_confirm_past_lesson(self, client, headers, clients):
        lesson_id = self._book(client, headers, [clients[0].id])

        response = client.post(f"/api/v1/lessons/{lesson_id}/confirm", headers=headers)

        assert response.status_code == 200
        assert response.json()["message"] == Messages.LESSON_CONFIRMED

    def test_times_without_zone_can_be_confirmed(self, client, headers, clients):
        body = _booking(
            [clients[0].id], start_time="2024-03-04T10:00:00", end_time="2024-03-04T11:00:00"
        )
        lesson_id = client.post("/api/v1/lessons", json=body, headers=headers).json()["lesson"]["id"]

        response = client.post(f"/api/v1/lessons/{lesson_id}/confirm", headers=headers)
        assert response.status_code == 200

    def test_cancel_with_reason(self, client, headers, clients):
        lesson_id = self._book(client, headers, [clients[0].id])

        response = client.post(
            f"/api/v1/lessons/{lesson_id}/cancel", json={"reason": "sick"}, headers=headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["lesson"]["status"] == "Cancelled"
        assert data["lesson"]["cancelled_reason"] == "sick"
        assert data["invoices_canceled"] == 0

        again = client.post(f"/api/v1/lessons/{lesson_id}/cancel", headers=headers)
        assert again.status_code == 422

    def test_no_show(self, client, headers, clients):
        lesson_id = self._book(client, headers, [clients[0].id])

        response = client.post(f"/api/v1/lessons/{lesson_id}/no-show", headers=headers)
        assert response.json()["lesson"]["status"] == "No Show"

    def test_unknown_lesson(self, client, headers):
        response = client.post(f"/api/v1/lessons/{uuid4()}/complete", headers=headers)

        assert response.status_code == 404
        assert response.json()["detail"] == Messages.LESSON_NOT_FOUND


# ---------------------------------------------------------------------------
# Financials
# ---------------------------------------------------------------------------

class TestFinancialEndpoints:

    @pytest.fixture
    def paid_year(self, client, headers, clients):
        """One completed 1.5h lesson at 90/hr; Ana paid, Ben pending."""
        response = client.post(
            "/api/v1/lessons", json=_booking([clients[0].id, clients[1].id]), headers=headers
        )
        lesson_id = response.json()["lesson"]["id"]
        client.post(f"/api/v1/lessons/{lesson_id}/complete", headers=headers)
        client.post(f"/api/v1/lessons/{lesson_id}/participants/{clients[0].id}/paid",
                    headers=headers)
        return lesson_id

    def test_summary(self, client, headers, paid_year):
        response = client.get("/api/v1/financials/2024", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["year"] == 2024
        assert len(data["monthly_income"]) == 12
        assert Decimal(data["monthly_income"][2]["total_paid"]) == Decimal("67.50")
        assert Decimal(data["outstanding_balance"]) == Decimal("67.50")
        assert Decimal(data["tax_summary"]["gross_income"]) == Decimal("67.50")
        assert data["tax_summary"]["quarterly_breakdown"][3]["deadline"] == "Jan 15, 2025"
        assert data["lesson_type_breakdown"][0]["lesson_type_id"] is None
        assert len(data["client_breakdown"]) == 2

    def test_empty_year(self, client, headers):
        data = client.get("/api/v1/financials/2019", headers=headers).json()

        assert data["client_breakdown"] == []
        assert data["tax_summary"]["total_lessons"] == 0

    def test_year_out_of_range(self, client, headers):
        response = client.get("/api/v1/financials/1900", headers=headers)
        assert response.status_code == 422

    def test_csv_export_defaults_to_paid_rows(self, client, headers, paid_year):
        response = client.get("/api/v1/financials/2024/export.csv", headers=headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="income-2024.csv"' in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert len(lines) == 2
        assert lines[1] == "2024-03-04,Ana Lopez,Uncategorized,0.75,67.50,Paid"

    def test_csv_export_all_rows(self, client, headers, paid_year):
        response = client.get(
            "/api/v1/financials/2024/export.csv", params={"paid_only": "false"}, headers=headers
        )

        lines = response.text.splitlines()
        assert len(lines) == 3
        assert lines[2].endswith("0.00,Pending")
