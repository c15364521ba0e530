"""
API tests for the report endpoints and the service health endpoints.
"""

from decimal import Decimal

import pytest

from models import Report
from tests.conftest import auth_headers


@pytest.fixture
def headers(compounder_user):
    return auth_headers(compounder_user)


@pytest.fixture
def booked(client, doctor_user, headers, sample_booking_data):
    response = client.post("/api/appointments/", json=sample_booking_data, headers=headers)
    assert response.status_code == 201
    return response.json()


class TestAppointmentReport:
    """Per-appointment report endpoints."""

    def test_get_report(self, client, headers, booked):
        response = client.get(f"/api/reports/appointment/{booked['id']}", headers=headers)

        body = response.json()
        assert response.status_code == 200
        assert body["appointment_id"] == booked["id"]
        assert body["doctor_id"] == booked["doctor_id"]
        assert body["patient_id"] == booked["patient_id"]
        assert Decimal(body["amount"]) == Decimal("550")
        assert body["status"] == "Paid"

    def test_missing_report(self, client, headers):
        response = client.get("/api/reports/appointment/999", headers=headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Report not found"

    def test_sync_recreates_deleted_report(self, client, db_session, headers, booked):
        db_session.query(Report).delete()
        db_session.commit()

        response = client.post(f"/api/reports/appointment/{booked['id']}/sync", headers=headers)

        assert response.status_code == 200
        assert Decimal(response.json()["paid"]) == Decimal("550")
        assert db_session.query(Report).count() == 1

    def test_sync_unknown_appointment(self, client, headers):
        response = client.post("/api/reports/appointment/999/sync", headers=headers)

        assert response.status_code == 404

    def test_requires_dashboard_user(self, client, booked, patient_user):
        response = client.get(f"/api/reports/appointment/{booked['id']}", headers=auth_headers(patient_user))

        assert response.status_code == 403


class TestSummary:
    """GET /api/reports/summary"""

    def test_summary_by_day(self, client, headers, booked):
        response = client.get("/api/reports/summary", headers=headers)

        body = response.json()
        assert response.status_code == 200
        assert len(body["by_period"]) == 1
        assert body["by_period"][0]["invoices"] == 1
        assert Decimal(body["totals"]["revenue"]) == Decimal("550")
        assert Decimal(body["totals"]["due"]) == Decimal("0")

    def test_start_without_end_covers_one_day(self, client, headers, booked):
        response = client.get("/api/reports/summary", params={"start": "2000-01-01"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["by_period"] == []

    def test_uninvoiced_appointments_count_by_appointment_date(self, client, db_session, headers, booked, admin_user):
        client.delete(f"/api/invoices/{booked['invoice_ids'][0]}", headers=auth_headers(admin_user))

        response = client.get(
            "/api/reports/summary",
            params={"start": "2024-03-05", "end": "2024-03-05", "source": "appointment"},
            headers=headers,
        )

        body = response.json()
        assert body["by_period"][0]["period"] == "2024-03-05"
        assert body["by_period"][0]["appointments"] == 1
        assert Decimal(body["totals"]["due"]) == Decimal("100")

    def test_doctor_filter(self, client, headers, booked):
        response = client.get("/api/reports/summary", params={"doctor_id": 999}, headers=headers)

        assert response.json() == {"totals": {"revenue": "0.00", "due": "0.00"}, "by_period": []}

    @pytest.mark.parametrize("params", [{"group_by": "week"}, {"source": "ledger"}, {"start": "yesterday"}])
    def test_invalid_parameters(self, client, headers, params):
        response = client.get("/api/reports/summary", params=params, headers=headers)

        assert response.status_code == 400


class TestServiceEndpoints:
    """Root and health endpoints need no authentication."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")

        assert response.json() == {"status": "healthy"}
