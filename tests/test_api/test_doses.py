"""
Tests for Doses API
===================

Tests dose logging, corrections, conflict handling and the dose views.
"""

import pytest
from datetime import datetime, timedelta
from fastapi import status
from fastapi.testclient import TestClient

from models import DoseStatus, DoseRecord
from tools.clock import utcnow


SCHEDULED = datetime(2024, 3, 15, 8, 0)


# ==================== FIXTURES ====================

@pytest.fixture
def log_payload(test_patient, test_regimen):
    """Taken dose logged ten minutes after it was due"""
    return {
        "patient_id": test_patient.id,
        "regimen_id": test_regimen.id,
        "scheduled_time": SCHEDULED.isoformat(),
        "status": "taken",
        "actual_time": (SCHEDULED + timedelta(minutes=10)).isoformat(),
        "mood": "good",
        "with_food": True
    }


# ==================== LOGGING TESTS ====================

class TestLogDose:
    """Tests for the dose logging endpoints"""

    @pytest.mark.api
    def test_log_dose_success(self, client: TestClient, log_payload):
        response = client.post("/api/v1/doses/log", json=log_payload)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["dose"]["status"] == "taken"
        assert data["dose"]["minutes_late"] == 10
        assert data["rewards"]["total"] == 20
        assert data["rewards"]["reason_for_bonus"] == "Perfect timing"
        assert data["late_logging"]["warning_shown"] is False
        assert data["message"] == "Dose logged"

    @pytest.mark.api
    def test_late_dose_message(self, client: TestClient, log_payload):
        log_payload["actual_time"] = (SCHEDULED + timedelta(minutes=90)).isoformat()
        response = client.post("/api/v1/doses/log", json=log_payload)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["late_logging"]["warning_shown"] is True
        assert "90 minutes after" in data["message"]
        assert data["rewards"]["points"] == 3

    @pytest.mark.api
    def test_duplicate_dose_conflict(self, client: TestClient, log_payload, db_session):
        client.post("/api/v1/doses/log", json=log_payload)
        response = client.post("/api/v1/doses/log", json={**log_payload, "status": "missed"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["message"] == "Dose already logged for this time"
        assert db_session.query(DoseRecord).count() == 1

    @pytest.mark.api
    def test_pending_status_rejected(self, client: TestClient, log_payload):
        response = client.post("/api/v1/doses/log", json={**log_payload, "status": "pending"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] is True

    @pytest.mark.api
    def test_unknown_regimen(self, client: TestClient, log_payload):
        response = client.post("/api/v1/doses/log", json={**log_payload, "regimen_id": 999})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.api
    def test_invalid_mood(self, client: TestClient, log_payload):
        response = client.post("/api/v1/doses/log", json={**log_payload, "mood": "ecstatic"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_mark_missed(self, client: TestClient, test_patient, test_regimen):
        response = client.post("/api/v1/doses/mark-missed", json={
            "patient_id": test_patient.id,
            "regimen_id": test_regimen.id,
            "scheduled_time": SCHEDULED.isoformat()
        })

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["dose"]["status"] == "missed"
        assert data["rewards"]["total"] == 0

    @pytest.mark.api
    def test_mark_skipped(self, client: TestClient, test_patient, test_regimen):
        response = client.post("/api/v1/doses/mark-skipped", json={
            "patient_id": test_patient.id,
            "regimen_id": test_regimen.id,
            "scheduled_time": SCHEDULED.isoformat(),
            "notes": "Doctor advised to pause"
        })

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["dose"]["status"] == "skipped"


# ==================== CORRECTION TESTS ====================

class TestCorrections:

    @pytest.mark.api
    def test_update_dose(self, client: TestClient, log_payload, test_patient):
        log_payload["actual_time"] = (SCHEDULED + timedelta(minutes=45)).isoformat()
        dose_id = client.post("/api/v1/doses/log", json=log_payload).json()["dose"]["id"]

        response = client.put(
            f"/api/v1/doses/{dose_id}",
            params={"patient_id": test_patient.id},
            json={"actual_time": (SCHEDULED + timedelta(minutes=5)).isoformat()}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["rewards"]["total"] == 20
        assert data["dose"]["taken_late"] is False

    @pytest.mark.api
    def test_update_unknown_dose(self, client: TestClient, test_patient):
        response = client.put(
            "/api/v1/doses/999",
            params={"patient_id": test_patient.id},
            json={"status": "missed"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.api
    def test_delete_dose(self, client: TestClient, log_payload, test_patient):
        dose_id = client.post("/api/v1/doses/log", json=log_payload).json()["dose"]["id"]

        response = client.delete(f"/api/v1/doses/{dose_id}", params={"patient_id": test_patient.id})
        assert response.status_code == status.HTTP_200_OK

        response = client.delete(f"/api/v1/doses/{dose_id}", params={"patient_id": test_patient.id})
        assert response.status_code == status.HTTP_404_NOT_FOUND


# ==================== VIEW TESTS ====================

class TestViews:

    @pytest.mark.api
    def test_history_filters_by_status(self, client: TestClient, test_patient, make_dose):
        make_dose(datetime(2024, 3, 14, 8, 0), actual_time=datetime(2024, 3, 14, 8, 0))
        make_dose(datetime(2024, 3, 14, 20, 0), status=DoseStatus.MISSED)

        response = client.get(f"/api/v1/doses/history/{test_patient.id}", params={"status": "missed"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["status"] == "missed"

    @pytest.mark.api
    def test_history_newest_first(self, client: TestClient, test_patient, make_dose):
        make_dose(datetime(2024, 3, 13, 8, 0))
        make_dose(datetime(2024, 3, 14, 8, 0))

        data = client.get(f"/api/v1/doses/history/{test_patient.id}").json()
        assert [item["scheduled_time"] for item in data["items"]] == [
            "2024-03-14T08:00:00", "2024-03-13T08:00:00"
        ]

    @pytest.mark.api
    def test_today(self, client: TestClient, test_patient, test_regimen):
        response = client.get(f"/api/v1/doses/today/{test_patient.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 2
        assert data["pending"] == 2

    @pytest.mark.api
    def test_pending(self, client: TestClient, test_patient, test_regimen):
        response = client.get(f"/api/v1/doses/pending/{test_patient.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["count"] >= 1
        assert data["count"] == len(data["doses"])

    @pytest.mark.api
    def test_missed(self, client: TestClient, test_patient, make_dose):
        yesterday = (utcnow() - timedelta(days=1)).replace(hour=8, minute=0, second=0, microsecond=0)
        make_dose(yesterday, status=DoseStatus.MISSED)

        data = client.get(f"/api/v1/doses/missed/{test_patient.id}").json()
        assert data["total_missed"] == 1
        assert data["medications"][0]["medication_name"] == "Metformin"

    @pytest.mark.api
    def test_timeline_for_day(self, client: TestClient, test_patient, make_dose):
        make_dose(SCHEDULED, actual_time=SCHEDULED)

        data = client.get(f"/api/v1/doses/timeline/{test_patient.id}", params={"day": "2024-03-15"}).json()
        assert [d["kind"] for d in data["doses"]] == ["logged", "scheduled"]

    @pytest.mark.api
    def test_unknown_patient(self, client: TestClient):
        response = client.get("/api/v1/doses/today/999")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Patient 999 not found"
