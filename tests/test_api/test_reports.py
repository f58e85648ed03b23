"""
Tests for Reports API
=====================

Tests adherence statistics, the heatmap calendar and trend endpoints.
"""

import pytest
from datetime import timedelta
from fastapi import status
from fastapi.testclient import TestClient

from models import DoseStatus
from tools.clock import utcnow


# ==================== FIXTURES ====================

@pytest.fixture
def last_three_days(make_dose):
    """Morning doses taken, evening doses missed, for the last three days"""
    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    for offset in range(1, 4):
        day = today - timedelta(days=offset)
        morning = day.replace(hour=8)
        make_dose(morning, actual_time=morning)
        make_dose(day.replace(hour=20), status=DoseStatus.MISSED)


# ==================== STATS TESTS ====================

class TestAdherenceStats:

    @pytest.mark.api
    def test_weekly_stats(self, client: TestClient, test_patient, last_three_days):
        response = client.get(f"/api/v1/reports/adherence-stats/{test_patient.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["period"] == "week"
        assert data["current"]["total"] == 6
        assert data["current"]["adherence_rate"] == 50.0
        assert data["streaks"]["current_streak"] == 0

    @pytest.mark.api
    def test_invalid_period(self, client: TestClient, test_patient):
        response = client.get(f"/api/v1/reports/adherence-stats/{test_patient.id}", params={"period": "decade"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_unknown_patient(self, client: TestClient):
        response = client.get("/api/v1/reports/adherence-stats/999")

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ==================== CALENDAR TESTS ====================

class TestCalendar:

    @pytest.mark.api
    def test_calendar_month(self, client: TestClient, test_patient):
        response = client.get(
            f"/api/v1/reports/calendar/{test_patient.id}",
            params={"year": 2024, "month": 2}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert len(data["days"]) == 29
        assert data["summary"]["total"] == 0
        assert all(day["level"] == 0 for day in data["days"])

    @pytest.mark.api
    def test_calendar_defaults_to_current_month(self, client: TestClient, test_patient):
        data = client.get(f"/api/v1/reports/calendar/{test_patient.id}").json()

        today = utcnow().date()
        assert (data["year"], data["month"]) == (today.year, today.month)

    @pytest.mark.api
    def test_calendar_rejects_bad_month(self, client: TestClient, test_patient):
        response = client.get(f"/api/v1/reports/calendar/{test_patient.id}", params={"month": 13})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ==================== TREND TESTS ====================

class TestTrends:

    @pytest.mark.api
    def test_time_of_day_trends(self, client: TestClient, test_patient, last_three_days):
        data = client.get(f"/api/v1/reports/trends/{test_patient.id}").json()

        assert [b["key"] for b in data["time_of_day"]] == [8, 20]
        assert data["best_time_of_day"]["key"] == 8

    @pytest.mark.api
    def test_weekly_trends(self, client: TestClient, test_patient, last_three_days):
        data = client.get(f"/api/v1/reports/weekly-trends/{test_patient.id}", params={"weeks": 4}).json()

        assert len(data["trends"]) == 4
        assert data["trends"][-1]["total"] == 6

    @pytest.mark.api
    def test_most_missed(self, client: TestClient, test_patient, last_three_days):
        data = client.get(f"/api/v1/reports/most-missed/{test_patient.id}").json()

        assert data["medications"][0]["medication_name"] == "Metformin"
        assert data["medications"][0]["missed"] == 3
