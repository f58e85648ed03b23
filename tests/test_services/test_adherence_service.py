"""
Tests for Adherence Service
Tests report assembly from stored dose records
"""

import pytest
from datetime import datetime, timedelta

from models import DoseStatus
from services.adherence_service import AdherenceService


NOW = datetime(2024, 3, 15, 21, 0)


@pytest.fixture
def adherence_service():
    """Create adherence service instance"""
    return AdherenceService()


@pytest.fixture
def two_weeks(make_dose):
    """Perfect current week, half-missed previous week"""
    for offset in range(1, 15):
        day = NOW - timedelta(days=offset)
        morning = day.replace(hour=8, minute=0)
        evening = day.replace(hour=20, minute=0)
        make_dose(morning, actual_time=morning)
        make_dose(evening, status=DoseStatus.TAKEN if offset < 7 else DoseStatus.MISSED)


class TestAdherenceStats:

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_week_vs_previous_week(self, adherence_service, db_session, test_patient, two_weeks):
        stats = await adherence_service.get_adherence_stats(test_patient.id, "week", now=NOW, db=db_session)

        assert stats["current"]["total"] == 12
        assert stats["current"]["adherence_rate"] == 100.0
        assert stats["previous"]["total"] == 14
        assert stats["previous"]["missed"] == 7
        assert stats["trends"]["adherence_rate"] > 0
        assert stats["streaks"]["current_streak"] == 6

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_unknown_period(self, adherence_service, db_session, test_patient):
        with pytest.raises(ValueError):
            await adherence_service.get_adherence_stats(test_patient.id, "decade", now=NOW, db=db_session)

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_no_history(self, adherence_service, db_session, test_patient):
        stats = await adherence_service.get_adherence_stats(test_patient.id, "month", now=NOW, db=db_session)

        assert stats["current"]["total"] == 0
        assert stats["streaks"]["best_streak"] == 0


class TestCalendar:

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_month_cells(self, adherence_service, db_session, test_patient, two_weeks):
        calendar = await adherence_service.get_calendar(test_patient.id, 2024, 3, db=db_session)

        assert len(calendar["days"]) == 31
        assert calendar["summary"]["total"] == 28
        assert calendar["summary"]["perfect_days"] == 6

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_invalid_month(self, adherence_service, db_session, test_patient):
        with pytest.raises(ValueError):
            await adherence_service.get_calendar(test_patient.id, 2024, 13, db=db_session)


class TestTrends:

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_best_time_of_day(self, adherence_service, db_session, test_patient, two_weeks):
        trends = await adherence_service.get_trends(test_patient.id, "month", now=NOW, db=db_session)

        assert trends["best_time_of_day"]["key"] == 8
        assert len(trends["time_of_day"]) == 2

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_weekly_trends(self, adherence_service, db_session, test_patient, two_weeks):
        weeks = await adherence_service.get_weekly_trends(test_patient.id, weeks=2, now=NOW, db=db_session)

        assert [w["week"] for w in weeks] == [1, 2]
        assert weeks[0]["missed"] > weeks[1]["missed"]

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_weekly_trends_needs_a_week(self, adherence_service, db_session, test_patient):
        with pytest.raises(ValueError):
            await adherence_service.get_weekly_trends(test_patient.id, weeks=0, now=NOW, db=db_session)

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_most_missed(self, adherence_service, db_session, test_patient, two_weeks):
        ranked = await adherence_service.get_most_missed(test_patient.id, days=30, now=NOW, db=db_session)

        assert len(ranked) == 1
        assert ranked[0]["medication_name"] == "Metformin"
