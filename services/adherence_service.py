"""
Adherence Service
Report-level adherence statistics built from stored dose records
"""

import calendar
import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, date, time, timedelta
from sqlalchemy.orm import Session

from config import reward_config
from actions.adherence_engine import adherence_engine
from services.dose_service import dose_service
from tools.clock import utcnow


logger = logging.getLogger(__name__)


class AdherenceService:
    """
    Service for adherence reporting
    """

    def __init__(self, store=dose_service, engine=adherence_engine):
        self.store = store
        self.engine = engine

    def _history(self, patient_id: int, start: datetime, end: datetime, db: Optional[Session]):
        return self.store.query(patient_id, start, end, db=db)

    async def get_streaks(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Current and best perfect-day streaks"""
        now = now or utcnow()
        records = self._history(
            patient_id,
            now - timedelta(days=reward_config.STREAK_LOOKBACK_DAYS + 1),
            datetime.combine(now.date(), time.max),
            db
        )
        return self.engine.streaks(records, now.date()).to_dict()

    async def get_adherence_stats(
        self,
        patient_id: int,
        period: str = "week",
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Adherence for the period, compared with the period before it

        Args:
            patient_id: Patient ID
            period: week, month or year
            now: End of the current period
            db: Database session

        Returns:
            Dict with current, previous, trends and streaks
        """
        now = now or utcnow()
        start, end, previous_start, previous_end = self.engine.period_bounds(period, now)

        records = self._history(patient_id, previous_start, end, db)
        current = self.engine.aggregate(records, start, end)
        previous = self.engine.aggregate(records, previous_start, previous_end)

        logger.debug(
            f"Adherence for patient {patient_id} ({period}): "
            f"{current.adherence_rate:.1f}% vs {previous.adherence_rate:.1f}%"
        )

        return {
            "patient_id": patient_id,
            "period": period,
            "current": current.to_dict(),
            "previous": previous.to_dict(),
            "trends": self.engine.compare_periods(current, previous),
            "streaks": await self.get_streaks(patient_id, now=now, db=db),
        }

    async def get_calendar(
        self,
        patient_id: int,
        year: int,
        month: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Heatmap cells for every day of a month"""
        if not 1 <= month <= 12:
            raise ValueError("month must be between 1 and 12")

        first_day = date(year, month, 1)
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        records = self._history(
            patient_id,
            datetime.combine(first_day, time.min),
            datetime.combine(last_day, time.max),
            db
        )
        cells = self.engine.calendar(records, first_day, last_day)
        month_window = self.engine.aggregate(
            records,
            datetime.combine(first_day, time.min),
            datetime.combine(last_day, time.max)
        )

        return {
            "patient_id": patient_id,
            "year": year,
            "month": month,
            "days": [cell.to_dict() for cell in cells],
            "summary": {
                "total": month_window.total,
                "taken": month_window.taken,
                "missed": month_window.missed,
                "skipped": month_window.skipped,
                "adherence_rate": round(month_window.adherence_rate, 1),
                "perfect_days": sum(1 for cell in cells if cell.is_perfect),
            },
        }

    async def get_trends(
        self,
        patient_id: int,
        period: str = "month",
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Taken rates by hour of day and by day of week"""
        now = now or utcnow()
        start, end, _, _ = self.engine.period_bounds(period, now)
        records = self._history(patient_id, start, end, db)

        by_hour = self.engine.time_of_day_trends(records)
        by_weekday = self.engine.day_of_week_trends(records)
        best_hour = self.engine.best_bucket(by_hour)
        best_day = self.engine.best_bucket(by_weekday)

        return {
            "patient_id": patient_id,
            "period": period,
            "time_of_day": [b.to_dict() for b in by_hour],
            "day_of_week": [b.to_dict() for b in by_weekday],
            "best_time_of_day": best_hour.to_dict() if best_hour else None,
            "best_day_of_week": best_day.to_dict() if best_day else None,
        }

    async def get_weekly_trends(
        self,
        patient_id: int,
        weeks: int = 12,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """Adherence for each of the last N weeks, oldest first"""
        if weeks < 1:
            raise ValueError("weeks must be at least 1")

        now = now or utcnow()
        start = datetime.combine(now.date() - timedelta(days=7 * weeks), time.min)
        records = self._history(patient_id, start, datetime.combine(now.date(), time.max), db)

        return [
            {"week": index + 1, **window.to_dict()}
            for index, window in enumerate(self.engine.weekly_trends(records, now, weeks))
        ]

    async def get_most_missed(
        self,
        patient_id: int,
        days: int = 30,
        limit: int = 10,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """Medications with the highest missed + skipped share"""
        now = now or utcnow()
        records = self._history(patient_id, now - timedelta(days=days), now, db)
        return [s.to_dict() for s in self.engine.most_missed(records, limit=limit)]


# Singleton instance
adherence_service = AdherenceService()
