"""
Report Schemas
Pydantic models for adherence report responses
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, Field
from enum import Enum


class PeriodEnum(str, Enum):
    """Reporting periods"""
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


# ==================== RESPONSE SCHEMAS ====================

class AdherenceWindowResponse(BaseModel):
    """Counts and rates for a window of scheduled doses"""
    start: str
    end: str
    total: int
    taken: int
    taken_on_time: int
    taken_late: int
    missed: int
    skipped: int
    delayed: int
    adherence_rate: float = Field(..., ge=0, le=100)
    taken_on_time_rate: float
    taken_late_rate: float
    missed_rate: float
    skipped_rate: float
    delayed_rate: float


class StreakResponse(BaseModel):
    """Perfect-day streaks"""
    current_streak: int
    best_streak: int
    total_perfect_days: int


class AdherenceStatsResponse(BaseModel):
    """Current period compared with the previous one"""
    patient_id: int
    period: PeriodEnum
    current: AdherenceWindowResponse
    previous: AdherenceWindowResponse
    trends: Dict[str, float]
    streaks: StreakResponse


class CalendarDayResponse(BaseModel):
    """One heatmap cell"""
    date: str
    total: int
    taken: int
    missed: int
    skipped: int
    adherence_percentage: float
    level: int = Field(..., ge=0, le=4)
    is_perfect: bool


class CalendarSummary(BaseModel):
    """Month totals for the heatmap"""
    total: int
    taken: int
    missed: int
    skipped: int
    adherence_rate: float
    perfect_days: int


class CalendarResponse(BaseModel):
    """Adherence heatmap for one month"""
    patient_id: int
    year: int
    month: int
    days: List[CalendarDayResponse]
    summary: CalendarSummary


class TrendBucketResponse(BaseModel):
    """Taken rate for one hour or weekday"""
    key: int
    label: str
    total: int
    taken: int
    missed: int
    skipped: int
    taken_rate: float


class TrendsResponse(BaseModel):
    """Time-of-day and day-of-week patterns"""
    patient_id: int
    period: PeriodEnum
    time_of_day: List[TrendBucketResponse]
    day_of_week: List[TrendBucketResponse]
    best_time_of_day: Optional[TrendBucketResponse] = None
    best_day_of_week: Optional[TrendBucketResponse] = None


class WeeklyTrend(AdherenceWindowResponse):
    """Adherence for one week"""
    week: int


class WeeklyTrendList(BaseModel):
    """Weekly adherence, oldest first"""
    patient_id: int
    weeks: int
    trends: List[WeeklyTrend]


class MostMissedItem(BaseModel):
    """Missed and skipped share for one medication"""
    medication_id: Optional[int] = None
    medication_name: Optional[str] = None
    total: int
    missed: int
    skipped: int
    missed_percentage: float
    skipped_percentage: float
    total_missed_percentage: float


class MostMissedResponse(BaseModel):
    """Medications ranked by missed + skipped share"""
    patient_id: int
    days: int
    medications: List[MostMissedItem]
