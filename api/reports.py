"""
Reports API Router
Endpoints for adherence statistics, heatmaps and trends
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_patient_id, services
from api.schemas.report import (
    PeriodEnum,
    AdherenceStatsResponse,
    CalendarResponse,
    TrendsResponse,
    WeeklyTrendList,
    MostMissedResponse,
)
from tools.clock import utcnow


router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/adherence-stats/{patient_id}", response_model=AdherenceStatsResponse)
async def get_adherence_stats(
    patient_id: int = Depends(get_current_patient_id),
    period: PeriodEnum = Query(PeriodEnum.WEEK),
    db: Session = Depends(get_db)
):
    """
    Adherence for the period compared with the previous period

    - **period**: week, month or year
    """
    adherence_service = services.get_adherence_service()

    try:
        return await adherence_service.get_adherence_stats(patient_id, period=period.value, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get("/calendar/{patient_id}", response_model=CalendarResponse)
async def get_calendar(
    patient_id: int = Depends(get_current_patient_id),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db)
):
    """
    Adherence heatmap for a month (defaults to the current month)
    """
    adherence_service = services.get_adherence_service()

    today = utcnow().date()
    try:
        return await adherence_service.get_calendar(
            patient_id,
            year=year or today.year,
            month=month or today.month,
            db=db
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get("/trends/{patient_id}", response_model=TrendsResponse)
async def get_trends(
    patient_id: int = Depends(get_current_patient_id),
    period: PeriodEnum = Query(PeriodEnum.MONTH),
    db: Session = Depends(get_db)
):
    """Taken rates by hour of day and day of week"""
    adherence_service = services.get_adherence_service()

    return await adherence_service.get_trends(patient_id, period=period.value, db=db)


@router.get("/weekly-trends/{patient_id}", response_model=WeeklyTrendList)
async def get_weekly_trends(
    patient_id: int = Depends(get_current_patient_id),
    weeks: int = Query(12, ge=1, le=52),
    db: Session = Depends(get_db)
):
    """Adherence for each of the last N weeks, oldest first"""
    adherence_service = services.get_adherence_service()

    trends = await adherence_service.get_weekly_trends(patient_id, weeks=weeks, db=db)

    return WeeklyTrendList(
        patient_id=patient_id,
        weeks=weeks,
        trends=trends
    )


@router.get("/most-missed/{patient_id}", response_model=MostMissedResponse)
async def get_most_missed(
    patient_id: int = Depends(get_current_patient_id),
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db)
):
    """Medications with the highest missed and skipped share"""
    adherence_service = services.get_adherence_service()

    medications = await adherence_service.get_most_missed(patient_id, days=days, limit=limit, db=db)

    return MostMissedResponse(
        patient_id=patient_id,
        days=days,
        medications=medications
    )
