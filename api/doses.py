"""
Doses API Router
Endpoints for logging, correcting and reviewing doses
"""

from typing import Optional
from datetime import date, datetime, time
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_patient_id, pagination_params, services
from api.schemas.dose import (
    DoseStatusEnum,
    DoseLogCreate,
    DoseQuickLog,
    DoseUpdate,
    DoseLogResponse,
    DoseRecordResponse,
    DoseRewardsResponse,
    LateLogging,
    DoseHistory,
    TodaySchedule,
    DoseTimeline,
    PendingDoses,
    MissedDoses,
)
from actions.dose_engine import InvalidTransition, DuplicateDose
from tools.clock import utcnow


router = APIRouter(prefix="/doses", tags=["doses"])


def _raise_for(error: Exception):
    """Map service errors onto HTTP errors"""
    if isinstance(error, DuplicateDose):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, InvalidTransition):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))


def _log_response(record, message: str) -> DoseLogResponse:
    if record.warning_shown:
        message = f"{message} ({record.minutes_late} minutes after the scheduled time)"
    return DoseLogResponse(
        dose=DoseRecordResponse.model_validate(record),
        late_logging=LateLogging(
            is_late=record.is_late,
            warning_shown=record.warning_shown,
            within_window=record.within_window,
            max_late_minutes=record.max_late_minutes
        ),
        rewards=DoseRewardsResponse(
            points=record.points or 0,
            bonus_points=record.bonus_points or 0,
            total=record.total_points,
            streak=record.streak or 0,
            reason_for_bonus=record.reason_for_bonus
        ),
        message=message
    )


# ==================== LOGGING ====================

@router.post("/log", response_model=DoseLogResponse, status_code=status.HTTP_201_CREATED)
async def log_dose(
    dose_data: DoseLogCreate,
    db: Session = Depends(get_db)
):
    """
    Log the outcome of a scheduled dose

    - **status**: taken, missed, skipped or delayed
    - **actual_time**: when it was taken; defaults to now for taken doses
    """
    dose_service = services.get_dose_service()

    try:
        record = await dose_service.log_dose(
            patient_id=dose_data.patient_id,
            regimen_id=dose_data.regimen_id,
            scheduled_time=dose_data.scheduled_time,
            status=dose_data.status.value,
            actual_time=dose_data.actual_time,
            notes=dose_data.notes,
            side_effects=dose_data.side_effects,
            mood=dose_data.mood.value if dose_data.mood else None,
            with_food=dose_data.with_food,
            location=dose_data.location,
            effectiveness_rating=dose_data.effectiveness_rating,
            db=db
        )
    except (DuplicateDose, ValueError) as e:
        _raise_for(e)

    return _log_response(record, "Dose logged")


@router.post("/mark-taken", response_model=DoseLogResponse, status_code=status.HTTP_201_CREATED)
async def mark_taken(
    dose_data: DoseQuickLog,
    db: Session = Depends(get_db)
):
    """Mark a dose as taken"""
    dose_service = services.get_dose_service()

    try:
        record = await dose_service.mark_taken(
            patient_id=dose_data.patient_id,
            regimen_id=dose_data.regimen_id,
            scheduled_time=dose_data.scheduled_time,
            actual_time=dose_data.actual_time,
            notes=dose_data.notes,
            db=db
        )
    except (DuplicateDose, ValueError) as e:
        _raise_for(e)

    return _log_response(record, "Dose marked as taken")


@router.post("/mark-missed", response_model=DoseLogResponse, status_code=status.HTTP_201_CREATED)
async def mark_missed(
    dose_data: DoseQuickLog,
    db: Session = Depends(get_db)
):
    """Mark a dose as missed"""
    dose_service = services.get_dose_service()

    try:
        record = await dose_service.mark_missed(
            patient_id=dose_data.patient_id,
            regimen_id=dose_data.regimen_id,
            scheduled_time=dose_data.scheduled_time,
            notes=dose_data.notes,
            db=db
        )
    except (DuplicateDose, ValueError) as e:
        _raise_for(e)

    return _log_response(record, "Dose marked as missed")


@router.post("/mark-skipped", response_model=DoseLogResponse, status_code=status.HTTP_201_CREATED)
async def mark_skipped(
    dose_data: DoseQuickLog,
    db: Session = Depends(get_db)
):
    """Mark a dose as deliberately skipped"""
    dose_service = services.get_dose_service()

    try:
        record = await dose_service.mark_skipped(
            patient_id=dose_data.patient_id,
            regimen_id=dose_data.regimen_id,
            scheduled_time=dose_data.scheduled_time,
            notes=dose_data.notes,
            db=db
        )
    except (DuplicateDose, ValueError) as e:
        _raise_for(e)

    return _log_response(record, "Dose marked as skipped")


# ==================== CORRECTIONS ====================

@router.put("/{dose_id}", response_model=DoseLogResponse)
async def update_dose(
    dose_id: int,
    updates: DoseUpdate,
    patient_id: int = Query(..., description="Owner of the dose"),
    db: Session = Depends(get_db)
):
    """
    Correct a logged dose. Lateness and points are recomputed.
    """
    dose_service = services.get_dose_service()

    try:
        record = await dose_service.update_dose(
            patient_id=patient_id,
            dose_id=dose_id,
            updates=updates.model_dump(exclude_unset=True),
            db=db
        )
    except ValueError as e:
        _raise_for(e)

    return _log_response(record, "Dose updated")


@router.delete("/{dose_id}")
async def delete_dose(
    dose_id: int,
    patient_id: int = Query(..., description="Owner of the dose"),
    db: Session = Depends(get_db)
):
    """Delete a dose record; the instant goes back to pending"""
    dose_service = services.get_dose_service()

    try:
        await dose_service.delete_dose(patient_id, dose_id, db=db)
    except ValueError as e:
        _raise_for(e)

    return {"message": f"Dose {dose_id} deleted", "dose_id": dose_id}


# ==================== VIEWS ====================

@router.get("/history/{patient_id}", response_model=DoseHistory)
async def get_dose_history(
    patient_id: int = Depends(get_current_patient_id),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    dose_status: Optional[DoseStatusEnum] = Query(None, alias="status"),
    regimen_id: Optional[int] = Query(None),
    pagination: dict = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    """
    Dose history, newest first
    """
    dose_service = services.get_dose_service()

    history = await dose_service.get_history(
        patient_id,
        start=datetime.combine(start_date, time.min) if start_date else None,
        end=datetime.combine(end_date, time.max) if end_date else None,
        status=dose_status.value if dose_status else None,
        regimen_id=regimen_id,
        offset=pagination["offset"],
        limit=pagination["page_size"],
        db=db
    )

    return DoseHistory(
        patient_id=patient_id,
        items=[DoseRecordResponse.model_validate(r) for r in history["items"]],
        total=history["total"],
        page=pagination["page"],
        page_size=pagination["page_size"]
    )


@router.get("/today/{patient_id}", response_model=TodaySchedule)
async def get_today(
    patient_id: int = Depends(get_current_patient_id),
    db: Session = Depends(get_db)
):
    """Today's doses with status counts"""
    dose_service = services.get_dose_service()

    today = await dose_service.get_today(patient_id, db=db)
    return TodaySchedule(patient_id=patient_id, **today)


@router.get("/pending/{patient_id}", response_model=PendingDoses)
async def get_pending_doses(
    patient_id: int = Depends(get_current_patient_id),
    db: Session = Depends(get_db)
):
    """Unlogged doses from the last few hours through the end of today"""
    dose_service = services.get_dose_service()

    now = utcnow()
    pending = await dose_service.get_pending_doses(patient_id, now=now, db=db)

    return PendingDoses(
        patient_id=patient_id,
        count=len(pending),
        overdue_count=sum(1 for d in pending if d.is_overdue(now)),
        doses=[d.to_dict(now) for d in pending]
    )


@router.get("/missed/{patient_id}", response_model=MissedDoses)
async def get_missed_doses(
    patient_id: int = Depends(get_current_patient_id),
    days: int = Query(7, ge=1, le=90),
    db: Session = Depends(get_db)
):
    """Missed doses over the last N days, grouped by medication"""
    dose_service = services.get_dose_service()

    groups = await dose_service.get_missed_doses(patient_id, days=days, db=db)

    return MissedDoses(
        patient_id=patient_id,
        days=days,
        total_missed=sum(g["count"] for g in groups),
        medications=groups
    )


@router.get("/timeline/{patient_id}", response_model=DoseTimeline)
async def get_timeline(
    patient_id: int = Depends(get_current_patient_id),
    day: Optional[date] = Query(None, description="Defaults to today"),
    db: Session = Depends(get_db)
):
    """Every dose instant on one day, logged or pending"""
    dose_service = services.get_dose_service()

    now = utcnow()
    day = day or now.date()
    slots = await dose_service.get_timeline(patient_id, day, db=db)

    return DoseTimeline(
        patient_id=patient_id,
        date=day.isoformat(),
        doses=[s.to_dict(now) for s in slots]
    )
