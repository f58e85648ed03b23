"""
Notifications API Router
Endpoints for reminder preferences and the reminder scheduler
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.notification import (
    ReminderPreferencesUpdate,
    ReminderPreferencesResponse,
    SchedulerStatus,
    SweepTriggerResponse,
)


router = APIRouter(prefix="/notifications", tags=["notifications"])


# ==================== SCHEDULER ====================

@router.get("/scheduler/status", response_model=SchedulerStatus)
async def get_scheduler_status():
    """Reminder scheduler state and per-job bookkeeping"""
    scheduler = services.get_reminder_scheduler()
    return scheduler.get_status()


@router.post("/scheduler/trigger-upcoming", response_model=SweepTriggerResponse)
async def trigger_upcoming_check():
    """Run the upcoming-dose sweep now"""
    scheduler = services.get_reminder_scheduler()
    return await scheduler.trigger_upcoming_check()


@router.post("/scheduler/trigger-overdue", response_model=SweepTriggerResponse)
async def trigger_overdue_check():
    """Run the overdue-dose sweep now"""
    scheduler = services.get_reminder_scheduler()
    return await scheduler.trigger_overdue_check()


# ==================== PREFERENCES ====================

@router.get("/preferences/{patient_id}", response_model=ReminderPreferencesResponse)
async def get_preferences(
    patient_id: int,
    db: Session = Depends(get_db)
):
    """Get how a patient is reminded"""
    patient_service = services.get_patient_service()

    try:
        preferences = patient_service.get_preferences(patient_id, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return preferences.to_dict()


@router.put("/preferences/{patient_id}", response_model=ReminderPreferencesResponse)
async def update_preferences(
    patient_id: int,
    updates: ReminderPreferencesUpdate,
    db: Session = Depends(get_db)
):
    """
    Update reminder preferences

    - **reminder_minutes**: lead time for upcoming reminders
    - **late_window_minutes**: how long after the scheduled time a dose can still earn points
    """
    patient_service = services.get_patient_service()

    try:
        patient_service.get_preferences(patient_id, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    try:
        preferences = await patient_service.update_preferences(
            patient_id,
            updates.model_dump(exclude_unset=True),
            db=db
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return preferences.to_dict()
