"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Generator
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency
    Yields a SQLAlchemy session and ensures cleanup
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_patient_id(
    patient_id: int,
    db: Session = Depends(get_db)
) -> int:
    """
    Validate patient exists and return patient ID
    """
    from models import Patient

    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if not patient:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Patient {patient_id} not found"
        )

    if not patient.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Patient {patient_id} is not active"
        )

    return patient_id


def pagination_params(
    page: int = 1,
    page_size: int = 20
) -> dict:
    """
    Common pagination parameters
    """
    if page < 1:
        page = 1
    if page_size < 1:
        page_size = 20
    if page_size > 100:
        page_size = 100

    return {
        "page": page,
        "page_size": page_size,
        "offset": (page - 1) * page_size
    }


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_patient_service():
        from services.patient_service import patient_service
        return patient_service

    @staticmethod
    def get_regimen_service():
        from services.regimen_service import regimen_service
        return regimen_service

    @staticmethod
    def get_dose_service():
        from services.dose_service import dose_service
        return dose_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service

    @staticmethod
    def get_reward_service():
        from services.reward_service import reward_service
        return reward_service

    @staticmethod
    def get_reminder_scheduler():
        from actions.reminder_engine import get_reminder_scheduler
        return get_reminder_scheduler()


# Service dependency instances
services = ServiceDependency()
