"""
Patient Service
Reminder preferences and contact details for patients
"""

import logging
from typing import Dict, List, Optional, Any
from sqlalchemy.orm import Session
from sqlalchemy import or_

from config import settings
from database import get_db_context
import models
from services.providers import PatientPreferenceProvider, PatientPreferences


logger = logging.getLogger(__name__)


class PatientService(PatientPreferenceProvider):
    """
    Service for patient preference operations
    """

    def _get_patient(self, session: Session, patient_id: int) -> models.Patient:
        patient = session.query(models.Patient).filter(
            models.Patient.id == patient_id
        ).first()
        if not patient:
            raise ValueError(f"Patient {patient_id} not found")
        return patient

    def list_notifiable_patients(self, db: Optional[Session] = None) -> List[PatientPreferences]:
        """Active patients with email or push reminders switched on"""
        def _list(session: Session) -> List[PatientPreferences]:
            patients = session.query(models.Patient).filter(
                models.Patient.is_active == True,  # noqa: E712
                or_(
                    models.Patient.notify_email == True,  # noqa: E712
                    models.Patient.notify_push == True,  # noqa: E712
                )
            ).order_by(models.Patient.id).all()
            return [PatientPreferences.from_model(p) for p in patients]

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    def get_preferences(self, patient_id: int, db: Optional[Session] = None) -> PatientPreferences:
        """
        Get reminder preferences for a patient

        Raises:
            ValueError: if the patient does not exist
        """
        def _get(session: Session) -> PatientPreferences:
            return PatientPreferences.from_model(self._get_patient(session, patient_id))

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def update_preferences(
        self,
        patient_id: int,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> PatientPreferences:
        """
        Update reminder preferences

        Args:
            patient_id: Patient ID
            updates: Any of notify_email, notify_push, push_subscription,
                reminder_minutes, late_window_minutes
            db: Database session

        Returns:
            Updated preferences
        """
        columns = {
            "notify_email": "notify_email",
            "notify_push": "notify_push",
            "push_subscription": "push_subscription",
            "reminder_minutes": "preferred_reminder_minutes",
            "late_window_minutes": "late_window_minutes",
        }

        def _update(session: Session) -> PatientPreferences:
            patient = self._get_patient(session, patient_id)

            for key, value in updates.items():
                if key not in columns or value is None:
                    continue
                if key == "reminder_minutes" and not 1 <= value <= settings.MAX_REMINDER_MINUTES:
                    raise ValueError(
                        f"reminder_minutes must be between 1 and {settings.MAX_REMINDER_MINUTES}"
                    )
                setattr(patient, columns[key], value)

            session.commit()
            session.refresh(patient)
            logger.info(f"Updated reminder preferences for patient {patient_id}")
            return PatientPreferences.from_model(patient)

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)


# Singleton instance
patient_service = PatientService()
