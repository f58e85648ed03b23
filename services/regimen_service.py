"""
Regimen Service
Read access to active regimens
"""

import logging
from typing import List, Optional
from datetime import date
from sqlalchemy.orm import Session, joinedload

from database import get_db_context
import models
from services.providers import RegimenProvider, RegimenSnapshot


logger = logging.getLogger(__name__)


class RegimenService(RegimenProvider):
    """
    Service for regimen lookups.

    "Active as of" means flagged active and started on or before the date;
    end dates are enforced per day by the schedule expander.
    """

    def _active_query(self, session: Session, as_of: date):
        return session.query(models.Regimen).options(
            joinedload(models.Regimen.medication)
        ).filter(
            models.Regimen.is_active == True,  # noqa: E712
            models.Regimen.start_date <= as_of
        )

    def list_active_regimens(
        self,
        patient_id: int,
        as_of: date,
        db: Optional[Session] = None
    ) -> List[RegimenSnapshot]:
        """Active regimens for one patient"""
        def _list(session: Session) -> List[RegimenSnapshot]:
            regimens = self._active_query(session, as_of).filter(
                models.Regimen.patient_id == patient_id
            ).order_by(models.Regimen.id).all()
            return [RegimenSnapshot.from_model(r) for r in regimens]

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    def list_all_active_regimens(
        self,
        as_of: date,
        db: Optional[Session] = None
    ) -> List[RegimenSnapshot]:
        """Active regimens across all active patients"""
        def _list(session: Session) -> List[RegimenSnapshot]:
            regimens = self._active_query(session, as_of).join(models.Patient).filter(
                models.Patient.is_active == True  # noqa: E712
            ).order_by(models.Regimen.patient_id, models.Regimen.id).all()
            return [RegimenSnapshot.from_model(r) for r in regimens]

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    def get_regimen(
        self,
        patient_id: int,
        regimen_id: int,
        db: Optional[Session] = None
    ) -> RegimenSnapshot:
        """
        Get a regimen owned by the patient

        Raises:
            ValueError: if it does not exist or belongs to someone else
        """
        def _get(session: Session) -> RegimenSnapshot:
            regimen = session.query(models.Regimen).options(
                joinedload(models.Regimen.medication)
            ).filter(
                models.Regimen.id == regimen_id,
                models.Regimen.patient_id == patient_id
            ).first()
            if not regimen:
                raise ValueError(f"Regimen {regimen_id} not found for patient {patient_id}")
            return RegimenSnapshot.from_model(regimen)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
regimen_service = RegimenService()
