"""
Provider Interfaces
Collaborators the reminder scheduler and dose workflows depend on, plus the
session-free snapshots they exchange
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime, date

from config import settings
from models import DoseStatus, RegimenFrequency
from tools.notification_service import NotificationChannel
from actions.adherence_engine import DoseSnapshot


@dataclass(frozen=True)
class RegimenSnapshot:
    """Regimen fields the expander and scheduler read"""
    regimen_id: int
    patient_id: int
    medication_id: int
    medication_name: str
    frequency: RegimenFrequency
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    custom_schedule: List[Dict[str, Any]] = field(default_factory=list)
    dosage_amount: Optional[float] = None
    dosage_unit: Optional[str] = None
    instructions: Optional[str] = None

    @classmethod
    def from_model(cls, regimen) -> "RegimenSnapshot":
        return cls(
            regimen_id=regimen.id,
            patient_id=regimen.patient_id,
            medication_id=regimen.medication_id,
            medication_name=regimen.medication.name if regimen.medication else "",
            frequency=RegimenFrequency(regimen.frequency),
            start_date=regimen.start_date,
            end_date=regimen.end_date,
            is_active=bool(regimen.is_active),
            custom_schedule=list(regimen.custom_schedule or []),
            dosage_amount=regimen.dosage_amount,
            dosage_unit=regimen.dosage_unit.value if regimen.dosage_unit else None,
            instructions=regimen.instructions,
        )

    @property
    def dosage_label(self) -> str:
        amount = f"{self.dosage_amount:g}" if self.dosage_amount is not None else ""
        return f"{amount} {self.dosage_unit or ''}".strip()


@dataclass(frozen=True)
class PatientPreferences:
    """Contact details and reminder settings for one patient"""
    patient_id: int
    email: Optional[str] = None
    name: Optional[str] = None
    notify_email: bool = True
    notify_push: bool = False
    push_subscription: Optional[Dict[str, Any]] = None
    reminder_minutes: int = 15
    late_window_minutes: int = 240

    @classmethod
    def from_model(cls, patient) -> "PatientPreferences":
        return cls(
            patient_id=patient.id,
            email=patient.email,
            name=patient.first_name,
            notify_email=bool(patient.notify_email),
            notify_push=bool(patient.notify_push),
            push_subscription=patient.push_subscription,
            reminder_minutes=patient.preferred_reminder_minutes or settings.DEFAULT_REMINDER_MINUTES,
            late_window_minutes=patient.late_window_minutes or settings.DEFAULT_LATE_WINDOW_MINUTES,
        )

    @property
    def channels(self) -> List[NotificationChannel]:
        """Enabled channels; push only counts when a subscription exists"""
        channels = []
        if self.notify_email and self.email:
            channels.append(NotificationChannel.EMAIL)
        if self.notify_push and self.push_subscription:
            channels.append(NotificationChannel.PUSH)
        return channels

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "email": self.email,
            "notify_email": self.notify_email,
            "notify_push": self.notify_push,
            "has_push_subscription": bool(self.push_subscription),
            "reminder_minutes": self.reminder_minutes,
            "late_window_minutes": self.late_window_minutes,
        }


class RegimenProvider(ABC):
    """Source of active regimens"""

    @abstractmethod
    def list_active_regimens(self, patient_id: int, as_of: date) -> List[RegimenSnapshot]:
        """Regimens flagged active that have started on or before as_of"""


class DoseStore(ABC):
    """Persistent dose records keyed by (patient, regimen, scheduled time)"""

    @abstractmethod
    def find(self, patient_id: int, regimen_id: int, scheduled_time: datetime) -> Optional[DoseSnapshot]:
        """Record for the identity, if one exists"""

    @abstractmethod
    def insert(self, record):
        """
        Persist a new record.

        Raises:
            DuplicateDose: when the identity already has a record
        """

    @abstractmethod
    def query(
        self,
        patient_id: int,
        start: datetime,
        end: datetime,
        status: Optional[DoseStatus] = None,
        regimen_id: Optional[int] = None
    ) -> List[DoseSnapshot]:
        """Records scheduled in [start, end], ascending by scheduled time"""


class PatientPreferenceProvider(ABC):
    """Source of reminder preferences"""

    @abstractmethod
    def list_notifiable_patients(self) -> List[PatientPreferences]:
        """Active patients with at least one notification channel enabled"""

    @abstractmethod
    def get_preferences(self, patient_id: int) -> PatientPreferences:
        """Preferences for one patient"""
