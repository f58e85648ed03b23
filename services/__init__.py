"""
Services Module
Business logic layer for the DoseKeeper application
"""

from services.patient_service import PatientService, patient_service
from services.regimen_service import RegimenService, regimen_service
from services.dose_service import DoseService, dose_service
from services.adherence_service import AdherenceService, adherence_service
from services.reward_service import RewardService, reward_service


__all__ = [
    # Service classes
    "PatientService",
    "RegimenService",
    "DoseService",
    "AdherenceService",
    "RewardService",
    # Singleton instances
    "patient_service",
    "regimen_service",
    "dose_service",
    "adherence_service",
    "reward_service",
]
