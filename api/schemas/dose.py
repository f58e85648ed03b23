"""
Dose Schemas
Pydantic models for dose logging API requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class DoseStatusEnum(str, Enum):
    """Dose status values"""
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"
    DELAYED = "delayed"
    PENDING = "pending"


class MoodEnum(str, Enum):
    """Self-reported mood"""
    EXCELLENT = "excellent"
    GOOD = "good"
    OKAY = "okay"
    POOR = "poor"
    TERRIBLE = "terrible"


# ==================== REQUEST SCHEMAS ====================

class DoseLogCreate(BaseModel):
    """Schema for logging the outcome of a scheduled dose"""
    patient_id: int
    regimen_id: int
    scheduled_time: datetime
    status: DoseStatusEnum
    actual_time: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    side_effects: List[str] = Field(default_factory=list)
    mood: Optional[MoodEnum] = None
    with_food: Optional[bool] = None
    location: Optional[str] = Field(None, max_length=255)
    effectiveness_rating: Optional[int] = Field(None, ge=1, le=5)


class DoseQuickLog(BaseModel):
    """Schema for one-tap taken/missed/skipped logging"""
    patient_id: int
    regimen_id: int
    scheduled_time: Optional[datetime] = None
    actual_time: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)


class DoseUpdate(BaseModel):
    """Schema for correcting a logged dose"""
    status: Optional[DoseStatusEnum] = None
    actual_time: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    side_effects: Optional[List[str]] = None
    mood: Optional[MoodEnum] = None
    with_food: Optional[bool] = None
    location: Optional[str] = Field(None, max_length=255)
    effectiveness_rating: Optional[int] = Field(None, ge=1, le=5)


# ==================== RESPONSE SCHEMAS ====================

class LateLogging(BaseModel):
    """Late-logging classification of a dose"""
    is_late: bool
    warning_shown: bool
    within_window: bool
    max_late_minutes: int


class DoseRewardsResponse(BaseModel):
    """Points earned by a dose"""
    points: int
    bonus_points: int
    total: int
    streak: int
    reason_for_bonus: Optional[str] = None


class DoseRecordResponse(BaseModel):
    """Schema for a stored dose record"""
    id: int
    patient_id: int
    regimen_id: int
    medication_id: int
    scheduled_time: datetime
    actual_time: Optional[datetime] = None
    status: DoseStatusEnum
    minutes_late: int = 0
    taken_late: bool = False
    is_late: bool = False
    warning_shown: bool = False
    within_window: bool = True
    max_late_minutes: int
    points: int = 0
    bonus_points: int = 0
    streak: int = 0
    reason_for_bonus: Optional[str] = None
    notes: Optional[str] = None
    side_effects: List[str] = Field(default_factory=list)
    mood: Optional[MoodEnum] = None
    with_food: Optional[bool] = None
    location: Optional[str] = None
    effectiveness_rating: Optional[int] = None
    logged_by: str = "user"
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DoseLogResponse(BaseModel):
    """Result of logging or correcting a dose"""
    dose: DoseRecordResponse
    late_logging: LateLogging
    rewards: DoseRewardsResponse
    message: str


class DoseHistory(BaseModel):
    """Paginated dose history"""
    patient_id: int
    items: List[DoseRecordResponse]
    total: int
    page: int
    page_size: int


class DoseSlotResponse(BaseModel):
    """One expanded dose instant, logged or still pending"""
    kind: str  # "scheduled" or "logged"
    regimen_id: int
    medication_id: Optional[int] = None
    medication_name: Optional[str] = None
    dosage: str
    scheduled_time: str
    status: DoseStatusEnum
    is_overdue: bool = False
    minutes_overdue: int = 0
    dose_id: Optional[int] = None
    actual_time: Optional[str] = None
    points: Optional[int] = None


class TodaySchedule(BaseModel):
    """Today's doses with status counts"""
    patient_id: int
    date: str
    total: int
    taken: int
    missed: int
    skipped: int
    delayed: int
    pending: int
    doses: List[DoseSlotResponse]


class DoseTimeline(BaseModel):
    """Every dose instant on one day"""
    patient_id: int
    date: str
    doses: List[DoseSlotResponse]


class PendingDoses(BaseModel):
    """Unlogged doses in the recent window"""
    patient_id: int
    count: int
    overdue_count: int
    doses: List[DoseSlotResponse]


class MissedDoseEntry(BaseModel):
    """A single missed dose"""
    dose_id: int
    regimen_id: int
    scheduled_time: str


class MissedDoseGroup(BaseModel):
    """Missed doses for one medication"""
    medication_id: Optional[int] = None
    medication_name: Optional[str] = None
    count: int
    doses: List[MissedDoseEntry]


class MissedDoses(BaseModel):
    """Missed doses grouped by medication"""
    patient_id: int
    days: int
    total_missed: int
    medications: List[MissedDoseGroup]
