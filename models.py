"""
Database Models
SQLAlchemy ORM models for DoseKeeper
"""

from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime, ForeignKey, Text, Date, Enum, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum

from config import settings, TableNames
from database import Base
from tools.clock import utcnow


# ==================== ENUMS ====================

class DoseStatus(str, PyEnum):
    """Status of a scheduled medication dose"""
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"
    DELAYED = "delayed"
    PENDING = "pending"  # computed view only, never persisted


class RegimenFrequency(str, PyEnum):
    """How often a regimen produces doses"""
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES_DAILY = "three_times_daily"
    FOUR_TIMES_DAILY = "four_times_daily"
    EVERY_OTHER_DAY = "every_other_day"
    WEEKLY = "weekly"
    AS_NEEDED = "as_needed"
    CUSTOM = "custom"


class DosageUnit(str, PyEnum):
    """Units a dosage amount is expressed in"""
    TABLET = "tablet"
    CAPSULE = "capsule"
    ML = "ml"
    MG = "mg"
    G = "g"
    TSP = "tsp"
    TBSP = "tbsp"
    PUFF = "puff"
    DROP = "drop"
    PATCH = "patch"


class Mood(str, PyEnum):
    """Self-reported mood when logging a dose"""
    EXCELLENT = "excellent"
    GOOD = "good"
    OKAY = "okay"
    POOR = "poor"
    TERRIBLE = "terrible"


class LedgerEntryKind(str, PyEnum):
    """Sources of points granted outside dose logging"""
    DAILY_CHECK_IN = "daily_check_in"


# ==================== MODELS ====================

class Patient(Base):
    """Person taking medications, with reminder preferences"""
    __tablename__ = TableNames.PATIENTS

    id = Column(Integer, primary_key=True, index=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Notification preferences
    notify_email = Column(Boolean, default=True)
    notify_push = Column(Boolean, default=False)
    push_subscription = Column(JSON)  # endpoint + keys registered by the client
    preferred_reminder_minutes = Column(Integer, default=settings.DEFAULT_REMINDER_MINUTES)
    late_window_minutes = Column(Integer, default=settings.DEFAULT_LATE_WINDOW_MINUTES)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    medications = relationship("Medication", back_populates="patient", cascade="all, delete-orphan")
    regimens = relationship("Regimen", back_populates="patient", cascade="all, delete-orphan")
    dose_records = relationship("DoseRecord", back_populates="patient", cascade="all, delete-orphan")
    ledger_entries = relationship("RewardLedgerEntry", back_populates="patient", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Medication(Base):
    """Medication a patient has been prescribed"""
    __tablename__ = TableNames.MEDICATIONS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)

    name = Column(String(255), nullable=False)
    generic_name = Column(String(255))
    instructions = Column(Text)
    with_food = Column(Boolean, default=False)

    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="medications")
    regimens = relationship("Regimen", back_populates="medication", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_medications_patient_active", "patient_id", "active"),
    )


class Regimen(Base):
    """Dosing plan for a medication: how often, which times, over what date range"""
    __tablename__ = TableNames.REGIMENS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False)

    frequency = Column(Enum(RegimenFrequency), nullable=False)
    custom_schedule = Column(JSON, default=list)  # [{"time": "HH:MM", "label": "..."}]

    dosage_amount = Column(Float, nullable=False)
    dosage_unit = Column(Enum(DosageUnit), nullable=False)
    instructions = Column(Text)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="regimens")
    medication = relationship("Medication", back_populates="regimens")
    dose_records = relationship("DoseRecord", back_populates="regimen", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_regimens_patient_active", "patient_id", "is_active"),
    )

    @property
    def dosage_label(self) -> str:
        amount = f"{self.dosage_amount:g}" if self.dosage_amount is not None else ""
        unit = self.dosage_unit.value if self.dosage_unit else ""
        return f"{amount} {unit}".strip()


class DoseRecord(Base):
    """Outcome of one scheduled dose, with lateness classification and rewards"""
    __tablename__ = TableNames.DOSE_RECORDS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    regimen_id = Column(Integer, ForeignKey("regimens.id"), nullable=False)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False)

    # Timing
    scheduled_time = Column(DateTime, nullable=False)
    actual_time = Column(DateTime)
    status = Column(Enum(DoseStatus), nullable=False)

    # Dosage copied from the regimen at log time
    dosage_amount = Column(Float)
    dosage_unit = Column(Enum(DosageUnit))

    # Lateness
    minutes_late = Column(Integer, default=0)
    taken_late = Column(Boolean, default=False)
    is_late = Column(Boolean, default=False)
    warning_shown = Column(Boolean, default=False)
    within_window = Column(Boolean, default=True)
    max_late_minutes = Column(Integer, default=settings.DEFAULT_LATE_WINDOW_MINUTES)

    # Rewards
    points = Column(Integer, default=0)
    bonus_points = Column(Integer, default=0)
    streak = Column(Integer, default=0)
    reason_for_bonus = Column(String(100))

    # Details
    notes = Column(Text)
    side_effects = Column(JSON, default=list)
    effectiveness_rating = Column(Integer)  # 1-5
    mood = Column(Enum(Mood))
    with_food = Column(Boolean)
    location = Column(String(255))

    logged_by = Column(String(50), default="user")  # "user", "system"
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="dose_records")
    regimen = relationship("Regimen", back_populates="dose_records")
    medication = relationship("Medication")

    __table_args__ = (
        UniqueConstraint("patient_id", "regimen_id", "scheduled_time", name="uq_dose_identity"),
        Index("ix_dose_records_patient_scheduled", "patient_id", "scheduled_time"),
        Index("ix_dose_records_patient_status", "patient_id", "status"),
    )

    @property
    def total_points(self) -> int:
        return (self.points or 0) + (self.bonus_points or 0)


class RewardLedgerEntry(Base):
    """Points granted outside of dose logging, one row per grant"""
    __tablename__ = TableNames.REWARD_LEDGER

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)

    kind = Column(Enum(LedgerEntryKind), nullable=False)
    points = Column(Integer, nullable=False)
    claim_date = Column(Date, nullable=False)
    note = Column(String(255))
    granted_at = Column(DateTime, default=utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="ledger_entries")

    __table_args__ = (
        UniqueConstraint("patient_id", "kind", "claim_date", name="uq_ledger_claim"),
    )
