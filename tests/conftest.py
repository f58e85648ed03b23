"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all DoseKeeper tests.
Fixtures include database sessions, test clients, sample data, fakes and a
manual clock.
"""

import os
import sys
from datetime import datetime, date, timedelta
from typing import Generator, Dict, Any, List, Optional

# Keep the app hermetic: no background sweeps, no database file
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base
from models import (
    Patient, Medication, Regimen, DoseRecord,
    DoseStatus, RegimenFrequency, DosageUnit
)
from services.providers import RegimenSnapshot, PatientPreferences
from tools.clock import ManualClock
from api.deps import get_db
from app import app
from tests.fakes import RecordingNotifier, snapshot


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a test database session"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database override"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def sample_patient_data() -> Dict[str, Any]:
    """Sample patient data for creating test patients"""
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane.doe@example.com",
        "notify_email": True,
        "notify_push": False,
        "preferred_reminder_minutes": 15,
        "late_window_minutes": 240,
        "is_active": True
    }


@pytest.fixture
def test_patient(db_session: Session, sample_patient_data: Dict) -> Patient:
    """Create and return a test patient"""
    patient = Patient(**sample_patient_data)
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def test_medication(db_session: Session, test_patient: Patient) -> Medication:
    """Create and return a test medication"""
    medication = Medication(
        patient_id=test_patient.id,
        name="Metformin",
        generic_name="metformin hydrochloride",
        instructions="Take with meals",
        with_food=True,
        active=True
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def test_regimen(db_session: Session, test_patient: Patient, test_medication: Medication) -> Regimen:
    """Twice-daily regimen (08:00 and 20:00) started at the beginning of 2024"""
    regimen = Regimen(
        patient_id=test_patient.id,
        medication_id=test_medication.id,
        frequency=RegimenFrequency.TWICE_DAILY,
        custom_schedule=[],
        dosage_amount=500,
        dosage_unit=DosageUnit.MG,
        start_date=date(2024, 1, 1),
        is_active=True
    )
    db_session.add(regimen)
    db_session.commit()
    db_session.refresh(regimen)
    return regimen


@pytest.fixture
def make_dose(db_session: Session, test_patient: Patient, test_regimen: Regimen):
    """Factory that stores a dose record directly"""
    def _make(
        scheduled_time: datetime,
        status: DoseStatus = DoseStatus.TAKEN,
        actual_time: Optional[datetime] = None,
        points: int = 0,
        bonus_points: int = 0
    ) -> DoseRecord:
        record = DoseRecord(
            patient_id=test_patient.id,
            regimen_id=test_regimen.id,
            medication_id=test_regimen.medication_id,
            scheduled_time=scheduled_time,
            actual_time=actual_time,
            status=status,
            points=points,
            bonus_points=bonus_points
        )
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record

    return _make


# ==================== SNAPSHOT HELPERS ====================

@pytest.fixture
def make_snapshot():
    return snapshot


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock parked at 2024-03-15 07:50"""
    return ManualClock(datetime(2024, 3, 15, 7, 50))


@pytest.fixture
def regimen_snapshot() -> RegimenSnapshot:
    """Twice-daily snapshot for patient 1"""
    return RegimenSnapshot(
        regimen_id=10,
        patient_id=1,
        medication_id=100,
        medication_name="Metformin",
        frequency=RegimenFrequency.TWICE_DAILY,
        start_date=date(2024, 1, 1),
        end_date=None,
        is_active=True,
        custom_schedule=[],
        dosage_amount=500,
        dosage_unit="mg"
    )


@pytest.fixture
def patient_preferences() -> PatientPreferences:
    return PatientPreferences(
        patient_id=1,
        email="jane.doe@example.com",
        name="Jane",
        notify_email=True,
        reminder_minutes=15,
        late_window_minutes=240
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
    config.addinivalue_line("markers", "scheduler: mark test as exercising the reminder scheduler")
