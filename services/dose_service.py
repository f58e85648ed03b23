"""
Dose Service
Dose record storage and the workflows that log, correct and review doses
"""

import logging
import math
from typing import Dict, List, Optional, Any, Union
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from collections import defaultdict
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError

from config import reward_config
from database import get_db_context
import models
from models import DoseStatus, DosageUnit, Mood
from actions.dose_engine import dose_engine, DuplicateDose
from actions.adherence_engine import adherence_engine, DoseSnapshot
from services.providers import DoseStore, RegimenSnapshot
from services.regimen_service import regimen_service
from services.patient_service import patient_service
from tools import schedule_expander
from tools.clock import utcnow, to_naive_utc


logger = logging.getLogger(__name__)


PENDING_LOOKBACK_HOURS = 4
OVERDUE_GRACE_MINUTES = 30
AUTO_MISS_SCAN_HOURS = 24


# ==================== DOSE SLOTS ====================

@dataclass
class ScheduledDose:
    """An expanded dose instant with no record yet"""
    regimen: RegimenSnapshot
    scheduled_time: datetime

    status = DoseStatus.PENDING

    def minutes_overdue(self, now: datetime) -> int:
        return max(0, math.floor((now - self.scheduled_time).total_seconds() / 60))

    def is_overdue(self, now: datetime) -> bool:
        return now > self.scheduled_time + timedelta(minutes=OVERDUE_GRACE_MINUTES)

    def to_dict(self, now: datetime) -> Dict[str, Any]:
        return {
            "kind": "scheduled",
            "regimen_id": self.regimen.regimen_id,
            "medication_id": self.regimen.medication_id,
            "medication_name": self.regimen.medication_name,
            "dosage": self.regimen.dosage_label,
            "scheduled_time": self.scheduled_time.isoformat(),
            "status": self.status.value,
            "is_overdue": self.is_overdue(now),
            "minutes_overdue": self.minutes_overdue(now),
            "dose_id": None,
        }


@dataclass
class LoggedDose:
    """An expanded dose instant that already has a record"""
    regimen: RegimenSnapshot
    record: DoseSnapshot

    @property
    def scheduled_time(self) -> datetime:
        return self.record.scheduled_time

    @property
    def status(self) -> DoseStatus:
        return self.record.status

    def to_dict(self, now: datetime) -> Dict[str, Any]:
        return {
            "kind": "logged",
            "regimen_id": self.regimen.regimen_id,
            "medication_id": self.regimen.medication_id,
            "medication_name": self.regimen.medication_name,
            "dosage": self.regimen.dosage_label,
            "scheduled_time": self.record.scheduled_time.isoformat(),
            "status": self.record.status.value,
            "is_overdue": False,
            "minutes_overdue": 0,
            "dose_id": self.record.id,
            "actual_time": self.record.actual_time.isoformat() if self.record.actual_time else None,
            "points": self.record.total_points,
        }


DoseSlot = Union[ScheduledDose, LoggedDose]


class DoseService(DoseStore):
    """
    Service for dose records
    """

    def __init__(self, engine=dose_engine, regimens=regimen_service, patients=patient_service):
        self.engine = engine
        self.regimens = regimens
        self.patients = patients

    # ==================== STORE ====================

    def find(
        self,
        patient_id: int,
        regimen_id: int,
        scheduled_time: datetime,
        db: Optional[Session] = None
    ) -> Optional[DoseSnapshot]:
        """Record for (patient, regimen, scheduled time), if any"""
        def _find(session: Session) -> Optional[DoseSnapshot]:
            record = session.query(models.DoseRecord).filter(
                models.DoseRecord.patient_id == patient_id,
                models.DoseRecord.regimen_id == regimen_id,
                models.DoseRecord.scheduled_time == scheduled_time
            ).first()
            return DoseSnapshot.from_record(record) if record else None

        if db:
            return _find(db)

        with get_db_context() as session:
            return _find(session)

    def insert(self, record: models.DoseRecord, db: Optional[Session] = None) -> models.DoseRecord:
        """
        Persist a new dose record

        Raises:
            DuplicateDose: if the identity is already taken
        """
        def _insert(session: Session) -> models.DoseRecord:
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise DuplicateDose(record.patient_id, record.regimen_id, record.scheduled_time)
            session.refresh(record)
            return record

        if db:
            return _insert(db)

        with get_db_context() as session:
            return _insert(session)

    def query(
        self,
        patient_id: int,
        start: datetime,
        end: datetime,
        status: Optional[DoseStatus] = None,
        regimen_id: Optional[int] = None,
        db: Optional[Session] = None
    ) -> List[DoseSnapshot]:
        """Records scheduled in [start, end], oldest first"""
        def _query(session: Session) -> List[DoseSnapshot]:
            q = session.query(models.DoseRecord).options(
                joinedload(models.DoseRecord.medication)
            ).filter(
                models.DoseRecord.patient_id == patient_id,
                models.DoseRecord.scheduled_time >= start,
                models.DoseRecord.scheduled_time <= end
            )
            if status is not None:
                q = q.filter(models.DoseRecord.status == DoseStatus(status))
            if regimen_id is not None:
                q = q.filter(models.DoseRecord.regimen_id == regimen_id)
            records = q.order_by(models.DoseRecord.scheduled_time).all()
            return [DoseSnapshot.from_record(r) for r in records]

        if db:
            return _query(db)

        with get_db_context() as session:
            return _query(session)

    # ==================== LOGGING ====================

    def prior_streak(self, patient_id: int, scheduled_time: datetime, db: Optional[Session] = None) -> int:
        """Perfect-day streak over the days before the dose's day"""
        lookback = scheduled_time - timedelta(days=reward_config.STREAK_LOOKBACK_DAYS + 1)
        history = [
            r for r in self.query(patient_id, lookback, scheduled_time, db=db)
            if r.scheduled_time.date() < scheduled_time.date()
        ]
        return adherence_engine.streaks(history, scheduled_time.date()).current_streak

    async def log_dose(
        self,
        patient_id: int,
        regimen_id: int,
        scheduled_time: datetime,
        status: Union[DoseStatus, str],
        actual_time: Optional[datetime] = None,
        notes: Optional[str] = None,
        side_effects: Optional[List[str]] = None,
        mood: Optional[str] = None,
        with_food: Optional[bool] = None,
        location: Optional[str] = None,
        effectiveness_rating: Optional[int] = None,
        logged_by: str = "user",
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.DoseRecord:
        """
        Log the outcome of a scheduled dose

        Args:
            patient_id: Patient ID
            regimen_id: Regimen the dose belongs to
            scheduled_time: Instant the dose was due
            status: taken, missed, skipped or delayed
            actual_time: When it was taken (defaults to now for taken doses)
            notes: Free-text notes
            side_effects: Reported side effects
            mood: Self-reported mood
            with_food: Whether it was taken with food
            location: Where it was taken
            effectiveness_rating: 1-5
            logged_by: "user" or "system"
            now: Current time (defaults to the wall clock)
            db: Database session

        Returns:
            Created DoseRecord

        Raises:
            ValueError: unknown regimen
            InvalidTransition: the event cannot be finalized
            DuplicateDose: a record already exists for this dose
        """
        now = now or utcnow()
        scheduled_time = to_naive_utc(scheduled_time)
        actual_time = to_naive_utc(actual_time)

        def _log(session: Session) -> models.DoseRecord:
            regimen = self.regimens.get_regimen(patient_id, regimen_id, db=session)

            if self.find(patient_id, regimen_id, scheduled_time, db=session):
                raise DuplicateDose(patient_id, regimen_id, scheduled_time)

            preferences = self.patients.get_preferences(patient_id, db=session)
            taken_at = actual_time
            if status == DoseStatus.TAKEN and taken_at is None:
                taken_at = now

            outcome = self.engine.finalize(
                scheduled_time,
                status,
                actual_time=taken_at,
                prior_streak=self.prior_streak(patient_id, scheduled_time, db=session) if scheduled_time else 0,
                max_late_minutes=preferences.late_window_minutes
            )

            record = models.DoseRecord(
                patient_id=patient_id,
                regimen_id=regimen_id,
                medication_id=regimen.medication_id,
                dosage_amount=regimen.dosage_amount,
                dosage_unit=DosageUnit(regimen.dosage_unit) if regimen.dosage_unit else None,
                notes=notes,
                side_effects=side_effects or [],
                mood=Mood(mood) if mood else None,
                with_food=with_food,
                location=location,
                effectiveness_rating=effectiveness_rating,
                logged_by=logged_by,
                **outcome.to_record_fields()
            )
            record = self.insert(record, db=session)

            logger.info(
                f"Logged dose for patient {patient_id}, regimen {regimen_id} "
                f"at {scheduled_time.isoformat()}: {outcome.status.value} "
                f"(+{outcome.rewards.total} points)"
            )
            return record

        if db:
            return _log(db)

        with get_db_context() as session:
            return _log(session)

    async def mark_taken(
        self,
        patient_id: int,
        regimen_id: int,
        scheduled_time: Optional[datetime] = None,
        actual_time: Optional[datetime] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.DoseRecord:
        """Quick log of a taken dose; the scheduled time defaults to now"""
        now = now or utcnow()
        return await self.log_dose(
            patient_id=patient_id,
            regimen_id=regimen_id,
            scheduled_time=scheduled_time or now,
            status=DoseStatus.TAKEN,
            actual_time=actual_time or now,
            notes=notes,
            now=now,
            db=db
        )

    async def mark_missed(
        self,
        patient_id: int,
        regimen_id: int,
        scheduled_time: Optional[datetime] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.DoseRecord:
        """Quick log of a missed dose"""
        now = now or utcnow()
        return await self.log_dose(
            patient_id=patient_id,
            regimen_id=regimen_id,
            scheduled_time=scheduled_time or now,
            status=DoseStatus.MISSED,
            notes=notes,
            now=now,
            db=db
        )

    async def mark_skipped(
        self,
        patient_id: int,
        regimen_id: int,
        scheduled_time: Optional[datetime] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.DoseRecord:
        """Quick log of a deliberately skipped dose"""
        now = now or utcnow()
        return await self.log_dose(
            patient_id=patient_id,
            regimen_id=regimen_id,
            scheduled_time=scheduled_time or now,
            status=DoseStatus.SKIPPED,
            notes=notes,
            now=now,
            db=db
        )

    # ==================== CORRECTIONS ====================

    def _get_record(self, session: Session, patient_id: int, dose_id: int) -> models.DoseRecord:
        record = session.query(models.DoseRecord).filter(
            models.DoseRecord.id == dose_id,
            models.DoseRecord.patient_id == patient_id
        ).first()
        if not record:
            raise ValueError(f"Dose {dose_id} not found for patient {patient_id}")
        return record

    async def get_dose(self, patient_id: int, dose_id: int, db: Optional[Session] = None) -> models.DoseRecord:
        """Get a single dose record"""
        def _get(session: Session) -> models.DoseRecord:
            return self._get_record(session, patient_id, dose_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def update_dose(
        self,
        patient_id: int,
        dose_id: int,
        updates: Dict[str, Any],
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.DoseRecord:
        """
        Correct a logged dose; lateness and points are recomputed

        Args:
            patient_id: Patient ID
            dose_id: Dose record ID
            updates: Any of status, actual_time, notes, side_effects, mood,
                with_food, location, effectiveness_rating
            now: Current time
            db: Database session
        """
        now = now or utcnow()
        detail_fields = ("notes", "side_effects", "mood", "with_food", "location", "effectiveness_rating")

        def _update(session: Session) -> models.DoseRecord:
            record = self._get_record(session, patient_id, dose_id)

            status = DoseStatus(updates.get("status") or record.status)
            actual_time = to_naive_utc(updates.get("actual_time")) or record.actual_time
            if status == DoseStatus.TAKEN and actual_time is None:
                actual_time = now

            outcome = self.engine.finalize(
                record.scheduled_time,
                status,
                actual_time=actual_time,
                prior_streak=record.streak or 0,
                max_late_minutes=record.max_late_minutes
            )
            for key, value in outcome.to_record_fields().items():
                setattr(record, key, value)

            for key in detail_fields:
                if key in updates and updates[key] is not None:
                    value = Mood(updates[key]) if key == "mood" else updates[key]
                    setattr(record, key, value)

            session.commit()
            session.refresh(record)
            logger.info(f"Updated dose {dose_id} for patient {patient_id}: {status.value}")
            return record

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def delete_dose(self, patient_id: int, dose_id: int, db: Optional[Session] = None) -> bool:
        """Delete a dose record, returning the instant to pending"""
        def _delete(session: Session) -> bool:
            record = self._get_record(session, patient_id, dose_id)
            session.delete(record)
            session.commit()
            logger.info(f"Deleted dose {dose_id} for patient {patient_id}")
            return True

        if db:
            return _delete(db)

        with get_db_context() as session:
            return _delete(session)

    # ==================== VIEWS ====================

    async def get_history(
        self,
        patient_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[DoseStatus] = None,
        regimen_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 20,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Paginated dose records, newest first"""
        def _history(session: Session) -> Dict[str, Any]:
            q = session.query(models.DoseRecord).filter(
                models.DoseRecord.patient_id == patient_id
            )
            if start:
                q = q.filter(models.DoseRecord.scheduled_time >= start)
            if end:
                q = q.filter(models.DoseRecord.scheduled_time <= end)
            if status:
                q = q.filter(models.DoseRecord.status == DoseStatus(status))
            if regimen_id:
                q = q.filter(models.DoseRecord.regimen_id == regimen_id)

            total = q.count()
            items = q.order_by(models.DoseRecord.scheduled_time.desc()).offset(offset).limit(limit).all()
            return {"items": items, "total": total}

        if db:
            return _history(db)

        with get_db_context() as session:
            return _history(session)

    async def get_timeline(
        self,
        patient_id: int,
        day: date,
        db: Optional[Session] = None
    ) -> List[DoseSlot]:
        """Every expanded instant on a day, each either still scheduled or logged"""
        def _timeline(session: Session) -> List[DoseSlot]:
            regimens = self.regimens.list_active_regimens(patient_id, day, db=session)
            records = self.query(
                patient_id,
                datetime.combine(day, time.min),
                datetime.combine(day, time.max),
                db=session
            )
            logged = {(r.regimen_id, r.scheduled_time): r for r in records}

            slots: List[DoseSlot] = []
            for regimen in regimens:
                for t in schedule_expander.expand(regimen, day):
                    instant = datetime.combine(day, t)
                    record = logged.get((regimen.regimen_id, instant))
                    if record is not None:
                        slots.append(LoggedDose(regimen=regimen, record=record))
                    else:
                        slots.append(ScheduledDose(regimen=regimen, scheduled_time=instant))

            slots.sort(key=lambda s: (s.scheduled_time, s.regimen.regimen_id))
            return slots

        if db:
            return _timeline(db)

        with get_db_context() as session:
            return _timeline(session)

    async def get_today(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Today's schedule with per-status counts"""
        now = now or utcnow()
        slots = await self.get_timeline(patient_id, now.date(), db=db)

        counts = defaultdict(int)
        for slot in slots:
            counts[slot.status.value] += 1

        return {
            "date": now.date().isoformat(),
            "total": len(slots),
            "taken": counts[DoseStatus.TAKEN.value],
            "missed": counts[DoseStatus.MISSED.value],
            "skipped": counts[DoseStatus.SKIPPED.value],
            "delayed": counts[DoseStatus.DELAYED.value],
            "pending": counts[DoseStatus.PENDING.value],
            "doses": [slot.to_dict(now) for slot in slots],
        }

    async def get_pending_doses(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        lookback_hours: int = PENDING_LOOKBACK_HOURS,
        db: Optional[Session] = None
    ) -> List[ScheduledDose]:
        """
        Unlogged instants from lookback_hours ago through the end of today

        A pending dose is overdue once OVERDUE_GRACE_MINUTES have passed.
        """
        now = now or utcnow()
        start = now - timedelta(hours=lookback_hours)

        pending = []
        day = start.date()
        while day <= now.date():
            for slot in await self.get_timeline(patient_id, day, db=db):
                if isinstance(slot, ScheduledDose) and slot.scheduled_time >= start:
                    pending.append(slot)
            day += timedelta(days=1)

        return pending

    async def get_missed_doses(
        self,
        patient_id: int,
        days: int = 7,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """Missed doses over the last N days, grouped by medication"""
        now = now or utcnow()
        records = self.query(
            patient_id,
            now - timedelta(days=days),
            now,
            status=DoseStatus.MISSED,
            db=db
        )

        groups: Dict[Any, Dict[str, Any]] = {}
        for record in records:
            group = groups.setdefault(record.medication_id, {
                "medication_id": record.medication_id,
                "medication_name": record.medication_name,
                "count": 0,
                "doses": [],
            })
            group["count"] += 1
            group["doses"].append({
                "dose_id": record.id,
                "regimen_id": record.regimen_id,
                "scheduled_time": record.scheduled_time.isoformat(),
            })

        return sorted(groups.values(), key=lambda g: -g["count"])

    # ==================== AUTO-MISS ====================

    async def auto_miss_overdue(self, now: Optional[datetime] = None, db: Optional[Session] = None) -> int:
        """
        Record a missed dose for every instant that has passed the patient's
        late window without being logged. Points are never awarded.

        Returns:
            Number of missed records written
        """
        now = now or utcnow()

        def _auto_miss(session: Session) -> int:
            written = 0
            preferences = {}
            for regimen in self.regimens.list_all_active_regimens(now.date(), db=session):
                prefs = preferences.get(regimen.patient_id)
                if prefs is None:
                    prefs = self.patients.get_preferences(regimen.patient_id, db=session)
                    preferences[regimen.patient_id] = prefs

                cutoff = now - timedelta(minutes=prefs.late_window_minutes)
                window_start = cutoff - timedelta(hours=AUTO_MISS_SCAN_HOURS)
                for instant in schedule_expander.instants_between(regimen, window_start, cutoff):
                    if instant == cutoff:
                        continue
                    if self.find(regimen.patient_id, regimen.regimen_id, instant, db=session):
                        continue

                    outcome = self.engine.finalize(instant, DoseStatus.MISSED, max_late_minutes=prefs.late_window_minutes)
                    record = models.DoseRecord(
                        patient_id=regimen.patient_id,
                        regimen_id=regimen.regimen_id,
                        medication_id=regimen.medication_id,
                        dosage_amount=regimen.dosage_amount,
                        dosage_unit=DosageUnit(regimen.dosage_unit) if regimen.dosage_unit else None,
                        logged_by="system",
                        notes="Automatically marked as missed",
                        **outcome.to_record_fields()
                    )
                    try:
                        self.insert(record, db=session)
                    except DuplicateDose:
                        logger.info(
                            f"Dose for regimen {regimen.regimen_id} at {instant.isoformat()} "
                            f"was logged concurrently, skipping auto-miss"
                        )
                        continue
                    written += 1

            if written:
                logger.info(f"Auto-miss recorded {written} missed doses")
            return written

        if db:
            return _auto_miss(db)

        with get_db_context() as session:
            return _auto_miss(session)


# Singleton instance
dose_service = DoseService()
