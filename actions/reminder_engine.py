"""
Reminder Engine
Recurring sweeps that find upcoming and overdue doses and notify patients.

Two independent jobs run on fixed intervals: the upcoming sweep looks ahead
by each patient's reminder lead time, the overdue sweep looks back over the
overdue window. Sweeps only read dose data. An optional auto-miss job, off by
default, is the one job that writes (through the dose service).

Each (kind, patient, regimen, instant) is dispatched at most once per
process. Running more than one scheduler instance against the same database
can double-send.
"""

import asyncio
import logging
import math
from typing import Dict, List, Optional, Any, Callable, Awaitable, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from config import settings
from services.providers import (
    RegimenProvider,
    DoseStore,
    PatientPreferenceProvider,
    PatientPreferences,
    RegimenSnapshot,
)
from tools import schedule_expander
from tools.clock import system_clock
from tools.notification_service import (
    Notifier,
    NotificationType,
    DeliveryError,
    render_notification,
)


logger = logging.getLogger(__name__)


class ReminderKind(str, Enum):
    """Which sweep produced a reminder"""
    UPCOMING = "upcoming"
    OVERDUE = "overdue"


class SweepState(str, Enum):
    """Where a sweep currently is"""
    IDLE = "idle"
    SCANNING = "scanning"
    DISPATCHING = "dispatching"


DispatchKey = Tuple[ReminderKind, int, int, datetime]


@dataclass
class DispatchEvent:
    """One reminder about one dose instant"""
    kind: ReminderKind
    patient_id: int
    regimen_id: int
    medication_name: str
    dosage: str
    scheduled_time: datetime
    minutes: int  # until the dose for upcoming, past it for overdue

    @property
    def notification_type(self) -> NotificationType:
        if self.kind == ReminderKind.OVERDUE:
            return NotificationType.DOSE_OVERDUE
        if self.minutes <= 0:
            return NotificationType.DOSE_DUE
        return NotificationType.DOSE_UPCOMING

    def payload(self, patient_name: Optional[str] = None) -> Dict[str, Any]:
        rendered = render_notification(self.notification_type, {
            "patient_name": patient_name or "there",
            "medication": self.medication_name,
            "dosage": self.dosage,
            "minutes": self.minutes,
            "scheduled_time": self.scheduled_time.strftime("%H:%M"),
        })
        return {**rendered, "data": self.to_dict()}

    def to_dict(self) -> Dict[str, Any]:
        minutes_key = "minutes_late" if self.kind == ReminderKind.OVERDUE else "minutes_until"
        return {
            "kind": self.kind.value,
            "patient_id": self.patient_id,
            "regimen_id": self.regimen_id,
            "medication_name": self.medication_name,
            "dosage": self.dosage,
            "scheduled_time": self.scheduled_time.isoformat(),
            minutes_key: self.minutes,
        }


@dataclass
class SweepResult:
    """What one sweep did"""
    kind: ReminderKind
    started_at: datetime
    finished_at: Optional[datetime] = None
    patients_scanned: int = 0
    patients_skipped: int = 0
    dispatched: int = 0
    deliveries: int = 0
    failures: int = 0
    already_logged: int = 0
    duplicates: int = 0
    error: Optional[str] = None
    events: List[DispatchEvent] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "patients_scanned": self.patients_scanned,
            "patients_skipped": self.patients_skipped,
            "dispatched": self.dispatched,
            "deliveries": self.deliveries,
            "failures": self.failures,
            "already_logged": self.already_logged,
            "duplicates": self.duplicates,
            "error": self.error,
        }


@dataclass
class SchedulerJob:
    """A recurring job and its bookkeeping"""
    name: str
    interval_seconds: int
    runner: Callable[[datetime], Awaitable[Any]]
    enabled: bool = True
    running: bool = False
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None

    def is_due(self, now: datetime) -> bool:
        return self.enabled and (self.next_run is None or now >= self.next_run)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_result": self.last_result,
            "last_error": self.last_error,
        }


class ReminderScheduler:
    """
    Fixed-interval reminder sweeps with at-most-once dispatch per dose instant.

    Use start()/stop() inside an event loop for real operation, or tick()
    with a ManualClock to drive sweeps deterministically.
    """

    def __init__(
        self,
        regimens: RegimenProvider,
        doses: DoseStore,
        preferences: PatientPreferenceProvider,
        notifier: Notifier,
        clock=None,
        auto_miss_handler: Optional[Callable[[datetime], Awaitable[int]]] = None,
        max_concurrency: Optional[int] = None,
        upcoming_interval_seconds: Optional[int] = None,
        overdue_interval_seconds: Optional[int] = None,
        auto_miss_interval_seconds: Optional[int] = None,
        overdue_lookback_minutes: Optional[int] = None,
        max_reminder_minutes: Optional[int] = None,
        marker_retention_hours: Optional[int] = None,
        auto_miss_enabled: Optional[bool] = None
    ):
        self.regimens = regimens
        self.doses = doses
        self.preferences = preferences
        self.notifier = notifier
        self.clock = clock or system_clock
        self.auto_miss_handler = auto_miss_handler

        self.max_concurrency = max_concurrency or settings.SCHEDULER_MAX_CONCURRENCY
        self.overdue_lookback_minutes = overdue_lookback_minutes or settings.OVERDUE_LOOKBACK_MINUTES
        self.max_reminder_minutes = max_reminder_minutes or settings.MAX_REMINDER_MINUTES
        self.marker_retention = timedelta(
            hours=marker_retention_hours or settings.DISPATCH_MARKER_RETENTION_HOURS
        )

        if auto_miss_enabled is None:
            auto_miss_enabled = settings.AUTO_MISS_ENABLED

        self.jobs: Dict[str, SchedulerJob] = {
            ReminderKind.UPCOMING.value: SchedulerJob(
                name=ReminderKind.UPCOMING.value,
                interval_seconds=upcoming_interval_seconds or settings.UPCOMING_SWEEP_INTERVAL_SECONDS,
                runner=self.run_upcoming_sweep,
            ),
            ReminderKind.OVERDUE.value: SchedulerJob(
                name=ReminderKind.OVERDUE.value,
                interval_seconds=overdue_interval_seconds or settings.OVERDUE_SWEEP_INTERVAL_SECONDS,
                runner=self.run_overdue_sweep,
            ),
            "auto_miss": SchedulerJob(
                name="auto_miss",
                interval_seconds=auto_miss_interval_seconds or settings.AUTO_MISS_INTERVAL_SECONDS,
                runner=self.run_auto_miss,
                enabled=bool(auto_miss_enabled and auto_miss_handler),
            ),
        }

        self.state: Dict[ReminderKind, SweepState] = {
            kind: SweepState.IDLE for kind in ReminderKind
        }
        self._dispatched: Dict[DispatchKey, datetime] = {}
        self._tasks: List[asyncio.Task] = []
        self._stop_event: Optional[asyncio.Event] = None
        self._stopping = False

    # ==================== LIFECYCLE ====================

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Start one task per enabled job"""
        if self.is_running:
            logger.warning("Reminder scheduler already running")
            return

        self._stopping = False
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self._job_loop(job), name=f"reminder-{job.name}")
            for job in self.jobs.values()
            if job.enabled
        ]
        logger.info(
            "Reminder scheduler started: "
            + ", ".join(f"{job.name} every {job.interval_seconds}s" for job in self.jobs.values() if job.enabled)
        )

    async def stop(self) -> None:
        """
        Stop all jobs. Patients already being processed finish their
        dispatches; patients not yet started in a running sweep are skipped.
        """
        self._stopping = True
        if self._stop_event is not None:
            self._stop_event.set()

        if self._tasks:
            await asyncio.gather(*self._tasks)
        self._tasks = []
        logger.info("Reminder scheduler stopped")

    async def _job_loop(self, job: SchedulerJob) -> None:
        while not self._stopping:
            now = self.clock.now()
            if job.is_due(now):
                await self._run_job(job, now)

            delay = job.interval_seconds
            if job.next_run is not None:
                delay = max(0.0, (job.next_run - self.clock.now()).total_seconds())
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def _run_job(self, job: SchedulerJob, now: datetime) -> Any:
        job.running = True
        result = None
        try:
            result = await job.runner(now)
            job.last_result = result.to_dict() if hasattr(result, "to_dict") else result
            job.last_error = None
        except Exception as e:
            logger.error(f"Reminder job '{job.name}' failed: {e}", exc_info=True)
            job.last_error = str(e)
        finally:
            job.running = False
            job.last_run = now
            job.next_run = now + timedelta(seconds=job.interval_seconds)
        return result

    async def tick(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run every job that is due at the clock's current time"""
        now = now or self.clock.now()
        results = {}
        for job in self.jobs.values():
            if job.is_due(now):
                results[job.name] = await self._run_job(job, now)
        return results

    # ==================== SWEEPS ====================

    async def run_upcoming_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Remind patients about doses due within their lead time"""
        return await self._sweep(ReminderKind.UPCOMING, now or self.clock.now())

    async def run_overdue_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Notify patients about past doses that are still unlogged"""
        return await self._sweep(ReminderKind.OVERDUE, now or self.clock.now())

    async def run_auto_miss(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Record missed doses for instants past the late window"""
        if self.auto_miss_handler is None:
            return {"written": 0}
        written = await self.auto_miss_handler(now or self.clock.now())
        return {"written": written}

    async def _sweep(self, kind: ReminderKind, now: datetime) -> SweepResult:
        result = SweepResult(kind=kind, started_at=now)
        self.state[kind] = SweepState.SCANNING

        try:
            try:
                patients = self.preferences.list_notifiable_patients()
            except Exception as e:
                logger.error(f"Skipping {kind.value} sweep, could not load patients: {e}")
                result.error = str(e)
                return result

            self._prune_markers(now)
            semaphore = asyncio.Semaphore(self.max_concurrency)
            await asyncio.gather(*(
                self._process_patient(kind, prefs, now, semaphore, result)
                for prefs in patients
            ))
        finally:
            self.state[kind] = SweepState.IDLE
            result.finished_at = self.clock.now()

        logger.info(
            f"{kind.value.capitalize()} sweep: {result.patients_scanned} patients, "
            f"{result.dispatched} reminders, {result.deliveries} delivered, "
            f"{result.failures} failed"
        )
        return result

    async def _process_patient(
        self,
        kind: ReminderKind,
        prefs: PatientPreferences,
        now: datetime,
        semaphore: asyncio.Semaphore,
        result: SweepResult
    ) -> None:
        async with semaphore:
            if self._stopping:
                result.patients_skipped += 1
                return

            result.patients_scanned += 1
            try:
                events = self._collect(kind, prefs, now, result)
            except Exception as e:
                logger.error(f"{kind.value} sweep failed for patient {prefs.patient_id}: {e}")
                result.failures += 1
                return

            if events:
                self.state[kind] = SweepState.DISPATCHING
            for event in events:
                await self._dispatch(event, prefs, result)

    def _window(self, kind: ReminderKind, prefs: PatientPreferences, now: datetime) -> Tuple[datetime, datetime]:
        if kind == ReminderKind.UPCOMING:
            lookahead = max(0, min(prefs.reminder_minutes, self.max_reminder_minutes))
            return now, now + timedelta(minutes=lookahead)
        return now - timedelta(minutes=self.overdue_lookback_minutes), now

    def _collect(
        self,
        kind: ReminderKind,
        prefs: PatientPreferences,
        now: datetime,
        result: SweepResult
    ) -> List[DispatchEvent]:
        """
        Dose instants in the sweep window that have no record and have not
        been dispatched yet. Markers are claimed here, before any await.
        """
        if not prefs.channels:
            return []

        start, end = self._window(kind, prefs, now)
        events = []
        for regimen in self.regimens.list_active_regimens(prefs.patient_id, end.date()):
            for instant in schedule_expander.instants_between(regimen, start, end):
                if kind == ReminderKind.OVERDUE and instant >= now:
                    continue

                key = (kind, prefs.patient_id, regimen.regimen_id, instant)
                if key in self._dispatched:
                    result.duplicates += 1
                    continue

                if self.doses.find(prefs.patient_id, regimen.regimen_id, instant) is not None:
                    result.already_logged += 1
                    continue

                self._dispatched[key] = instant
                events.append(self._build_event(kind, prefs, regimen, instant, now))
        return events

    @staticmethod
    def _build_event(
        kind: ReminderKind,
        prefs: PatientPreferences,
        regimen: RegimenSnapshot,
        instant: datetime,
        now: datetime
    ) -> DispatchEvent:
        if kind == ReminderKind.UPCOMING:
            minutes = math.floor((instant - now).total_seconds() / 60)
        else:
            minutes = math.floor((now - instant).total_seconds() / 60)
        return DispatchEvent(
            kind=kind,
            patient_id=prefs.patient_id,
            regimen_id=regimen.regimen_id,
            medication_name=regimen.medication_name,
            dosage=regimen.dosage_label,
            scheduled_time=instant,
            minutes=minutes,
        )

    async def _dispatch(self, event: DispatchEvent, prefs: PatientPreferences, result: SweepResult) -> None:
        payload = event.payload(prefs.name)
        result.dispatched += 1
        result.events.append(event)

        for channel in prefs.channels:
            try:
                await self.notifier.send(prefs, channel, payload)
                result.deliveries += 1
            except DeliveryError as e:
                result.failures += 1
                logger.warning(
                    f"{channel.value} reminder for patient {event.patient_id} "
                    f"(regimen {event.regimen_id}) not delivered: {e.reason}"
                )
            except Exception as e:
                result.failures += 1
                logger.error(
                    f"Unexpected error sending {channel.value} reminder to patient "
                    f"{event.patient_id}: {e}",
                    exc_info=True
                )

    def _prune_markers(self, now: datetime) -> None:
        cutoff = now - self.marker_retention
        stale = [key for key, instant in self._dispatched.items() if instant < cutoff]
        for key in stale:
            del self._dispatched[key]

    # ==================== STATUS & TRIGGERS ====================

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "stopping": self._stopping,
            "sweep_state": {kind.value: state.value for kind, state in self.state.items()},
            "jobs": {name: job.to_dict() for name, job in self.jobs.items()},
            "dispatch_markers": len(self._dispatched),
        }

    async def _trigger(self, kind: ReminderKind) -> Dict[str, Any]:
        try:
            result = await self._sweep(kind, self.clock.now())
        except Exception as e:
            logger.error(f"Manual {kind.value} check failed: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

        if result.aborted:
            return {"success": False, "error": result.error, "result": result.to_dict()}
        return {
            "success": True,
            "message": f"{kind.value.capitalize()} check completed",
            "result": result.to_dict(),
        }

    async def trigger_upcoming_check(self) -> Dict[str, Any]:
        """Run the upcoming sweep now, outside the timer"""
        return await self._trigger(ReminderKind.UPCOMING)

    async def trigger_overdue_check(self) -> Dict[str, Any]:
        """Run the overdue sweep now, outside the timer"""
        return await self._trigger(ReminderKind.OVERDUE)


_reminder_scheduler: Optional[ReminderScheduler] = None


def get_reminder_scheduler() -> ReminderScheduler:
    """Process-wide scheduler wired to the database-backed services"""
    global _reminder_scheduler
    if _reminder_scheduler is None:
        from services.regimen_service import regimen_service
        from services.dose_service import dose_service
        from services.patient_service import patient_service
        from tools.notification_service import notification_service

        _reminder_scheduler = ReminderScheduler(
            regimens=regimen_service,
            doses=dose_service,
            preferences=patient_service,
            notifier=notification_service,
            auto_miss_handler=dose_service.auto_miss_overdue,
        )
    return _reminder_scheduler
