"""
Adherence Engine
Windowed adherence statistics, streaks, calendar heatmaps and trends
computed over materialized dose history
"""

from typing import Dict, List, Optional, Any, Iterable, Tuple
from dataclasses import dataclass, field
from datetime import datetime, date, time, timedelta
from collections import defaultdict

from config import reward_config
from models import DoseStatus


PERIOD_DAYS = {
    "week": 7,
    "month": 30,
    "year": 365,
}

DAY_NAMES = {
    1: "Sunday",
    2: "Monday",
    3: "Tuesday",
    4: "Wednesday",
    5: "Thursday",
    6: "Friday",
    7: "Saturday",
}


def _rate(count: int, total: int) -> float:
    return (count / total) * 100 if total else 0.0


def day_of_week_key(value: datetime) -> int:
    """1 = Sunday ... 7 = Saturday"""
    return value.isoweekday() % 7 + 1


# ==================== DATA STRUCTURES ====================

@dataclass(frozen=True)
class DoseSnapshot:
    """Read-only copy of a dose record, detached from any database session"""
    patient_id: int
    regimen_id: int
    scheduled_time: datetime
    status: DoseStatus
    id: Optional[int] = None
    medication_id: Optional[int] = None
    medication_name: Optional[str] = None
    actual_time: Optional[datetime] = None
    taken_late: bool = False
    minutes_late: int = 0
    points: int = 0
    bonus_points: int = 0
    reason_for_bonus: Optional[str] = None

    @classmethod
    def from_record(cls, record) -> "DoseSnapshot":
        medication = getattr(record, "medication", None)
        return cls(
            id=record.id,
            patient_id=record.patient_id,
            regimen_id=record.regimen_id,
            medication_id=record.medication_id,
            medication_name=medication.name if medication is not None else None,
            scheduled_time=record.scheduled_time,
            status=DoseStatus(record.status),
            actual_time=record.actual_time,
            taken_late=bool(record.taken_late),
            minutes_late=record.minutes_late or 0,
            points=record.points or 0,
            bonus_points=record.bonus_points or 0,
            reason_for_bonus=record.reason_for_bonus,
        )

    @property
    def total_points(self) -> int:
        return self.points + self.bonus_points


@dataclass
class DayTally:
    """Status counts for one bucket of doses"""
    total: int = 0
    taken: int = 0
    missed: int = 0
    skipped: int = 0
    delayed: int = 0

    def add(self, status: DoseStatus) -> None:
        self.total += 1
        if status == DoseStatus.TAKEN:
            self.taken += 1
        elif status == DoseStatus.MISSED:
            self.missed += 1
        elif status == DoseStatus.SKIPPED:
            self.skipped += 1
        elif status == DoseStatus.DELAYED:
            self.delayed += 1

    @property
    def is_perfect(self) -> bool:
        return self.total > 0 and self.missed == 0

    @property
    def taken_rate(self) -> float:
        return _rate(self.taken, self.total)


@dataclass
class AdherenceWindow:
    """Counts and rates for doses scheduled inside [start, end]"""
    start: datetime
    end: datetime
    total: int = 0
    taken: int = 0
    taken_on_time: int = 0
    taken_late: int = 0
    missed: int = 0
    skipped: int = 0
    delayed: int = 0

    @property
    def adherence_rate(self) -> float:
        return self.taken_rate

    @property
    def taken_rate(self) -> float:
        return _rate(self.taken, self.total)

    @property
    def taken_on_time_rate(self) -> float:
        return _rate(self.taken_on_time, self.total)

    @property
    def taken_late_rate(self) -> float:
        return _rate(self.taken_late, self.total)

    @property
    def missed_rate(self) -> float:
        return _rate(self.missed, self.total)

    @property
    def skipped_rate(self) -> float:
        return _rate(self.skipped, self.total)

    @property
    def delayed_rate(self) -> float:
        return _rate(self.delayed, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "total": self.total,
            "taken": self.taken,
            "taken_on_time": self.taken_on_time,
            "taken_late": self.taken_late,
            "missed": self.missed,
            "skipped": self.skipped,
            "delayed": self.delayed,
            "adherence_rate": round(self.adherence_rate, 1),
            "taken_on_time_rate": round(self.taken_on_time_rate, 1),
            "taken_late_rate": round(self.taken_late_rate, 1),
            "missed_rate": round(self.missed_rate, 1),
            "skipped_rate": round(self.skipped_rate, 1),
            "delayed_rate": round(self.delayed_rate, 1),
        }


@dataclass
class StreakState:
    """Perfect-day streak summary"""
    current_streak: int = 0
    best_streak: int = 0
    total_perfect_days: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "total_perfect_days": self.total_perfect_days,
        }


@dataclass
class CalendarDay:
    """One cell of the adherence heatmap"""
    day: date
    total: int = 0
    taken: int = 0
    missed: int = 0
    skipped: int = 0
    adherence_percentage: float = 0.0
    level: int = 0
    is_perfect: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "total": self.total,
            "taken": self.taken,
            "missed": self.missed,
            "skipped": self.skipped,
            "adherence_percentage": round(self.adherence_percentage, 1),
            "level": self.level,
            "is_perfect": self.is_perfect,
        }


@dataclass
class TrendBucket:
    """Doses grouped by hour of day or day of week"""
    key: int
    label: str
    tally: DayTally = field(default_factory=DayTally)

    @property
    def taken_rate(self) -> float:
        return self.tally.taken_rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "total": self.tally.total,
            "taken": self.tally.taken,
            "missed": self.tally.missed,
            "skipped": self.tally.skipped,
            "taken_rate": round(self.taken_rate, 1),
        }


@dataclass
class MedicationMissSummary:
    """Missed and skipped doses for one medication"""
    medication_id: Optional[int]
    medication_name: Optional[str]
    total: int = 0
    missed: int = 0
    skipped: int = 0

    @property
    def missed_percentage(self) -> float:
        return _rate(self.missed, self.total)

    @property
    def skipped_percentage(self) -> float:
        return _rate(self.skipped, self.total)

    @property
    def total_missed_percentage(self) -> float:
        return _rate(self.missed + self.skipped, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "medication_id": self.medication_id,
            "medication_name": self.medication_name,
            "total": self.total,
            "missed": self.missed,
            "skipped": self.skipped,
            "missed_percentage": round(self.missed_percentage, 1),
            "skipped_percentage": round(self.skipped_percentage, 1),
            "total_missed_percentage": round(self.total_missed_percentage, 1),
        }


# ==================== ENGINE ====================

class AdherenceEngine:
    """
    Pure aggregation over dose history.

    Every method takes the records and window explicitly; nothing reads the
    clock or the database.
    """

    def period_bounds(self, period: str, now: datetime) -> Tuple[datetime, datetime, datetime, datetime]:
        """
        Current and previous window for a named period.

        Returns:
            (start, end, previous_start, previous_end)
        """
        if period not in PERIOD_DAYS:
            raise ValueError(f"Unknown period '{period}'. Use one of: {', '.join(PERIOD_DAYS)}")
        length = timedelta(days=PERIOD_DAYS[period])
        start = now - length
        previous_end = start - timedelta(microseconds=1)
        return start, now, previous_end - length, previous_end

    def aggregate(self, records: Iterable[DoseSnapshot], start: datetime, end: datetime) -> AdherenceWindow:
        """Counts and rates for records scheduled in the closed interval [start, end]"""
        window = AdherenceWindow(start=start, end=end)

        for record in records:
            if not (start <= record.scheduled_time <= end):
                continue
            window.total += 1
            if record.status == DoseStatus.TAKEN:
                window.taken += 1
                if record.taken_late:
                    window.taken_late += 1
                else:
                    window.taken_on_time += 1
            elif record.status == DoseStatus.MISSED:
                window.missed += 1
            elif record.status == DoseStatus.SKIPPED:
                window.skipped += 1
            elif record.status == DoseStatus.DELAYED:
                window.delayed += 1

        return window

    def daily_tallies(self, records: Iterable[DoseSnapshot]) -> Dict[date, DayTally]:
        """Status counts keyed by the calendar date of each scheduled time"""
        days: Dict[date, DayTally] = defaultdict(DayTally)
        for record in records:
            days[record.scheduled_time.date()].add(record.status)
        return dict(days)

    def streaks(self, records: Iterable[DoseSnapshot], as_of: date) -> StreakState:
        """
        Perfect-day streaks.

        A day is perfect when it has at least one record and none are missed.
        The current streak counts today only if today already has records and
        is perfect, then walks back from yesterday until the first day that is
        not perfect or has no records.
        """
        days = self.daily_tallies(records)
        state = StreakState(
            total_perfect_days=sum(1 for tally in days.values() if tally.is_perfect)
        )
        if not days:
            return state

        today = days.get(as_of)
        if today is not None and today.is_perfect:
            state.current_streak = 1

        for offset in range(1, reward_config.STREAK_LOOKBACK_DAYS + 1):
            tally = days.get(as_of - timedelta(days=offset))
            if tally is None or not tally.is_perfect:
                break
            state.current_streak += 1

        # Longest run over consecutive calendar days
        running = 0
        day = min(days)
        last = max(days)
        while day <= last:
            tally = days.get(day)
            if tally is not None and tally.is_perfect:
                running += 1
                state.best_streak = max(state.best_streak, running)
            else:
                running = 0
            day += timedelta(days=1)

        return state

    @staticmethod
    def heat_level(fraction: float, total: int) -> int:
        """Heatmap intensity 0-4 for a day's taken fraction"""
        if total == 0:
            return 0
        if fraction >= 0.9:
            return 4
        if fraction >= 0.7:
            return 3
        if fraction >= 0.5:
            return 2
        if fraction > 0:
            return 1
        return 0

    def calendar(self, records: Iterable[DoseSnapshot], start: date, end: date) -> List[CalendarDay]:
        """One heatmap cell per date in [start, end], including empty days"""
        days = self.daily_tallies(records)
        cells = []
        day = start
        while day <= end:
            tally = days.get(day, DayTally())
            fraction = tally.taken / tally.total if tally.total else 0.0
            cells.append(CalendarDay(
                day=day,
                total=tally.total,
                taken=tally.taken,
                missed=tally.missed,
                skipped=tally.skipped,
                adherence_percentage=fraction * 100,
                level=self.heat_level(fraction, tally.total),
                is_perfect=tally.is_perfect,
            ))
            day += timedelta(days=1)
        return cells

    def time_of_day_trends(self, records: Iterable[DoseSnapshot]) -> List[TrendBucket]:
        """Doses grouped by scheduled hour (0-23), ascending"""
        buckets: Dict[int, TrendBucket] = {}
        for record in records:
            hour = record.scheduled_time.hour
            if hour not in buckets:
                buckets[hour] = TrendBucket(key=hour, label=f"{hour:02d}:00")
            buckets[hour].tally.add(record.status)
        return [buckets[key] for key in sorted(buckets)]

    def day_of_week_trends(self, records: Iterable[DoseSnapshot]) -> List[TrendBucket]:
        """Doses grouped by scheduled weekday (1 = Sunday), ascending"""
        buckets: Dict[int, TrendBucket] = {}
        for record in records:
            key = day_of_week_key(record.scheduled_time)
            if key not in buckets:
                buckets[key] = TrendBucket(key=key, label=DAY_NAMES[key])
            buckets[key].tally.add(record.status)
        return [buckets[key] for key in sorted(buckets)]

    @staticmethod
    def best_bucket(buckets: List[TrendBucket]) -> Optional[TrendBucket]:
        """Bucket with the highest taken rate; ties go to the lowest key"""
        best = None
        for bucket in sorted(buckets, key=lambda b: b.key):
            if best is None or bucket.taken_rate > best.taken_rate:
                best = bucket
        return best

    def weekly_trends(self, records: Iterable[DoseSnapshot], as_of: datetime, weeks: int = 12) -> List[AdherenceWindow]:
        """Consecutive 7-day windows ending on as_of's date, oldest first"""
        records = list(records)
        windows = []
        for index in range(weeks - 1, -1, -1):
            end_day = as_of.date() - timedelta(days=7 * index)
            start_day = end_day - timedelta(days=6)
            windows.append(self.aggregate(
                records,
                datetime.combine(start_day, time.min),
                datetime.combine(end_day, time.max)
            ))
        return windows

    @staticmethod
    def compare_periods(current: AdherenceWindow, previous: AdherenceWindow) -> Dict[str, float]:
        """Rate deltas (current minus previous), rounded to one decimal"""
        return {
            "adherence_rate": round(current.adherence_rate - previous.adherence_rate, 1),
            "taken_on_time_rate": round(current.taken_on_time_rate - previous.taken_on_time_rate, 1),
            "taken_late_rate": round(current.taken_late_rate - previous.taken_late_rate, 1),
            "missed_rate": round(current.missed_rate - previous.missed_rate, 1),
        }

    def most_missed(self, records: Iterable[DoseSnapshot], limit: int = 10) -> List[MedicationMissSummary]:
        """Medications with missed or skipped doses, worst first"""
        summaries: Dict[Optional[int], MedicationMissSummary] = {}
        for record in records:
            summary = summaries.get(record.medication_id)
            if summary is None:
                summary = MedicationMissSummary(
                    medication_id=record.medication_id,
                    medication_name=record.medication_name
                )
                summaries[record.medication_id] = summary
            summary.total += 1
            if record.status == DoseStatus.MISSED:
                summary.missed += 1
            elif record.status == DoseStatus.SKIPPED:
                summary.skipped += 1

        ranked = [s for s in summaries.values() if s.missed + s.skipped > 0]
        ranked.sort(key=lambda s: (-s.total_missed_percentage, -(s.missed + s.skipped)))
        return ranked[:limit]

    def daily_progress(self, records: Iterable[DoseSnapshot], start: datetime, end: datetime) -> Dict[str, Any]:
        """Taken out of logged doses for a window"""
        window = self.aggregate(records, start, end)
        return {
            "total": window.total,
            "completed": window.taken,
            "percentage": round(window.taken_rate, 1),
        }


# Singleton instance
adherence_engine = AdherenceEngine()
