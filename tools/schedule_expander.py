"""
Schedule Expander Tool
Turns a regimen into the concrete dose instants it produces on a given date
"""

from typing import List, Optional, Any
from datetime import datetime, date, time, timedelta

from models import RegimenFrequency


# Fixed times of day per frequency
FIXED_SCHEDULES = {
    RegimenFrequency.ONCE_DAILY: [time(8, 0)],
    RegimenFrequency.TWICE_DAILY: [time(8, 0), time(20, 0)],
    RegimenFrequency.THREE_TIMES_DAILY: [time(8, 0), time(14, 0), time(20, 0)],
    RegimenFrequency.FOUR_TIMES_DAILY: [time(8, 0), time(12, 0), time(16, 0), time(20, 0)],
    RegimenFrequency.EVERY_OTHER_DAY: [time(8, 0)],
    RegimenFrequency.WEEKLY: [time(8, 0)],
    RegimenFrequency.AS_NEEDED: [],
}

# Day cadence for frequencies that skip days, counted from the regimen start date
DAY_CADENCE = {
    RegimenFrequency.EVERY_OTHER_DAY: 2,
    RegimenFrequency.WEEKLY: 7,
}

NEXT_DOSE_SEARCH_DAYS = 8


def parse_time_of_day(value: Any) -> time:
    """Parse "HH:MM" (or "HH:MM:SS") into a time"""
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        for fmt in ("%H:%M", "%H:%M:%S"):
            try:
                return datetime.strptime(value.strip(), fmt).time()
            except ValueError:
                continue
    raise ValueError(f"Invalid time of day: {value!r}")


def _frequency(regimen) -> RegimenFrequency:
    return RegimenFrequency(regimen.frequency)


def _custom_times(regimen) -> List[time]:
    entries = regimen.custom_schedule or []
    times = []
    for entry in entries:
        raw = entry.get("time") if isinstance(entry, dict) else entry
        times.append(parse_time_of_day(raw))
    return sorted(times)


def is_active_on(regimen, day: date) -> bool:
    """True when the regimen is active and the date falls in [start_date, end_date]"""
    if not regimen.is_active:
        return False
    if regimen.start_date and day < regimen.start_date:
        return False
    if regimen.end_date and day > regimen.end_date:
        return False
    return True


def expand(regimen, day: date) -> List[time]:
    """
    Times of day at which the regimen schedules a dose on the given date.

    Pure: the same regimen and date always give the same list.

    Args:
        regimen: Any object exposing frequency, custom_schedule, start_date,
            end_date and is_active (ORM Regimen or RegimenSnapshot)
        day: Calendar date to expand

    Returns:
        Ascending list of times (empty when nothing is due that day)
    """
    if not is_active_on(regimen, day):
        return []

    frequency = _frequency(regimen)

    if frequency == RegimenFrequency.CUSTOM:
        return _custom_times(regimen)

    cadence = DAY_CADENCE.get(frequency)
    if cadence:
        days_since_start = (day - regimen.start_date).days
        if days_since_start % cadence != 0:
            return []

    return list(FIXED_SCHEDULES[frequency])


def instants_between(regimen, start: datetime, end: datetime) -> List[datetime]:
    """All dose instants in the closed interval [start, end], ascending"""
    if end < start:
        return []

    instants = []
    day = start.date()
    while day <= end.date():
        for t in expand(regimen, day):
            instant = datetime.combine(day, t)
            if start <= instant <= end:
                instants.append(instant)
        day += timedelta(days=1)
    return instants


def next_dose_time(regimen, now: datetime) -> Optional[datetime]:
    """First dose instant strictly after now, or None if nothing is scheduled soon"""
    horizon = now + timedelta(days=NEXT_DOSE_SEARCH_DAYS)
    for instant in instants_between(regimen, now, horizon):
        if instant > now:
            return instant
    return None
