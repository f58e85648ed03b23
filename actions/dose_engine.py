"""
Dose Lifecycle Engine
Classifies how late a logged dose was and awards points for it
"""

import math
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime

from config import reward_config, settings
from models import DoseStatus


LOGGABLE_STATUSES = frozenset({
    DoseStatus.TAKEN,
    DoseStatus.MISSED,
    DoseStatus.SKIPPED,
    DoseStatus.DELAYED,
})


class InvalidTransition(ValueError):
    """A dose event that cannot be turned into a record"""


class DuplicateDose(Exception):
    """A record already exists for (patient, regimen, scheduled time)"""

    def __init__(self, patient_id: int, regimen_id: int, scheduled_time: datetime):
        self.patient_id = patient_id
        self.regimen_id = regimen_id
        self.scheduled_time = scheduled_time
        super().__init__("Dose already logged for this time")


@dataclass
class DoseRewards:
    """Points earned by a single dose"""
    points: int = 0
    bonus_points: int = 0
    streak: int = 0
    reason_for_bonus: Optional[str] = None

    @property
    def total(self) -> int:
        return self.points + self.bonus_points

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": self.points,
            "bonus_points": self.bonus_points,
            "streak": self.streak,
            "reason_for_bonus": self.reason_for_bonus,
            "total": self.total
        }


@dataclass
class DoseOutcome:
    """Derived fields of a finalized dose record"""
    status: DoseStatus
    scheduled_time: datetime
    actual_time: Optional[datetime] = None
    minutes_late: int = 0
    taken_late: bool = False
    is_late: bool = False
    warning_shown: bool = False
    within_window: bool = True
    max_late_minutes: int = 240
    rewards: DoseRewards = field(default_factory=DoseRewards)

    def to_record_fields(self) -> Dict[str, Any]:
        """Column values for a DoseRecord"""
        return {
            "status": self.status,
            "scheduled_time": self.scheduled_time,
            "actual_time": self.actual_time,
            "minutes_late": self.minutes_late,
            "taken_late": self.taken_late,
            "is_late": self.is_late,
            "warning_shown": self.warning_shown,
            "within_window": self.within_window,
            "max_late_minutes": self.max_late_minutes,
            "points": self.rewards.points,
            "bonus_points": self.rewards.bonus_points,
            "streak": self.rewards.streak,
            "reason_for_bonus": self.rewards.reason_for_bonus,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "scheduled_time": self.scheduled_time.isoformat(),
            "actual_time": self.actual_time.isoformat() if self.actual_time else None,
            "minutes_late": self.minutes_late,
            "taken_late": self.taken_late,
            "late_logging": {
                "is_late": self.is_late,
                "warning_shown": self.warning_shown,
                "within_window": self.within_window,
                "max_late_minutes": self.max_late_minutes
            },
            "rewards": self.rewards.to_dict()
        }


def minutes_between(scheduled_time: datetime, actual_time: datetime) -> int:
    """Whole minutes from scheduled to actual, floored (negative when early)"""
    return math.floor((actual_time - scheduled_time).total_seconds() / 60)


def _coerce_status(status: Union[DoseStatus, str, None]) -> DoseStatus:
    try:
        parsed = DoseStatus(status)
    except ValueError:
        raise InvalidTransition(f"Unknown dose status: {status!r}")
    if parsed not in LOGGABLE_STATUSES:
        raise InvalidTransition(f"Status '{parsed.value}' cannot be logged")
    return parsed


class DoseLifecycleEngine:
    """
    Turns a dose event into the derived fields of a dose record.

    Pure: no storage access. Callers check for an existing record before
    finalizing and persist the outcome themselves.
    """

    def __init__(self, config=reward_config):
        self.config = config

    def finalize(
        self,
        scheduled_time: Optional[datetime],
        status: Union[DoseStatus, str],
        actual_time: Optional[datetime] = None,
        prior_streak: int = 0,
        max_late_minutes: Optional[int] = None,
        points_override: Optional[int] = None
    ) -> DoseOutcome:
        """
        Compute lateness and rewards for a dose.

        Args:
            scheduled_time: Instant the dose was due
            status: taken, missed, skipped or delayed
            actual_time: When it was taken (required for taken)
            prior_streak: Perfect-day streak before this dose
            max_late_minutes: Late logging window; beyond it only a token point is given
            points_override: Points for a non-taken dose (default 0)

        Returns:
            DoseOutcome

        Raises:
            InvalidTransition: missing scheduled time, unknown or pending status,
                or a taken dose without an actual time
        """
        if scheduled_time is None:
            raise InvalidTransition("scheduled_time is required")

        dose_status = _coerce_status(status)
        if max_late_minutes is None:
            max_late_minutes = settings.DEFAULT_LATE_WINDOW_MINUTES

        outcome = DoseOutcome(
            status=dose_status,
            scheduled_time=scheduled_time,
            actual_time=actual_time if dose_status == DoseStatus.TAKEN else None,
            max_late_minutes=max_late_minutes,
            rewards=DoseRewards(streak=prior_streak)
        )

        if dose_status != DoseStatus.TAKEN:
            outcome.rewards.points = points_override if points_override is not None else 0
            return outcome

        if actual_time is None:
            raise InvalidTransition("actual_time is required for a taken dose")

        self._classify_lateness(outcome, minutes_between(scheduled_time, actual_time))
        self._apply_streak_bonus(outcome.rewards, prior_streak)
        return outcome

    def _classify_lateness(self, outcome: DoseOutcome, diff: int) -> None:
        cfg = self.config
        rewards = outcome.rewards

        outcome.minutes_late = max(0, diff)
        outcome.taken_late = diff > cfg.ON_TIME_MINUTES
        outcome.is_late = diff > 0
        outcome.within_window = diff <= outcome.max_late_minutes

        # First matching tier wins
        if diff <= cfg.PERFECT_TIMING_MINUTES:
            rewards.points = cfg.PERFECT_TIMING_POINTS
            rewards.bonus_points += cfg.PERFECT_TIMING_BONUS
            rewards.reason_for_bonus = "Perfect timing"
        elif diff <= cfg.ON_TIME_MINUTES:
            rewards.points = cfg.ON_TIME_POINTS
        elif diff <= cfg.SLIGHTLY_LATE_MINUTES:
            rewards.points = cfg.SLIGHTLY_LATE_POINTS
            outcome.warning_shown = True
        elif outcome.within_window:
            rewards.points = cfg.LATE_POINTS
            outcome.warning_shown = True
        else:
            rewards.points = cfg.OUTSIDE_WINDOW_POINTS

    def _apply_streak_bonus(self, rewards: DoseRewards, prior_streak: int) -> None:
        cfg = self.config
        if prior_streak >= cfg.WEEK_STREAK_DAYS:
            rewards.bonus_points += cfg.WEEK_STREAK_BONUS
            rewards.reason_for_bonus = f"{cfg.WEEK_STREAK_DAYS}-day streak bonus"
        if prior_streak >= cfg.MONTH_STREAK_DAYS:
            rewards.bonus_points += cfg.MONTH_STREAK_BONUS
            rewards.reason_for_bonus = f"{cfg.MONTH_STREAK_DAYS}-day streak bonus"


# Singleton instance
dose_engine = DoseLifecycleEngine()


def finalize(
    scheduled_time: Optional[datetime],
    status: Union[DoseStatus, str],
    actual_time: Optional[datetime] = None,
    prior_streak: int = 0,
    max_late_minutes: Optional[int] = None,
    points_override: Optional[int] = None
) -> DoseOutcome:
    """Module-level shortcut for dose_engine.finalize"""
    return dose_engine.finalize(
        scheduled_time,
        status,
        actual_time=actual_time,
        prior_streak=prior_streak,
        max_late_minutes=max_late_minutes,
        points_override=points_override
    )
