"""
Achievement Engine
Achievement unlocks, levels and reward summaries derived from dose history.
Nothing here is persisted; every read recomputes from the records.
"""

from typing import Dict, List, Optional, Any, Iterable, Callable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

from config import reward_config
from models import DoseStatus
from actions.adherence_engine import adherence_engine, DoseSnapshot, StreakState
from actions.dose_engine import minutes_between


@dataclass(frozen=True)
class AchievementDefinition:
    """Static description of an achievement"""
    id: str
    title: str
    description: str
    icon: str
    points: int
    category: str
    rarity: str
    target: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "icon": self.icon,
            "points": self.points,
            "category": self.category,
            "rarity": self.rarity,
        }


ACHIEVEMENT_DEFINITIONS: Dict[str, AchievementDefinition] = {
    "first_dose": AchievementDefinition(
        id="first_dose",
        title="First Step",
        description="Log your first medication dose",
        icon="🎯",
        points=50,
        category="milestone",
        rarity="common",
        target=1,
    ),
    "perfect_week": AchievementDefinition(
        id="perfect_week",
        title="Perfect Week",
        description="Take all medications on time for 7 days",
        icon="🏆",
        points=150,
        category="consistency",
        rarity="rare",
        target=100,
    ),
    "early_bird": AchievementDefinition(
        id="early_bird",
        title="Early Bird",
        description="Take morning medications before 8 AM for 5 days",
        icon="🌅",
        points=100,
        category="timing",
        rarity="uncommon",
        target=5,
    ),
    "consistency_champion": AchievementDefinition(
        id="consistency_champion",
        title="Consistency Champion",
        description="Maintain 95% adherence for a month",
        icon="👑",
        points=300,
        category="consistency",
        rarity="epic",
        target=95,
    ),
    "month_master": AchievementDefinition(
        id="month_master",
        title="Month Master",
        description="Complete 30 days of medication tracking",
        icon="📅",
        points=200,
        category="milestone",
        rarity="rare",
        target=30,
    ),
    "perfect_timing": AchievementDefinition(
        id="perfect_timing",
        title="Perfect Timing",
        description="Take 10 doses within 15 minutes of scheduled time",
        icon="⏰",
        points=120,
        category="timing",
        rarity="uncommon",
        target=10,
    ),
    "streak_starter": AchievementDefinition(
        id="streak_starter",
        title="Streak Starter",
        description="Maintain a 7-day streak",
        icon="🔥",
        points=75,
        category="streak",
        rarity="common",
        target=7,
    ),
}

EARLY_BIRD_CUTOFF = time(8, 0)


@dataclass
class AchievementStatus:
    """Evaluated state of one achievement"""
    definition: AchievementDefinition
    current: float = 0
    unlocked_at: Optional[datetime] = None

    @property
    def unlocked(self) -> bool:
        return self.current >= self.definition.target

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.definition.to_dict(),
            "unlocked": self.unlocked,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
            "progress": {
                "current": min(round(self.current, 1), self.definition.target),
                "target": self.definition.target,
            },
        }


@dataclass
class RewardSummary:
    """Everything the rewards screen shows"""
    total_points: int
    level: int
    points_to_next_level: int
    current_streak: int
    best_streak: int
    recent_rewards: List[Dict[str, Any]] = field(default_factory=list)
    achievements: List[AchievementStatus] = field(default_factory=list)
    daily_progress: Dict[str, Any] = field(default_factory=dict)
    weekly_progress: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_points": self.total_points,
            "level": self.level,
            "points_to_next_level": self.points_to_next_level,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "recent_rewards": self.recent_rewards,
            "achievements": [a.to_dict() for a in self.achievements],
            "unlocked_count": sum(1 for a in self.achievements if a.unlocked),
            "daily_progress": self.daily_progress,
            "weekly_progress": self.weekly_progress,
        }


def compute_level(total_points: int) -> Dict[str, int]:
    """Level is 1 + one per POINTS_PER_LEVEL points"""
    per_level = reward_config.POINTS_PER_LEVEL
    level = total_points // per_level + 1
    return {
        "level": level,
        "points_to_next_level": level * per_level - total_points,
    }


class AchievementTracker:
    """
    Evaluates achievement rules against dose history.

    Count rules unlock on the record that reaches the target; window rules
    (weekly/monthly rate, streak length) unlock as of the evaluation time.
    """

    def __init__(self, definitions: Optional[Dict[str, AchievementDefinition]] = None):
        self.definitions = definitions or ACHIEVEMENT_DEFINITIONS
        self._rules: Dict[str, Callable] = {
            "first_dose": self._first_dose,
            "perfect_week": self._perfect_week,
            "early_bird": self._early_bird,
            "consistency_champion": self._consistency_champion,
            "month_master": self._month_master,
            "perfect_timing": self._perfect_timing,
            "streak_starter": self._streak_starter,
        }

    def evaluate(
        self,
        records: Iterable[DoseSnapshot],
        now: datetime,
        streak: Optional[StreakState] = None
    ) -> List[AchievementStatus]:
        """Status of every known achievement, in definition order"""
        records = sorted(records, key=lambda r: r.scheduled_time)
        if streak is None:
            streak = adherence_engine.streaks(records, now.date())

        statuses = []
        for achievement_id, definition in self.definitions.items():
            rule = self._rules.get(achievement_id)
            status = AchievementStatus(definition=definition)
            if rule is not None:
                rule(status, records, now, streak)
            statuses.append(status)
        return statuses

    # ==================== RULES ====================

    @staticmethod
    def _taken(records: List[DoseSnapshot]) -> List[DoseSnapshot]:
        return [r for r in records if r.status == DoseStatus.TAKEN]

    @staticmethod
    def _unlock_on_nth(status: AchievementStatus, matches: List[DoseSnapshot]) -> None:
        status.current = len(matches)
        target = status.definition.target
        if len(matches) >= target:
            nth = matches[target - 1]
            status.unlocked_at = nth.actual_time or nth.scheduled_time

    def _first_dose(self, status, records, now, streak) -> None:
        self._unlock_on_nth(status, self._taken(records))

    def _perfect_timing(self, status, records, now, streak) -> None:
        matches = [
            r for r in self._taken(records)
            if r.actual_time is not None
            and minutes_between(r.scheduled_time, r.actual_time) <= reward_config.PERFECT_TIMING_MINUTES
        ]
        matches.sort(key=lambda r: r.actual_time)
        self._unlock_on_nth(status, matches)

    def _early_bird(self, status, records, now, streak) -> None:
        first_per_day = {}
        for record in self._taken(records):
            if record.actual_time is None or record.actual_time.time() >= EARLY_BIRD_CUTOFF:
                continue
            day = record.actual_time.date()
            if day not in first_per_day or record.actual_time < first_per_day[day].actual_time:
                first_per_day[day] = record
        matches = [first_per_day[day] for day in sorted(first_per_day)]
        self._unlock_on_nth(status, matches)

    def _window_rate(self, status, records, now, days: int) -> None:
        window = adherence_engine.aggregate(records, now - timedelta(days=days), now)
        status.current = window.taken_rate
        if status.unlocked:
            status.unlocked_at = now

    def _perfect_week(self, status, records, now, streak) -> None:
        self._window_rate(status, records, now, 7)

    def _consistency_champion(self, status, records, now, streak) -> None:
        self._window_rate(status, records, now, 30)

    @staticmethod
    def _streak_rule(status, streak: StreakState, now: datetime) -> None:
        status.current = streak.current_streak
        if status.unlocked:
            status.unlocked_at = now

    def _streak_starter(self, status, records, now, streak) -> None:
        self._streak_rule(status, streak, now)

    def _month_master(self, status, records, now, streak) -> None:
        self._streak_rule(status, streak, now)

    # ==================== SUMMARY ====================

    def summarize_rewards(
        self,
        records: Iterable[DoseSnapshot],
        ledger_points: int,
        now: datetime
    ) -> RewardSummary:
        """
        Derive the full rewards view.

        Args:
            records: Dose history for the patient
            ledger_points: Sum of manually granted points
            now: Evaluation time

        Returns:
            RewardSummary
        """
        records = sorted(records, key=lambda r: r.scheduled_time)
        streak = adherence_engine.streaks(records, now.date())

        total_points = sum(r.total_points for r in records) + ledger_points
        level = compute_level(total_points)

        rewarded = [r for r in records if r.total_points > 0]
        recent = sorted(rewarded, key=lambda r: r.scheduled_time, reverse=True)
        recent = recent[:reward_config.RECENT_REWARDS_LIMIT]

        day_start = datetime.combine(now.date(), time.min)
        day_end = datetime.combine(now.date(), time.max)
        week_start = datetime.combine(now.date() - timedelta(days=6), time.min)

        return RewardSummary(
            total_points=total_points,
            level=level["level"],
            points_to_next_level=level["points_to_next_level"],
            current_streak=streak.current_streak,
            best_streak=streak.best_streak,
            recent_rewards=[
                {
                    "dose_id": r.id,
                    "medication_name": r.medication_name,
                    "scheduled_time": r.scheduled_time.isoformat(),
                    "points": r.points,
                    "bonus_points": r.bonus_points,
                    "reason_for_bonus": r.reason_for_bonus,
                }
                for r in recent
            ],
            achievements=self.evaluate(records, now, streak),
            daily_progress=adherence_engine.daily_progress(records, day_start, day_end),
            weekly_progress=adherence_engine.daily_progress(records, week_start, day_end),
        )


# Singleton instance
achievement_tracker = AchievementTracker()
