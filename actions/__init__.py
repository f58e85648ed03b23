"""
Actions Module
Engines for dose lifecycle, adherence aggregation and achievements

The reminder scheduler lives in actions.reminder_engine and is imported
directly, since it depends on the service layer.
"""

from .dose_engine import (
    DoseLifecycleEngine,
    DoseOutcome,
    DoseRewards,
    InvalidTransition,
    DuplicateDose,
    dose_engine,
    finalize
)

from .adherence_engine import (
    AdherenceEngine,
    AdherenceWindow,
    DoseSnapshot,
    StreakState,
    CalendarDay,
    TrendBucket,
    adherence_engine
)

from .achievement_engine import (
    AchievementDefinition,
    AchievementStatus,
    AchievementTracker,
    ACHIEVEMENT_DEFINITIONS,
    achievement_tracker,
    compute_level
)


__all__ = [
    # Dose Engine
    "DoseLifecycleEngine",
    "DoseOutcome",
    "DoseRewards",
    "InvalidTransition",
    "DuplicateDose",
    "dose_engine",
    "finalize",

    # Adherence Engine
    "AdherenceEngine",
    "AdherenceWindow",
    "DoseSnapshot",
    "StreakState",
    "CalendarDay",
    "TrendBucket",
    "adherence_engine",

    # Achievement Engine
    "AchievementDefinition",
    "AchievementStatus",
    "AchievementTracker",
    "ACHIEVEMENT_DEFINITIONS",
    "achievement_tracker",
    "compute_level",
]
