"""
Reward Schemas
Pydantic models for points, levels and achievements
"""

from typing import Optional, List
from pydantic import BaseModel, Field


class AchievementProgress(BaseModel):
    current: float
    target: int


class AchievementResponse(BaseModel):
    """An achievement with unlock state"""
    id: str
    title: str
    description: str
    icon: str
    points: int
    category: str
    rarity: str
    unlocked: bool
    unlocked_at: Optional[str] = None
    progress: AchievementProgress


class AchievementList(BaseModel):
    patient_id: int
    achievements: List[AchievementResponse]
    unlocked_count: int


class RecentReward(BaseModel):
    """A dose that earned points"""
    dose_id: Optional[int] = None
    medication_name: Optional[str] = None
    scheduled_time: str
    points: int
    bonus_points: int
    reason_for_bonus: Optional[str] = None


class Progress(BaseModel):
    total: int
    completed: int
    percentage: float = Field(..., ge=0, le=100)


class RewardSummaryResponse(BaseModel):
    """Everything the rewards screen shows"""
    patient_id: int
    total_points: int
    level: int = Field(..., ge=1)
    points_to_next_level: int
    current_streak: int
    best_streak: int
    recent_rewards: List[RecentReward]
    achievements: List[AchievementResponse]
    unlocked_count: int
    daily_progress: Progress
    weekly_progress: Progress


class DailyRewardResponse(BaseModel):
    """Result of the daily check-in claim"""
    patient_id: int
    points_awarded: int
    claim_date: str
    total_points: int
    level: int
    points_to_next_level: int
