"""
Rewards API Router
Endpoints for points, levels, achievements and the daily check-in
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_patient_id, services
from api.schemas.reward import (
    RewardSummaryResponse,
    AchievementList,
    DailyRewardResponse,
)


router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("/{patient_id}", response_model=RewardSummaryResponse)
async def get_rewards(
    patient_id: int = Depends(get_current_patient_id),
    db: Session = Depends(get_db)
):
    """
    Points, level, streaks, recent rewards and achievements
    """
    reward_service = services.get_reward_service()

    return await reward_service.get_rewards(patient_id, db=db)


@router.get("/{patient_id}/achievements", response_model=AchievementList)
async def get_achievements(
    patient_id: int = Depends(get_current_patient_id),
    db: Session = Depends(get_db)
):
    """Every achievement with unlock state and progress"""
    reward_service = services.get_reward_service()

    achievements = await reward_service.get_achievements(patient_id, db=db)

    return AchievementList(
        patient_id=patient_id,
        achievements=achievements,
        unlocked_count=sum(1 for a in achievements if a["unlocked"])
    )


@router.post("/{patient_id}/claim-daily", response_model=DailyRewardResponse)
async def claim_daily_reward(
    patient_id: int = Depends(get_current_patient_id),
    db: Session = Depends(get_db)
):
    """Claim the daily check-in points (once per day)"""
    reward_service = services.get_reward_service()

    try:
        return await reward_service.claim_daily_reward(patient_id, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
