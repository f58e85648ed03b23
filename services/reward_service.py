"""
Reward Service
Points, levels, achievements and the daily check-in ledger
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from config import reward_config
from database import get_db_context
import models
from models import LedgerEntryKind
from actions.achievement_engine import achievement_tracker, compute_level
from services.dose_service import dose_service
from tools.clock import utcnow


logger = logging.getLogger(__name__)


HISTORY_START = datetime(1970, 1, 1)
HISTORY_END = datetime.max


class RewardService:
    """
    Service for gamified rewards.

    Totals are always derived from dose records plus ledger entries; there
    is no stored balance to keep in sync.
    """

    def __init__(self, store=dose_service, tracker=achievement_tracker):
        self.store = store
        self.tracker = tracker

    def ledger_points(self, patient_id: int, db: Optional[Session] = None) -> int:
        """Sum of ledger grants for a patient"""
        def _sum(session: Session) -> int:
            total = session.query(func.coalesce(func.sum(models.RewardLedgerEntry.points), 0)).filter(
                models.RewardLedgerEntry.patient_id == patient_id
            ).scalar()
            return int(total or 0)

        if db:
            return _sum(db)

        with get_db_context() as session:
            return _sum(session)

    async def get_rewards(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Points, level, streaks, recent rewards, achievements and progress"""
        now = now or utcnow()
        records = self.store.query(patient_id, HISTORY_START, HISTORY_END, db=db)
        summary = self.tracker.summarize_rewards(records, self.ledger_points(patient_id, db=db), now)
        return {"patient_id": patient_id, **summary.to_dict()}

    async def get_achievements(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """Every achievement with unlock state and progress"""
        now = now or utcnow()
        records = self.store.query(patient_id, HISTORY_START, HISTORY_END, db=db)
        return [status.to_dict() for status in self.tracker.evaluate(records, now)]

    async def claim_daily_reward(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Grant the daily check-in points, once per calendar day

        Raises:
            ValueError: if today's reward was already claimed
        """
        now = now or utcnow()
        today = now.date()

        def _claim(session: Session) -> Dict[str, Any]:
            existing = session.query(models.RewardLedgerEntry).filter(
                models.RewardLedgerEntry.patient_id == patient_id,
                models.RewardLedgerEntry.kind == LedgerEntryKind.DAILY_CHECK_IN,
                models.RewardLedgerEntry.claim_date == today
            ).first()
            if existing:
                raise ValueError("Daily reward already claimed today")

            entry = models.RewardLedgerEntry(
                patient_id=patient_id,
                kind=LedgerEntryKind.DAILY_CHECK_IN,
                points=reward_config.DAILY_CHECK_IN_POINTS,
                claim_date=today,
                note="Daily check-in",
                granted_at=now
            )
            session.add(entry)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ValueError("Daily reward already claimed today")

            records = self.store.query(patient_id, HISTORY_START, HISTORY_END, db=session)
            total_points = sum(r.total_points for r in records) + self.ledger_points(patient_id, db=session)

            logger.info(f"Patient {patient_id} claimed daily reward ({entry.points} points)")
            return {
                "patient_id": patient_id,
                "points_awarded": entry.points,
                "claim_date": today.isoformat(),
                "total_points": total_points,
                **compute_level(total_points),
            }

        if db:
            return _claim(db)

        with get_db_context() as session:
            return _claim(session)


# Singleton instance
reward_service = RewardService()
