"""Weekly training summary: the last 7 days of workout logs rolled up per user."""

from datetime import datetime, timedelta
from typing import Dict, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import User, WeeklySummary, WorkoutLog, XPRecord
from services.time_utils import start_of_week, utcnow

logger = logging.getLogger(__name__)

SUMMARY_WINDOW = timedelta(days=7)


def build_summary(db: Session, user_id, now: Optional[datetime] = None) -> WeeklySummary:
    """Create or refresh the summary row for the week containing `now`. Does not commit."""
    now = now or utcnow()
    since = now - SUMMARY_WINDOW

    workouts, volume, xp = (
        db.query(
            func.count(WorkoutLog.id),
            func.coalesce(func.sum(WorkoutLog.volume), 0.0),
            func.coalesce(func.sum(WorkoutLog.xp_earned), 0),
        )
        .filter(WorkoutLog.user_id == user_id, WorkoutLog.created_at >= since)
        .one()
    )
    record = db.get(XPRecord, user_id)

    week_start = start_of_week(now.date())
    summary = (
        db.query(WeeklySummary)
        .filter(WeeklySummary.user_id == user_id, WeeklySummary.week_start == week_start)
        .first()
    )
    if summary is None:
        summary = WeeklySummary(user_id=user_id, week_start=week_start)
        db.add(summary)

    summary.workouts_completed = int(workouts or 0)
    summary.total_volume = float(volume or 0.0)
    summary.total_xp = int(xp or 0)
    summary.streak = record.streak if record else 0
    db.flush()
    return summary


def generate_for_user(db: Session, user: User, now: Optional[datetime] = None) -> WeeklySummary:
    summary = build_summary(db, user.id, now=now)
    db.commit()
    db.refresh(summary)
    return summary


def generate_for_all_users(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    counts = {"generated": 0, "failed": 0}
    for (user_id,) in db.query(User.id).filter(User.is_blocked.is_(False)).all():
        try:
            build_summary(db, user_id, now=now)
            db.commit()
            counts["generated"] += 1
        except Exception as e:
            db.rollback()
            counts["failed"] += 1
            logger.error(f"Weekly summary failed for {user_id}: {e}", exc_info=True)
    return counts
