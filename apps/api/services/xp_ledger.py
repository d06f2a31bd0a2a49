"""
XP Ledger Service

XP is both a score and the stake currency for wager challenges, so every
balance change goes through adjust_xp(): it locks the user's XPRecord row,
applies a single-statement increment, and appends an XPTransaction.

Streaks are day-boundary based (UTC calendar days):
- first workout (or unreadable last timestamp): streak 1
- another workout on the same day: streak unchanged, not a new day
- any gap of one day or more: streak resets to 1
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Optional, Union
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.exceptions import BadRequestError
from models import User, WorkoutLog, XPRecord, XPTransaction
from schemas import WorkoutLogCreate
from services.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

VOLUME_PER_XP = 200
PR_BONUS_XP = 10
STREAK_BONUS_CAP = 15
STREAK_BONUS_CAP_AFTER_DAYS = 5
CHALLENGE_BOOST_XP = 25


@dataclass
class StreakResult:
    streak: int
    is_new_day: bool


@dataclass
class WorkoutXP:
    base: int
    pr_bonus: int
    streak_bonus: int
    challenge_boost: int

    @property
    def total(self) -> int:
        return self.base + self.pr_bonus + self.streak_bonus + self.challenge_boost

    def breakdown(self) -> Dict[str, int]:
        return asdict(self)


def calculate_streak(
    last_workout_at: Optional[Union[datetime, str]],
    current_streak: int = 0,
    now: Optional[datetime] = None,
) -> StreakResult:
    """Streak after logging a workout at `now` given the previous workout time."""
    if isinstance(last_workout_at, str):
        try:
            last_workout_at = datetime.fromisoformat(last_workout_at)
        except ValueError:
            return StreakResult(streak=1, is_new_day=True)

    if not isinstance(last_workout_at, datetime):
        return StreakResult(streak=1, is_new_day=True)

    now = as_utc(now) if now else utcnow()
    days_since = (now.date() - as_utc(last_workout_at).date()).days

    if days_since <= 0:
        return StreakResult(streak=current_streak, is_new_day=False)
    return StreakResult(streak=1, is_new_day=True)


def calculate_workout_xp(
    volume: float,
    pr_count: int = 0,
    streak: int = 0,
    is_challenge: bool = False,
) -> WorkoutXP:
    if streak > STREAK_BONUS_CAP_AFTER_DAYS:
        streak_bonus = STREAK_BONUS_CAP
    else:
        streak_bonus = max(0, streak) * 2

    return WorkoutXP(
        base=int(max(0.0, volume) // VOLUME_PER_XP),
        pr_bonus=max(0, pr_count) * PR_BONUS_XP,
        streak_bonus=streak_bonus,
        challenge_boost=CHALLENGE_BOOST_XP if is_challenge else 0,
    )


def get_or_create_xp_record(db: Session, user_id: UUID, *, lock: bool = False) -> XPRecord:
    query = db.query(XPRecord).filter(XPRecord.user_id == user_id)
    if lock:
        query = query.with_for_update()
    record = query.first()
    if record is None:
        record = XPRecord(user_id=user_id, xp=0, streak=0)
        db.add(record)
        db.flush()
    return record


def adjust_xp(
    db: Session,
    user_id: UUID,
    amount: int,
    reason: str,
    challenge_id: Optional[UUID] = None,
) -> int:
    """
    Apply a signed XP change and record it in the ledger.

    Raises BadRequestError when a debit would take the balance below zero.
    Returns the new balance. Does not commit.
    """
    record = get_or_create_xp_record(db, user_id, lock=True)
    if amount < 0 and record.xp + amount < 0:
        raise BadRequestError("Insufficient XP")

    db.query(XPRecord).filter(XPRecord.user_id == user_id).update(
        {XPRecord.xp: XPRecord.xp + amount},
        synchronize_session=False,
    )
    db.refresh(record)

    db.add(XPTransaction(
        user_id=user_id,
        amount=amount,
        reason=reason,
        challenge_id=challenge_id,
        balance_after=record.xp,
    ))
    db.flush()

    logger.info(
        "XP adjusted",
        extra={
            "extra_fields": {
                "user_id": str(user_id),
                "amount": amount,
                "reason": reason,
                "challenge_id": str(challenge_id) if challenge_id else None,
                "balance_after": record.xp,
            }
        },
    )
    return record.xp


def record_workout(db: Session, user: User, payload: WorkoutLogCreate) -> Dict:
    """Log a workout, advance the streak, and award workout XP."""
    now = utcnow()
    record = get_or_create_xp_record(db, user.id, lock=True)

    streak = calculate_streak(record.last_workout_at, record.streak, now=now)
    volume = sum(e.sets * e.reps * e.weight for e in payload.exercises)
    xp = calculate_workout_xp(
        volume=volume,
        pr_count=payload.pr_count,
        streak=streak.streak,
        is_challenge=payload.is_challenge,
    )

    record.streak = streak.streak
    record.last_workout_at = now
    db.add(WorkoutLog(
        user_id=user.id,
        exercises=[e.model_dump() for e in payload.exercises],
        volume=volume,
        pr_count=payload.pr_count,
        is_challenge=payload.is_challenge,
        xp_earned=xp.total,
    ))
    db.flush()

    balance = record.xp
    if xp.total > 0:
        balance = adjust_xp(db, user.id, xp.total, "workout")

    db.commit()

    return {
        "xp_earned": xp.total,
        "breakdown": xp.breakdown(),
        "volume": volume,
        "xp_total": balance,
        "streak": streak.streak,
        "is_new_day": streak.is_new_day,
    }
