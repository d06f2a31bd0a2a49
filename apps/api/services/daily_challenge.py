"""
Tier-based daily challenges.

Elite and Pro users get a lifting-volume target, everyone else a fixed
push-up count. Each user holds at most one challenge; generating a new one
replaces the old.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional
import logging
import random

from sqlalchemy.orm import Session

from core.exceptions import BadRequestError, NotFoundError
from models import DailyChallenge, User
from services.time_utils import as_utc, utcnow
from services.xp_ledger import adjust_xp

logger = logging.getLogger(__name__)

CHALLENGE_DURATION = timedelta(hours=24)

VOLUME_MINIMUMS = {"elite": 3000, "pro": 2000}
VOLUME_SPREAD = 5000
VOLUME_XP_DIVISOR = 20

PUSH_UP_REPS = 30
PUSH_UP_XP_PER_REP = 2


def build_challenge_fields(tier: str, rng: Optional[random.Random] = None) -> Dict:
    rng = rng or random
    minimum = VOLUME_MINIMUMS.get(tier)
    if minimum is not None:
        target = minimum + rng.randrange(VOLUME_SPREAD)
        return {"kind": "volume", "exercise": "Any", "target": target, "xp_reward": target // VOLUME_XP_DIVISOR}
    return {
        "kind": "reps",
        "exercise": "Push-ups",
        "target": PUSH_UP_REPS,
        "xp_reward": PUSH_UP_REPS * PUSH_UP_XP_PER_REP,
    }


def generate_for_user(db: Session, user: User, now: Optional[datetime] = None) -> DailyChallenge:
    now = now or utcnow()
    existing = db.query(DailyChallenge).filter(DailyChallenge.user_id == user.id).first()
    if existing is not None:
        db.delete(existing)
        db.flush()

    challenge = DailyChallenge(
        user_id=user.id,
        due_at=now + CHALLENGE_DURATION,
        completed=False,
        **build_challenge_fields(user.tier),
    )
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    return challenge


def get_current(db: Session, user: User) -> Optional[DailyChallenge]:
    return db.query(DailyChallenge).filter(DailyChallenge.user_id == user.id).first()


def complete(db: Session, user: User, now: Optional[datetime] = None) -> Dict:
    now = now or utcnow()
    challenge = (
        db.query(DailyChallenge)
        .filter(DailyChallenge.user_id == user.id)
        .with_for_update()
        .first()
    )
    if challenge is None:
        raise NotFoundError("Daily challenge")
    if challenge.completed:
        raise BadRequestError("Daily challenge already completed")
    if as_utc(challenge.due_at) <= now:
        raise BadRequestError("Daily challenge has expired")

    challenge.completed = True
    challenge.completed_at = now
    balance = adjust_xp(db, user.id, challenge.xp_reward, "daily_challenge")
    db.commit()
    db.refresh(challenge)

    return {"challenge": challenge, "xp_awarded": challenge.xp_reward, "xp_total": balance}


def generate_for_all_users(db: Session) -> Dict[str, int]:
    counts = {"generated": 0, "failed": 0}
    for user in db.query(User).filter(User.is_blocked.is_(False)).all():
        try:
            generate_for_user(db, user)
            counts["generated"] += 1
        except Exception as e:
            db.rollback()
            counts["failed"] += 1
            logger.error(f"Daily challenge generation failed for {user.id}: {e}", exc_info=True)
    return counts
