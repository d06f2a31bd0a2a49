"""
Lift leaderboard.

Entries are ranked by weight. A user's rank counts distinct users whose
best lift for the exercise (within the same scope) is heavier.
"""

from typing import Dict, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from core.cache import get_cache, invalidate_leaderboard_cache, leaderboard_key, set_cache
from core.config import settings
from models import LeaderboardEntry, User
from schemas import LeaderboardSubmit

logger = logging.getLogger(__name__)

TOP_N = 20
SCOPES = ("global", "gym")


def normalize_exercise(exercise: str) -> str:
    return exercise.strip().lower()


def serialize_entry(entry: LeaderboardEntry) -> Dict:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "username": entry.user.username if entry.user else None,
        "exercise": entry.exercise,
        "weight": entry.weight,
        "reps": entry.reps,
        "gym": entry.gym,
        "tier": entry.tier,
        "video_url": entry.video_url,
        "location": entry.location,
        "created_at": entry.created_at,
    }


def submit_entry(db: Session, user: User, payload: LeaderboardSubmit) -> LeaderboardEntry:
    location = None
    # bool is an int subclass; reject it explicitly
    if all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (payload.lat, payload.lng)):
        location = {"lat": float(payload.lat), "lng": float(payload.lng)}

    entry = LeaderboardEntry(
        user_id=user.id,
        exercise=normalize_exercise(payload.exercise),
        weight=payload.weight,
        reps=payload.reps,
        gym=payload.gym.strip(),
        location=location,
        video_url=payload.video_url,
        tier=payload.tier,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)

    invalidate_leaderboard_cache(entry.exercise)
    logger.info(
        "Leaderboard entry submitted",
        extra={"extra_fields": {"user_id": str(user.id), "exercise": entry.exercise, "weight": entry.weight}},
    )
    return entry


def _scoped(query, exercise: str, gym: Optional[str]):
    query = query.filter(LeaderboardEntry.exercise == exercise)
    if gym:
        query = query.filter(LeaderboardEntry.gym == gym)
    return query


def top_entries(db: Session, exercise: str, gym: Optional[str] = None, limit: int = TOP_N) -> List[Dict]:
    key = leaderboard_key(exercise, gym, limit)
    cached = get_cache(key)
    if cached is not None:
        return cached

    entries = (
        _scoped(db.query(LeaderboardEntry), exercise, gym)
        .options(joinedload(LeaderboardEntry.user))
        .order_by(LeaderboardEntry.weight.desc(), LeaderboardEntry.created_at.asc())
        .limit(limit)
        .all()
    )
    result = [serialize_entry(e) for e in entries]
    set_cache(key, result, ttl=settings.CACHE_TTL_LEADERBOARD)
    return result


def user_best(db: Session, user: User, exercise: str, gym: Optional[str] = None) -> Optional[LeaderboardEntry]:
    return (
        _scoped(db.query(LeaderboardEntry), exercise, gym)
        .filter(LeaderboardEntry.user_id == user.id)
        .order_by(LeaderboardEntry.weight.desc(), LeaderboardEntry.created_at.asc())
        .first()
    )


def user_rank(db: Session, best_weight: float, exercise: str, gym: Optional[str] = None) -> int:
    bests = (
        _scoped(db.query(LeaderboardEntry.user_id, func.max(LeaderboardEntry.weight).label("best")), exercise, gym)
        .group_by(LeaderboardEntry.user_id)
        .subquery()
    )
    heavier = db.query(func.count()).select_from(bests).filter(bests.c.best > best_weight).scalar()
    return 1 + (heavier or 0)


def get_leaderboard(
    db: Session,
    user: User,
    exercise: str,
    scope: str = "global",
    gym: Optional[str] = None,
) -> Dict:
    exercise = normalize_exercise(exercise)
    gym = gym.strip() if gym and scope == "gym" else None

    best = user_best(db, user, exercise, gym)
    return {
        "exercise": exercise,
        "scope": scope,
        "gym": gym,
        "entries": top_entries(db, exercise, gym),
        "user_rank": user_rank(db, best.weight, exercise, gym) if best else None,
        "user_best": serialize_entry(best) if best else None,
    }
