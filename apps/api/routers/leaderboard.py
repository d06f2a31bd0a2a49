"""Lift leaderboard endpoints."""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import BadRequestError
from models import User
from schemas import LeaderboardEntryResponse, LeaderboardResponse, LeaderboardSubmit
from services import leaderboard

router = APIRouter(prefix="/v1/leaderboard", tags=["leaderboard"])


@router.post("", response_model=LeaderboardEntryResponse, status_code=status.HTTP_201_CREATED)
def submit_lift(
    payload: LeaderboardSubmit,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not payload.exercise.strip() or not payload.gym.strip() or not payload.video_url.strip():
        raise BadRequestError("Exercise, gym and video URL are required")
    entry = leaderboard.submit_entry(db, current_user, payload)
    return leaderboard.serialize_entry(entry)


@router.get("", response_model=LeaderboardResponse)
def get_leaderboard(
    exercise: str = Query(min_length=1),
    scope: Literal["global", "gym"] = Query(default="global"),
    gym: Optional[str] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Top lifts by weight, plus the caller's rank and best lift."""
    if scope == "gym":
        gym = gym or current_user.gym
        if not gym:
            raise BadRequestError("Gym is required for the gym leaderboard")
    return leaderboard.get_leaderboard(db, current_user, exercise, scope=scope, gym=gym)
