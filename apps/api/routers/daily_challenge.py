"""Tier-based daily challenge endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import User
from schemas import DailyChallengeResponse
from services import daily_challenge

router = APIRouter(prefix="/v1/daily-challenge", tags=["daily-challenge"])


@router.post("", response_model=DailyChallengeResponse)
def generate_daily_challenge(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Generate a fresh challenge for the caller's tier, replacing the previous one."""
    return daily_challenge.generate_for_user(db, current_user)


@router.get("", response_model=Optional[DailyChallengeResponse])
def get_daily_challenge(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return daily_challenge.get_current(db, current_user)


@router.post("/complete")
def complete_daily_challenge(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = daily_challenge.complete(db, current_user)
    return {
        "success": True,
        "challenge": DailyChallengeResponse.model_validate(result["challenge"]),
        "xp_awarded": result["xp_awarded"],
        "xp_total": result["xp_total"],
    }
