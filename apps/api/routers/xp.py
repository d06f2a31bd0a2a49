"""XP, streak, workout history and weekly summary endpoints."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import User, WorkoutLog, XPTransaction
from schemas import (
    WeeklySummaryResponse,
    WorkoutLogCreate,
    WorkoutLogResponse,
    WorkoutXPResponse,
    XPStatusResponse,
    XPTransactionResponse,
)
from services import weekly_summary
from services.xp_ledger import get_or_create_xp_record, record_workout

router = APIRouter(prefix="/v1/xp", tags=["xp"])


@router.post("/workout", response_model=WorkoutXPResponse)
def log_workout(
    payload: WorkoutLogCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Log a workout and award XP for volume, PRs, streak, and challenge boosts."""
    return record_workout(db, current_user, payload)


@router.get("/workouts", response_model=List[WorkoutLogResponse])
def list_my_workouts(
    limit: int = Query(default=20, ge=1, le=100),
    before: Optional[datetime] = Query(default=None, description="Only workouts logged before this time"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Workout history, newest first. Pass the last `created_at` as `before` for the next page."""
    query = db.query(WorkoutLog).filter(WorkoutLog.user_id == current_user.id)
    if before is not None:
        query = query.filter(WorkoutLog.created_at < before)
    return query.order_by(WorkoutLog.created_at.desc()).limit(limit).all()


@router.get("/me", response_model=XPStatusResponse)
def get_my_xp(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = get_or_create_xp_record(db, current_user.id)
    db.commit()
    return record


@router.get("/ledger", response_model=List[XPTransactionResponse])
def get_my_ledger(
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(XPTransaction)
        .filter(XPTransaction.user_id == current_user.id)
        .order_by(XPTransaction.created_at.desc())
        .limit(limit)
        .all()
    )


@router.post("/weekly-summary", response_model=WeeklySummaryResponse)
def generate_weekly_summary(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return weekly_summary.generate_for_user(db, current_user)
