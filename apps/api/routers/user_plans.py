"""The signed-in user's own plan library (copied, purchased, custom, or AI-generated)."""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.auth import get_current_user, is_admin
from core.database import get_db
from core.exceptions import BadRequestError, ForbiddenError
from models import PurchaseRecord, User, UserPlan
from routers.plans import get_plan_or_404
from schemas import CustomPlanCreate, UserPlanFromPlan, UserPlanResponse, WorkoutGenerateRequest
from services import ai_planner

router = APIRouter(prefix="/v1/user-plans", tags=["user-plans"])


def _has_purchased(db: Session, user: User, plan_id) -> bool:
    return db.query(PurchaseRecord.id).filter(
        PurchaseRecord.user_id == user.id,
        PurchaseRecord.plan_id == plan_id,
    ).first() is not None


@router.post("", response_model=UserPlanResponse, status_code=status.HTTP_201_CREATED)
def add_plan_to_library(
    payload: UserPlanFromPlan,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Copy a marketplace plan into the caller's library. Paid plans must be purchased first."""
    plan = get_plan_or_404(db, payload.plan_id, current_user)
    is_owner = plan.creator_id == current_user.id
    if plan.price > 0 and not (is_owner or is_admin(current_user) or _has_purchased(db, current_user, plan.id)):
        raise ForbiddenError("Purchase required for this plan")

    user_plan = UserPlan(
        user_id=current_user.id,
        plan_id=plan.id,
        name=plan.title,
        type=plan.type,
        source="purchase" if plan.price > 0 and not is_owner else "manual",
        level=plan.level,
        duration_weeks=plan.duration_weeks,
        schedule=plan.schedule or [],
    )
    db.add(user_plan)
    db.commit()
    db.refresh(user_plan)
    return user_plan


@router.post("/custom", response_model=UserPlanResponse, status_code=status.HTTP_201_CREATED)
def save_custom_plan(
    payload: CustomPlanCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    for index, exercise in enumerate(payload.exercises):
        if not isinstance(exercise, dict) or not isinstance(exercise.get("name"), str) or not isinstance(exercise.get("sets"), list):
            raise BadRequestError(
                f"Exercise at index {index} is invalid. Each must include a 'name' (string) and 'sets' (array)."
            )

    user_plan = UserPlan(
        user_id=current_user.id,
        name=payload.name.strip(),
        type=payload.type,
        source=payload.source,
        exercises=payload.exercises,
    )
    db.add(user_plan)
    db.commit()
    db.refresh(user_plan)
    return user_plan


@router.post("/generate", response_model=UserPlanResponse, status_code=status.HTTP_201_CREATED)
def generate_workout_plan(
    payload: WorkoutGenerateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Build a one-week AI workout plan (Pro/Elite) and add it to the library."""
    return ai_planner.generate_workout_plan(db, current_user, payload)


@router.get("", response_model=List[UserPlanResponse])
def list_user_plans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(UserPlan)
        .filter(UserPlan.user_id == current_user.id)
        .order_by(UserPlan.created_at.desc())
        .all()
    )
