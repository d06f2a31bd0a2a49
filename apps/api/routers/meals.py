"""Meal plans: AI generation (Pro/Elite), saving, and the user's history."""
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
import logging

from core.auth import get_current_user
from core.database import get_db
from models import MealPlan, User
from schemas import MealGenerateRequest, MealGenerateResponse, MealPlanCreate, MealPlanResponse
from services import ai_planner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/meals", tags=["meals"])

DEFAULT_PAGE_SIZE = 20


@router.post("/generate", response_model=MealGenerateResponse)
def generate_meals(
    payload: MealGenerateRequest,
    current_user: User = Depends(get_current_user),
):
    """Draft meals for the given targets. Nothing is stored until the plan is saved."""
    return ai_planner.generate_meal_plan(current_user, payload)


@router.post("", response_model=MealPlanResponse, status_code=status.HTTP_201_CREATED)
def save_meal_plan(
    payload: MealPlanCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    meal_plan = MealPlan(
        user_id=current_user.id,
        goal=payload.goal.strip(),
        calories=payload.calories,
        macros=payload.macros.model_dump(),
        meals=payload.meals,
        preferences=payload.preferences.strip(),
    )
    db.add(meal_plan)
    db.commit()
    db.refresh(meal_plan)

    logger.info(
        "Meal plan saved",
        extra={
            "extra_fields": {
                "user_id": str(current_user.id),
                "meal_plan_id": str(meal_plan.id),
                "meals": len(payload.meals),
            }
        },
    )
    return meal_plan


@router.get("", response_model=List[MealPlanResponse])
def list_meal_plans(
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's saved meal plans, newest first."""
    return (
        db.query(MealPlan)
        .filter(MealPlan.user_id == current_user.id)
        .order_by(MealPlan.created_at.desc())
        .limit(limit)
        .all()
    )
