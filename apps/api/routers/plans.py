"""
Plan marketplace endpoints.

Browsing is public. Creators manage their own plans; deletion is an admin
action.
"""
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import ensure_self_or_admin, get_current_user, get_current_user_optional, is_admin, require_admin
from core.database import get_db
from core.exceptions import NotFoundError
from models import Plan, User
from schemas import PlanCreate, PlanResponse, PlanUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/plans", tags=["plans"])

PAGE_SIZE = 20


def get_plan_or_404(db: Session, plan_id: UUID, viewer: Optional[User] = None) -> Plan:
    plan = db.get(Plan, plan_id)
    if plan is None:
        raise NotFoundError("Plan", str(plan_id))
    # Private plans are only visible to their creator and admins
    if not plan.is_public and not (viewer and (viewer.id == plan.creator_id or is_admin(viewer))):
        raise NotFoundError("Plan", str(plan_id))
    return plan


@router.get("", response_model=List[PlanResponse])
def list_marketplace_plans(
    limit: int = Query(default=PAGE_SIZE, ge=1, le=100),
    type: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    """Public plans, newest first."""
    query = db.query(Plan).filter(Plan.is_public.is_(True))
    if type:
        query = query.filter(Plan.type == type)
    return query.order_by(Plan.created_at.desc()).limit(limit).all()


@router.get("/{plan_id}", response_model=PlanResponse)
def get_plan(
    plan_id: UUID,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    return get_plan_or_404(db, plan_id, current_user)


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: PlanCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = Plan(creator_id=current_user.id, **payload.model_dump())
    db.add(plan)
    db.commit()
    db.refresh(plan)

    logger.info("Plan created", extra={"extra_fields": {"plan_id": str(plan.id), "creator_id": str(current_user.id)}})
    return plan


@router.patch("/{plan_id}", response_model=PlanResponse)
def update_plan(
    plan_id: UUID,
    payload: PlanUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = get_plan_or_404(db, plan_id, current_user)
    ensure_self_or_admin(current_user, plan.creator_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(plan, field, value)
    db.commit()
    db.refresh(plan)
    return plan


@router.delete("/{plan_id}")
def delete_plan(
    plan_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    plan = db.get(Plan, plan_id)
    if plan is None:
        raise NotFoundError("Plan", str(plan_id))
    db.delete(plan)
    db.commit()
    logger.info("Plan deleted", extra={"extra_fields": {"plan_id": str(plan_id), "admin_id": str(admin.id)}})
    return {"success": True}
