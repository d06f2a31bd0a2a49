"""
Admin moderation API Router

Flagged challenge review, manual settlement of unresolved wagers,
reported users, and marketplace curation. Owner/admin role only. Every
mutation writes an AdminAuditEvent in the same transaction as the change.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from core.auth import require_admin
from core.database import get_db
from core.exceptions import BadRequestError, NotFoundError
from models import Plan, User, WagerChallenge
from schemas import (
    BanUserRequest,
    ModerateChallengeRequest,
    ModeratedUserResponse,
    PlanResponse,
    SettleChallengeRequest,
    WagerResponse,
)
from services import wager_service
from services.admin_audit import record_admin_audit_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])

TOP_PLAN_MIN_SALES = 5
TOP_PLAN_MIN_RATING = 4.5
TOP_PLAN_LIMIT = 10


@router.get("/")
def admin_status(current_user: User = Depends(require_admin)):
    return {"status": "ok", "role": current_user.role}


@router.get("/challenges/flagged", response_model=List[WagerResponse])
def list_flagged_challenges(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return (
        db.query(WagerChallenge)
        .filter(WagerChallenge.flagged.is_(True), WagerChallenge.removed.is_(False))
        .order_by(WagerChallenge.created_at.desc())
        .all()
    )


@router.post("/challenges/{challenge_id}/moderate", response_model=WagerResponse)
def moderate_challenge(
    challenge_id: UUID,
    payload: ModerateChallengeRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    `approve` clears the flag. `remove` hides the challenge, clears the
    flag and refunds stakes still held in the pot.
    """
    if payload.action == "remove":
        challenge = wager_service.remove_challenge(db, challenge_id)
    else:
        challenge = db.get(WagerChallenge, challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", str(challenge_id))
        challenge.flagged = False

    record_admin_audit_event(
        db,
        request=request,
        actor=current_user,
        action=f"challenge.{payload.action}",
        target_user_id=challenge.creator_id,
        target_id=str(challenge.id),
        reason=payload.reason,
        payload={"status": challenge.status},
    )
    db.commit()
    db.refresh(challenge)
    return challenge


@router.post("/challenges/{challenge_id}/settle", response_model=WagerResponse)
def settle_challenge(
    challenge_id: UUID,
    payload: SettleChallengeRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Close an `unresolved` challenge: refund every stake, or award the pot to `winner_id`."""
    challenge = wager_service.settle_unresolved(db, challenge_id, winner_id=payload.winner_id)

    record_admin_audit_event(
        db,
        request=request,
        actor=current_user,
        action="challenge.settle",
        target_user_id=challenge.creator_id,
        target_id=str(challenge.id),
        reason=payload.reason,
        payload={
            "status": challenge.status,
            "winner_id": str(payload.winner_id) if payload.winner_id else None,
        },
    )
    db.commit()
    db.refresh(challenge)
    return challenge


@router.get("/users/reported", response_model=List[ModeratedUserResponse])
def list_reported_users(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return db.query(User).filter(User.flagged.is_(True)).order_by(User.updated_at.desc()).all()


@router.post("/users/{user_id}/ban", response_model=ModeratedUserResponse)
def ban_user(
    user_id: UUID,
    payload: BanUserRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", str(user_id))
    if user.id == current_user.id:
        raise BadRequestError("You cannot ban yourself")

    user.is_blocked = payload.ban
    if payload.ban:
        user.flagged = False

    record_admin_audit_event(
        db,
        request=request,
        actor=current_user,
        action="user.ban" if payload.ban else "user.unban",
        target_user_id=user.id,
        reason=payload.reason,
    )
    db.commit()
    db.refresh(user)
    return user


@router.get("/plans/top", response_model=List[PlanResponse])
def top_plans(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Public plans with strong sales or ratings, best first."""
    plans = (
        db.query(Plan)
        .filter(
            Plan.is_public.is_(True),
            or_(Plan.sales >= TOP_PLAN_MIN_SALES, Plan.rating >= TOP_PLAN_MIN_RATING),
        )
        .all()
    )
    plans.sort(key=lambda p: (p.sales or 0) + (p.rating or 0), reverse=True)
    return plans[:TOP_PLAN_LIMIT]


@router.post("/plans/{plan_id}/feature", response_model=PlanResponse)
def feature_plan(
    plan_id: UUID,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    plan = db.get(Plan, plan_id)
    if plan is None:
        raise NotFoundError("Plan", str(plan_id))

    plan.featured = True
    record_admin_audit_event(
        db,
        request=request,
        actor=current_user,
        action="plan.feature",
        target_user_id=plan.creator_id,
        target_id=str(plan.id),
    )
    db.commit()
    db.refresh(plan)
    return plan
