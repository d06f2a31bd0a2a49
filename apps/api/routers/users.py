"""
User profile endpoints.

Profiles are readable by any signed-in user; writes are limited to the
user themselves or an admin. Tier is never written here (billing only).
"""
from typing import List
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.auth import ensure_self_or_admin, get_current_user, is_admin
from core.database import get_db
from core.exceptions import BadRequestError, NotFoundError, ValidationError
from models import ProgressPhoto, User
from schemas import (
    ProgressPhotoCreate,
    ProgressPhotoResponse,
    PushTokenUpdate,
    UserProfileUpdate,
    UserReport,
    UserResponse,
)
from services.push_notifications import set_push_token
from services.revenuecat_service import fetch_entitlements

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/users", tags=["users"])


def _get_user_or_404(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", str(user_id))
    return user


def _profile(user: User, viewer: User) -> UserResponse:
    profile = UserResponse.model_validate(user)
    profile.profile_picture = user.profile_picture or ""
    if viewer.id != user.id and not is_admin(viewer):
        profile.email = None
    return profile


@router.put("/me/push-token")
def update_push_token(
    payload: PushTokenUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Store the Expo push token for the signed-in device."""
    set_push_token(db, current_user, payload.token)
    return {"success": True}


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _profile(_get_user_or_404(db, user_id), current_user)


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: UUID,
    payload: UserProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update profile fields.

    A profile picture and a numbered avatar are mutually exclusive: setting
    one clears the other.
    """
    ensure_self_or_admin(current_user, user_id)
    user = _get_user_or_404(db, user_id)

    updates = payload.model_dump(exclude_unset=True)
    for field in ("username", "gym", "goal"):
        if field in updates and updates[field] is not None:
            setattr(user, field, updates[field].strip())
    if "username" in updates and not user.username:
        raise ValidationError("Username cannot be empty", field="username")
    if updates.get("best_lifts") is not None:
        user.best_lifts = updates["best_lifts"]
    if updates.get("stats") is not None:
        user.stats = updates["stats"]

    if updates.get("profile_picture"):
        user.profile_picture = updates["profile_picture"]
        user.avatar = None
    elif updates.get("avatar") is not None:
        user.avatar = updates["avatar"]
        user.profile_picture = None

    db.commit()
    db.refresh(user)
    return _profile(user, current_user)


@router.delete("/{user_id}")
def delete_user(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_self_or_admin(current_user, user_id)
    user = _get_user_or_404(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("User deleted", extra={"extra_fields": {"user_id": str(user_id), "by": str(current_user.id)}})
    return {"success": True, "message": "User deleted"}


@router.post("/{user_id}/progress-photos", response_model=ProgressPhotoResponse, status_code=status.HTTP_201_CREATED)
def upload_progress_photo(
    user_id: UUID,
    payload: ProgressPhotoCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_self_or_admin(current_user, user_id)
    _get_user_or_404(db, user_id)

    photo = ProgressPhoto(user_id=user_id, image_url=payload.image_url, view=payload.view)
    db.add(photo)
    db.commit()
    db.refresh(photo)
    return photo


@router.get("/{user_id}/progress-photos", response_model=List[ProgressPhotoResponse])
def list_progress_photos(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_self_or_admin(current_user, user_id)
    return (
        db.query(ProgressPhoto)
        .filter(ProgressPhoto.user_id == user_id)
        .order_by(ProgressPhoto.created_at.asc())
        .all()
    )


@router.get("/{user_id}/entitlements")
def get_entitlements(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
):
    """Live Pro/Elite entitlement check against RevenueCat."""
    ensure_self_or_admin(current_user, user_id)
    return {"success": True, "access": fetch_entitlements(user_id)}


@router.post("/{user_id}/report")
def report_user(
    user_id: UUID,
    payload: UserReport,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Flag a user for admin review."""
    if user_id == current_user.id:
        raise BadRequestError("You cannot report yourself")

    user = _get_user_or_404(db, user_id)
    user.flagged = True
    user.flag_reason = payload.reason
    db.commit()

    logger.info(
        "User reported",
        extra={"extra_fields": {"user_id": str(user_id), "reported_by": str(current_user.id)}},
    )
    return {"success": True}
