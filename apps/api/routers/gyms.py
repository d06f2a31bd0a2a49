"""Gym profile endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import ensure_self_or_admin, get_current_user
from core.database import get_db
from core.exceptions import NotFoundError
from models import Gym, User
from schemas import GymCreate, GymResponse, GymUpdate

router = APIRouter(prefix="/v1/gyms", tags=["gyms"])


def get_gym_or_404(db: Session, gym_id: UUID) -> Gym:
    gym = db.get(Gym, gym_id)
    if gym is None:
        raise NotFoundError("Gym", str(gym_id))
    return gym


def _owned_gyms(db: Session, user: User) -> List[Gym]:
    return (
        db.query(Gym)
        .filter(Gym.owner_id == user.id)
        .order_by(Gym.created_at.asc())
        .all()
    )


@router.get("", response_model=List[GymResponse])
def list_gyms(
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return db.query(Gym).order_by(Gym.created_at.desc()).limit(limit).all()


@router.get("/mine", response_model=Optional[GymResponse])
def get_my_gym(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's first gym, or null."""
    gyms = _owned_gyms(db, current_user)
    return gyms[0] if gyms else None


@router.get("/owner", response_model=List[GymResponse])
def get_owner_gyms(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _owned_gyms(db, current_user)


@router.get("/{gym_id}", response_model=GymResponse)
def get_gym(gym_id: UUID, db: Session = Depends(get_db)):
    return get_gym_or_404(db, gym_id)


@router.post("", response_model=GymResponse, status_code=status.HTTP_201_CREATED)
def create_gym(
    payload: GymCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    gym = Gym(owner_id=current_user.id, **payload.model_dump())
    db.add(gym)
    db.commit()
    db.refresh(gym)
    return gym


@router.patch("/{gym_id}", response_model=GymResponse)
def update_gym(
    gym_id: UUID,
    payload: GymUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Apply only the non-null fields."""
    gym = get_gym_or_404(db, gym_id)
    ensure_self_or_admin(current_user, gym.owner_id)

    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(gym, field, value)
    db.commit()
    db.refresh(gym)
    return gym


@router.delete("/{gym_id}")
def delete_gym(
    gym_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    gym = get_gym_or_404(db, gym_id)
    ensure_self_or_admin(current_user, gym.owner_id)
    db.delete(gym)
    db.commit()
    return {"success": True}
