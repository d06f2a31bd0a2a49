"""Gym social feed: posts and offers published by gym owners."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import ensure_self_or_admin, get_current_user
from core.database import get_db
from core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from models import GymFeedPost, User
from routers.gyms import get_gym_or_404
from schemas import GymFeedPostCreate, GymFeedPostResponse

router = APIRouter(prefix="/v1/gym-feed", tags=["gym-feed"])


@router.get("/{gym_id}", response_model=List[GymFeedPostResponse])
def get_feed_for_gym(
    gym_id: UUID,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    get_gym_or_404(db, gym_id)
    return (
        db.query(GymFeedPost)
        .filter(GymFeedPost.gym_id == gym_id)
        .order_by(GymFeedPost.created_at.desc())
        .limit(limit)
        .all()
    )


@router.post("", response_model=GymFeedPostResponse, status_code=status.HTTP_201_CREATED)
def create_feed_post(
    payload: GymFeedPostCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    gym = get_gym_or_404(db, payload.gym_id)
    ensure_self_or_admin(current_user, gym.owner_id)

    if not (payload.text or payload.image_url or payload.offer):
        raise BadRequestError("Post must include text, an image, or an offer")

    post = GymFeedPost(
        gym_id=gym.id,
        owner_id=current_user.id,
        text=payload.text,
        image_url=payload.image_url,
        offer=payload.offer,
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    return post


@router.delete("/{post_id}")
def delete_feed_post(
    post_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    post = db.get(GymFeedPost, post_id)
    if post is None:
        raise NotFoundError("Post", str(post_id))
    if post.owner_id != current_user.id:
        raise ForbiddenError("Only the post owner can delete this post")

    db.delete(post)
    db.commit()
    return {"success": True}
