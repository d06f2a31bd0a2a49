"""Expo push notification endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_current_user, require_admin
from core.database import get_db
from models import User
from schemas import ChallengeMessageNotification, NotificationSend
from services import push_notifications

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


@router.post("/send")
def send_notification(
    payload: NotificationSend,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Push a single notification to one user (admin tooling)."""
    return push_notifications.send_to_user(db, payload.user_id, payload.title, payload.body, payload.data)


@router.post("/challenge-message")
def send_challenge_message(
    payload: ChallengeMessageNotification,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Relay a chat message to the other participants of a wager challenge."""
    return push_notifications.notify_challenge_message(db, current_user, payload.challenge_id, payload.message)
