"""
Expo push notifications.

Messages go to the Expo push HTTP API in one batch. Expo answers 200 even
when individual tickets fail, so the response body is inspected for
`errors` / error tickets and surfaced as UpstreamError (502).
"""

from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

import requests
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import BadRequestError, ForbiddenError, NotFoundError, UpstreamError
from models import User, WagerChallenge

logger = logging.getLogger(__name__)

EXPO_TOKEN_PREFIX = "ExponentPushToken"

EXPO_HEADERS = {
    "Accept": "application/json",
    "Accept-Encoding": "gzip, deflate",
    "Content-Type": "application/json",
}


def is_valid_expo_token(token: Optional[str]) -> bool:
    return bool(token) and token.startswith(EXPO_TOKEN_PREFIX)


def build_message(token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"to": token, "sound": "default", "title": title, "body": body, "data": data or {}}


def send_push_messages(messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    try:
        r = requests.post(
            settings.EXPO_PUSH_URL,
            json=messages,
            headers=EXPO_HEADERS,
            timeout=settings.EXTERNAL_API_TIMEOUT,
        )
        r.raise_for_status()
        result = r.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error(f"Expo push request failed: {e}")
        raise UpstreamError("Failed to send notifications")

    errors = list(result.get("errors") or [])
    tickets = result.get("data") or []
    if isinstance(tickets, dict):
        tickets = [tickets]
    errors.extend(t for t in tickets if isinstance(t, dict) and t.get("status") == "error")

    if errors:
        logger.error("Errors from Expo push API", extra={"extra_fields": {"errors": errors}})
        raise UpstreamError("Some notifications failed to send")
    return result


def set_push_token(db: Session, user: User, token: str) -> None:
    if not is_valid_expo_token(token):
        raise BadRequestError("Invalid Expo push token")
    user.expo_push_token = token
    db.commit()


def send_to_user(db: Session, user_id: UUID, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", str(user_id))
    if not is_valid_expo_token(user.expo_push_token):
        raise BadRequestError("User has no valid Expo push token")

    result = send_push_messages([build_message(user.expo_push_token, title, body, data)])
    return {"success": True, "result": result}


def challenge_participant_tokens(db: Session, challenge: WagerChallenge, exclude_user_id: UUID) -> List[str]:
    ids = [UUID(p) for p in (challenge.participants or []) if p != str(exclude_user_id)]
    if not ids:
        return []
    users = db.query(User).filter(User.id.in_(ids)).all()
    return [u.expo_push_token for u in users if is_valid_expo_token(u.expo_push_token)]


def notify_challenge_message(db: Session, sender: User, challenge_id: UUID, message: str) -> Dict:
    challenge = db.get(WagerChallenge, challenge_id)
    if challenge is None or challenge.removed:
        raise NotFoundError("Challenge", str(challenge_id))
    if str(sender.id) not in (challenge.participants or []):
        raise ForbiddenError("Only participants can message this challenge")

    tokens = challenge_participant_tokens(db, challenge, sender.id)
    if not tokens:
        return {"success": True, "message": "No relevant tokens found to notify."}

    if sender.username:
        title = f"{sender.username} sent a message in {challenge.exercise} challenge"
    else:
        title = f"New message in {challenge.exercise} challenge"
    data = {"challenge_id": str(challenge.id), "type": "challenge_message", "sender_id": str(sender.id)}

    result = send_push_messages([build_message(token, title, message, data) for token in tokens])
    logger.info(
        "Challenge message notification sent",
        extra={"extra_fields": {"challenge_id": str(challenge.id), "recipients": len(tokens)}},
    )
    return {"success": True, "result": result}
