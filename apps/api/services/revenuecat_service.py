"""
RevenueCat (in-app purchases).

- Webhook: HMAC-SHA1 over the raw body, entitlement ids mapped to a tier
  (elite wins over pro). Event ids are recorded once so redeliveries are
  no-ops.
- Subscriber API: live entitlement check for a single user.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

import requests
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import BadRequestError, ServiceUnavailableError, UpstreamError
from models import RevenueCatEvent, User

logger = logging.getLogger(__name__)


def tier_for_entitlements(entitlement_ids: List[str]) -> Optional[str]:
    ids = set(entitlement_ids or [])
    if settings.REVENUECAT_ELITE_ENTITLEMENT in ids:
        return "elite"
    if settings.REVENUECAT_PRO_ENTITLEMENT in ids:
        return "pro"
    return None


def _event_entitlements(event: Dict[str, Any]) -> List[str]:
    ids = event.get("entitlement_ids")
    if ids is None and event.get("entitlement_id"):
        ids = [event["entitlement_id"]]
    return [str(i) for i in (ids or [])]


def process_revenuecat_event(db: Session, body: Dict[str, Any]) -> Dict[str, Any]:
    event = body.get("event")
    if not isinstance(event, dict):
        raise BadRequestError("Missing event in payload")

    app_user_id = event.get("app_user_id") or body.get("app_user_id")
    if not app_user_id:
        raise BadRequestError("Missing app_user_id in payload")

    event_id = event.get("id")
    event_type = str(event.get("type") or "unknown")
    if event_id:
        db.add(RevenueCatEvent(event_id=str(event_id), event_type=event_type, app_user_id=str(app_user_id)))
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            return {"success": True, "idempotent": True, "event_id": event_id}

    tier = tier_for_entitlements(_event_entitlements(event))
    if not tier:
        logger.warning(f"No matching entitlement for RevenueCat user {app_user_id} (event {event_type})")
        db.commit()
        return {"success": True, "message": "No valid entitlement found; no update performed."}

    try:
        user = db.get(User, UUID(str(app_user_id)))
    except ValueError:
        user = None
    if user is None:
        logger.warning(f"RevenueCat event for unknown user {app_user_id}")
        db.commit()
        return {"success": True, "matched_user": False}

    user.tier = tier
    db.commit()
    logger.info(
        "Tier updated from RevenueCat",
        extra={"extra_fields": {"user_id": str(user.id), "tier": tier, "event_type": event_type}},
    )
    return {"success": True, "tier": tier}


def fetch_entitlements(user_id: UUID) -> Dict[str, bool]:
    if not settings.REVENUECAT_API_KEY:
        raise ServiceUnavailableError("RevenueCat not configured")

    url = f"{settings.REVENUECAT_API_URL.rstrip('/')}/subscribers/{user_id}"
    try:
        r = requests.get(
            url,
            headers={"Authorization": f"Bearer {settings.REVENUECAT_API_KEY}"},
            timeout=settings.EXTERNAL_API_TIMEOUT,
        )
        r.raise_for_status()
        entitlements = (r.json().get("subscriber") or {}).get("entitlements") or {}
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error(f"RevenueCat subscriber lookup failed for {user_id}: {e}")
        raise UpstreamError("Failed to fetch entitlements")

    return {
        "pro": bool(entitlements.get(settings.REVENUECAT_PRO_ENTITLEMENT)),
        "elite": bool(entitlements.get(settings.REVENUECAT_ELITE_ENTITLEMENT)),
    }
