from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import logging
from fastapi import Request
from sqlalchemy.orm import Session

from models import AdminAuditEvent, User

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


def record_admin_audit_event(
    db: Session,
    *,
    request: Optional[Request],
    actor: User,
    action: str,
    target_user_id: Optional[UUID] = None,
    target_id: Optional[str] = None,
    reason: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> Optional[AdminAuditEvent]:
    """
    Append an audit row for a moderation action.

    The row is added to the caller's session and persists with the caller's
    commit, so the audit entry and the action land together. A failure to
    build the row is logged and never blocks the action.
    """
    try:
        ip_address = None
        user_agent = None
        if request is not None:
            ip_address = request.client.host if request.client else None
            user_agent = request.headers.get("user-agent")

        event = AdminAuditEvent(
            actor_user_id=actor.id,
            action=action,
            target_user_id=target_user_id,
            target_id=str(target_id) if target_id is not None else None,
            reason=(reason or None) and reason[:MAX_REASON_LENGTH],
            ip_address=ip_address,
            user_agent=user_agent,
            payload=payload or {},
        )
        db.add(event)
    except Exception as e:
        logger.exception("Admin audit logging failed: %s", str(e))
        return None

    logger.info(
        "Admin action",
        extra={"extra_fields": {"actor_user_id": str(actor.id), "action": action, "target_id": event.target_id}},
    )
    return event
