"""
Wager settlement tasks.

Challenges are resolved on demand by participants; this sweep settles the
ones nobody resolved after expiry.
"""

from typing import Dict
import logging

from celery import Task

from core.database import get_db_sync
from services.wager_service import resolve_expired_challenges
from tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.resolve_expired_wagers", bind=True)
def resolve_expired_wagers_task(self: Task) -> Dict:
    db = get_db_sync()
    try:
        counts = resolve_expired_challenges(db)
        logger.info("Expired wager sweep finished", extra={"extra_fields": counts})
        return {"status": "success", **counts}
    finally:
        db.close()
