"""
Scheduled XP tasks: Monday weekly summaries and the nightly daily-challenge refresh.
Runs via Celery Beat scheduler.
"""

from typing import Dict
import logging

from celery import Task

from core.database import get_db_sync
from services import daily_challenge, weekly_summary
from tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.generate_weekly_summaries", bind=True)
def generate_weekly_summaries_task(self: Task) -> Dict:
    db = get_db_sync()
    try:
        counts = weekly_summary.generate_for_all_users(db)
        logger.info("Weekly summaries generated", extra={"extra_fields": counts})
        return {"status": "success", **counts}
    finally:
        db.close()


@celery_app.task(name="tasks.generate_daily_challenges", bind=True)
def generate_daily_challenges_task(self: Task) -> Dict:
    db = get_db_sync()
    try:
        counts = daily_challenge.generate_for_all_users(db)
        logger.info("Daily challenges generated", extra={"extra_fields": counts})
        return {"status": "success", **counts}
    finally:
        db.close()
