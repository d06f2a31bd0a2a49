"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Settle wager challenges that expired without a participant resolving them
    'resolve-expired-wagers': {
        'task': 'tasks.resolve_expired_wagers',
        'schedule': crontab(minute='*/15'),
    },
    # Weekly XP summary - every Monday at 6 AM UTC
    'generate-weekly-summaries': {
        'task': 'tasks.generate_weekly_summaries',
        'schedule': crontab(hour=6, minute=0, day_of_week=1),  # Monday
    },
    # Fresh daily challenge for every user at midnight UTC
    'generate-daily-challenges': {
        'task': 'tasks.generate_daily_challenges',
        'schedule': crontab(hour=0, minute=5),
    },
}
