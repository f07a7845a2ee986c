"""Celery Beat schedule configuration."""

from datetime import timedelta

from streamcore.config import get_settings

CELERY_BEAT_SCHEDULE = {
    # Draw winners for giveaways whose ends_at has passed
    "giveaway-auto-draw": {
        "task": "streamcore.tasks.giveaways.process_due_giveaways_task",
        "schedule": timedelta(seconds=get_settings().giveaway_job_interval_seconds),
        "options": {"queue": "giveaways"},
    },
}

CELERY_TASK_ROUTES = {
    "streamcore.tasks.giveaways.*": {"queue": "giveaways"},
}
