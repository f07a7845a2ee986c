"""Celery application configuration.

Redis is the broker and result backend; beat drives the giveaway auto-draw.
"""

import os

from celery import Celery

from streamcore.tasks.schedules import CELERY_BEAT_SCHEDULE, CELERY_TASK_ROUTES

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

celery_app = Celery(
    "streamcore_tasks",
    broker=f"{REDIS_URL.rsplit('/', 1)[0]}/1",  # Use DB 1 for broker
    backend=f"{REDIS_URL.rsplit('/', 1)[0]}/2",  # Use DB 2 for results
    include=[
        "streamcore.tasks.giveaways",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes=CELERY_TASK_ROUTES,
    # A draw is idempotent (CAS on winner_id), so late acks are safe
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    beat_schedule=CELERY_BEAT_SCHEDULE,
    task_default_retry_delay=30,
    task_max_retries=3,
)
