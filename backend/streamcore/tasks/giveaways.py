"""Giveaway auto-draw task.

Runs on the beat interval; each pass draws winners for up to
``giveaway_job_batch_size`` ended giveaways. Overlapping passes are safe:
a second draw on the same giveaway loses the winner compare-and-swap.
"""

import asyncio

from streamcore.config import get_settings
from streamcore.giveaways.eligibility import EligibilityEvaluator
from streamcore.giveaways.service import GiveawayService
from streamcore.logging_config import get_logger
from streamcore.repositories.sql import SqlIdentityProvider, SqlRepository
from streamcore.tasks.celery_app import celery_app
from streamcore.utils.db import close_db, get_session_factory
from streamcore.utils.distributed_lock import AggregateLockManager
from streamcore.utils.errors import StorageUnavailableError
from streamcore.utils.redis_client import close_redis, init_redis

logger = get_logger(__name__)


@celery_app.task(
    bind=True,
    name="streamcore.tasks.giveaways.process_due_giveaways_task",
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(StorageUnavailableError,),
    retry_backoff=True,
)
def process_due_giveaways_task(self) -> dict:
    """Pick winners for ended giveaways that have none yet."""
    logger.info("giveaway_auto_draw_started", attempt=self.request.retries + 1)
    result = asyncio.run(_process_due_giveaways())
    logger.info("giveaway_auto_draw_complete", **result)
    return result


async def _process_due_giveaways() -> dict:
    settings = get_settings()
    session_factory = get_session_factory()

    lock_manager = None
    if settings.distributed_locks_enabled:
        lock_manager = AggregateLockManager(
            await init_redis(),
            default_lock_timeout_ms=settings.lock_timeout_ms,
            default_acquire_timeout_ms=settings.lock_acquire_timeout_ms,
        )

    service = GiveawayService(
        SqlRepository(session_factory),
        EligibilityEvaluator(SqlIdentityProvider(session_factory)),
        lock_manager=lock_manager,
    )
    try:
        report = await service.process_due_giveaways(limit=settings.giveaway_job_batch_size)
        if report.retryable:
            # Re-run the pass; giveaways already drawn are no longer due
            logger.warning("giveaway_auto_draw_retrying", giveaway_ids=report.retryable)
            raise StorageUnavailableError(
                f"Storage failed for giveaways {report.retryable}"
            )
        return report.to_dict()
    finally:
        # Each asyncio.run gets a fresh loop; pooled connections can't be reused
        await close_db()
        if lock_manager is not None:
            await close_redis()
