"""Periodic Celery Beat tasks: stuck-report recovery and retention."""

import asyncio
import logging

from speedcache.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="speedcache.workers.recovery_worker.recover_stuck_reports")
def recover_stuck_reports() -> int:
    """Reset reports stuck in processing and queue them again."""

    async def _recover():
        from speedcache.config import settings
        from speedcache.core.database import create_worker_session_factory
        from speedcache.core.redis import create_worker_redis
        from speedcache.services.blob_store import RedisBlobStore
        from speedcache.services.job_store import JobStore
        from speedcache.services.report import recover_stuck
        from speedcache.workers.report_worker import dispatch_report

        session_factory, db_engine = create_worker_session_factory()
        redis = create_worker_redis()
        try:
            recovered = await recover_stuck(
                JobStore(session_factory),
                RedisBlobStore(redis),
                settings.STUCK_PROCESSING_THRESHOLD_MS,
                dispatch=dispatch_report,
            )
            if recovered:
                logger.info(f"Re-queued {recovered} stuck report(s)")
            return recovered
        except Exception as e:
            logger.error(f"recover_stuck_reports failed: {e}")
            return 0
        finally:
            await redis.aclose()
            await db_engine.dispose()

    return _run_async(_recover())


@celery_app.task(name="speedcache.workers.recovery_worker.delete_old_reports")
def delete_old_reports(days: float | None = None) -> int:
    """Delete report records older than ``days`` (default from settings)."""

    async def _delete():
        from speedcache.config import settings
        from speedcache.core.database import create_worker_session_factory
        from speedcache.services.job_store import JobStore

        session_factory, db_engine = create_worker_session_factory()
        try:
            days_old = settings.DELETE_OLD_DEFAULT_DAYS if days is None else days
            return await JobStore(session_factory).delete_older_than(days_old)
        finally:
            await db_engine.dispose()

    return _run_async(_delete())
