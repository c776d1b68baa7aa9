import asyncio
import logging

from speedcache.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run an async function from a sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="speedcache.workers.report_worker.process_report")
def process_report(public_id: str, url: str) -> bool:
    """Run a pending report in the background.

    No Celery retries: a worker that dies mid-run leaves the report in
    ``processing`` and the stuck-report scan re-drives it.
    """

    async def _do_report():
        from speedcache.core.database import create_worker_session_factory
        from speedcache.core.redis import create_worker_redis
        from speedcache.services.blob_store import RedisBlobStore
        from speedcache.services.job_store import JobStore
        from speedcache.services.report import run_full_report

        session_factory, db_engine = create_worker_session_factory()
        redis = create_worker_redis()
        try:
            return await run_full_report(
                url, JobStore(session_factory), RedisBlobStore(redis), public_id
            )
        finally:
            await redis.aclose()
            await db_engine.dispose()

    return _run_async(_do_report())


def dispatch_report(public_id: str, url: str) -> None:
    """Queue a report run; the broker keeps it alive past the triggering request."""
    process_report.delay(public_id, url)
    logger.info(f"Queued report {public_id} for {url}")
