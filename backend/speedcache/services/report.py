"""Report lifecycle: run a PageSpeed report end to end and recover stuck ones."""

import asyncio
import json
import logging
import traceback
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import quote

from speedcache.config import settings
from speedcache.core.exceptions import (
    RecordNotFound,
    StatusConflict,
    StorageUnavailable,
    TransportError,
    UpstreamApiError,
)
from speedcache.core.metrics import (
    reports_created_total,
    reports_finished_total,
    stuck_reports_recovered_total,
)
from speedcache.models.report import (
    FORM_FACTOR_ALL,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    Report,
)
from speedcache.schemas.report import RecordResponse
from speedcache.services.blob_store import BlobStore
from speedcache.services.job_store import JobStore, as_utc, utc_now
from speedcache.services.pagespeed import DEVICE_DESKTOP, DEVICE_MOBILE, fetch_analysis

logger = logging.getLogger(__name__)

Dispatcher = Callable[[str, str], Any]


def result_key(public_id: str, url: str) -> str:
    return f"{settings.RESULTS_BUCKET_PREFIX}{public_id}-{quote(url, safe='')}.json"


def is_stuck(report: Report, threshold_ms: int | None = None, now: datetime | None = None) -> bool:
    """True when the report has sat in ``processing`` longer than the threshold."""
    if report.status != STATUS_PROCESSING or report.processing_started_at is None:
        return False
    threshold_ms = settings.STUCK_PROCESSING_THRESHOLD_MS if threshold_ms is None else threshold_ms
    now = now or utc_now()
    return now - as_utc(report.processing_started_at) > timedelta(milliseconds=threshold_ms)


def _failure_payload(exc: BaseException) -> dict:
    payload = {"error": str(exc)}
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    if trace:
        payload["stack"] = trace
    if isinstance(exc, (UpstreamApiError, TransportError)) and exc.device:
        payload["device"] = exc.device
    return payload


async def _fetch_both(url: str, api_key: str) -> list[Any]:
    """Fetch mobile and desktop concurrently; both always run to completion."""
    results = await asyncio.gather(
        fetch_analysis(url, DEVICE_MOBILE, api_key),
        fetch_analysis(url, DEVICE_DESKTOP, api_key),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    for result in results:
        if not result.ok:
            raise UpstreamApiError(
                f"PageSpeed API error: {result.error}",
                device=result.device,
                status_code=result.status_code,
            )
    return [result.payload for result in results]


async def _mark_failed(
    store: JobStore, public_id: str, claimed_at: datetime, exc: BaseException
) -> None:
    try:
        await store.update_status(
            public_id,
            STATUS_FAILED,
            result_location="",
            result_payload=_failure_payload(exc),
            expected_status=STATUS_PROCESSING,
            expected_started_at=claimed_at,
        )
    except StatusConflict as e:
        logger.info(f"Not marking report {public_id} failed, run no longer owns it: {e}")
        return
    except RecordNotFound:
        logger.warning(f"Report {public_id} vanished before it could be marked failed")
        return
    except StorageUnavailable as e:
        # Left in processing; the stuck scan will pick it up
        logger.error(f"Could not mark report {public_id} failed: {e}")
        return
    reports_finished_total.labels(status=STATUS_FAILED).inc()
    logger.info(f"Report {public_id} marked failed")


async def run_full_report(
    url: str,
    store: JobStore,
    blobs: BlobStore,
    public_id: str | None = None,
    *,
    api_key: str | None = None,
) -> bool:
    """Drive one report from ``pending`` to ``completed`` or ``failed``.

    Creates the record first when ``public_id`` is not given. The move to
    ``processing`` only succeeds from ``pending``, so a report already being
    worked on elsewhere is left alone and ``False`` is returned. Job failures
    are recorded on the report and never raised.
    """
    if not url:
        logger.error("run_full_report: url is required")
        return False

    if public_id is None:
        report = await store.create(url, FORM_FACTOR_ALL)
        public_id = report.public_id
        reports_created_total.inc()

    api_key = settings.PAGESPEED_INSIGHTS_API if api_key is None else api_key
    logger.info(f"Running report {public_id} for {url}")

    claimed_at = utc_now()
    try:
        await store.update_status(
            public_id,
            STATUS_PROCESSING,
            processing_started_at=claimed_at,
            expected_status=STATUS_PENDING,
        )
    except StatusConflict as e:
        logger.info(f"Skipping report {public_id}: already {e.current}")
        return False
    except RecordNotFound:
        logger.warning(f"Report {public_id} not found, nothing to run")
        return False
    except StorageUnavailable as e:
        # Still pending; the next /report poll claims it again
        logger.error(f"Report {public_id} could not be claimed: {e}")
        return False

    try:
        mobile, desktop = await _fetch_both(url, api_key)

        key = result_key(public_id, url)
        ttl = settings.RESULTS_EXPIRY_DAYS * 24 * 60 * 60
        expires_at = (utc_now() + timedelta(seconds=ttl)).isoformat()
        await blobs.put(
            key,
            json.dumps([mobile, desktop]),
            content_type="application/json",
            metadata={"expiresAt": expires_at},
            ttl_seconds=ttl,
        )

        await store.update_status(
            public_id,
            STATUS_COMPLETED,
            result_location=key,
            result_payload=None,
            expected_status=STATUS_PROCESSING,
            expected_started_at=claimed_at,
        )
    except StatusConflict as e:
        logger.warning(f"Report {public_id} was re-claimed while running, dropping result: {e}")
        return False
    except RecordNotFound:
        logger.warning(f"Report {public_id} vanished while running")
        return False
    except Exception as e:
        logger.error(f"Report {public_id} failed: {e}")
        await _mark_failed(store, public_id, claimed_at, e)
        return False

    reports_finished_total.labels(status=STATUS_COMPLETED).inc()
    logger.info(f"Report {public_id} completed")
    return True


async def reset_stuck(store: JobStore, report: Report) -> bool:
    """Move a stuck report back to ``pending``. False if its status changed meanwhile."""
    try:
        await store.update_status(
            report.public_id, STATUS_PENDING, expected_status=STATUS_PROCESSING
        )
    except (StatusConflict, RecordNotFound) as e:
        logger.info(f"Not resetting report {report.public_id}: {e}")
        return False
    stuck_reports_recovered_total.inc()
    logger.info(f"Reset stuck report {report.public_id} ({report.url}) to pending")
    return True


async def recover_stuck(
    store: JobStore,
    blobs: BlobStore,
    max_age_ms: int | None = None,
    *,
    dispatch: Dispatcher | None = None,
) -> int:
    """Reset every stuck report to ``pending`` and run it again.

    With ``dispatch`` each re-run is handed off (e.g. to a Celery queue);
    otherwise reports are re-run here one after another. A failure on one
    report never stops the others. Returns the number of reports reset.
    """
    max_age_ms = settings.STUCK_PROCESSING_THRESHOLD_MS if max_age_ms is None else max_age_ms
    stuck = await store.list_stuck_processing(max_age_ms)
    if not stuck:
        return 0

    logger.info(f"Found {len(stuck)} stuck report(s), rerunning...")

    recovered = 0
    for report in stuck:
        try:
            if not await reset_stuck(store, report):
                continue
            recovered += 1
            if dispatch is not None:
                dispatch(report.public_id, report.url)
            else:
                await run_full_report(report.url, store, blobs, report.public_id)
        except Exception as e:
            logger.error(f"Error rerunning stuck report {report.public_id}: {e}")

    return recovered


async def drive_report(store: JobStore, blobs: BlobStore, report: Report) -> Report:
    """Run a pending or stuck report inline and return its refreshed state."""
    if is_stuck(report):
        await reset_stuck(store, report)
        report = await store.get_by_public_id(report.public_id) or report

    if report.status == STATUS_PENDING:
        await run_full_report(report.url, store, blobs, report.public_id)
        report = await store.get_by_public_id(report.public_id) or report

    return report


async def build_record_response(report: Report, blobs: BlobStore) -> RecordResponse:
    """Wire representation of a report, with the stored result loaded for completed ones."""
    data = None
    if report.status == STATUS_COMPLETED and report.result_location:
        body = await blobs.get(report.result_location)
        if body is not None:
            try:
                data = json.loads(body)
            except ValueError:
                data = body
    elif report.status == STATUS_FAILED:
        data = report.result_payload

    return RecordResponse(
        public_id=report.public_id,
        url=report.url,
        status=report.status,
        data_url=report.result_location or "",
        data=data,
    )
