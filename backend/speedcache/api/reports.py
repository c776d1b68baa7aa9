"""Report endpoints: create-or-lookup by URL, and poll by public id."""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from kombu.exceptions import KombuError

from speedcache.api.deps import get_blob_store, get_job_store, is_authorized, require_access_key
from speedcache.config import settings
from speedcache.core.exceptions import AuthenticationError, BadRequestError, NotFoundError
from speedcache.core.metrics import cache_lookups_total, reports_created_total
from speedcache.models.report import FORM_FACTOR_ALL, STATUS_FAILED
from speedcache.schemas.report import DeleteReportResponse, RecordResponse
from speedcache.services.blob_store import BlobStore
from speedcache.services.job_store import JobStore, utc_now
from speedcache.services.report import (
    build_record_response,
    drive_report,
    is_stuck,
    reset_stuck,
)
from speedcache.workers.report_worker import dispatch_report

router = APIRouter()
logger = logging.getLogger(__name__)


def _start_background(public_id: str, url: str) -> None:
    """Hand a pending report to the worker queue, or leave it for the next /report poll."""
    if not settings.DISPATCH_BACKGROUND_JOBS:
        return
    try:
        dispatch_report(public_id, url)
    except (KombuError, OSError) as e:
        # The record is committed as pending; the first /report poll runs it
        logger.error(f"Could not queue report {public_id}: {e}")


@router.get("/", response_model=RecordResponse)
async def get_or_create_report(
    url: str | None = Query(None),
    key: str | None = Query(None),
    store: JobStore = Depends(get_job_store),
    blobs: BlobStore = Depends(get_blob_store),
):
    """Return the fresh report for ``url``, creating a pending one when authorized."""
    if not url:
        raise BadRequestError("Missing url parameter")

    since = utc_now() - timedelta(milliseconds=settings.CACHE_DURATION_MS)
    report = await store.get_by_url(url, since)

    # A failed run is not served from cache; it counts as a miss
    if report is not None and report.status != STATUS_FAILED:
        if is_stuck(report):
            cache_lookups_total.labels(result="stuck").inc()
            if await reset_stuck(store, report):
                _start_background(report.public_id, report.url)
            report = await store.get_by_public_id(report.public_id) or report
        else:
            cache_lookups_total.labels(result="hit").inc()
        return await build_record_response(report, blobs)

    if not is_authorized(key):
        cache_lookups_total.labels(result="unauthorized").inc()
        raise AuthenticationError()

    cache_lookups_total.labels(result="miss").inc()
    logger.info(f"Creating new pending report for {url}")
    report = await store.create(url, FORM_FACTOR_ALL)
    reports_created_total.inc()
    _start_background(report.public_id, url)
    return await build_record_response(report, blobs)


@router.get("/report", response_model=RecordResponse)
async def get_report(
    id: str | None = Query(None),
    store: JobStore = Depends(get_job_store),
    blobs: BlobStore = Depends(get_blob_store),
):
    """Return a report by public id.

    A pending (or stuck) report is run inline first, so the first poll can
    take as long as the PageSpeed calls; later polls are cheap.
    """
    if not id:
        raise BadRequestError("Missing id parameter")

    report = await store.get_by_public_id(id)
    if report is None:
        raise NotFoundError("Record not found")

    report = await drive_report(store, blobs, report)
    return await build_record_response(report, blobs)


@router.delete(
    "/report",
    response_model=DeleteReportResponse,
    dependencies=[Depends(require_access_key)],
)
async def delete_report(
    id: str | None = Query(None),
    store: JobStore = Depends(get_job_store),
    blobs: BlobStore = Depends(get_blob_store),
):
    """Delete a single report and its stored result."""
    if not id:
        raise BadRequestError("Missing id parameter")

    report = await store.get_by_public_id(id)
    if report is None or not await store.delete(id):
        raise NotFoundError("Record not found")
    if report.result_location:
        await blobs.delete(report.result_location)

    return DeleteReportResponse(public_id=id)
