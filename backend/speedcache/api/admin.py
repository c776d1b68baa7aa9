"""Administrative endpoints, all gated by the shared access key."""

import logging
import math

from fastapi import APIRouter, Depends, Query

from speedcache.api.deps import get_blob_store, get_job_store, require_access_key
from speedcache.config import settings
from speedcache.core.exceptions import BadRequestError
from speedcache.schemas.report import DebugListResponse, DeleteOldResponse, RecoverStuckResponse
from speedcache.services.blob_store import BlobStore
from speedcache.services.job_store import JobStore
from speedcache.services.report import recover_stuck
from speedcache.workers.report_worker import dispatch_report

router = APIRouter(dependencies=[Depends(require_access_key)])
logger = logging.getLogger(__name__)


def _parse_days(days: str | None) -> float:
    if days is None or days == "":
        return float(settings.DELETE_OLD_DEFAULT_DAYS)
    try:
        value = float(days)
    except ValueError:
        raise BadRequestError("Invalid days parameter. Must be a positive number.")
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise BadRequestError("Invalid days parameter. Must be a positive number.")
    return value


@router.get("/debug/list", response_model=DebugListResponse)
async def debug_list(store: JobStore = Depends(get_job_store)):
    """List every report without its result payload."""
    records = await store.list_all()
    counts = await store.count_by_status()
    return DebugListResponse(count=len(records), counts=counts, records=records)


@router.api_route("/admin/delete-old", methods=["GET", "POST"], response_model=DeleteOldResponse)
async def delete_old_reports(
    days: str | None = Query(None),
    store: JobStore = Depends(get_job_store),
):
    """Delete reports created more than ``days`` days ago (default 10)."""
    days_old = _parse_days(days)
    deleted = await store.delete_older_than(days_old)
    logger.info(f"Deleted {deleted} report(s) older than {days_old} day(s)")
    return DeleteOldResponse(deleted_count=deleted, days_old=days_old)


@router.post("/admin/recover-stuck", response_model=RecoverStuckResponse)
async def recover_stuck_reports(
    store: JobStore = Depends(get_job_store),
    blobs: BlobStore = Depends(get_blob_store),
):
    """Run the stuck-report scan now instead of waiting for the periodic task."""
    dispatch = dispatch_report if settings.DISPATCH_BACKGROUND_JOBS else None
    recovered = await recover_stuck(
        store, blobs, settings.STUCK_PROCESSING_THRESHOLD_MS, dispatch=dispatch
    )
    return RecoverStuckResponse(recovered=recovered)
