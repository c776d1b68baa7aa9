"""Durable job-record store for PageSpeed reports.

Every operation runs in its own transaction. Status updates load the row with
``SELECT ... FOR UPDATE`` so concurrent writers to one record are applied in
a strict order; SQLite serializes writers per database, which gives the same
guarantee in tests and single-node deployments.

The store owns the record invariants:

* ``processing_started_at`` is set iff ``status == "processing"``
* ``result_location`` is non-empty iff ``status == "completed"``
"""

import logging
from collections.abc import Iterable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from speedcache.core.exceptions import RecordNotFound, StatusConflict, StorageUnavailable
from speedcache.models.report import (
    FORM_FACTOR_ALL,
    REPORT_STATUSES,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    Report,
)
from speedcache.schemas.report import ReportSummary

logger = logging.getLogger(__name__)

# Sentinel for "leave result_payload unchanged"
UNSET = object()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class JobStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str):
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    yield db
        except (DBAPIError, OSError) as e:
            logger.error(f"Report store {operation} failed: {e}")
            raise StorageUnavailable(str(e), operation=operation) from e

    @staticmethod
    def _match(identifier: str | int):
        if isinstance(identifier, int):
            return Report.id == identifier
        return Report.public_id == identifier

    async def create(self, url: str, form_factor: str = FORM_FACTOR_ALL) -> Report:
        report = Report(
            url=url,
            form_factor=form_factor,
            status=STATUS_PENDING,
            created_at=utc_now(),
            processing_started_at=None,
            result_location="",
            result_payload=None,
        )
        async with self._transaction("create") as db:
            db.add(report)
            await db.flush()
        logger.info(f"Created report {report.public_id} for {url}")
        return report

    async def update_status(
        self,
        identifier: str | int,
        status: str,
        *,
        result_location: str | None = None,
        processing_started_at: datetime | None = None,
        result_payload=UNSET,
        expected_status: str | Iterable[str] | None = None,
        expected_started_at: datetime | None = None,
    ) -> Report:
        """Apply a status transition to one record and return its new state.

        ``expected_status`` makes the update a compare-and-set: when the stored
        status is not one of the expected values, ``StatusConflict`` is raised
        and nothing is written. ``expected_started_at`` additionally pins the
        ``processing_started_at`` a run set when it claimed the record, so a
        run that lost the record to a re-claim cannot write to it.
        """
        if status not in REPORT_STATUSES:
            raise ValueError(f"Unknown report status: {status}")
        if status == STATUS_COMPLETED and not result_location:
            raise ValueError("A completed report needs a result location")

        expected: tuple[str, ...] | None = None
        if expected_status is not None:
            if isinstance(expected_status, str):
                expected = (expected_status,)
            else:
                expected = tuple(expected_status)

        async with self._transaction("update_status") as db:
            result = await db.execute(
                select(Report).where(self._match(identifier)).with_for_update()
            )
            report = result.scalar_one_or_none()
            if report is None:
                raise RecordNotFound(identifier)
            if expected is not None and report.status not in expected:
                raise StatusConflict(identifier, report.status, expected)
            if expected_started_at is not None and (
                as_utc(report.processing_started_at) != as_utc(expected_started_at)
            ):
                raise StatusConflict(identifier, report.status, expected or (report.status,))

            report.status = status
            if status == STATUS_PROCESSING:
                report.processing_started_at = processing_started_at or utc_now()
            else:
                report.processing_started_at = None

            if status == STATUS_COMPLETED:
                report.result_location = result_location
            else:
                report.result_location = ""

            if result_payload is not UNSET:
                report.result_payload = result_payload

        logger.debug(f"Report {report.public_id} -> {status}")
        return report

    async def get_by_url(self, url: str, since: datetime) -> Report | None:
        """Most recent record for ``url`` created at or after ``since``."""
        async with self._transaction("get_by_url") as db:
            result = await db.execute(
                select(Report)
                .where(Report.url == url, Report.created_at >= since)
                .order_by(Report.created_at.desc(), Report.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_by_public_id(self, public_id: str) -> Report | None:
        async with self._transaction("get_by_public_id") as db:
            result = await db.execute(select(Report).where(Report.public_id == public_id))
            return result.scalar_one_or_none()

    async def list_stuck_processing(self, max_age_ms: int) -> list[Report]:
        cutoff = utc_now() - timedelta(milliseconds=max_age_ms)
        async with self._transaction("list_stuck_processing") as db:
            result = await db.execute(
                select(Report).where(
                    Report.status == STATUS_PROCESSING,
                    Report.processing_started_at.is_not(None),
                    Report.processing_started_at < cutoff,
                )
            )
            return list(result.scalars().all())

    async def list_all(self) -> list[ReportSummary]:
        async with self._transaction("list_all") as db:
            result = await db.execute(
                select(
                    Report.public_id,
                    Report.url,
                    Report.form_factor,
                    Report.created_at,
                    Report.status,
                    Report.result_location,
                    Report.processing_started_at,
                    Report.result_payload.is_not(None).label("has_payload"),
                ).order_by(Report.created_at.desc())
            )
            rows = result.all()

        summaries = []
        for row in rows:
            started = as_utc(row.processing_started_at)
            summaries.append(
                ReportSummary(
                    public_id=row.public_id,
                    url=row.url,
                    form_factor=row.form_factor,
                    created_at=as_utc(row.created_at).isoformat(),
                    status=row.status,
                    data_url=row.result_location or "",
                    processing_started_at=started.isoformat() if started else None,
                    has_data=bool(row.result_location) or bool(row.has_payload),
                )
            )
        return summaries

    async def count_by_status(self) -> dict[str, int]:
        async with self._transaction("count_by_status") as db:
            result = await db.execute(
                select(Report.status, func.count(Report.id)).group_by(Report.status)
            )
            counts = {status: 0 for status in REPORT_STATUSES}
            for status, count in result.all():
                counts[status] = count
            return counts

    async def delete_older_than(self, days: float) -> int:
        cutoff = utc_now() - timedelta(days=days)
        async with self._transaction("delete_older_than") as db:
            result = await db.execute(delete(Report).where(Report.created_at < cutoff))
            deleted = result.rowcount or 0
        logger.info(f"Deleted {deleted} report(s) older than {days} day(s)")
        return deleted

    async def delete(self, public_id: str) -> bool:
        async with self._transaction("delete") as db:
            result = await db.execute(delete(Report).where(Report.public_id == public_id))
            return bool(result.rowcount)
