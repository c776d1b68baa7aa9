import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from speedcache.core.database import Base

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

REPORT_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

FORM_FACTOR_ALL = "ALL"


def _new_public_id() -> str:
    return str(uuid.uuid4())


class Report(Base):
    __tablename__ = "pagespeed_reports"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_pagespeed_reports_status",
        ),
        Index("ix_pagespeed_reports_url_created_at", "url", "created_at"),
    )

    # Internal row key; never serialized to clients
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(
        String(36), unique=True, index=True, nullable=False, default=_new_public_id
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    form_factor: Mapped[str] = mapped_column(String(20), nullable=False, default=FORM_FACTOR_ALL)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True, default=lambda: datetime.now(timezone.utc)
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_PENDING
    )  # pending, processing, completed, failed
    processing_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    result_location: Mapped[str] = mapped_column(Text, nullable=False, default="")
    result_payload: Mapped[dict | None] = mapped_column(
        JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")
    )

    def __repr__(self) -> str:
        return f"<Report {self.public_id} {self.status} {self.url}>"
