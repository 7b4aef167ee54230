"""SQLAlchemy ORM models for job records.

One row per submitted document. Stage outputs live in JSON columns (JSONB
on PostgreSQL) so each stage can merge its own fields independently.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ocrstage.models import JobStatus

from .database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRecordORM(Base):
    """Job record table."""

    __tablename__ = "job_records"

    # Identity
    partition_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    sort_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    external_job_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Processing state
    current_step: Mapped[str] = mapped_column(
        String(32), nullable=False, default=JobStatus.PENDING.value
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Source file info
    file_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    file_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    original_filename: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Stage outputs
    blocks_location: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    form: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    table: Mapped[Optional[list[Any]]] = mapped_column("tables", JSONType, nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    handwritten: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)

    # Classification
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    classification: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    relevant_dates: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)
    pages_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    contact: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)
    search_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_job_records_gsi1", "external_job_id", "sort_key"),
        Index("ix_job_records_gsi2", "search_key", "sort_key"),
        Index("ix_job_records_current_step", "partition_key", "current_step"),
    )


KEY_FIELDS = frozenset({"partition_key", "sort_key"})

JSON_FIELDS = frozenset({"form", "table", "handwritten", "relevant_dates", "contact"})

MERGEABLE_FIELDS = frozenset(
    column.key
    for column in JobRecordORM.__mapper__.column_attrs
    if column.key not in KEY_FIELDS | {"created_at", "updated_at"}
)
