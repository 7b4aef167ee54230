"""Job record models.

A job record tracks one submitted document through the pipeline. Each stage
merges its own fields into the record; nothing written by an earlier stage
is removed by a later one.
"""

from datetime import datetime
from typing import Any, Generic, NamedTuple, Optional, TypeVar

from pydantic import Field

from .base import CamelModel, JobStatus
from .document import HandwrittenSentence, Table

T = TypeVar("T")


class RecordKey(NamedTuple):
    """Primary key of a job record."""

    partition_key: str
    sort_key: str


class FileDescriptor(CamelModel):
    """An uploaded document handed to intake."""

    file_name: str = Field(..., description="Object key of the upload in the bucket")
    file_id: str
    file_type: Optional[str] = None
    url: Optional[str] = None
    name: Optional[str] = Field(None, description="Filename as given by the user")


class Classification(CamelModel):
    """Structured output of the classifier."""

    summary: str
    classification: str
    category: str
    relevant_dates: list[Any] = Field(default_factory=list)
    pages_count: Optional[int] = None
    contact: list[Any] = Field(default_factory=list)


class JobRecord(CamelModel):
    """Durable, incrementally enriched record of one document."""

    # Identity
    partition_key: str
    sort_key: str
    external_job_id: Optional[str] = None

    # Status
    current_step: JobStatus = JobStatus.PENDING
    error: Optional[str] = None

    # Intake
    file_id: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    url: Optional[str] = None
    original_filename: Optional[str] = None

    # PARTIAL:BLOCKS
    blocks_location: Optional[str] = None

    # PARTIAL:PARSED
    form: Optional[dict[str, str]] = None
    table: Optional[list[Table]] = None
    confidence: Optional[float] = None
    handwritten: Optional[list[HandwrittenSentence]] = None

    # PARTIAL:CLASSIFIED
    summary: Optional[str] = None
    classification: Optional[str] = None
    category: Optional[str] = None
    relevant_dates: Optional[list[Any]] = None
    pages_count: Optional[int] = None
    contact: Optional[list[Any]] = None
    search_key: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> RecordKey:
        return RecordKey(self.partition_key, self.sort_key)


class SubmitResult(CamelModel):
    """Outcome of intake."""

    success: bool
    url: Optional[str] = None
    status: JobStatus
    external_job_id: Optional[str] = None


class JobPage(CamelModel):
    """One page of a record listing."""

    items: list[JobRecord] = Field(default_factory=list)
    count: int = 0
    cursor: Optional[str] = Field(None, description="Opaque token for the next page")


class LookupResult(CamelModel, Generic[T]):
    """Result of a synchronous lookup that reports errors instead of raising."""

    data: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
