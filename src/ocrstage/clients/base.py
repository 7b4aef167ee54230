"""Interfaces of the services the pipeline calls out to.

The orchestrator depends only on these protocols. Concrete adapters for
AWS (Textract, S3, SQS) and Ollama live beside this module; tests supply
in-memory implementations.
"""

from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

from ocrstage.models import (
    Classification,
    JobPage,
    JobRecord,
    JobStatus,
    PipelineMessage,
    RecordKey,
)


class StartResult(BaseModel):
    """Response of the recognition engine to a start request."""

    accepted: bool
    external_job_id: Optional[str] = None
    error: Optional[str] = None


class BlockPage(BaseModel):
    """One page of recognition results."""

    blocks: list[dict[str, Any]] = Field(default_factory=list)
    next_token: Optional[str] = None


class ReceivedMessage(BaseModel):
    """A message taken off the channel, not yet acknowledged."""

    message_id: str
    receipt_handle: str
    body: str


class RecognitionEngine(Protocol):
    async def start_async(self, document_location: str) -> StartResult: ...

    async def fetch_page(
        self, external_job_id: str, next_token: Optional[str] = None
    ) -> BlockPage: ...


class BlobStore(Protocol):
    async def put(
        self, path: str, data: bytes, content_type: str = "application/json"
    ) -> None: ...

    async def get(self, path: str) -> bytes: ...


class MessageChannel(Protocol):
    async def send(
        self, message: PipelineMessage, delay_seconds: Optional[int] = None
    ) -> None: ...

    async def receive(
        self, max_messages: int = 10, wait_seconds: int = 20
    ) -> list[ReceivedMessage]: ...

    async def delete(self, receipt_handle: str) -> None: ...


class Classifier(Protocol):
    async def classify(self, text: str) -> Classification: ...


class JobStore(Protocol):
    partition_key: str

    def key_for(self, sort_key: str) -> RecordKey: ...

    async def get(self, key: RecordKey) -> Optional[JobRecord]: ...

    async def get_by_external_id(self, external_job_id: str) -> Optional[JobRecord]: ...

    async def merge(
        self,
        key: RecordKey,
        updates: dict[str, Any],
        must_exist: bool = False,
    ) -> JobRecord: ...

    async def query_by_index(
        self,
        index_name: str,
        value: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        status: Optional[JobStatus] = None,
        descending: bool = False,
    ) -> JobPage: ...

    async def count(self, status: Optional[JobStatus] = None) -> int: ...
