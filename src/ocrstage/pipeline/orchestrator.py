"""Pipeline Orchestrator - Drive a document through its stages.

States:
    PENDING -> PARTIAL:BLOCKS -> PARTIAL:PARSED -> PARTIAL:CLASSIFIED
    ERROR only at intake, when the engine refuses the job.

Each stage handler:
1. Reads the job record fresh by external job id
2. Reads the previous stage's output from durable storage
3. Merges its own fields and the new status into the record
4. Sends the message that triggers the next stage

Handlers are safe to re-run for the same job. A failing stage raises and
leaves the record at its last completed status; the message channel
redelivers the message.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from pydantic import ValidationError

from ocrstage.clients import BlobStore, Classifier, JobStore, MessageChannel, RecognitionEngine
from ocrstage.errors import NotFound, ParseFailure, PipelineError, StageNotReady, StoreWriteFailed
from ocrstage.models import (
    FileDescriptor,
    JobPage,
    JobRecord,
    JobStatus,
    LookupResult,
    MessageType,
    PipelineMessage,
    SubmitResult,
    make_message,
)
from ocrstage.storage import PRIMARY_INDEX

from .result_parser import HANDWRITTEN_THRESHOLD, extract_plain_text, load_blocks, parse_blocks

logger = logging.getLogger(__name__)

DEFAULT_PROCESS_DELAY = 240
DEFAULT_SEARCH_KEY_FIELDS = ("lastName", "firstName")


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with milliseconds, e.g. 2024-05-01T09:30:00.123Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def build_search_key(form: Optional[dict[str, str]], fields: Sequence[str]) -> Optional[str]:
    """Lower-cased concatenation of the named form values.

    Returns ``None`` when none of the fields has a value.
    """
    if not form:
        return None
    parts = [form.get(field, "").strip().lower() for field in fields]
    key = "".join(parts)
    return key or None


class PipelineOrchestrator:
    """State machine for one document pipeline.

    All collaborators are passed in; the orchestrator keeps no per-job
    state between calls.
    """

    def __init__(
        self,
        store: JobStore,
        engine: RecognitionEngine,
        blobs: BlobStore,
        channel: MessageChannel,
        classifier: Classifier,
        blob_prefix: str = "documents",
        process_delay_seconds: int = DEFAULT_PROCESS_DELAY,
        handwritten_threshold: float = HANDWRITTEN_THRESHOLD,
        drop_empty_form_values: bool = False,
        search_key_fields: Sequence[str] = DEFAULT_SEARCH_KEY_FIELDS,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.store = store
        self.engine = engine
        self.blobs = blobs
        self.channel = channel
        self.classifier = classifier
        self.blob_prefix = blob_prefix.strip("/")
        self.process_delay_seconds = process_delay_seconds
        self.handwritten_threshold = handwritten_threshold
        self.drop_empty_form_values = drop_empty_form_values
        self.search_key_fields = tuple(search_key_fields)
        self.clock = clock

        self._handlers = {
            MessageType.PROCESS_DOCUMENT: self.on_process_document,
            MessageType.PARSE_DOCUMENT: self.on_parse_document,
            MessageType.REFINE_DOCUMENT: self.on_refine_document,
        }

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def submit(self, file: FileDescriptor) -> SubmitResult:
        """Start recognition for an uploaded file and record the job.

        An accepted job is recorded as PENDING and a delayed
        PROCESS_DOCUMENT is sent. A refused job is recorded as ERROR and
        nothing is sent.

        Raises:
            StoreWriteFailed: The record could not be written. The engine job,
                if started, is left running.
        """
        start = await self.engine.start_async(file.file_name)
        status = JobStatus.PENDING if start.accepted else JobStatus.ERROR
        sort_key = self.clock()

        updates: dict[str, Any] = {
            "external_job_id": start.external_job_id,
            "current_step": status,
            "file_id": file.file_id,
            "file_name": file.file_name,
            "file_type": file.file_type,
            "url": file.url,
            "original_filename": file.name or "",
            "error": start.error,
        }

        try:
            await self.store.merge(self.store.key_for(sort_key), updates)
        except StoreWriteFailed:
            logger.error(
                "Recognition job started for %s but its record was not written",
                file.file_name,
                extra={"job_id": start.external_job_id},
            )
            raise

        if not start.accepted:
            logger.warning(
                "Recognition engine refused %s: %s", file.file_name, start.error,
                extra={"job_id": start.external_job_id, "step": status.value},
            )
            return SubmitResult(
                success=False,
                url=file.url,
                status=status,
                external_job_id=start.external_job_id,
            )

        await self.channel.send(
            make_message(MessageType.PROCESS_DOCUMENT, start.external_job_id),
            delay_seconds=self.process_delay_seconds,
        )
        logger.info(
            "Submitted %s", file.file_name,
            extra={"job_id": start.external_job_id, "step": status.value},
        )
        return SubmitResult(
            success=True,
            url=file.url,
            status=status,
            external_job_id=start.external_job_id,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def on_process_document(self, job_id: str) -> JobRecord:
        """Fetch every page of blocks, store them, and mark PARTIAL:BLOCKS.

        Raises:
            NotFound: No record for ``job_id``.
            EngineFetchFailed: A page could not be fetched; nothing is stored.
        """
        record = await self._require(job_id)

        blocks: list[dict[str, Any]] = []
        next_token: Optional[str] = None
        pages = 0
        while True:
            page = await self.engine.fetch_page(job_id, next_token)
            blocks.extend(page.blocks)
            pages += 1
            next_token = page.next_token
            if not next_token:
                break

        path = self.blocks_path(record)
        await self.blobs.put(path, json.dumps(blocks).encode("utf-8"), "application/json")

        updated = await self.store.merge(
            record.key,
            {
                "current_step": JobStatus.BLOCKS,
                "blocks_location": path,
                "error": None,
            },
            must_exist=True,
        )
        logger.info(
            "Stored %d blocks from %d pages", len(blocks), pages,
            extra={
                "job_id": job_id,
                "block_count": len(blocks),
                "page_count": pages,
                "blob_path": path,
            },
        )

        await self.channel.send(make_message(MessageType.PARSE_DOCUMENT, job_id))
        return updated

    async def on_parse_document(self, job_id: str) -> JobRecord:
        """Parse stored blocks into form, tables, confidence and handwriting.

        Raises:
            NotFound: No record for ``job_id``.
            StageNotReady: Blocks have not been stored yet.
            ParseFailure: Stored data is not a block list.
        """
        record = await self._require(job_id)
        raw_blocks = await self._load_raw_blocks(record)

        try:
            parsed = parse_blocks(
                raw_blocks,
                drop_empty_values=self.drop_empty_form_values,
                handwritten_threshold=self.handwritten_threshold,
            )
        except ValidationError as e:
            raise ParseFailure(f"Invalid block in {record.blocks_location}: {e}", job_id) from e

        updated = await self.store.merge(
            record.key,
            {
                "current_step": JobStatus.PARSED,
                "form": parsed.form,
                "table": parsed.table,
                "confidence": parsed.confidence,
                "handwritten": parsed.handwritten,
                "error": None,
            },
            must_exist=True,
        )
        logger.info(
            "Parsed %d fields and %d tables", len(parsed.form), len(parsed.table),
            extra={"job_id": job_id, "step": JobStatus.PARSED.value},
        )

        await self.channel.send(make_message(MessageType.REFINE_DOCUMENT, job_id))
        return updated

    async def on_refine_document(self, job_id: str) -> JobRecord:
        """Classify the document text and mark PARTIAL:CLASSIFIED.

        Raises:
            NotFound: No record for ``job_id``.
            StageNotReady: Blocks have not been stored yet.
            ClassificationFailure: Classifier failed; status is unchanged.
        """
        record = await self._require(job_id)
        raw_blocks = await self._load_raw_blocks(record)

        try:
            text = extract_plain_text(load_blocks(raw_blocks))
        except ValidationError as e:
            raise ParseFailure(f"Invalid block in {record.blocks_location}: {e}", job_id) from e

        result = await self.classifier.classify(text)

        updates: dict[str, Any] = {
            "current_step": JobStatus.CLASSIFIED,
            "summary": result.summary,
            "classification": result.classification,
            "category": result.category,
            "relevant_dates": result.relevant_dates,
            "pages_count": result.pages_count,
            "contact": result.contact,
            "error": None,
        }
        search_key = build_search_key(record.form, self.search_key_fields)
        if search_key:
            updates["search_key"] = search_key

        updated = await self.store.merge(record.key, updates, must_exist=True)
        logger.info(
            "Classified as %s", result.classification,
            extra={"job_id": job_id, "step": JobStatus.CLASSIFIED.value},
        )
        return updated

    async def dispatch(self, message: PipelineMessage) -> JobRecord:
        """Run the stage a message asks for."""
        handler = self._handlers[MessageType(message.type)]
        return await handler(message.data.job_id)

    async def advance(
        self, job_id: str, stage: MessageType = MessageType.PARSE_DOCUMENT
    ) -> JobRecord:
        """Re-run one stage for a job on demand."""
        return await self._handlers[stage](job_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def find_one(self, job_id: str) -> LookupResult[JobRecord]:
        """Look up a record by external job id without raising."""
        try:
            record = await self.store.get_by_external_id(job_id)
        except PipelineError as e:
            logger.error("Lookup failed: %s", e, extra={"job_id": job_id})
            return LookupResult[JobRecord](data=None, error=str(e))

        if record is None:
            return LookupResult[JobRecord](data=None, error=f"Data not found: {job_id}")
        return LookupResult[JobRecord](data=record)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        limit: int = 20,
        cursor: Optional[str] = None,
        descending: bool = False,
    ) -> JobPage:
        """Page through all jobs in creation order."""
        return await self.store.query_by_index(
            PRIMARY_INDEX,
            self.store.partition_key,
            limit=limit,
            cursor=cursor,
            status=status,
            descending=descending,
        )

    async def count(self, status: Optional[JobStatus] = None) -> int:
        return await self.store.count(status)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def blocks_path(self, record: JobRecord) -> str:
        """Blob path of a job's raw blocks, unique per recognition job."""
        job = record.external_job_id or record.sort_key
        folder = record.file_id or job
        return f"{self.blob_prefix}/{folder}/{job}.blocks.json"

    async def _require(self, job_id: str) -> JobRecord:
        record = await self.store.get_by_external_id(job_id)
        if record is None:
            raise NotFound(job_id)
        return record

    async def _load_raw_blocks(self, record: JobRecord) -> list[dict[str, Any]]:
        if not record.blocks_location:
            raise StageNotReady(
                f"No blocks stored for job (status {record.current_step.value})",
                job_id=record.external_job_id,
            )

        data = await self.blobs.get(record.blocks_location)
        try:
            raw_blocks = json.loads(data)
        except ValueError as e:
            raise ParseFailure(
                f"Unreadable blocks at {record.blocks_location}", record.external_job_id
            ) from e
        if not isinstance(raw_blocks, list):
            raise ParseFailure(
                f"Expected a block list at {record.blocks_location}", record.external_job_id
            )
        return raw_blocks
