"""Construct the pipeline and its clients for one process.

Everything is built from ``Settings`` inside an async context and torn
down on exit; nothing is cached at module level::

    async with build_pipeline(settings) as pipeline:
        await pipeline.orchestrator.submit(file)
"""

from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import aioboto3
import httpx
from botocore.config import Config
from sqlalchemy.ext.asyncio import AsyncEngine

from ocrstage.clients import OllamaClassifier, S3BlobStore, SqsMessageChannel, TextractEngine
from ocrstage.config import Settings
from ocrstage.pipeline import PipelineOrchestrator, QueueWorker
from ocrstage.storage import SqlJobStore, close_db, create_engine, create_session_factory

BOTO_CONFIG = Config(
    connect_timeout=30,
    read_timeout=120,
    retries={"max_attempts": 5, "mode": "adaptive"},
)


@dataclass
class Pipeline:
    """Wired-up pipeline for one process."""

    settings: Settings
    db_engine: AsyncEngine
    store: SqlJobStore
    channel: SqsMessageChannel
    orchestrator: PipelineOrchestrator

    def worker(
        self, batch_size: Optional[int] = None, wait_seconds: Optional[int] = None
    ) -> QueueWorker:
        return QueueWorker(
            self.orchestrator,
            self.channel,
            batch_size=batch_size or self.settings.worker_batch_size,
            wait_seconds=(
                wait_seconds if wait_seconds is not None else self.settings.worker_wait_seconds
            ),
            error_backoff_seconds=self.settings.worker_error_backoff_seconds,
        )


def make_session(settings: Settings) -> aioboto3.Session:
    return aioboto3.Session(
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
    )


@asynccontextmanager
async def build_pipeline(settings: Settings) -> AsyncGenerator[Pipeline, None]:
    """Open all clients and yield a ready pipeline."""
    db_engine = create_engine(settings)
    session = make_session(settings)

    async with AsyncExitStack() as stack:
        stack.push_async_callback(close_db, db_engine)

        def aws_client(service: str):
            return session.client(
                service,
                endpoint_url=settings.aws_endpoint_url,
                config=BOTO_CONFIG,
            )

        textract = await stack.enter_async_context(aws_client("textract"))
        s3 = await stack.enter_async_context(aws_client("s3"))
        sqs = await stack.enter_async_context(aws_client("sqs"))
        http = await stack.enter_async_context(
            httpx.AsyncClient(base_url=settings.ollama_host, timeout=settings.ollama_timeout)
        )

        store = SqlJobStore(create_session_factory(db_engine), settings.partition_key)
        channel = SqsMessageChannel(sqs, settings.queue_url)
        orchestrator = PipelineOrchestrator(
            store=store,
            engine=TextractEngine(textract, settings.bucket),
            blobs=S3BlobStore(s3, settings.bucket),
            channel=channel,
            classifier=OllamaClassifier(http, model=settings.ollama_model),
            blob_prefix=settings.blob_prefix,
            process_delay_seconds=settings.process_delay_seconds,
            handwritten_threshold=settings.handwritten_threshold,
            drop_empty_form_values=settings.form_drop_empty_values,
            search_key_fields=settings.search_key_fields,
        )

        yield Pipeline(
            settings=settings,
            db_engine=db_engine,
            store=store,
            channel=channel,
            orchestrator=orchestrator,
        )
