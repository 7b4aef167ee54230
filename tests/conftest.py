"""Pytest configuration and fixtures."""

import itertools
from typing import Optional

import pytest

from factories import invoice_pages
from ocrstage.clients import BlockPage, ReceivedMessage, StartResult
from ocrstage.config import Settings
from ocrstage.errors import EngineFetchFailed
from ocrstage.models import Classification, PipelineMessage, dump_message
from ocrstage.pipeline import PipelineOrchestrator
from ocrstage.storage import SqlJobStore, close_db, create_engine, create_session_factory, init_db


class FakeEngine:
    """Recognition engine serving fixed pages of blocks."""

    def __init__(self, pages, job_id="job-1", accepted=True, fail_on_page=None):
        self.pages = pages
        self.job_id = job_id
        self.accepted = accepted
        self.fail_on_page = fail_on_page
        self.started = []
        self.fetches = []

    async def start_async(self, document_location: str) -> StartResult:
        self.started.append(document_location)
        if not self.accepted:
            return StartResult(accepted=False, error="InvalidS3ObjectException")
        return StartResult(accepted=True, external_job_id=self.job_id)

    async def fetch_page(self, external_job_id: str, next_token: Optional[str] = None) -> BlockPage:
        index = int(next_token) if next_token else 0
        self.fetches.append((external_job_id, next_token))
        if self.fail_on_page is not None and index == self.fail_on_page:
            raise EngineFetchFailed("Throttled", job_id=external_job_id)
        more = index + 1 < len(self.pages)
        return BlockPage(
            blocks=self.pages[index],
            next_token=str(index + 1) if more else None,
        )


class InMemoryBlobStore:
    def __init__(self):
        self.objects: dict[str, bytes] = {}

    async def put(self, path: str, data: bytes, content_type: str = "application/json") -> None:
        self.objects[path] = data

    async def get(self, path: str) -> bytes:
        return self.objects[path]


class RecordingChannel:
    """Message channel that keeps everything it is sent."""

    def __init__(self):
        self.sent: list[tuple[PipelineMessage, Optional[int]]] = []
        self.inbox: list[ReceivedMessage] = []
        self.deleted: list[str] = []
        self._ids = itertools.count(1)

    async def send(self, message: PipelineMessage, delay_seconds: Optional[int] = None) -> None:
        self.sent.append((message, delay_seconds))

    def enqueue(self, message: PipelineMessage) -> ReceivedMessage:
        n = next(self._ids)
        received = ReceivedMessage(
            message_id=f"msg-{n}", receipt_handle=f"rh-{n}", body=dump_message(message)
        )
        self.inbox.append(received)
        return received

    async def receive(self, max_messages: int = 10, wait_seconds: int = 20) -> list[ReceivedMessage]:
        batch, self.inbox = self.inbox[:max_messages], self.inbox[max_messages:]
        return batch

    async def delete(self, receipt_handle: str) -> None:
        self.deleted.append(receipt_handle)

    @property
    def sent_types(self) -> list[str]:
        return [message.type for message, _ in self.sent]


class FakeClassifier:
    def __init__(self, result: Optional[Classification] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.texts: list[str] = []

    async def classify(self, text: str) -> Classification:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        queue_url="https://sqs.test/queue",
        _env_file=None,
    )


@pytest.fixture
async def store(settings):
    """Job store on a fresh SQLite database."""
    engine = create_engine(settings)
    await init_db(engine)
    yield SqlJobStore(create_session_factory(engine), settings.partition_key)
    await close_db(engine)


@pytest.fixture
def pages():
    return invoice_pages()


@pytest.fixture
def engine(pages):
    return FakeEngine(pages)


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def invoice_classification():
    return Classification(
        summary="Invoice from Acme",
        classification="Invoice",
        category="financial",
        pages_count=2,
        contact=[],
        relevant_dates=[],
    )


@pytest.fixture
def classifier(invoice_classification):
    return FakeClassifier(invoice_classification)


@pytest.fixture
def clock():
    """Deterministic, strictly increasing sort keys."""
    counter = itertools.count()
    return lambda: f"2024-05-01T09:30:00.{next(counter):03d}Z"


@pytest.fixture
def orchestrator(store, engine, blobs, channel, classifier, clock):
    return PipelineOrchestrator(
        store=store,
        engine=engine,
        blobs=blobs,
        channel=channel,
        classifier=classifier,
        clock=clock,
    )
