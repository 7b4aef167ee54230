"""Tests for message delivery to the orchestrator."""

import asyncio

import pytest

from conftest import FakeClassifier
from ocrstage.clients import ReceivedMessage
from ocrstage.models import FileDescriptor, JobStatus, MessageType, dump_message, make_message
from ocrstage.pipeline import Outcome, PipelineOrchestrator, QueueWorker, handle_body, handle_sqs_event

INVOICE = FileDescriptor(file_name="uploads/f1.pdf", file_id="f1", url="https://files.test/f1.pdf")


def body(message_type: MessageType, job_id: str = "job-1") -> str:
    return dump_message(make_message(message_type, job_id))


def sqs_record(message_id: str, message_body: str) -> dict:
    return {"messageId": message_id, "receiptHandle": f"rh-{message_id}", "body": message_body}


class TestHandleBody:
    """Tests for outcome classification."""

    async def test_done(self, orchestrator):
        await orchestrator.submit(INVOICE)

        outcome = await handle_body(orchestrator, body(MessageType.PROCESS_DOCUMENT))

        assert outcome == Outcome.DONE
        assert outcome.acknowledge

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"type": "DELETE_DOCUMENT", "data": {"jobId": "job-1"}}',
            '{"type": "PARSE_DOCUMENT", "data": {}}',
        ],
    )
    async def test_unparsable_is_poison(self, orchestrator, raw):
        assert await handle_body(orchestrator, raw) == Outcome.POISON

    async def test_unknown_job_is_poison(self, orchestrator):
        outcome = await handle_body(orchestrator, body(MessageType.PARSE_DOCUMENT, "nope"))

        assert outcome == Outcome.POISON

    async def test_not_ready_is_retried(self, orchestrator):
        await orchestrator.submit(INVOICE)

        outcome = await handle_body(orchestrator, body(MessageType.PARSE_DOCUMENT))

        assert outcome == Outcome.RETRY
        assert not outcome.acknowledge

    async def test_unexpected_error_is_retried(self, store, engine, blobs, channel, clock):
        classifier = FakeClassifier(error=RuntimeError("boom"))
        orchestrator = PipelineOrchestrator(store, engine, blobs, channel, classifier, clock=clock)
        await orchestrator.submit(INVOICE)
        await orchestrator.on_process_document("job-1")

        outcome = await handle_body(orchestrator, body(MessageType.REFINE_DOCUMENT))

        assert outcome == Outcome.RETRY


class TestQueueWorker:
    """Tests for the polling worker."""

    async def test_run_once_acknowledges_finished_messages(self, orchestrator, channel, store):
        await orchestrator.submit(INVOICE)
        done = channel.enqueue(make_message(MessageType.PROCESS_DOCUMENT, "job-1"))
        poison = channel.enqueue(make_message(MessageType.PROCESS_DOCUMENT, "nope"))
        worker = QueueWorker(orchestrator, channel)

        outcomes = await worker.run_once()

        assert outcomes == [Outcome.DONE, Outcome.POISON]
        assert sorted(channel.deleted) == sorted([done.receipt_handle, poison.receipt_handle])
        record = await store.get_by_external_id("job-1")
        assert record.current_step == JobStatus.BLOCKS

    async def test_retryable_message_stays(self, orchestrator, channel):
        await orchestrator.submit(INVOICE)
        channel.enqueue(make_message(MessageType.REFINE_DOCUMENT, "job-1"))
        worker = QueueWorker(orchestrator, channel)

        outcomes = await worker.run_once()

        assert outcomes == [Outcome.RETRY]
        assert channel.deleted == []

    async def test_garbage_body_is_deleted(self, orchestrator, channel):
        channel.inbox.append(ReceivedMessage(message_id="m1", receipt_handle="rh1", body="{}"))

        await QueueWorker(orchestrator, channel).run_once()

        assert channel.deleted == ["rh1"]

    async def test_empty_batch(self, orchestrator, channel):
        assert await QueueWorker(orchestrator, channel).run_once() == []

    async def test_run_stops(self, orchestrator, channel):
        stop = asyncio.Event()
        stop.set()

        await asyncio.wait_for(QueueWorker(orchestrator, channel).run(stop), timeout=1)

    async def test_drains_pipeline(self, orchestrator, channel, store):
        await orchestrator.submit(INVOICE)
        worker = QueueWorker(orchestrator, channel)

        # Feed every message a stage sends back in, as the queue would
        for message, _ in list(channel.sent):
            channel.enqueue(message)
        while channel.inbox:
            before = len(channel.sent)
            await worker.run_once()
            for message, _ in channel.sent[before:]:
                channel.enqueue(message)

        record = await store.get_by_external_id("job-1")
        assert record.current_step == JobStatus.CLASSIFIED
        assert len(channel.deleted) == 3

    async def test_run_survives_receive_failure(self, orchestrator, channel, store):
        await orchestrator.submit(INVOICE)
        channel.enqueue(make_message(MessageType.PROCESS_DOCUMENT, "job-1"))
        stop = asyncio.Event()
        calls = []
        receive = channel.receive

        async def flaky_receive(max_messages=10, wait_seconds=20):
            calls.append(max_messages)
            if len(calls) == 1:
                raise ConnectionError("queue unreachable")
            if len(calls) == 3:
                stop.set()
            return await receive(max_messages, wait_seconds)

        channel.receive = flaky_receive
        worker = QueueWorker(orchestrator, channel, error_backoff_seconds=0)

        await asyncio.wait_for(worker.run(stop), timeout=5)

        assert len(calls) == 3
        record = await store.get_by_external_id("job-1")
        assert record.current_step == JobStatus.BLOCKS

    async def test_failed_acknowledgement_is_not_raised(self, orchestrator, channel):
        received = channel.enqueue(make_message(MessageType.PROCESS_DOCUMENT, "nope"))

        async def failing_delete(receipt_handle):
            raise ConnectionError("queue unreachable")

        channel.delete = failing_delete

        outcome = await QueueWorker(orchestrator, channel).handle(received)

        assert outcome == Outcome.POISON


class TestHandleSqsEvent:
    """Tests for Lambda batch handling."""

    async def test_reports_only_retryable_failures(self, orchestrator):
        await orchestrator.submit(INVOICE)
        event = {
            "Records": [
                sqs_record("m1", body(MessageType.PROCESS_DOCUMENT)),
                sqs_record("m2", "garbage"),
                sqs_record("m3", body(MessageType.PARSE_DOCUMENT, "nope")),
            ]
        }

        response = await handle_sqs_event(orchestrator, event)

        assert response == {"batchItemFailures": []}

    async def test_retryable_failure_reported(self, orchestrator):
        await orchestrator.submit(INVOICE)
        event = {"Records": [sqs_record("m1", body(MessageType.REFINE_DOCUMENT))]}

        response = await handle_sqs_event(orchestrator, event)

        assert response == {"batchItemFailures": [{"itemIdentifier": "m1"}]}

    async def test_empty_event(self, orchestrator):
        assert await handle_sqs_event(orchestrator, {}) == {"batchItemFailures": []}
