"""Queue Worker - Deliver pipeline messages to the orchestrator.

Delivery is at-least-once. A message is acknowledged (deleted) only after
its stage succeeded, or when it can never succeed: an unparsable body or a
job with no record. Any other failure leaves the message on the queue so
it is redelivered once its visibility timeout expires.
"""

import asyncio
import contextlib
import logging
import time
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from ocrstage.clients import MessageChannel, ReceivedMessage
from ocrstage.errors import PipelineError
from ocrstage.models import parse_message

from .orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """What happened to one delivered message."""

    DONE = "done"
    POISON = "poison"
    RETRY = "retry"

    @property
    def acknowledge(self) -> bool:
        return self != Outcome.RETRY


async def handle_body(
    orchestrator: PipelineOrchestrator,
    body: str,
    message_id: Optional[str] = None,
) -> Outcome:
    """Decode one message body and run its stage.

    Never raises for stage failures; the outcome says whether the message
    should be acknowledged.
    """
    try:
        message = parse_message(body)
    except ValidationError as e:
        logger.error(
            "Discarding unparsable message: %s", e,
            extra={"message_id": message_id},
        )
        return Outcome.POISON

    job_id = message.data.job_id
    context = {"job_id": job_id, "message_type": message.type, "message_id": message_id}
    started = time.perf_counter()

    try:
        await orchestrator.dispatch(message)
    except PipelineError as e:
        if e.retryable:
            logger.warning(
                "%s failed, leaving for redelivery: %s", message.type, e,
                extra={**context, "retryable": True},
            )
            return Outcome.RETRY
        logger.error(
            "%s failed permanently, discarding: %s", message.type, e,
            extra={**context, "retryable": False},
        )
        return Outcome.POISON
    except Exception:
        logger.exception("%s crashed", message.type, extra=context)
        return Outcome.RETRY

    duration_ms = round((time.perf_counter() - started) * 1000, 1)
    logger.info(
        "%s done", message.type,
        extra={**context, "duration_ms": duration_ms},
    )
    return Outcome.DONE


class QueueWorker:
    """Long-poll a message channel and run each message's stage."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        channel: MessageChannel,
        batch_size: int = 10,
        wait_seconds: int = 20,
        error_backoff_seconds: float = 5.0,
    ):
        """Initialize the worker.

        Args:
            orchestrator: Pipeline to dispatch to.
            channel: Channel to receive from and acknowledge on.
            batch_size: Messages per receive call.
            wait_seconds: Long-poll wait per receive call.
            error_backoff_seconds: Pause after a batch fails before polling again.
        """
        self.orchestrator = orchestrator
        self.channel = channel
        self.batch_size = batch_size
        self.wait_seconds = wait_seconds
        self.error_backoff_seconds = error_backoff_seconds

    async def handle(self, received: ReceivedMessage) -> Outcome:
        outcome = await handle_body(self.orchestrator, received.body, received.message_id)
        if outcome.acknowledge:
            try:
                await self.channel.delete(received.receipt_handle)
            except Exception:
                # The message comes back after its visibility timeout
                logger.exception(
                    "Failed to acknowledge message",
                    extra={"message_id": received.message_id},
                )
        return outcome

    async def run_once(self) -> list[Outcome]:
        """Receive one batch and process it concurrently."""
        messages = await self.channel.receive(self.batch_size, self.wait_seconds)
        if not messages:
            return []
        return list(await asyncio.gather(*(self.handle(m) for m in messages)))

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Process batches until ``stop`` is set."""
        stop = stop or asyncio.Event()
        logger.info("Worker started")
        while not stop.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception(
                    "Receiving messages failed, retrying in %.1fs", self.error_backoff_seconds
                )
                await self._pause(stop)
        logger.info("Worker stopped")

    async def _pause(self, stop: asyncio.Event) -> None:
        """Sleep for the backoff, waking early when ``stop`` is set."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=self.error_backoff_seconds)


async def handle_sqs_event(
    orchestrator: PipelineOrchestrator, event: dict[str, Any]
) -> dict[str, list[dict[str, str]]]:
    """Process an SQS event batch as delivered to a Lambda function.

    Returns:
        Partial batch response naming the messages to redeliver.
    """
    failures = []
    for record in event.get("Records", []):
        message_id = record.get("messageId", "")
        outcome = await handle_body(orchestrator, record.get("body", ""), message_id)
        if not outcome.acknowledge:
            failures.append({"itemIdentifier": message_id})
    return {"batchItemFailures": failures}
