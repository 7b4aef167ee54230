"""Message channel adapter for SQS."""

import logging
from typing import Any, Optional

from ocrstage.models import PipelineMessage, dump_message

from .base import ReceivedMessage

logger = logging.getLogger(__name__)

MAX_DELAY_SECONDS = 900


class SqsMessageChannel:
    """Send, receive and acknowledge pipeline messages on one queue."""

    def __init__(self, client: Any, queue_url: str):
        self.client = client
        self.queue_url = queue_url

    async def send(
        self, message: PipelineMessage, delay_seconds: Optional[int] = None
    ) -> None:
        """Send a message, optionally hidden from consumers for a while.

        Raises:
            ValueError: Delay is outside what SQS accepts.
        """
        params: dict[str, Any] = {
            "QueueUrl": self.queue_url,
            "MessageBody": dump_message(message),
        }
        if delay_seconds:
            if not 0 < delay_seconds <= MAX_DELAY_SECONDS:
                raise ValueError(f"delay_seconds must be 0-{MAX_DELAY_SECONDS}")
            params["DelaySeconds"] = delay_seconds

        try:
            await self.client.send_message(**params)
        except Exception:
            logger.exception(
                "Failed to send %s", message.type,
                extra={"job_id": message.data.job_id, "message_type": message.type},
            )
            raise

    async def receive(
        self, max_messages: int = 10, wait_seconds: int = 20
    ) -> list[ReceivedMessage]:
        response = await self.client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds,
        )
        return [
            ReceivedMessage(
                message_id=m["MessageId"],
                receipt_handle=m["ReceiptHandle"],
                body=m["Body"],
            )
            for m in response.get("Messages", [])
        ]

    async def delete(self, receipt_handle: str) -> None:
        await self.client.delete_message(
            QueueUrl=self.queue_url, ReceiptHandle=receipt_handle
        )
