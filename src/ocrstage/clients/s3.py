"""Blob store adapter for S3."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class S3BlobStore:
    """Put and get whole objects in one bucket via an aioboto3 ``s3`` client."""

    def __init__(self, client: Any, bucket: str):
        self.client = client
        self.bucket = bucket

    async def put(
        self, path: str, data: bytes, content_type: str = "application/json"
    ) -> None:
        await self.client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            ContentDisposition="inline",
        )
        logger.debug("Stored s3://%s/%s (%d bytes)", self.bucket, path, len(data))

    async def get(self, path: str) -> bytes:
        response = await self.client.get_object(Bucket=self.bucket, Key=path)
        async with response["Body"] as stream:
            return await stream.read()
