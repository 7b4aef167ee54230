"""Recognition engine adapter for AWS Textract asynchronous analysis."""

import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ocrstage.errors import EngineFetchFailed

from .base import BlockPage, StartResult

logger = logging.getLogger(__name__)

DEFAULT_FEATURE_TYPES = ("FORMS", "TABLES")


class TextractEngine:
    """Start document analysis jobs and page through their blocks.

    Wraps an already-open aioboto3 ``textract`` client.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        feature_types: tuple[str, ...] = DEFAULT_FEATURE_TYPES,
        max_results: Optional[int] = None,
    ):
        """Initialize the adapter.

        Args:
            client: aioboto3 Textract client.
            bucket: Bucket holding the uploaded documents.
            feature_types: Analyses to request.
            max_results: Blocks per page (engine default when ``None``).
        """
        self.client = client
        self.bucket = bucket
        self.feature_types = list(feature_types)
        self.max_results = max_results

    async def start_async(self, document_location: str) -> StartResult:
        """Start analysis of one object in ``bucket``.

        A refusal by the service is reported as ``accepted=False`` rather
        than raised, so intake can record the job as ERROR.
        """
        try:
            response = await self.client.start_document_analysis(
                DocumentLocation={
                    "S3Object": {"Bucket": self.bucket, "Name": document_location}
                },
                FeatureTypes=self.feature_types,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Textract refused %s: %s", document_location, e)
            return StartResult(accepted=False, error=str(e))

        status_code = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 200)
        job_id = response.get("JobId")
        if status_code != 200 or not job_id:
            return StartResult(
                accepted=False,
                external_job_id=job_id,
                error=f"Unexpected response status {status_code}",
            )
        return StartResult(accepted=True, external_job_id=job_id)

    async def fetch_page(
        self, external_job_id: str, next_token: Optional[str] = None
    ) -> BlockPage:
        """Fetch one page of blocks.

        Raises:
            EngineFetchFailed: Request failed, or the job is not finished yet.
        """
        params: dict[str, Any] = {"JobId": external_job_id}
        if next_token:
            params["NextToken"] = next_token
        if self.max_results:
            params["MaxResults"] = self.max_results

        try:
            response = await self.client.get_document_analysis(**params)
        except (ClientError, BotoCoreError) as e:
            raise EngineFetchFailed(
                f"Error getting document analysis: {e}", job_id=external_job_id
            ) from e

        job_status = response.get("JobStatus", "SUCCEEDED")
        if job_status in ("IN_PROGRESS", "FAILED"):
            raise EngineFetchFailed(
                f"Textract job {external_job_id} is {job_status}",
                job_id=external_job_id,
            )

        return BlockPage(
            blocks=response.get("Blocks", []),
            next_token=response.get("NextToken"),
        )
