"""Exception hierarchy for pipeline stages.

Every error carries a ``retryable`` flag. The queue worker uses it to decide
between leaving a message for redelivery and discarding it as poison.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = True

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class NotFound(PipelineError):
    """No job record exists for the given identity."""

    retryable = False

    def __init__(self, job_id: str):
        super().__init__(f"Data not found: {job_id}", job_id=job_id)


class EngineFetchFailed(PipelineError):
    """Fetching recognition results aborted before the last page."""


class StageNotReady(PipelineError):
    """A stage ran before the output of its predecessor was recorded."""


class ParseFailure(PipelineError):
    """Stored block data is not a list of blocks."""

    retryable = False


class ClassificationFailure(PipelineError):
    """Classifier call failed or returned output that could not be parsed."""


class StoreReadFailed(PipelineError):
    """The keyed record store could not be read."""


class StoreWriteFailed(PipelineError):
    """The keyed record store could not apply a mutation."""
