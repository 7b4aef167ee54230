"""Pipeline messages.

Messages form a tagged union on ``type``. The wire form matches what the
producers have always sent::

    {"type": "PARSE_DOCUMENT", "data": {"jobId": "..."}}
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from .base import CamelModel


class MessageType(str, Enum):
    PROCESS_DOCUMENT = "PROCESS_DOCUMENT"
    PARSE_DOCUMENT = "PARSE_DOCUMENT"
    REFINE_DOCUMENT = "REFINE_DOCUMENT"


class JobRef(CamelModel):
    """Payload naming a job by its external (engine) id."""

    job_id: str = Field(..., min_length=1)


class ProcessDocumentMessage(CamelModel):
    type: Literal["PROCESS_DOCUMENT"] = "PROCESS_DOCUMENT"
    data: JobRef


class ParseDocumentMessage(CamelModel):
    type: Literal["PARSE_DOCUMENT"] = "PARSE_DOCUMENT"
    data: JobRef


class RefineDocumentMessage(CamelModel):
    type: Literal["REFINE_DOCUMENT"] = "REFINE_DOCUMENT"
    data: JobRef


PipelineMessage = Annotated[
    Union[ProcessDocumentMessage, ParseDocumentMessage, RefineDocumentMessage],
    Field(discriminator="type"),
]

_message_adapter: TypeAdapter[PipelineMessage] = TypeAdapter(PipelineMessage)

_MESSAGE_CLASSES = {
    MessageType.PROCESS_DOCUMENT: ProcessDocumentMessage,
    MessageType.PARSE_DOCUMENT: ParseDocumentMessage,
    MessageType.REFINE_DOCUMENT: RefineDocumentMessage,
}


def make_message(message_type: MessageType, job_id: str) -> PipelineMessage:
    """Build the message of the given type for a job."""
    return _MESSAGE_CLASSES[message_type](data=JobRef(job_id=job_id))


def parse_message(body: Union[str, bytes]) -> PipelineMessage:
    """Decode a JSON message body.

    Raises:
        pydantic.ValidationError: Body is not JSON or not a known message.
    """
    return _message_adapter.validate_json(body)


def dump_message(message: PipelineMessage) -> str:
    return message.model_dump_json(by_alias=True)
