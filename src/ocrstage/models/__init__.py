"""Models for the staged OCR pipeline.

Model Hierarchy:
- Block → Relationship (recognition engine output)
- ParsedDocument → HandwrittenSentence (parse stage output)
- JobRecord (durable per-document state, camelCase on the wire)
- PipelineMessage (tagged union of stage triggers)
"""

from .base import (
    BlockType,
    CamelModel,
    EntityType,
    JobStatus,
    RelationshipType,
)
from .block import Block, Relationship
from .document import HandwrittenSentence, ParsedDocument, Table
from .job import (
    Classification,
    FileDescriptor,
    JobPage,
    JobRecord,
    LookupResult,
    RecordKey,
    SubmitResult,
)
from .message import (
    JobRef,
    MessageType,
    ParseDocumentMessage,
    PipelineMessage,
    ProcessDocumentMessage,
    RefineDocumentMessage,
    dump_message,
    make_message,
    parse_message,
)

__all__ = [
    # Base types
    "BlockType",
    "CamelModel",
    "EntityType",
    "JobStatus",
    "RelationshipType",
    # Blocks
    "Block",
    "Relationship",
    # Parser output
    "HandwrittenSentence",
    "ParsedDocument",
    "Table",
    # Job records
    "Classification",
    "FileDescriptor",
    "JobPage",
    "JobRecord",
    "LookupResult",
    "RecordKey",
    "SubmitResult",
    # Messages
    "JobRef",
    "MessageType",
    "ParseDocumentMessage",
    "PipelineMessage",
    "ProcessDocumentMessage",
    "RefineDocumentMessage",
    "dump_message",
    "make_message",
    "parse_message",
]
