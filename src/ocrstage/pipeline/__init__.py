"""Pipeline stages for staged OCR processing.

Stages (one message type each):
1. PROCESS_DOCUMENT - fetch recognition blocks and store them
2. PARSE_DOCUMENT - rebuild form fields and tables from blocks
3. REFINE_DOCUMENT - classify document text

Each stage can be re-run on its own; the job record carries everything a
stage needs from its predecessors.
"""

from .orchestrator import PipelineOrchestrator, build_search_key, utc_timestamp
from .result_parser import (
    HANDWRITTEN_THRESHOLD,
    average_confidence,
    build_index,
    extract_handwritten_sentences,
    extract_plain_text,
    extract_table,
    get_text,
    load_blocks,
    normalize_key,
    parse_blocks,
    parse_form,
    parse_tables,
    to_camel_case,
)
from .worker import Outcome, QueueWorker, handle_body, handle_sqs_event

__all__ = [
    # Orchestrator
    "PipelineOrchestrator",
    "build_search_key",
    "utc_timestamp",
    # Result parser
    "HANDWRITTEN_THRESHOLD",
    "average_confidence",
    "build_index",
    "extract_handwritten_sentences",
    "extract_plain_text",
    "extract_table",
    "get_text",
    "load_blocks",
    "normalize_key",
    "parse_blocks",
    "parse_form",
    "parse_tables",
    "to_camel_case",
    # Worker
    "Outcome",
    "QueueWorker",
    "handle_body",
    "handle_sqs_event",
]
