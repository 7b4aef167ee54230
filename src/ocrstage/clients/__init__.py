"""Adapters for external services.

- textract: recognition engine (AWS Textract)
- s3: blob store (AWS S3)
- sqs: message channel (AWS SQS)
- ollama: document classifier (Ollama HTTP API)
"""

from .base import (
    BlobStore,
    BlockPage,
    Classifier,
    JobStore,
    MessageChannel,
    ReceivedMessage,
    RecognitionEngine,
    StartResult,
)
from .ollama import OllamaClassifier
from .s3 import S3BlobStore
from .sqs import SqsMessageChannel
from .textract import TextractEngine

__all__ = [
    # Protocols
    "BlobStore",
    "Classifier",
    "JobStore",
    "MessageChannel",
    "RecognitionEngine",
    # Value types
    "BlockPage",
    "ReceivedMessage",
    "StartResult",
    # Adapters
    "OllamaClassifier",
    "S3BlobStore",
    "SqsMessageChannel",
    "TextractEngine",
]
