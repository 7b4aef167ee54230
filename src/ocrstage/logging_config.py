"""Logging setup shared by the CLI and the queue worker.

Usage::

    from ocrstage.logging_config import setup_logging

    setup_logging("INFO", "json")
    logger = logging.getLogger(__name__)
    logger.info("Blocks stored", extra={"job_id": job_id})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from rich.logging import RichHandler


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for CloudWatch and similar collectors."""

    EXTRA_FIELDS = frozenset({
        "job_id",
        "message_type",
        "message_id",
        "step",
        "page_count",
        "block_count",
        "blob_path",
        "duration_ms",
        "retryable",
    })

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        fmt: ``text`` for rich console output, ``json`` for structured lines.
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    if fmt == "json":
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))

    root.addHandler(handler)

    # botocore is chatty at INFO
    for noisy in ("botocore", "aiobotocore", "httpx", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(max(root.level, logging.WARNING))
