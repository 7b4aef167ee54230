"""AWS Lambda entry point for SQS-triggered stage execution.

The pipeline is built on the first invocation and reused by every later
invocation in the same execution environment. Its clients are bound to the
event loop they were opened on, so that loop is kept for the life of the
process instead of using ``asyncio.run`` per batch.
"""

import asyncio
from contextlib import AsyncExitStack
from typing import Any, Optional

from ocrstage.bootstrap import Pipeline, build_pipeline
from ocrstage.config import get_settings
from ocrstage.logging_config import setup_logging
from ocrstage.pipeline import handle_sqs_event

_loop: Optional[asyncio.AbstractEventLoop] = None
_stack: Optional[AsyncExitStack] = None
_pipeline: Optional[Pipeline] = None


async def _get_pipeline() -> Pipeline:
    global _stack, _pipeline
    if _pipeline is None:
        stack = AsyncExitStack()
        _pipeline = await stack.enter_async_context(build_pipeline(get_settings()))
        _stack = stack
    return _pipeline


async def _handle(event: dict[str, Any]) -> dict[str, Any]:
    pipeline = await _get_pipeline()
    return await handle_sqs_event(pipeline.orchestrator, event)


def _get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        setup_logging(get_settings().log_level, "json")
    return _loop


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Run the stages of one SQS batch; report failed messages for redelivery."""
    return _get_loop().run_until_complete(_handle(event))


def shutdown() -> None:
    """Close the cached pipeline and its event loop."""
    global _loop, _stack, _pipeline
    if _loop is None:
        return
    if _stack is not None:
        _loop.run_until_complete(_stack.aclose())
    _loop.close()
    _loop, _stack, _pipeline = None, None, None
