"""Progress sinks — the one-way event channel towards the UI.

A sink is any callable ``sink(event_name, payload_dict)``.  It may be a plain
function or return an awaitable; either way the core never waits for it and a
failing sink never aborts the transfer that is reporting through it.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str, dict[str, Any]], Any]

# Event names consumed by the desktop frontend
STREAM_CHUNK = "ollama_stream_chunk"
MODEL_DOWNLOAD_PROGRESS = "model_download_progress"
DOWNLOAD_STATUS = "ollama_download_status"
DOWNLOAD_PROGRESS = "ollama_download_progress"
EXTRACTION_PROGRESS = "ollama_extraction_progress"

_pending: set[asyncio.Task] = set()


def _log_task_failure(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Async progress sink failed: %s", exc)


def emit(sink: ProgressSink | None, event: str, payload: BaseModel | dict[str, Any]) -> None:
    """Fire-and-forget delivery of one event; failures are logged and dropped."""
    if sink is None:
        return
    data = payload.model_dump() if isinstance(payload, BaseModel) else payload
    try:
        result = sink(event, data)
    except Exception as e:
        logger.debug("Progress sink raised for %s: %s", event, e)
        return

    if inspect.isawaitable(result):
        try:
            task = asyncio.ensure_future(result)
        except RuntimeError as e:
            # No running loop to schedule on
            logger.debug("Dropping async sink result for %s: %s", event, e)
            if inspect.iscoroutine(result):
                result.close()
            return
        _pending.add(task)
        task.add_done_callback(_log_task_failure)


def threadsafe_sink(
    sink: ProgressSink | None, loop: asyncio.AbstractEventLoop
) -> ProgressSink | None:
    """Wrap ``sink`` so worker threads hand events back to ``loop``."""
    if sink is None:
        return None

    def _relay(event: str, payload: dict[str, Any]) -> None:
        try:
            loop.call_soon_threadsafe(emit, sink, event, payload)
        except RuntimeError as e:
            logger.debug("Event loop closed, dropping %s: %s", event, e)

    return _relay


class QueueSink:
    """Sink that buffers events in an ``asyncio.Queue`` for an HTTP stream.

    Used by the API layer to turn progress events into NDJSON lines.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue(maxsize)

    def __call__(self, event: str, payload: dict[str, Any]) -> None:
        try:
            self.queue.put_nowait((event, payload))
        except asyncio.QueueFull:
            logger.debug("Event queue full, dropping %s", event)
