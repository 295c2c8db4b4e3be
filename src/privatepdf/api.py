"""Ollama command API — FastAPI router for the desktop frontend.

Provides REST endpoints for:
  /api/ollama/status, /ping          — probes
  /api/ollama/service/start, /stop   — lifecycle
  /api/ollama/chat, /chat/stream     — chat completions
  /api/ollama/embeddings             — embeddings
  /api/ollama/models/pull            — model download (streamed progress)
  /api/ollama/install                — managed install (streamed progress)
  /api/ollama/settings               — persisted user preferences

Streaming endpoints answer with NDJSON: one ``{"event", "payload"}`` line per
progress event, then a closing ``result`` or ``error`` line.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from privatepdf.app_settings import AppSettings, load_settings, reset_settings, save_settings
from privatepdf.ollama.errors import (
    FilesystemError,
    NotFoundError,
    OllamaError,
    ProtocolError,
    ServerError,
    TransportError,
    UnsupportedPlatformError,
)
from privatepdf.ollama.events import ProgressSink, QueueSink
from privatepdf.ollama.models import ChatMessage, ChatOptions, ServiceStatus
from privatepdf.ollama.service import get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ollama", tags=["Ollama"])


class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage] = Field(description="Conversation, oldest first")
    options: ChatOptions | None = None


class EmbeddingRequest(BaseModel):
    model: str
    text: str


class PullRequest(BaseModel):
    name: str


class InstallRequest(BaseModel):
    is_amd_gpu: bool = False


def _http_error(e: OllamaError) -> HTTPException:
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, UnsupportedPlatformError):
        status = 400
    elif isinstance(e, (TransportError, ProtocolError, ServerError)):
        status = 502
    else:
        status = 500
    return HTTPException(status_code=status, detail=str(e))


def _line(data: dict[str, Any]) -> bytes:
    return (json.dumps(data) + "\n").encode("utf-8")


async def _event_stream(run: Callable[[ProgressSink], Awaitable[Any]]) -> AsyncIterator[bytes]:
    """Run ``run(sink)`` and relay its events until it finishes."""
    sink = QueueSink()
    task = asyncio.create_task(run(sink))
    try:
        while True:
            getter = asyncio.create_task(sink.queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                event, payload = getter.result()
                yield _line({"event": event, "payload": payload})
                continue
            getter.cancel()
            break

        while not sink.queue.empty():
            event, payload = sink.queue.get_nowait()
            yield _line({"event": event, "payload": payload})

        try:
            result = task.result()
        except OllamaError as e:
            yield _line({"event": "error", "message": str(e)})
            return
        except Exception as e:
            logger.exception("Streaming operation failed")
            yield _line({"event": "error", "message": str(e)})
            return
        yield _line({"event": "result", "payload": result})
    finally:
        if not task.done():
            # Client went away mid-stream
            task.cancel()


def _ndjson(run: Callable[[ProgressSink], Awaitable[Any]]) -> StreamingResponse:
    return StreamingResponse(
        _event_stream(run),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"},
    )


# ─── Lifecycle ───────────────────────────────────────────────────────────


@router.get("/status", response_model=ServiceStatus)
async def get_status():
    """Check whether Ollama is running and which models it has."""
    return await get_service().check_status()


@router.get("/ping")
async def ping():
    return {"ok": await get_service().ping()}


@router.post("/service/start")
async def start_service():
    try:
        message = await get_service().start()
    except OllamaError as e:
        raise _http_error(e)
    return {"status": "ok", "message": message}


@router.post("/service/stop")
async def stop_service():
    try:
        message = await get_service().stop()
    except OllamaError as e:
        raise _http_error(e)
    return {"status": "ok", "message": message}


# ─── Inference ───────────────────────────────────────────────────────────


@router.post("/chat")
async def chat(request: ChatRequest):
    if not request.messages:
        raise HTTPException(status_code=400, detail="Messages cannot be empty")
    try:
        content = await get_service().chat(request.model, request.messages, request.options)
    except OllamaError as e:
        raise _http_error(e)
    return {"content": content}


@router.post("/chat/stream")
async def chat_stream(request: ChatRequest):
    if not request.messages:
        raise HTTPException(status_code=400, detail="Messages cannot be empty")
    service = get_service()
    return _ndjson(
        lambda sink: service.chat_stream(request.model, request.messages, request.options, sink)
    )


@router.post("/embeddings")
async def embeddings(request: EmbeddingRequest):
    try:
        embedding = await get_service().embed(request.model, request.text)
    except OllamaError as e:
        raise _http_error(e)
    return {"embedding": embedding}


# ─── Downloads ───────────────────────────────────────────────────────────


@router.post("/models/pull")
async def pull_model(request: PullRequest):
    service = get_service()
    return _ndjson(lambda sink: service.pull_model(request.name, sink))


@router.post("/install")
async def install(request: InstallRequest):
    service = get_service()
    return _ndjson(lambda sink: service.install(request.is_amd_gpu, sink))


# ─── Settings ────────────────────────────────────────────────────────────


@router.get("/settings", response_model=AppSettings)
async def get_app_settings():
    try:
        return load_settings()
    except FilesystemError as e:
        raise _http_error(e)


@router.put("/settings", response_model=AppSettings)
async def put_app_settings(settings: AppSettings):
    try:
        save_settings(settings)
    except FilesystemError as e:
        raise _http_error(e)
    return settings


@router.delete("/settings", response_model=AppSettings)
async def delete_app_settings():
    try:
        return reset_settings()
    except FilesystemError as e:
        raise _http_error(e)
