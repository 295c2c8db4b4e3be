"""Chat and embedding calls against Ollama's native API.

``/api/chat`` with ``stream=false`` returns one JSON object; with
``stream=true`` it returns NDJSON, one record per generated fragment:

    {"message": {"role": "assistant", "content": "Hel"}, "done": false}
    {"message": {"role": "assistant", "content": "lo"}, "done": false}
    {"message": {"role": "assistant", "content": ""}, "done": true, ...}
"""

import logging
from collections.abc import Sequence
from typing import Any

from .errors import ProtocolError, ServerError, TransportError
from .events import STREAM_CHUNK, ProgressSink, emit
from .models import ChatMessage, ChatOptions, StreamChunk
from .ndjson import iter_records
from .transport import OllamaTransport, iter_body

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"
EMBEDDINGS_PATH = "/api/embeddings"


def build_chat_payload(
    model: str,
    messages: Sequence[ChatMessage],
    options: ChatOptions | None,
    *,
    stream: bool,
    context_window: int | None = None,
) -> dict[str, Any]:
    ollama_options = (options or ChatOptions()).to_ollama_options()
    if context_window:
        ollama_options["num_ctx"] = context_window
    return {
        "model": model,
        "messages": [{"role": msg.role.value, "content": msg.content} for msg in messages],
        "stream": stream,
        "options": ollama_options,
    }


class ChatClient:
    def __init__(
        self,
        transport: OllamaTransport,
        timeout: float = 120.0,
        stream_context_window: int | None = 16384,
    ) -> None:
        self.transport = transport
        self.timeout = timeout
        self.stream_context_window = stream_context_window

    async def chat(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> str:
        """Non-streaming chat; returns the assistant reply text."""
        logger.info("Ollama chat request: model=%s, messages=%d", model, len(messages))
        payload = build_chat_payload(model, messages, options, stream=False)
        try:
            response = await self.transport.post(CHAT_PATH, json=payload, timeout=self.timeout)
        except TransportError as e:
            raise TransportError(f"Chat request failed: {e}") from e
        if not response.is_success:
            raise TransportError(f"Chat failed: HTTP {response.status_code}")

        try:
            data = response.json()
            content = data["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProtocolError(f"Failed to parse response: {e}") from e
        if not isinstance(content, str):
            raise ProtocolError("Failed to parse response: message content is not text")

        logger.info("Chat response received: %d chars", len(content))
        return content

    async def chat_stream(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
        sink: ProgressSink | None = None,
    ) -> str:
        """Streaming chat.

        Emits one ``ollama_stream_chunk`` event per content-bearing record, in
        arrival order, and returns the concatenated reply.  A record with an
        ``error`` field fails the whole call.
        """
        logger.info("Ollama streaming chat request: model=%s, messages=%d", model, len(messages))
        payload = build_chat_payload(
            model,
            messages,
            options,
            stream=True,
            context_window=self.stream_context_window,
        )
        parts: list[str] = []

        async with self.transport.stream(
            "POST", CHAT_PATH, json=payload, timeout=self.timeout
        ) as response:
            if not response.is_success:
                raise TransportError(f"Chat failed: HTTP {response.status_code}")

            logger.info("Streaming response started, processing chunks...")
            async for record in iter_records(iter_body(response)):
                if not isinstance(record, dict):
                    logger.warning("Skipping non-object stream record: %r", record)
                    continue
                if record.get("error") is not None:
                    error = record.get("error")
                    message = error if isinstance(error, str) else "Unknown error"
                    logger.error("Ollama stream error: %s", message)
                    raise ServerError(f"Ollama error: {message}")

                message_data = record.get("message")
                content = message_data.get("content") if isinstance(message_data, dict) else None
                done = record.get("done") is True
                if isinstance(content, str):
                    parts.append(content)
                    emit(sink, STREAM_CHUNK, StreamChunk(content=content, done=done))
                if done:
                    # Terminal record; anything after it is not part of this reply
                    break

        logger.info("Streaming completed successfully")
        return "".join(parts)


class EmbeddingClient:
    def __init__(self, transport: OllamaTransport, timeout: float = 30.0) -> None:
        self.transport = transport
        self.timeout = timeout

    async def embed(self, model: str, text: str) -> list[float]:
        logger.info("Ollama embedding request: model=%s, text_len=%d", model, len(text))
        payload = {"model": model, "prompt": text}
        try:
            response = await self.transport.post(
                EMBEDDINGS_PATH, json=payload, timeout=self.timeout
            )
        except TransportError as e:
            raise TransportError(f"Embedding request failed: {e}") from e
        if not response.is_success:
            raise TransportError(f"Embedding failed: HTTP {response.status_code}")

        try:
            embedding = [float(value) for value in response.json()["embedding"]]
        except (ValueError, KeyError, TypeError) as e:
            raise ProtocolError(f"Failed to parse response: {e}") from e

        logger.info("Embedding generated: %d dimensions", len(embedding))
        return embedding
