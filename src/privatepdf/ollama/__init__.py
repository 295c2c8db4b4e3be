"""PrivatePDF Ollama core — lifecycle manager and streaming client.

Manages:
  - Liveness/model probes against the local server (probe)
  - Starting and stopping ``ollama serve`` per platform (launcher, terminator)
  - Chat (sync + NDJSON streaming), embeddings, and model pulls
  - Downloading and unpacking a managed Ollama install (install)
"""

from .errors import (
    FilesystemError,
    LaunchError,
    NotFoundError,
    NotInstalledError,
    OllamaError,
    ProtocolError,
    ServerError,
    TerminateError,
    TransportError,
    UnsupportedPlatformError,
)
from .models import ChatMessage, ChatOptions, MessageRole, ServiceStatus, StreamChunk
from .service import OllamaService, get_service

__all__ = [
    "ChatMessage",
    "ChatOptions",
    "FilesystemError",
    "LaunchError",
    "MessageRole",
    "NotFoundError",
    "NotInstalledError",
    "OllamaError",
    "OllamaService",
    "ProtocolError",
    "ServerError",
    "ServiceStatus",
    "StreamChunk",
    "TerminateError",
    "TransportError",
    "UnsupportedPlatformError",
    "get_service",
]
