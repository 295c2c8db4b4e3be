"""OllamaService — the single object the desktop shell talks to.

Wires one shared transport into the probe, launcher, terminator, chat,
embedding, pull, and install components built from :class:`Settings`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from privatepdf.config import Settings, get_install_dir, get_settings, get_temp_archive_path

from .chat import ChatClient, EmbeddingClient
from .events import ProgressSink
from .install import InstallWorkflow
from .launcher import ServiceLauncher, get_launcher
from .models import ChatMessage, ChatOptions, ServiceStatus
from .probe import ServiceProbe
from .pull import ModelPuller
from .terminator import ServiceTerminator, get_terminator, stop_on_exit
from .transport import OllamaTransport

logger = logging.getLogger(__name__)


class OllamaService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: OllamaTransport | None = None,
        launcher: ServiceLauncher | None = None,
        terminator: ServiceTerminator | None = None,
        installer: InstallWorkflow | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.transport = transport or OllamaTransport(self.settings.ollama_host)

        self.probe = ServiceProbe(self.transport, timeout=self.settings.probe_timeout)
        self.launcher = launcher or get_launcher(self.settings, probe=self.probe)
        self.terminator = terminator or get_terminator()
        self.chat_client = ChatClient(
            self.transport,
            timeout=self.settings.chat_timeout,
            stream_context_window=self.settings.stream_context_window,
        )
        self.embedding_client = EmbeddingClient(
            self.transport, timeout=self.settings.embedding_timeout
        )
        self.puller = ModelPuller(self.transport, timeout=self.settings.pull_timeout)
        self.installer = installer or InstallWorkflow(
            self.transport,
            get_install_dir(self.settings),
            get_temp_archive_path(self.settings),
            timeout=self.settings.download_timeout,
        )

    async def cleanup(self) -> None:
        await self.transport.aclose()

    # Lifecycle

    async def check_status(self) -> ServiceStatus:
        return await self.probe.check_status()

    async def ping(self) -> bool:
        return await self.probe.ping()

    async def start(self) -> str:
        return await self.launcher.start()

    async def stop(self) -> str:
        return await self.terminator.stop()

    def stop_on_exit(self) -> bool:
        return stop_on_exit(self.terminator, timeout=self.settings.shutdown_timeout)

    # Inference

    async def chat(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> str:
        return await self.chat_client.chat(model, messages, options)

    async def chat_stream(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
        sink: ProgressSink | None = None,
    ) -> str:
        return await self.chat_client.chat_stream(model, messages, options, sink)

    async def embed(self, model: str, text: str) -> list[float]:
        return await self.embedding_client.embed(model, text)

    # Downloads

    async def pull_model(self, model_name: str, sink: ProgressSink | None = None) -> None:
        await self.puller.pull(model_name, sink)

    async def install(self, is_amd_gpu: bool, sink: ProgressSink | None = None) -> str:
        await self.installer.run(is_amd_gpu, sink)
        return f"Installed to: {self.installer.install_dir}"


_active_service: OllamaService | None = None


def get_service() -> OllamaService:
    """Return the process-wide service, creating it on first use."""
    global _active_service
    if _active_service is None:
        _active_service = OllamaService()
    return _active_service


def set_service(service: OllamaService | None) -> None:
    global _active_service
    _active_service = service
