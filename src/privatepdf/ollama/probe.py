import asyncio
import logging

from .errors import TransportError
from .models import ServiceStatus
from .transport import OllamaTransport

logger = logging.getLogger(__name__)

VERSION_PATH = "/api/version"
TAGS_PATH = "/api/tags"


class ServiceProbe:
    """Liveness and model-list checks against the local Ollama server.

    Never raises: every failure is folded into the returned value.
    """

    def __init__(self, transport: OllamaTransport, timeout: float = 15.0) -> None:
        self.transport = transport
        self.timeout = timeout

    async def ping(self, timeout: float | None = None) -> bool:
        """True when ``/api/version`` answers with a success status."""
        try:
            response = await self.transport.get(
                VERSION_PATH, timeout=self.timeout if timeout is None else timeout
            )
        except TransportError as e:
            logger.info("Ollama ping failed: %s", e)
            return False
        if not response.is_success:
            logger.warning("Ollama ping returned non-success status: %s", response.status_code)
            return False
        logger.info("Ollama ping successful - server is ready")
        return True

    async def check_status(self) -> ServiceStatus:
        """Liveness first, then the model list.

        A reachable server whose tags call fails still reports ``running=True``
        so the UI can tell "no models" apart from "not running".
        """
        logger.info("Checking Ollama status...")
        if not await self.ping():
            return ServiceStatus.offline()

        not_listed = ServiceStatus(running=True, models_available=False, models=[])
        try:
            response = await self.transport.get(TAGS_PATH, timeout=self.timeout)
        except TransportError as e:
            logger.warning("Failed to check Ollama tags: %s", e)
            return not_listed
        if not response.is_success:
            logger.warning("Ollama tags endpoint returned error: %s", response.status_code)
            return not_listed

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("Failed to parse Ollama tags response: %s", e)
            return not_listed
        if not isinstance(data, dict):
            logger.warning("Unexpected Ollama tags payload: %r", type(data).__name__)
            return not_listed

        raw_models = data.get("models")
        models: list[str] = []
        if isinstance(raw_models, list):
            for model in raw_models:
                name = model.get("name") if isinstance(model, dict) else None
                if isinstance(name, str):
                    models.append(name)

        logger.info(
            "Ollama is running, models available: %s (models: %s)", bool(models), models
        )
        return ServiceStatus(running=True, models_available=bool(models), models=models)

    async def wait_until_ready(self, timeout: float, interval: float = 1.0) -> bool:
        """Ping until the server answers or ``timeout`` seconds pass."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            # Never wait past the deadline on a single attempt
            attempt_timeout = max(min(self.timeout, deadline - loop.time()), 0.1)
            if await self.ping(timeout=attempt_timeout):
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(interval, remaining))
