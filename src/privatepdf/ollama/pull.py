import logging

from .errors import ServerError, TransportError
from .events import MODEL_DOWNLOAD_PROGRESS, ProgressSink, emit
from .models import PullProgress
from .ndjson import iter_records
from .transport import OllamaTransport, iter_body

logger = logging.getLogger(__name__)

PULL_PATH = "/api/pull"


def _as_int(value) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


class ModelPuller:
    """Downloads a model through ``/api/pull`` and relays its progress records."""

    def __init__(self, transport: OllamaTransport, timeout: float = 1800.0) -> None:
        self.transport = transport
        self.timeout = timeout

    async def pull(self, model_name: str, sink: ProgressSink | None = None) -> None:
        logger.warning("Starting download for model: %s", model_name)
        payload = {"name": model_name, "stream": True}

        async with self.transport.stream(
            "POST", PULL_PATH, json=payload, timeout=self.timeout
        ) as response:
            if not response.is_success:
                error_msg = f"Failed to download model: HTTP {response.status_code}"
                logger.error(error_msg)
                raise TransportError(error_msg)

            async for record in iter_records(iter_body(response)):
                if not isinstance(record, dict):
                    continue
                error = record.get("error")
                if error is not None:
                    logger.error("Ollama pull error: %s", error)
                    raise ServerError(f"Ollama error: {error}")

                total = _as_int(record.get("total"))
                completed = _as_int(record.get("completed"))
                status = record.get("status")
                emit(
                    sink,
                    MODEL_DOWNLOAD_PROGRESS,
                    PullProgress(
                        model=model_name,
                        status=status if isinstance(status, str) else "",
                        total=total,
                        completed=completed,
                        percent=(completed / total) * 100.0 if total > 0 else 0.0,
                    ),
                )

        logger.warning("Successfully downloaded model: %s", model_name)
