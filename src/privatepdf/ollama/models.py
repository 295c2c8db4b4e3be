from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class ServiceStatus(BaseModel):
    running: bool
    models_available: bool
    models: list[str] = Field(default_factory=list)

    @classmethod
    def offline(cls) -> "ServiceStatus":
        return cls(running=False, models_available=False, models=[])


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str


class ChatOptions(BaseModel):
    """Sampling options; any field left as ``None`` gets its default."""

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, gt=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, gt=0)
    repeat_penalty: float | None = None
    repeat_last_n: int | None = None

    DEFAULT_TEMPERATURE: ClassVar[float] = 0.2
    DEFAULT_TOP_P: ClassVar[float] = 0.9
    DEFAULT_MAX_TOKENS: ClassVar[int] = 4096
    DEFAULT_REPEAT_PENALTY: ClassVar[float] = 1.1
    DEFAULT_REPEAT_LAST_N: ClassVar[int] = 64

    def to_ollama_options(self) -> dict[str, Any]:
        """Map to Ollama's ``options`` object with defaults applied field-by-field."""
        return {
            "temperature": (
                self.DEFAULT_TEMPERATURE if self.temperature is None else self.temperature
            ),
            "num_predict": self.DEFAULT_MAX_TOKENS if self.max_tokens is None else self.max_tokens,
            "top_p": self.DEFAULT_TOP_P if self.top_p is None else self.top_p,
            "repeat_penalty": (
                self.DEFAULT_REPEAT_PENALTY if self.repeat_penalty is None else self.repeat_penalty
            ),
            "repeat_last_n": (
                self.DEFAULT_REPEAT_LAST_N if self.repeat_last_n is None else self.repeat_last_n
            ),
        }


class StreamChunk(BaseModel):
    content: str
    done: bool = False


class DownloadProgress(BaseModel):
    downloaded: int
    total: int
    percent: float


class ExtractionProgress(BaseModel):
    current: int
    total: int
    percent: float


class PullProgress(BaseModel):
    model: str
    status: str = ""
    total: int = 0
    completed: int = 0
    percent: float = 0.0


class InstallStatus(BaseModel):
    status: str
    message: str
