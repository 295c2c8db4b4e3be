"""Configuration management for the PrivatePDF backend.

Settings come from ``PRIVATEPDF_*`` environment variables (or a ``.env`` file).
Everything PrivatePDF writes to disk lives under one application-data root:

    <app data>/PrivatePDF/
      ollama/            <- managed Ollama install (extracted release zip)
      ollama_temp.zip    <- temporary download, removed after extraction
      logs/              <- rotating log files
      settings.json      <- persisted user preferences
"""

import logging
import os
import platform
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

APP_DIR_NAME = "PrivatePDF"


def get_os() -> str:
    """Return os key: macos, linux, or windows."""
    s = platform.system().lower()
    if s == "darwin":
        return "macos"
    return s if s in ("linux", "windows") else "linux"


class Settings(BaseSettings):
    """Backend settings with env and file support."""

    model_config = SettingsConfigDict(env_prefix="PRIVATEPDF_", env_file=".env", extra="ignore")

    # Ollama endpoint
    ollama_host: str = Field(
        default="http://127.0.0.1:11434", description="Local Ollama server (loopback only)"
    )

    # Per-operation timeouts (seconds)
    probe_timeout: float = Field(default=15.0, description="Version/tags probe timeout")
    embedding_timeout: float = Field(default=30.0, description="Embedding request timeout")
    chat_timeout: float = Field(default=120.0, description="Chat request timeout")
    pull_timeout: float = Field(default=1800.0, description="Model pull timeout")
    download_timeout: float = Field(default=600.0, description="Release archive download timeout")

    stream_context_window: int = Field(
        default=16384, description="num_ctx sent with streaming chat requests"
    )

    # Command API (loopback only)
    api_port: int = Field(default=8765, description="Port for the local command API")

    # Lifecycle
    shutdown_timeout: float = Field(
        default=5.0, description="Hard cap on waiting for Ollama to stop at exit"
    )
    verify_app_launch: bool = Field(
        default=True,
        description="On macOS, confirm the server answers after launching Ollama.app",
    )
    app_launch_timeout: float = Field(
        default=20.0, description="How long to wait for Ollama.app to bring the server up"
    )

    # Storage
    app_data_dir: Path | None = Field(
        default=None, description="Override the platform application-data root"
    )

    # Logging
    log_level: str = Field(default="WARNING", description="Root log level for privatepdf")
    debug: bool = Field(default=False, description="Force DEBUG logging")


def _platform_data_root() -> Path:
    os_key = get_os()
    if os_key == "windows":
        local = os.environ.get("LOCALAPPDATA")
        return Path(local) if local else Path.home() / "AppData" / "Local"
    if os_key == "macos":
        return Path.home() / "Library" / "Application Support"
    xdg = os.environ.get("XDG_DATA_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "share"


def get_app_data_dir(settings: Settings | None = None) -> Path:
    """Return the PrivatePDF application-data root (not created here)."""
    settings = settings or get_settings()
    if settings.app_data_dir is not None:
        return settings.app_data_dir
    return _platform_data_root() / APP_DIR_NAME


def get_install_dir(settings: Settings | None = None) -> Path:
    """Directory holding the PrivatePDF-managed Ollama install."""
    return get_app_data_dir(settings) / "ollama"


def get_temp_archive_path(settings: Settings | None = None) -> Path:
    """Temporary path for the downloaded release archive."""
    return get_app_data_dir(settings) / "ollama_temp.zip"


def get_log_dir(settings: Settings | None = None) -> Path:
    return get_app_data_dir(settings) / "logs"


def get_settings_path(settings: Settings | None = None) -> Path:
    return get_app_data_dir(settings) / "settings.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
