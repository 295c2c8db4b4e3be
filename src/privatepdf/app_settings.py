"""User preferences persisted as ``settings.json`` in the app-data root."""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from privatepdf.config import get_settings_path
from privatepdf.ollama.errors import FilesystemError

logger = logging.getLogger(__name__)


class AppSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    theme: str = "dark"
    ollama_model: str = "gemma3:1b-it-q4_K_M"
    temperature: float = 0.2
    top_p: float = 0.7


def load_settings(path: Path | None = None) -> AppSettings:
    """Load settings, or defaults when no file exists yet."""
    path = path or get_settings_path()
    logger.info("Loading app settings...")
    if not path.exists():
        logger.info("No settings file found, returning defaults")
        return AppSettings()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise FilesystemError(f"Failed to read settings file: {e}") from e
    except json.JSONDecodeError as e:
        raise FilesystemError(f"Failed to parse settings: {e}") from e

    try:
        return AppSettings.model_validate(raw)
    except ValidationError as e:
        raise FilesystemError(f"Failed to parse settings: {e}") from e


def save_settings(settings: AppSettings, path: Path | None = None) -> None:
    path = path or get_settings_path()
    logger.info("Saving app settings...")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings.model_dump(), indent=2), encoding="utf-8")
    except OSError as e:
        raise FilesystemError(f"Failed to write settings file: {e}") from e
    logger.info("Settings saved successfully to: %s", path)


def reset_settings(path: Path | None = None) -> AppSettings:
    """Delete the settings file and write fresh defaults."""
    path = path or get_settings_path()
    logger.info("Resetting settings to defaults...")
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise FilesystemError(f"Failed to delete settings file: {e}") from e

    defaults = AppSettings()
    save_settings(defaults, path)
    return defaults
