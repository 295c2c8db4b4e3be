import logging
import sys
from logging.handlers import RotatingFileHandler

from privatepdf.config import Settings, get_log_dir, get_settings

_LOGGER_NAME = "privatepdf"
_LOG_FILENAME = "privatepdf.log"


def setup_logging(settings: Settings | None = None, *, log_to_file: bool = True) -> logging.Logger:
    """Configure the ``privatepdf`` logger: stdout plus a rotating file in the log dir."""
    settings = settings or get_settings()
    _logger = logging.getLogger(_LOGGER_NAME)

    if _logger.handlers:
        return _logger

    if settings.debug:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(log_level, int):
            log_level = logging.WARNING
    _logger.setLevel(log_level)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    _logger.addHandler(console_handler)

    if log_to_file:
        log_dir = get_log_dir(settings)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / _LOG_FILENAME,
                maxBytes=2 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            )
        except OSError as e:
            _logger.warning("File logging disabled, cannot write to %s: %s", log_dir, e)
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            _logger.addHandler(file_handler)

    _logger.propagate = False
    return _logger
